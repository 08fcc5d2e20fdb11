"""
security.crypto
~~~~~~~~~~~~~~~

Passphrase based text encryption for fields stored at rest.  The
implementation uses the `cryptography` package (AES‑GCM) with a key derived
from the passphrase through PBKDF2-HMAC-SHA256.

The module exposes:

* :func:`derive_key`
* :func:`encrypt_data`
* :func:`decrypt_data`
* :class:`AesEncryptionTool` -- the text-level cipher used by repositories.

Ciphertext layout (before URL-safe base64)::

    salt (16 bytes) || nonce (12 bytes) || AES-GCM ciphertext + tag
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from vaultstore.config import settings
from vaultstore.errors import DecryptionFailed, InvalidArgument

_TAG_SIZE = 16


# --------------------------------------------------------------------------- #
# Helper Functions
# --------------------------------------------------------------------------- #

def _generate_random_bytes(n: int) -> bytes:
    """Return ``n`` cryptographically‑secure random bytes."""
    return os.urandom(n)


def derive_key(passphrase: str, salt: bytes, iterations: int = settings.PBKDF2_ITERATIONS) -> bytes:
    """
    Derive an AES key from *passphrase* using PBKDF2-HMAC-SHA256.
    """
    return hashlib.pbkdf2_hmac(
        "sha256",
        passphrase.encode("utf-8"),
        salt,
        iterations,
        dklen=settings.AES_GCM_KEY_SIZE,
    )


def encrypt_data(plaintext: bytes, key: bytes, nonce: bytes | None = None) -> Tuple[bytes, bytes]:
    """
    Encrypt ``plaintext`` using AES‑GCM.

    Parameters
    ----------
    plaintext : bytes
        The data to encrypt.
    key : bytes
        A 256-bit key, see :func:`derive_key`.
    nonce : bytes | None
        Optional 12‑byte nonce.  If omitted a random nonce is generated.

    Returns
    -------
    Tuple[bytes, bytes]
        ``(ciphertext, nonce)``; the ciphertext carries the GCM tag.
    """
    if nonce is None:
        nonce = _generate_random_bytes(settings.AES_GCM_NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)
    return ciphertext, nonce


def decrypt_data(ciphertext: bytes, key: bytes, nonce: bytes) -> bytes:
    """
    Decrypt ``ciphertext`` using AES‑GCM.

    Raises :class:`cryptography.exceptions.InvalidTag` when the key does not
    match or the ciphertext was tampered with.
    """
    return AESGCM(key).decrypt(nonce, ciphertext, None)


# --------------------------------------------------------------------------- #
# Public API
# --------------------------------------------------------------------------- #

class AesEncryptionTool:
    """
    Encrypts and decrypts text under a passphrase.

    Every call to :meth:`encrypt_text` uses a fresh salt and nonce, so the
    same plaintext never yields the same ciphertext twice.  For a fixed
    passphrase ``decrypt_text(encrypt_text(s, p), p) == s`` holds for every
    string, the empty string included.

    Parameters
    ----------
    iterations : int
        PBKDF2 iteration count.  Ciphertext must be decrypted with the
        count it was produced with.
    """

    def __init__(self, iterations: int = settings.PBKDF2_ITERATIONS) -> None:
        if iterations < 1:
            raise InvalidArgument("iterations must be a positive integer")
        self.iterations = iterations

    def encrypt_text(self, text: str, passphrase: str) -> str:
        """Return the URL-safe base64 ciphertext of *text*."""
        self._check_passphrase(passphrase)
        salt = _generate_random_bytes(settings.PBKDF2_SALT_SIZE)
        key = derive_key(passphrase, salt, self.iterations)
        ciphertext, nonce = encrypt_data(text.encode("utf-8"), key)
        return base64.urlsafe_b64encode(salt + nonce + ciphertext).decode("ascii")

    def decrypt_text(self, text: str, passphrase: str) -> str:
        """Return the plaintext of *text*; the empty string decrypts to itself."""
        self._check_passphrase(passphrase)
        if not text:
            return ""
        try:
            payload = base64.urlsafe_b64decode(text.encode("ascii"))
        except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
            raise DecryptionFailed("ciphertext is not valid base64", exc) from exc

        header = settings.PBKDF2_SALT_SIZE + settings.AES_GCM_NONCE_SIZE
        if len(payload) < header + _TAG_SIZE:
            raise DecryptionFailed("ciphertext is too short")

        salt = payload[: settings.PBKDF2_SALT_SIZE]
        nonce = payload[settings.PBKDF2_SALT_SIZE : header]
        key = derive_key(passphrase, salt, self.iterations)
        try:
            plaintext = decrypt_data(payload[header:], key, nonce)
        except InvalidTag as exc:
            raise DecryptionFailed("ciphertext failed authentication", exc) from exc
        return plaintext.decode("utf-8")

    @staticmethod
    def _check_passphrase(passphrase: str) -> None:
        if not passphrase:
            raise InvalidArgument("passphrase must be a non-empty string")
