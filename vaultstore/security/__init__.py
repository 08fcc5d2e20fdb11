"""Security package initialization.

The :mod:`vaultstore.security` package contains the text cipher used to
encrypt selected model fields at rest.  The public API is intentionally
minimal to keep the top‑level namespace clean.
"""

from .crypto import AesEncryptionTool, decrypt_data, encrypt_data
