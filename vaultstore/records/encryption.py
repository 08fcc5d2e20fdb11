"""
Encrypting repository.

Wraps a :class:`~vaultstore.records.repository.Repository` and runs a
selected set of text fields through :class:`AesEncryptionTool` on the way in
and out, so the store only ever sees ciphertext and callers only ever see
plaintext.  Transactions stay entirely with the wrapped repository.
"""

from __future__ import annotations

from typing import Any, Dict, Generic, Iterable, Optional, Tuple, Type

from sqlalchemy import inspect

from vaultstore.config import settings
from vaultstore.errors import InvalidArgument
from vaultstore.records.models import CREDENTIAL_ENCRYPTED_FIELDS, Credential
from vaultstore.records.provider import SessionFactoryProvider
from vaultstore.records.repository import CrudRepository, ModelT, Repository
from vaultstore.security.crypto import AesEncryptionTool


class EncryptedRepository(Generic[ModelT]):
    """
    Repository decorator that encrypts the *fields* of every model it stores.

    ``None`` values are left alone; every other selected value must be a
    string.  Fields outside the selection pass through untouched.

    Whatever the outcome of a store call, the caller's object ends up
    holding plaintext: :meth:`create` decrypts on success and restores the
    original values on failure, :meth:`update` and :meth:`delete` restore
    them in both cases.

    Parameters
    ----------
    repository : CrudRepository
        The repository that owns sessions and transactions.
    passphrase : str
        Non-empty passphrase handed to the cipher.
    fields : Iterable[str]
        Names of the mapped string columns to encrypt.
    cipher : AesEncryptionTool, optional
        Defaults to an :class:`AesEncryptionTool` with the configured
        iteration count.
    """

    def __init__(
        self,
        repository: CrudRepository[ModelT],
        passphrase: str,
        fields: Iterable[str],
        cipher: Optional[AesEncryptionTool] = None,
    ) -> None:
        if repository is None:
            raise InvalidArgument("repository must not be None")
        if not passphrase:
            raise InvalidArgument("passphrase must be a non-empty string")

        fields = tuple(fields or ())
        if not fields:
            raise InvalidArgument("at least one field must be selected for encryption")
        columns = inspect(repository.model_type).column_attrs
        unknown = [name for name in fields if name not in columns]
        if unknown:
            raise InvalidArgument(
                f"{repository.model_type.__name__} has no column(s): {', '.join(unknown)}"
            )

        self._repository = repository
        self._passphrase = passphrase
        self._fields: Tuple[str, ...] = fields
        self._cipher = cipher or AesEncryptionTool()

    @property
    def repository(self) -> CrudRepository[ModelT]:
        return self._repository

    @property
    def model_type(self) -> Type[ModelT]:
        return self._repository.model_type

    @property
    def fields(self) -> Tuple[str, ...]:
        return self._fields

    # CRUD

    def create(self, model: ModelT) -> ModelT:
        """
        Store *model* with its selected fields encrypted.

        Returns
        -------
        ModelT
            *model*, with ``id`` assigned and plaintext fields.  If the store
            call fails the original values are put back before the error
            propagates, so the same object can be retried.
        """
        plaintext = self._snapshot(model)
        try:
            model = self._repository.create(self.encrypt_fields(model))
        except BaseException:
            self._restore(model, plaintext)
            raise
        return self.decrypt_fields(model)

    def read(self, model_id: int) -> Optional[ModelT]:
        """Return the decrypted instance with identifier *model_id*, or ``None``."""
        model = self._repository.read(model_id)
        if model is None:
            return None
        return self.decrypt_fields(model)

    def update(self, model: ModelT) -> None:
        """Write *model* with its selected fields encrypted; *model* keeps its plaintext."""
        plaintext = self._snapshot(model)
        try:
            self._repository.update(self.encrypt_fields(model))
        finally:
            self._restore(model, plaintext)

    def delete(self, model: ModelT) -> None:
        """Remove the row identified by ``model.id``; *model* keeps its plaintext."""
        plaintext = self._snapshot(model)
        try:
            self._repository.delete(self.encrypt_fields(model))
        finally:
            self._restore(model, plaintext)

    def new(self, **fields: Any) -> ModelT:
        """Build an unsaved instance through the wrapped repository."""
        return self._repository.new(**fields)

    # Field hooks

    def encrypt_text(self, text: str) -> str:
        """Encrypt *text* under the repository passphrase."""
        return self._cipher.encrypt_text(text, self._passphrase)

    def decrypt_text(self, text: str) -> str:
        """Decrypt *text*; raises :class:`~vaultstore.errors.DecryptionFailed` on a bad token."""
        return self._cipher.decrypt_text(text, self._passphrase)

    def encrypt_fields(self, model: ModelT) -> ModelT:
        """Replace each selected, non-``None`` field of *model* with its ciphertext."""
        for name in self._fields:
            value = getattr(model, name)
            if value is not None:
                setattr(model, name, self.encrypt_text(value))
        return model

    def decrypt_fields(self, model: ModelT) -> ModelT:
        """Replace each selected, non-``None`` field of *model* with its plaintext."""
        for name in self._fields:
            value = getattr(model, name)
            if value is not None:
                setattr(model, name, self.decrypt_text(value))
        return model

    def _snapshot(self, model: ModelT) -> Dict[str, Any]:
        return {name: getattr(model, name) for name in self._fields}

    @staticmethod
    def _restore(model: ModelT, values: Dict[str, Any]) -> None:
        for name, value in values.items():
            setattr(model, name, value)

    # Lifecycle

    def dispose(self) -> None:
        """Dispose the wrapped repository."""
        self._repository.dispose()

    def __enter__(self) -> "EncryptedRepository[ModelT]":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.dispose()


def credential_repository(
    provider: SessionFactoryProvider,
    passphrase: Optional[str] = None,
    cipher: Optional[AesEncryptionTool] = None,
) -> EncryptedRepository[Credential]:
    """
    Return an encrypting repository for :class:`Credential`.

    *passphrase* defaults to ``VAULTSTORE_PASSPHRASE``.  It is checked before
    the provider is touched, so a bad passphrase never registers anything.
    """
    if passphrase is None:
        passphrase = settings.get_setting(settings.PASSPHRASE_ENV_VAR)
    if not passphrase:
        raise InvalidArgument("passphrase must be a non-empty string")
    return EncryptedRepository(
        Repository(Credential, provider),
        passphrase,
        CREDENTIAL_ENCRYPTED_FIELDS,
        cipher=cipher,
    )
