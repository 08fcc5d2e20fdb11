"""
vaultstore.errors
~~~~~~~~~~~~~~~~~

Error kinds raised by the persistence layer.

Every error raised by vaultstore itself is a :class:`PersistenceError`
tagged with an :class:`ErrorKind`.  Errors coming from SQLAlchemy during
session open, query execution or commit are *not* wrapped: they reach the
caller unchanged, and :data:`StoreOperationFailed` names their common base
so callers can catch them explicitly.
"""

from __future__ import annotations

import enum

from sqlalchemy.exc import SQLAlchemyError


class ErrorKind(enum.Enum):
    """Tag carried by every :class:`PersistenceError`."""

    INVALID_ARGUMENT = "invalid_argument"
    NOT_CONFIGURED = "persistence_not_configured"
    STORE_OPERATION_FAILED = "store_operation_failed"
    DISPOSED_USE = "disposed_use"
    DECRYPTION_FAILED = "decryption_failed"


class PersistenceError(Exception):
    """Base class for errors raised by the persistence layer."""

    kind: ErrorKind = ErrorKind.STORE_OPERATION_FAILED

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class InvalidArgument(PersistenceError, ValueError):
    """A constructor or operation received an unusable argument."""

    kind = ErrorKind.INVALID_ARGUMENT


class PersistenceNotConfigured(PersistenceError):
    """A session factory was requested before any model source was registered."""

    kind = ErrorKind.NOT_CONFIGURED


class DisposedUse(PersistenceError):
    """A provider or repository was used after it had been disposed."""

    kind = ErrorKind.DISPOSED_USE


class DecryptionFailed(PersistenceError):
    """Ciphertext was malformed or was produced under another passphrase."""

    kind = ErrorKind.DECRYPTION_FAILED


#: Store errors propagate verbatim; this is their common base class.
StoreOperationFailed = SQLAlchemyError


def error_kind(exc: BaseException) -> ErrorKind | None:
    """Classify *exc*, returning ``None`` for errors foreign to the persistence layer."""
    if isinstance(exc, PersistenceError):
        return exc.kind
    if isinstance(exc, SQLAlchemyError):
        return ErrorKind.STORE_OPERATION_FAILED
    return None
