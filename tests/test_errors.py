import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from vaultstore.errors import (
    DecryptionFailed,
    DisposedUse,
    ErrorKind,
    InvalidArgument,
    PersistenceError,
    PersistenceNotConfigured,
    StoreOperationFailed,
    error_kind,
)


@pytest.mark.parametrize(
    "exc_type,kind",
    [
        (InvalidArgument, ErrorKind.INVALID_ARGUMENT),
        (PersistenceNotConfigured, ErrorKind.NOT_CONFIGURED),
        (DisposedUse, ErrorKind.DISPOSED_USE),
        (DecryptionFailed, ErrorKind.DECRYPTION_FAILED),
    ],
)
def test_error_kinds(exc_type, kind):
    exc = exc_type("message")
    assert isinstance(exc, PersistenceError)
    assert exc.kind is kind
    assert error_kind(exc) is kind
    assert exc.message == "message"
    assert str(exc) == "message"


def test_invalid_argument_is_a_value_error():
    with pytest.raises(ValueError):
        raise InvalidArgument("bad")


def test_cause_is_chained():
    cause = KeyError("inner")
    exc = DecryptionFailed("outer", cause)
    assert exc.cause is cause
    assert exc.__cause__ is cause
    assert "decryption_failed" in repr(exc)


def test_store_errors_are_sqlalchemy_errors():
    assert StoreOperationFailed is SQLAlchemyError
    store_error = OperationalError("SELECT 1", {}, Exception("db down"))
    assert error_kind(store_error) is ErrorKind.STORE_OPERATION_FAILED


def test_foreign_errors_are_unclassified():
    assert error_kind(RuntimeError("other")) is None
