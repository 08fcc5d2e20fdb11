"""vaultstore: CRUD repositories with transparent field encryption."""

from vaultstore.errors import (
    DecryptionFailed,
    DisposedUse,
    ErrorKind,
    InvalidArgument,
    PersistenceError,
    PersistenceNotConfigured,
    StoreOperationFailed,
)
from vaultstore.records import (
    Credential,
    DatabaseKind,
    EncryptedRepository,
    Repository,
    SessionFactoryProvider,
    credential_repository,
)

__version__ = "0.1.0"
