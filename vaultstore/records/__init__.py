"""Record storage package.

This package provides generic CRUD repositories over a relational store
and an encrypting decorator for them.  The implementation uses
:mod:`sqlalchemy` for ORM mapping and the ``cryptography`` helpers from
:mod:`vaultstore.security.crypto`.
"""

from .dialects import DatabaseKind, select_dialect
from .encryption import EncryptedRepository, credential_repository
from .models import Credential, DataModel, RecordBase
from .provider import ProviderState, SessionFactoryProvider
from .repository import CrudRepository, Repository
from .session import run_in_transaction, session_scope, transaction_scope
