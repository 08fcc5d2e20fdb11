"""
records.repository
~~~~~~~~~~~~~~~~~~

Generic CRUD repository.  Each call is its own unit of work: a fresh
session, a transaction for writes, commit on success, rollback on failure,
and the session closed on every path.  Errors raised by SQLAlchemy reach
the caller unchanged; nothing is retried.

Writes go through a session-owned copy of the caller's column values, so
the caller's object never joins a session: a rollback cannot expire it and
it stays usable whatever the outcome.  Only column attributes are
persisted; relationships are not followed.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Generic, Optional, Protocol, Type, TypeVar

from sqlalchemy import inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import make_transient_to_detached
from sqlalchemy.orm.attributes import flag_modified

from vaultstore.errors import DisposedUse, InvalidArgument
from vaultstore.records.models import DataModel
from vaultstore.records.provider import SessionFactoryProvider, model_source
from vaultstore.records.session import session_scope, transaction_scope
from vaultstore.utils.logger import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=DataModel)


class CrudRepository(Protocol[ModelT]):
    """The operations every repository exposes."""

    model_type: Type[ModelT]

    def create(self, model: ModelT) -> ModelT: ...

    def read(self, model_id: int) -> Optional[ModelT]: ...

    def update(self, model: ModelT) -> None: ...

    def delete(self, model: ModelT) -> None: ...

    def new(self, **fields: Any) -> ModelT: ...

    def dispose(self) -> None: ...


class Repository(Generic[ModelT]):
    """
    Persists instances of one mapped model type.

    Constructing a repository registers the model's declarative base with
    *provider* and takes a reference on it; :meth:`dispose` gives the
    reference back, and the provider is disposed once its last repository
    is.

    Parameters
    ----------
    model_type : type
        A mapped class with an integer ``id`` primary key.
    provider : SessionFactoryProvider
        Supplies sessions.
    factory : callable, optional
        Builds new instances for :meth:`new`; defaults to ``model_type``.
    """

    def __init__(
        self,
        model_type: Type[ModelT],
        provider: SessionFactoryProvider,
        factory: Optional[Callable[..., ModelT]] = None,
    ) -> None:
        if provider is None:
            raise InvalidArgument("provider must not be None")
        try:
            mapper = inspect(model_type)
        except NoInspectionAvailable:
            raise InvalidArgument(f"{model_type!r} is not a mapped class") from None
        if "id" not in mapper.column_attrs:
            raise InvalidArgument(f"{model_type.__name__} has no 'id' column")

        self.model_type = model_type
        self._factory = factory or model_type
        self._disposed = False

        provider.register_source(model_source(model_type))
        self._provider = provider.acquire()

    # ------------------------------------------------------------------ #
    # CRUD
    # ------------------------------------------------------------------ #

    def create(self, model: ModelT) -> ModelT:
        """
        Insert *model* as a new row and set its ``id`` to the store-generated value.

        Any identifier already on *model* is ignored: every call inserts a
        fresh row, so creating the same object twice stores it twice.
        """
        factory = self._session_factory()
        row = self._copy(model, self._column_values(model, with_key=False))
        with transaction_scope(factory) as session:
            session.add(row)
            session.flush()
        model.id = row.id
        logger.debug("Created %s id=%s", self.model_type.__name__, model.id)
        return model

    def read(self, model_id: int) -> Optional[ModelT]:
        """Return the instance with identifier *model_id*, or ``None``."""
        factory = self._session_factory()
        with session_scope(factory) as session:
            return session.get(self.model_type, model_id)

    def update(self, model: ModelT) -> None:
        """
        Write *model*'s loaded column values over the stored row.

        A row that no longer exists surfaces as SQLAlchemy's ``StaleDataError``.
        """
        self._require_identifier(model, "update")
        factory = self._session_factory()
        values = self._column_values(model, with_key=True)
        row = self._detached_copy(model, values)
        key_names = self._key_names(model)
        with transaction_scope(factory) as session:
            session.add(row)
            for name in values:
                if name not in key_names:
                    flag_modified(row, name)
        logger.debug("Updated %s id=%s", self.model_type.__name__, model.id)

    def delete(self, model: ModelT) -> None:
        """Remove the row identified by ``model.id``."""
        self._require_identifier(model, "delete")
        factory = self._session_factory()
        key_names = self._key_names(model)
        values = {
            name: value
            for name, value in self._column_values(model, with_key=True).items()
            if name in key_names
        }
        row = self._detached_copy(model, values)
        with transaction_scope(factory) as session:
            session.add(row)
            session.delete(row)
        logger.debug("Deleted %s id=%s", self.model_type.__name__, model.id)

    def new(self, **fields: Any) -> ModelT:
        """Build an unsaved instance through the configured factory."""
        return self._factory(**fields)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    @property
    def provider(self) -> SessionFactoryProvider:
        return self._provider

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """Release the provider.  Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        self._provider.release()

    def __enter__(self) -> "Repository[ModelT]":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.dispose()

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _session_factory(self):
        if self._disposed:
            raise DisposedUse(f"{type(self).__name__}[{self.model_type.__name__}] has been disposed.")
        return self._provider.get_session_factory()

    def _require_identifier(self, model: ModelT, operation: str) -> None:
        if not model.id:
            raise InvalidArgument(f"cannot {operation} a {type(model).__name__} without an id")

    @staticmethod
    def _key_names(model: Any) -> set:
        mapper = inspect(model).mapper
        return {mapper.get_property_by_column(column).key for column in mapper.primary_key}

    def _column_values(self, model: Any, with_key: bool) -> Dict[str, Any]:
        state = inspect(model)
        key_names = self._key_names(model)
        return {
            attr.key: state.dict[attr.key]
            for attr in state.mapper.column_attrs
            if attr.key in state.dict and (with_key or attr.key not in key_names)
        }

    @staticmethod
    def _copy(model: Any, values: Dict[str, Any]) -> Any:
        row = inspect(model).mapper.class_manager.new_instance()
        for name, value in values.items():
            setattr(row, name, value)
        return row

    def _detached_copy(self, model: Any, values: Dict[str, Any]) -> Any:
        # Same identity as the stored row, history reset as if freshly loaded
        row = self._copy(model, values)
        make_transient_to_detached(row)
        return row
