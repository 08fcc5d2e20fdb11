"""
records.provider
~~~~~~~~~~~~~~~~

The session factory provider: owns the store connection, the set of
registered model sources and the ``sessionmaker`` derived from them.

Lifecycle::

    UNINITIALIZED --register_source--> CONFIGURED --build--> BUILT
    BUILT --register_source--> CONFIGURED --build--> BUILT
    any state --dispose--> DISPOSED (terminal)

A model source is a declarative base (or a single mapped class).  The
factory binds every registered source to the provider's engine, so a
session can only reach models whose source has been registered.

Thread safety: registration and builds are serialized by an internal lock,
but they are not coordinated with CRUD calls already in flight.  Finish all
registrations (normally one per repository, at construction) before issuing
concurrent CRUD traffic.  Concurrent writes are isolated only as far as the
store's transaction isolation level goes.
"""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from sqlalchemy import MetaData, create_engine, event
from sqlalchemy.engine import URL, Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vaultstore.config import settings
from vaultstore.errors import DisposedUse, InvalidArgument, PersistenceNotConfigured
from vaultstore.records.dialects import DatabaseKind, build_url, is_memory_database, select_dialect
from vaultstore.records.session import VaultSession
from vaultstore.utils.logger import get_logger

logger = get_logger(__name__)


class ProviderState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    CONFIGURED = "configured"
    BUILT = "built"
    DISPOSED = "disposed"


@dataclass(frozen=True)
class StoreConfiguration:
    """Everything a session factory is built from."""

    url: URL
    dialect: str
    sources: Tuple[Any, ...]


def source_metadata(source: Any) -> Optional[MetaData]:
    """Return the ``MetaData`` a source carries, or ``None``."""
    metadata = getattr(source, "metadata", None)
    return metadata if isinstance(metadata, MetaData) else None


def model_source(model_type: type) -> type:
    """
    Return the declarative base *model_type* was declared against.

    Falls back to *model_type* itself when no base can be identified.
    """
    for klass in reversed(model_type.__mro__):
        if "registry" in klass.__dict__ and isinstance(klass.__dict__.get("metadata"), MetaData):
            return klass
    return model_type


class SessionFactoryProvider:
    """
    Lazily builds and rebuilds the session factory for a store.

    Parameters
    ----------
    connection_string : str
        Store connection string, see :func:`vaultstore.records.dialects.build_url`.
    database_kind : DatabaseKind
        Selects the SQLAlchemy dialect.
    create_schema : bool
        Issue ``CREATE TABLE`` for every registered source's tables (existing
        tables are left alone) whenever the factory is built.
    echo : bool
        Log emitted SQL through SQLAlchemy's engine logger.
    """

    def __init__(
        self,
        connection_string: str,
        database_kind: DatabaseKind = DatabaseKind.MSSQL,
        *,
        create_schema: bool = False,
        echo: bool = settings.SQL_ECHO,
    ) -> None:
        if not connection_string or not str(connection_string).strip():
            raise InvalidArgument("connection_string must be a non-empty string")

        self._connection_string = connection_string
        self._database_kind = database_kind
        self._url = build_url(connection_string, database_kind)
        self._create_schema = create_schema
        self._echo = echo

        self._sources: List[Any] = []
        self._configuration: Optional[StoreConfiguration] = None
        self._session_factory: Optional[sessionmaker] = None
        self._engine: Optional[Engine] = None
        self._state = ProviderState.UNINITIALIZED
        self._references = 0
        self._lock = threading.RLock()

    @classmethod
    def from_environment(cls, **kwargs: Any) -> "SessionFactoryProvider":
        """Build a provider from ``VAULTSTORE_CONNECTION_STRING`` and ``VAULTSTORE_DATABASE_KIND``."""
        connection_string = settings.get_setting(settings.CONNECTION_STRING_ENV_VAR)
        kind = DatabaseKind.parse(
            settings.get_setting(settings.DATABASE_KIND_ENV_VAR, settings.DEFAULT_DATABASE_KIND)
        )
        return cls(connection_string, kind, **kwargs)

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def connection_string(self) -> str:
        return self._connection_string

    @property
    def database_kind(self) -> DatabaseKind:
        return self._database_kind

    @property
    def state(self) -> ProviderState:
        return self._state

    @property
    def sources(self) -> Tuple[Any, ...]:
        return tuple(self._sources)

    @property
    def configuration(self) -> Optional[StoreConfiguration]:
        return self._configuration

    @property
    def session_factory(self) -> sessionmaker:
        return self.get_session_factory()

    @property
    def engine(self) -> Engine:
        """The engine all sessions are bound to; created on first use."""
        with self._lock:
            self._check_not_disposed()
            if self._engine is None:
                self._engine = self._create_engine()
            return self._engine

    # ------------------------------------------------------------------ #
    # Registration and factory
    # ------------------------------------------------------------------ #

    def register_source(self, source: Any) -> None:
        """
        Register a model source and rebuild the session factory.

        Registering a source that is already present changes nothing.
        Sessions opened from a previous factory keep working; new sessions
        come from the rebuilt one.
        """
        if source is None:
            raise InvalidArgument("source must not be None")
        if source_metadata(source) is None:
            raise InvalidArgument(f"{source!r} carries no SQLAlchemy metadata")

        with self._lock:
            self._check_not_disposed()
            if source in self._sources:
                logger.debug("Source %s already registered", _source_name(source))
                return

            self._sources.append(source)
            self._configure()
            logger.info("Registered model source %s (%d total)", _source_name(source), len(self._sources))
            self._build()

    def get_session_factory(self) -> sessionmaker:
        """Return the session factory, building it on first access."""
        with self._lock:
            self._check_not_disposed()
            if self._session_factory is None:
                self._build()
            return self._session_factory

    def _configure(self) -> None:
        self._session_factory = None
        self._configuration = StoreConfiguration(
            url=self._url,
            dialect=select_dialect(self._database_kind),
            sources=tuple(self._sources),
        )
        self._state = ProviderState.CONFIGURED

    def _build(self) -> None:
        if not self._sources:
            raise PersistenceNotConfigured(
                "No model sources have been registered from which mappings should be read."
            )
        if self._configuration is None:
            self._configure()

        engine = self.engine
        if self._create_schema:
            for metadata in _unique_metadata(self._configuration.sources):
                metadata.create_all(engine)

        self._session_factory = sessionmaker(
            class_=VaultSession,
            expire_on_commit=False,
            binds={source: engine for source in self._configuration.sources},
        )
        self._state = ProviderState.BUILT
        logger.info(
            "Built session factory for %s with %d source(s)",
            self._configuration.dialect,
            len(self._configuration.sources),
        )

    def _create_engine(self) -> Engine:
        url = self._url
        kwargs: dict = {"echo": self._echo}

        if url.get_backend_name() == "sqlite":
            kwargs["connect_args"] = {"check_same_thread": False}
            if is_memory_database(url):
                # One shared connection so the in-memory schema outlives checkouts
                kwargs["poolclass"] = StaticPool
            engine = create_engine(url, **kwargs)

            @event.listens_for(engine, "connect")
            def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

            return engine

        return create_engine(url, **kwargs)

    # ------------------------------------------------------------------ #
    # Ownership and disposal
    # ------------------------------------------------------------------ #

    def acquire(self) -> "SessionFactoryProvider":
        """Take a reference; pair every call with :meth:`release`."""
        with self._lock:
            self._check_not_disposed()
            self._references += 1
            return self

    def release(self) -> None:
        """Drop a reference; the last one disposes the provider."""
        with self._lock:
            if self._state is ProviderState.DISPOSED:
                return
            self._references = max(self._references - 1, 0)
            if self._references == 0:
                self.dispose()

    @property
    def references(self) -> int:
        return self._references

    def dispose(self) -> None:
        """Release the engine and factory.  Idempotent and never raises."""
        with self._lock:
            if self._state is ProviderState.DISPOSED:
                return
            engine, self._engine = self._engine, None
            self._session_factory = None
            self._configuration = None
            self._references = 0
            self._state = ProviderState.DISPOSED

        if engine is not None:
            try:
                engine.dispose()
            except Exception:
                logger.warning("Error disposing engine", exc_info=True)
        logger.info("Session factory provider disposed")

    def _check_not_disposed(self) -> None:
        if self._state is ProviderState.DISPOSED:
            raise DisposedUse("The session factory provider has been disposed.")

    def __enter__(self) -> "SessionFactoryProvider":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return (
            f"SessionFactoryProvider(kind={getattr(self._database_kind, 'name', self._database_kind)}, "
            f"state={self._state.value}, sources={len(self._sources)})"
        )


def _unique_metadata(sources: Tuple[Any, ...]) -> List[MetaData]:
    seen: List[MetaData] = []
    for source in sources:
        metadata = source_metadata(source)
        if metadata is not None and not any(metadata is m for m in seen):
            seen.append(metadata)
    return seen


def _source_name(source: Any) -> str:
    return getattr(source, "__qualname__", None) or repr(source)
