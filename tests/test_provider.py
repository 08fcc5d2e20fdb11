import pytest
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import UnboundExecutionError

from vaultstore.config import settings
from vaultstore.errors import DisposedUse, InvalidArgument, PersistenceNotConfigured
from vaultstore.records.dialects import DatabaseKind
from vaultstore.records.models import Credential, RecordBase
from vaultstore.records.provider import ProviderState, SessionFactoryProvider, model_source
from vaultstore.records.session import session_scope


@pytest.mark.parametrize("connection_string", ["", "   ", None])
def test_empty_connection_string_fails_fast(connection_string):
    with pytest.raises(InvalidArgument):
        SessionFactoryProvider(connection_string, DatabaseKind.SQLITE)


def test_malformed_connection_string_fails_fast():
    with pytest.raises(InvalidArgument):
        SessionFactoryProvider("Server=db.local;Port=abc", DatabaseKind.MYSQL)


def test_unconfigured_provider_fails(provider):
    assert provider.state is ProviderState.UNINITIALIZED
    with pytest.raises(PersistenceNotConfigured):
        provider.get_session_factory()


def test_single_registration_makes_factory_available(provider, sample_base):
    provider.register_source(sample_base)

    assert provider.state is ProviderState.BUILT
    factory = provider.get_session_factory()
    assert factory is provider.session_factory
    assert provider.configuration.sources == (sample_base,)
    assert provider.configuration.dialect == "sqlite+pysqlite"


def test_registration_rebuilds_factory(provider, sample_base):
    provider.register_source(sample_base)
    first = provider.get_session_factory()

    provider.register_source(RecordBase)
    second = provider.get_session_factory()

    assert second is not first
    assert provider.sources == (sample_base, RecordBase)
    assert provider.state is ProviderState.BUILT


def test_duplicate_registration_is_a_noop(provider, sample_base):
    provider.register_source(sample_base)
    factory = provider.get_session_factory()

    provider.register_source(sample_base)

    assert provider.get_session_factory() is factory
    assert provider.sources == (sample_base,)


def test_engine_survives_rebuilds(provider, sample_base):
    provider.register_source(sample_base)
    engine = provider.engine
    provider.register_source(RecordBase)
    assert provider.engine is engine


def test_schema_created_for_registered_sources(provider, sample_base):
    provider.register_source(sample_base)
    provider.register_source(RecordBase)

    tables = set(sa_inspect(provider.engine).get_table_names())
    assert {"notes", "credentials"} <= tables


def test_factory_only_reaches_registered_sources(provider, sample_base):
    provider.register_source(sample_base)

    with session_scope(provider.get_session_factory()) as session:
        with pytest.raises(UnboundExecutionError):
            session.get(Credential, 1)


@pytest.mark.parametrize("source", [None, object(), "notes"])
def test_register_rejects_sources_without_metadata(provider, source):
    with pytest.raises(InvalidArgument):
        provider.register_source(source)
    assert provider.state is ProviderState.UNINITIALIZED


def test_failed_build_leaves_provider_configured(provider, sample_base, monkeypatch):
    def boom():
        raise RuntimeError("engine unavailable")

    monkeypatch.setattr(provider, "_create_engine", boom)
    with pytest.raises(RuntimeError):
        provider.register_source(sample_base)
    assert provider.state is ProviderState.CONFIGURED

    monkeypatch.undo()
    assert provider.get_session_factory() is not None
    assert provider.state is ProviderState.BUILT


def test_dispose_is_terminal_and_idempotent(provider, sample_base):
    provider.register_source(sample_base)
    provider.dispose()
    provider.dispose()

    assert provider.state is ProviderState.DISPOSED
    with pytest.raises(DisposedUse):
        provider.get_session_factory()
    with pytest.raises(DisposedUse):
        provider.register_source(sample_base)
    with pytest.raises(DisposedUse):
        provider.engine


def test_dispose_before_any_registration(provider):
    provider.dispose()
    assert provider.state is ProviderState.DISPOSED


def test_context_manager_disposes():
    with SessionFactoryProvider(":memory:", DatabaseKind.SQLITE) as provider:
        assert provider.state is ProviderState.UNINITIALIZED
    assert provider.state is ProviderState.DISPOSED


def test_last_release_disposes(provider):
    provider.acquire()
    provider.acquire()
    assert provider.references == 2

    provider.release()
    assert provider.state is ProviderState.UNINITIALIZED
    provider.release()
    assert provider.state is ProviderState.DISPOSED

    provider.release()
    with pytest.raises(DisposedUse):
        provider.acquire()


def test_model_source_finds_declarative_base(note_model, sample_base):
    assert model_source(note_model) is sample_base
    assert model_source(Credential) is RecordBase


def test_from_environment(monkeypatch):
    monkeypatch.setenv(settings.CONNECTION_STRING_ENV_VAR, ":memory:")
    monkeypatch.setenv(settings.DATABASE_KIND_ENV_VAR, "sqlite")

    provider = SessionFactoryProvider.from_environment(create_schema=True)
    try:
        assert provider.database_kind is DatabaseKind.SQLITE
        assert provider.connection_string == ":memory:"
    finally:
        provider.dispose()


def test_from_environment_defaults_to_primary_kind(monkeypatch):
    monkeypatch.setenv(settings.CONNECTION_STRING_ENV_VAR, "Driver={x};Server=y")
    monkeypatch.delenv(settings.DATABASE_KIND_ENV_VAR, raising=False)

    provider = SessionFactoryProvider.from_environment()
    assert provider.database_kind is DatabaseKind.MSSQL
    provider.dispose()


def test_from_environment_requires_connection_string(monkeypatch):
    monkeypatch.delenv(settings.CONNECTION_STRING_ENV_VAR, raising=False)
    with pytest.raises(InvalidArgument):
        SessionFactoryProvider.from_environment()
