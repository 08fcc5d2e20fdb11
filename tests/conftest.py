from typing import Optional

import pytest
from sqlalchemy import String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from vaultstore.records.dialects import DatabaseKind
from vaultstore.records.provider import SessionFactoryProvider
from vaultstore.security.crypto import AesEncryptionTool


class SampleBase(DeclarativeBase):
    pass


class Note(SampleBase):
    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(primary_key=True)
    body: Mapped[str] = mapped_column(String(200), nullable=False)
    label: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)


@pytest.fixture
def provider():
    """In-memory SQLite provider that creates tables as sources register."""
    p = SessionFactoryProvider(":memory:", DatabaseKind.SQLITE, create_schema=True)
    yield p
    p.dispose()


@pytest.fixture
def note_model():
    return Note


@pytest.fixture
def sample_base():
    return SampleBase


@pytest.fixture
def cipher():
    # Low iteration count keeps key derivation fast in tests
    return AesEncryptionTool(iterations=1_000)
