"""
records.models
~~~~~~~~~~~~~~

Declarative base and the models shipped with vaultstore.

Any mapped class with an integer ``id`` primary key can be stored through
:class:`vaultstore.records.repository.Repository`; the classes here are the
ones the package itself provides.
"""

from __future__ import annotations

from typing import Optional, Protocol

from sqlalchemy import Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class DataModel(Protocol):
    """Anything persisted by a repository: a settable numeric identifier, ``0`` until created."""

    id: Optional[int]


class RecordBase(DeclarativeBase):
    """Declarative base for vaultstore's own models.

    ``str`` columns map to ``Text`` so ciphertext, which is longer than the
    plaintext it replaces, never hits a length limit.
    """

    type_annotation_map = {
        str: Text,
        int: Integer,
    }


class Credential(RecordBase):
    """A stored login; every text field is encrypted at rest by :func:`credential_repository`."""

    __tablename__ = "credentials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[Optional[str]]
    username: Mapped[Optional[str]]
    password: Mapped[Optional[str]]
    notes: Mapped[Optional[str]]
    description: Mapped[Optional[str]]
    associated_resource: Mapped[Optional[str]]

    def __init__(
        self,
        title: str | None = None,
        username: str | None = None,
        password: str | None = None,
        notes: str | None = None,
        description: str | None = None,
        associated_resource: str | None = None,
        id: int = 0,
    ) -> None:
        self.id = id
        self.title = title
        self.username = username
        self.password = password
        self.notes = notes
        self.description = description
        self.associated_resource = associated_resource

    def __repr__(self) -> str:
        return f"Credential(id={self.id!r}, title={self.title!r})"


#: Fields of :class:`Credential` that are encrypted at rest.
CREDENTIAL_ENCRYPTED_FIELDS = (
    "title",
    "username",
    "password",
    "notes",
    "description",
    "associated_resource",
)
