"""
records.dialects
~~~~~~~~~~~~~~~~

Maps the supported database kinds onto SQLAlchemy drivers and turns a
connection string into a :class:`sqlalchemy.engine.URL` for that driver.
"""

from __future__ import annotations

import enum
from typing import Any, Dict

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from vaultstore.errors import InvalidArgument


class DatabaseKind(enum.Enum):
    """Supported database stores."""

    MSSQL = "mssql"
    MYSQL = "mysql"
    SQLITE = "sqlite"

    @classmethod
    def parse(cls, value: "str | DatabaseKind | None") -> "DatabaseKind":
        """Parse a configuration value; blank or missing values mean the primary store."""
        if isinstance(value, cls):
            return value
        if value is None or not str(value).strip():
            return cls.MSSQL
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidArgument(f"unknown database kind: {value!r}") from None


MSSQL_DIALECT = "mssql+pyodbc"
MYSQL_DIALECT = "mysql+pymysql"
SQLITE_DIALECT = "sqlite+pysqlite"


def select_dialect(kind: Any) -> str:
    """Return the SQLAlchemy driver name for *kind*; anything unrecognised gets the primary dialect."""
    if kind is DatabaseKind.MYSQL:
        return MYSQL_DIALECT
    if kind is DatabaseKind.SQLITE:
        return SQLITE_DIALECT
    return MSSQL_DIALECT


# ADO.NET style keys accepted in ``key=value;`` MySQL connection strings.
_MYSQL_KEYS = {
    "server": "host",
    "host": "host",
    "port": "port",
    "database": "database",
    "uid": "username",
    "user": "username",
    "user id": "username",
    "username": "username",
    "pwd": "password",
    "password": "password",
}


def _parse_key_value(connection_string: str) -> Dict[str, str]:
    pairs: Dict[str, str] = {}
    for chunk in connection_string.split(";"):
        if not chunk.strip():
            continue
        key, sep, value = chunk.partition("=")
        if not sep:
            raise InvalidArgument(f"malformed connection string segment: {chunk!r}")
        pairs[key.strip().lower()] = value.strip()
    return pairs


def build_url(connection_string: str, kind: Any) -> URL:
    """
    Build the engine URL for *connection_string* under the dialect of *kind*.

    Parameters
    ----------
    connection_string : str
        Either a SQLAlchemy URL (anything containing ``://``), whose driver
        is replaced by the selected dialect, or a store-native string: a file
        path for SQLite, an ODBC connection string for SQL Server, or
        ``key=value;`` pairs for MySQL.
    kind : DatabaseKind
        The store kind; see :func:`select_dialect`.
    """
    drivername = select_dialect(kind)

    if "://" in connection_string:
        try:
            return make_url(connection_string).set(drivername=drivername)
        except ArgumentError as exc:
            raise InvalidArgument(f"could not parse connection string: {exc}", exc) from exc

    if drivername == SQLITE_DIALECT:
        return URL.create(drivername, database=connection_string)

    if drivername == MYSQL_DIALECT:
        fields: Dict[str, Any] = {}
        for key, value in _parse_key_value(connection_string).items():
            target = _MYSQL_KEYS.get(key)
            if target is None:
                continue
            if target == "port":
                try:
                    value = int(value)
                except ValueError:
                    raise InvalidArgument(f"port must be numeric, got {value!r}") from None
            fields[target] = value
        return URL.create(drivername, **fields)

    return URL.create(drivername, query={"odbc_connect": connection_string})


def is_memory_database(url: URL) -> bool:
    """True for SQLite URLs that point at a private in-memory database."""
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")
