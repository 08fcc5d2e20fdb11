"""
records.session
~~~~~~~~~~~~~~~

Scoped units of work over a ``sessionmaker``.

Every helper guarantees that the session is closed on every exit path and
that a transaction which did not reach ``commit`` is rolled back.  Sessions
are never shared between calls.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterator, TypeVar

from sqlalchemy.orm import Session, sessionmaker

from vaultstore.utils.logger import get_logger

logger = get_logger(__name__)

R = TypeVar("R")


class VaultSession(Session):
    """Session that never expires instances on commit.

    Instances handed back to callers stay readable after the session that
    loaded them has closed, whatever ``sessionmaker`` passes in.
    """

    def __init__(self, bind: Any = None, **kwargs: Any) -> None:
        kwargs["expire_on_commit"] = False
        super().__init__(bind=bind, **kwargs)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """Open a session for reads; it is closed when the block exits."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def transaction_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Open a session and a transaction; commit if the block succeeds.

    Example::

        with transaction_scope(factory) as session:
            session.add(model)
    """
    with session_scope(session_factory) as session:
        try:
            yield session
            session.commit()
        except BaseException:
            logger.debug("Rolling back unit of work")
            session.rollback()
            raise


def run_in_transaction(session_factory: sessionmaker, work: Callable[[Session], R]) -> R:
    """Begin, run *work*, commit or roll back, always close.  Returns what *work* returns."""
    with transaction_scope(session_factory) as session:
        return work(session)
