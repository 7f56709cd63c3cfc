from __future__ import annotations

from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlmodel import Session

from crewtrack.db.engine import get_engine


def get_session() -> Generator[Session, None, None]:
    """Request-scoped session for FastAPI dependencies."""
    with Session(get_engine(), expire_on_commit=False) as session:
        yield session


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for background jobs; uncommitted work is rolled back on error."""
    with Session(get_engine(), expire_on_commit=False) as session:
        try:
            yield session
        except Exception:
            session.rollback()
            raise
