"""Database access helpers."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from ..models.base import Base
from .session import SessionLocal, engine


@contextmanager
def session_scope() -> Iterator[Session]:
    """Run one unit of work: commit on success, roll back on any error."""

    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session_dependency() -> Iterator[Session]:
    """FastAPI dependency yielding a read-mostly session for a request."""

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def get_engine() -> Engine:
    return engine


def create_all() -> None:
    """Create the report tables if they do not exist yet."""

    Base.metadata.create_all(bind=engine)


__all__ = [
    "Base",
    "create_all",
    "get_engine",
    "get_session_dependency",
    "session_scope",
]
