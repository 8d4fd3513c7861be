"""Engine and session factory shared by the API and the report worker."""

from __future__ import annotations

from pathlib import Path

import structlog
from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import sessionmaker

from app.backend.src.core.config import get_settings

LOGGER = structlog.get_logger(__name__)
PROJECT_ROOT = Path(__file__).resolve().parents[4]


def resolve_database_url(raw_url: str, root: Path = PROJECT_ROOT) -> URL:
    """Anchor relative SQLite files at ``root`` so the API and worker share one file."""

    url = make_url(raw_url)
    if not url.drivername.startswith("sqlite") or url.database in (None, "", ":memory:"):
        return url

    path = Path(url.database)
    if not path.is_absolute():
        path = (root / path).resolve()
    return url.set(database=str(path))


def build_engine(url: URL) -> Engine:
    if url.drivername.startswith("sqlite"):
        # Builder threads share the engine, so connections may not be pinned
        # to the thread that opened them.
        options: dict[str, object] = {"connect_args": {"check_same_thread": False}}
    else:
        options = {"pool_size": 10, "max_overflow": 5, "pool_recycle": 300}

    engine = create_engine(url, pool_pre_ping=True, **options)
    LOGGER.info("database_engine_initialized", url=url.render_as_string(hide_password=True))
    return engine


engine = build_engine(resolve_database_url(get_settings().database_url))

# Reports handed back by the store outlive their session, so attributes must
# stay loaded after commit.
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

__all__ = ["SessionLocal", "build_engine", "engine", "resolve_database_url"]
