"""Database engine and session helpers."""

from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from productivity.config.settings import settings

logger = structlog.get_logger()

_engine: Engine | None = None


def get_engine() -> Engine:
    """Get or create the process-wide engine (lazy initialization)."""
    global _engine
    if _engine is None:
        url = settings.database.database_url
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(url, echo=settings.database.echo, connect_args=connect_args)
    return _engine


def set_engine(engine: Engine | None) -> None:
    """Replace the process-wide engine (tests, embedding applications)."""
    global _engine
    _engine = engine


async def init_db() -> None:
    """Create all tables."""
    # Import models so their tables are registered on the metadata
    from productivity.db import models  # noqa: F401

    SQLModel.metadata.create_all(get_engine())
    logger.info("Tables created", url=settings.database.database_url)


async def close_db() -> None:
    """Dispose of pooled connections."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None


def get_session() -> Iterator[Session]:
    """Yield a session (FastAPI dependency)."""
    with Session(get_engine()) as session:
        yield session


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for CLI commands and scheduled jobs; rolls back on error."""
    with Session(get_engine()) as session:
        try:
            yield session
        except Exception:
            session.rollback()
            raise
