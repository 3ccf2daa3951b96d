"""
Engine and session helpers for archive stores.
Uses SQLAlchemy 2.0 patterns.
"""

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from archivable.config.settings import Settings, get_settings


def _engine_options(url: str, settings: Settings) -> dict[str, Any]:
    """
    Pool and timeout options suited to the backend.

    SQLite uses its own pool classes, which reject QueuePool sizing, and its
    driver has no connect_timeout argument.
    """
    backend = make_url(url).get_backend_name()
    options: dict[str, Any] = {
        "pool_pre_ping": True,  # Verify connections before using
        "echo": settings.sql_echo,
    }
    if backend == "sqlite":
        return options

    options.update(
        pool_size=settings.store_pool_size,
        max_overflow=settings.store_max_overflow,
        pool_timeout=30,  # Wait max 30s for connection from pool
        pool_recycle=settings.store_pool_recycle,
    )
    if backend == "postgresql":
        options["connect_args"] = {"connect_timeout": settings.store_connect_timeout}
    return options


def create_store_engine(url: str, settings: Settings | None = None, **overrides: Any) -> Engine:
    """
    Create an engine for a source or archive store.

    Usage:
        engine = create_store_engine("postgresql+psycopg://archive-host/archive")
    """
    settings = settings or get_settings()
    options = _engine_options(url, settings)
    options.update(overrides)
    return create_engine(url, **options)


def make_session_factory(engine: Engine, **kwargs: Any) -> sessionmaker[Session]:
    """Session factory with the engine's defaults (no autoflush)."""
    kwargs.setdefault("autoflush", False)
    return sessionmaker(bind=engine, **kwargs)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Context manager for sessions owned by the engine itself.

    Usage:
        with session_scope(factory) as db:
            db.get(BookArchive, 1)

    The session is closed on exit; nothing is committed.
    """
    db = factory()
    try:
        yield db
    finally:
        db.close()
