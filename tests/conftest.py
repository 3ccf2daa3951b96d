"""
Pytest configuration and fixtures for archive engine tests.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from archivable.services.archive.manager import ArchiveManager
from archivable.services.archive.resolver import ArchiveStoreResolver
from tests.models import build_models


def memory_engine():
    """SQLite in-memory engine shared by every session of a test."""
    return create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


class TickingClock:
    """Clock advancing one second per call, so successive archives differ."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self.current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        self.current = self.current + self.step
        return self.current


def naive(value: datetime) -> datetime:
    """SQLite returns naive datetimes; compare on the naive UTC value."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def count_rows(session, entity, *criteria) -> int:
    query = select(func.count()).select_from(entity)
    if criteria:
        query = query.where(*criteria)
    return session.scalar(query)


@pytest.fixture(scope="function")
def engine():
    """Source store engine."""
    engine = memory_engine()
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def cold_engine():
    """Engine of a separate archive store named "cold"."""
    engine = memory_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def models():
    return build_models()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def manager(clock):
    """Manager with no named stores: archives live next to their source."""
    return ArchiveManager(clock=clock)


@pytest.fixture
def cold_manager(clock, cold_engine):
    """Manager knowing a "cold" archive store."""
    return ArchiveManager(ArchiveStoreResolver({"cold": cold_engine}), clock=clock)


@pytest.fixture
def make_session(engine):
    """Factory for sessions on the source store; all are closed after the test."""
    factory = sessionmaker(bind=engine, autoflush=False)
    sessions = []

    def _make():
        session = factory()
        sessions.append(session)
        return session

    yield _make
    for session in sessions:
        session.close()


@pytest.fixture
def session(make_session):
    return make_session()


@pytest.fixture
def register(manager, models, engine):
    """
    Register a model on the default manager, then create the source schema.

    Usage:
        binding = register(models.Book, archive_on_update=True)
    """

    def _register(model, config=None, **options):
        binding = manager.register(model, config, **options)
        models.Base.metadata.create_all(engine)
        return binding

    return _register


@pytest.fixture
def seed_books(models):
    """Add books 1..n to a session and commit."""

    def _seed(session, n=3, **fields):
        books = [
            models.Book(
                id=i,
                title=f"Book {i}",
                isbn=f"isbn-{i}",
                price_cents=100 * i,
                **fields,
            )
            for i in range(1, n + 1)
        ]
        session.add_all(books)
        session.commit()
        return books

    return _seed
