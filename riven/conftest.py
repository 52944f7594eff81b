# riven/conftest.py
from contextlib import contextmanager
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from riven.core.clock import FixedClock
from riven.core.database import build_engine, metadata
from riven.features.streaks.gateway import InMemoryStreakGateway


@pytest.fixture
def clock():
    """Clock pinned to Sunday 2024-03-10 12:00 UTC; tests advance it explicitly."""
    return FixedClock(datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def gateway():
    return InMemoryStreakGateway("u1")


@pytest.fixture
def sqlite_db():
    """
    In-memory SQLite with the users table created.

    Yields (SessionLocal, session_scope) where session_scope is a
    commit/rollback context manager shaped like get_db_session.
    """
    engine = build_engine("sqlite:///:memory:")
    metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    @contextmanager
    def session_scope():
        session = SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    yield SessionLocal, session_scope
    engine.dispose()
