"""
Shared fixtures: in-memory cache store, a seeded CoreProtect-shaped source
database, a controllable clock, and a TestClient wired to them.
"""
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, insert
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.cache import (
    CacheManager,
    RefreshDispatcher,
    RefreshEngine,
    SourceExecutor,
    SQLCacheStore,
    get_cache_manager,
)
from app.cache.refresh import to_unix_seconds
from app.db import init_db
from app.main import app
from app.models import build_source_tables

NOW = datetime(2024, 6, 1, 12, 0, 0)


# =============================================================================
# Test doubles
# =============================================================================

class FakeClock:
    """Clock frozen at a settable instant."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class CountingSource(SourceExecutor):
    """Records every statement sent to the source."""

    def __init__(self, engine, tables):
        super().__init__(engine, tables)
        self.calls = []

    def execute(self, statement):
        self.calls.append(statement)
        return super().execute(statement)


class FailingSource(SourceExecutor):
    """Source whose every query fails."""

    def __init__(self, tables):
        super().__init__(None, tables)
        self.calls = 0

    def execute(self, statement):
        self.calls += 1
        raise RuntimeError("replica unavailable")


def _memory_engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


# =============================================================================
# Source data
# =============================================================================

# (user, wid, action, rolled_back); action 1 = placed, 0 = broken
BLOCK_ROWS = [
    (1, 5, 1, 0), (1, 5, 1, 0), (1, 5, 1, 0),
    (1, 5, 0, 0), (1, 5, 0, 0),
    (1, 5, 1, 1),
    (2, 5, 1, 0),
    (2, 5, 0, 1),
    (1, 1, 1, 0), (1, 1, 1, 0),
    (1, 1, 0, 0),
    (2, 1, 0, 0),
]

WORLD_ROWS = [
    {"id": 1, "world": "world"},
    {"id": 5, "world": "creative_flat"},
    {"id": 7, "world": "world_nether"},
]

ALICE_TIME = to_unix_seconds(NOW - timedelta(days=30))
BOB_TIME = to_unix_seconds(NOW - timedelta(minutes=5))

USER_ROWS = [
    {"rowid": 1, "time": ALICE_TIME, "user": "Alice", "uuid": "0b1c6f2e-alice"},
    {"rowid": 2, "time": BOB_TIME, "user": "Bob", "uuid": "7d3a9c41-bob"},
    # Non-player actors (e.g. #tnt) have no uuid
    {"rowid": 3, "time": BOB_TIME, "user": "#tnt", "uuid": None},
]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def source_tables():
    return build_source_tables(schema=None)


@pytest.fixture
def source_engine(source_tables):
    engine = _memory_engine()
    source_tables.metadata.create_all(engine)
    with engine.begin() as conn:
        conn.execute(insert(source_tables.block), [
            {"rowid": i + 1, "time": ALICE_TIME, "user": user, "wid": wid,
             "action": action, "rolled_back": rolled_back}
            for i, (user, wid, action, rolled_back) in enumerate(BLOCK_ROWS)
        ])
        conn.execute(insert(source_tables.user), USER_ROWS)
        conn.execute(insert(source_tables.world), WORLD_ROWS)
    yield engine
    engine.dispose()


@pytest.fixture
def source(source_engine, source_tables):
    return CountingSource(source_engine, source_tables)


@pytest.fixture
def store():
    engine = _memory_engine()
    init_db(engine)
    yield SQLCacheStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))
    engine.dispose()


@pytest.fixture
def refresh_engine(store, source, clock):
    return RefreshEngine(store, source, clock=clock)


@pytest.fixture
def dispatcher():
    return RefreshDispatcher()


@pytest.fixture
def manager(store, refresh_engine, dispatcher, clock):
    return CacheManager(store, refresh_engine, dispatcher, clock=clock)


@pytest.fixture
def client(manager):
    app.dependency_overrides[get_cache_manager] = lambda: manager
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def run_tasks():
    """Run queued background tasks the way Starlette does after a response."""
    def _run(background):
        for task in background.tasks:
            task.func(*task.args, **task.kwargs)
    return _run
