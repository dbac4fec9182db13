"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from stomachs.db.database import init_db, make_engine, make_session_factory  # noqa: E402
from stomachs.history import HistoryRecorder, InMemoryHistorySink  # noqa: E402
from stomachs.scheduler import Scheduler  # noqa: E402
from stomachs.session import SessionEngine  # noqa: E402
from stomachs.store.memory import InMemoryStateStore  # noqa: E402

T0 = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite database)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryStateStore()


@pytest.fixture
def history_sink():
    return InMemoryHistorySink()


@pytest.fixture
def recorder(history_sink):
    return HistoryRecorder(history_sink)


@pytest.fixture
def scheduler(store, recorder, clock):
    return Scheduler(store, recorder=recorder, clock=clock)


@pytest.fixture
def engine(scheduler, clock):
    return SessionEngine(scheduler, idle_timeout=timedelta(minutes=30), clock=clock)


@pytest.fixture
def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite file."""
    db_engine = make_engine(f"sqlite:///{tmp_path / 'stomachs.db'}")
    init_db(db_engine)
    yield make_session_factory(db_engine)
    db_engine.dispose()
