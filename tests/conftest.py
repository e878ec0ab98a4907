"""Pytest configuration and fixtures."""

import os

# Must be set before taskqueue.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RECLAIMER_ENABLED", "false")

import itertools
import threading
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import taskqueue.models  # noqa: F401
from taskqueue.database import Base, get_db
from taskqueue.errors import TransientDependencyError
from taskqueue.models.user import UserRole
from taskqueue.services.auth import create_user
from taskqueue.services.stream import get_task_stream


class FakeStream:
    """In-memory stand-in for TaskStream."""

    def __init__(self):
        self.group_name = "worker-group"
        self._ids = itertools.count(1)
        self.entries: List[tuple] = []
        self.pending: List[tuple] = []
        self.acked: List[str] = []
        self.results: Dict[str, str] = {}
        self.fail_enqueue = False
        self.groups_created = 0
        self._lock = threading.Lock()

    def enqueue(self, fields):
        if self.fail_enqueue:
            raise TransientDependencyError("stream down")
        entry_id = f"{next(self._ids)}-0"
        self.entries.append((entry_id, dict(fields)))
        return entry_id

    def ensure_group(self):
        self.groups_created += 1
        return self.groups_created == 1

    def read_group(self, consumer_name, count, block_ms):
        batch, self.entries = self.entries[:count], self.entries[count:]
        return batch

    def claim_abandoned(self, consumer_name, min_idle_ms, count):
        batch, self.pending = self.pending[:count], self.pending[count:]
        return batch

    def acknowledge(self, entry_id):
        with self._lock:
            self.acked.append(entry_id)

    def store_result(self, task_id, value, ttl_seconds):
        self.results[task_id] = value

    def close(self):
        pass


@pytest.fixture(scope="function")
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    yield factory

    engine.dispose()


@pytest.fixture(scope="function")
def test_db(session_factory):
    """Create a test database session for each test."""
    db = session_factory()

    yield db

    db.close()


@pytest.fixture
def fake_stream():
    return FakeStream()


@pytest.fixture
def client(session_factory, fake_stream):
    """API client with the database and stream dependencies overridden."""
    from taskqueue.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_task_stream] = lambda: fake_stream

    yield TestClient(app)

    app.dependency_overrides.clear()


def _make_user(session_factory, username: str, role: UserRole) -> str:
    db = session_factory()
    try:
        _, token = create_user(db, username, role)
    finally:
        db.close()
    return token


@pytest.fixture
def admin_headers(session_factory) -> Dict[str, str]:
    return {"Authorization": f"Bearer {_make_user(session_factory, 'admin', UserRole.ADMIN)}"}


@pytest.fixture
def user_headers(session_factory) -> Dict[str, str]:
    return {"Authorization": f"Bearer {_make_user(session_factory, 'alice', UserRole.USER)}"}


@pytest.fixture
def other_user_headers(session_factory) -> Dict[str, str]:
    return {"Authorization": f"Bearer {_make_user(session_factory, 'bob', UserRole.USER)}"}


class RecordingEvent(threading.Event):
    """Event whose wait() returns at once, recording timeouts; sets itself after max_waits."""

    def __init__(self, max_waits: int):
        super().__init__()
        self.max_waits = max_waits
        self.waits: List[Optional[float]] = []

    def wait(self, timeout=None):
        self.waits.append(timeout)
        if len(self.waits) >= self.max_waits:
            self.set()
        return self.is_set()


@pytest.fixture
def recording_event():
    """Factory for RecordingEvent instances."""
    return RecordingEvent
