"""
Shared pytest fixtures for backend tests.
Uses a temp-file SQLite database and deterministic fakes for the clock,
language model, transcription and notifications.
"""
import pytest
import sqlite3
import sys
import os

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from notifications import NotificationScheduler
from task_store import TaskStore

from .fakes import FakeClock, FakeGenerator, FakeTranscriber, RecordingNotifier


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE tasks (
            id TEXT PRIMARY KEY,
            text TEXT NOT NULL,
            completed INTEGER NOT NULL DEFAULT 0,
            created_at INTEGER NOT NULL,
            updated_at INTEGER,
            due_at INTEGER,
            extracted_time_description TEXT
        );
    """)
    conn.commit()
    conn.close()

    yield db_path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def scheduler(clock, notifier):
    return NotificationScheduler(clock, notifier)


@pytest.fixture
def store(scheduler, clock):
    return TaskStore(scheduler, clock=clock.now_ms)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def app_client(test_db, monkeypatch, generator, transcriber):
    """
    Test client for the FastAPI app.
    Skips alembic and swaps the Anthropic/OpenAI clients for fakes.
    """
    from fastapi.testclient import TestClient
    import main

    monkeypatch.setattr(main, "build_generator", lambda settings: generator)
    monkeypatch.setattr(main, "build_transcriber", lambda settings: transcriber)
    monkeypatch.setattr(main, "setup_logging", lambda level, log_dir=None: None)

    with TestClient(main.app) as client:
        yield client
