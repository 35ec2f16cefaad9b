"""Pytest fixtures."""

import os
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

# Settings are read at import time; keep tests off the developer's database and timezone
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REMINDER_TIMEZONE", "UTC")
os.environ.setdefault("NOTIFICATION_BACKEND", "inbox")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from dailyflow.db.schema import Base
from dailyflow.db.session import get_db
from dailyflow.main import app
from dailyflow.services.reminders import ReminderSessionRegistry
from tests.fakes import FakeEmailService, register_user


@pytest.fixture
def session_factory(tmp_path: Path) -> Generator[Callable[[], Session], None, None]:
    """Session factory bound to a fresh SQLite file with all tables created."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    try:
        yield lambda: Session(engine)
    finally:
        engine.dispose()


@pytest.fixture
def fake_email() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture
def client_with_test_db(fake_email: FakeEmailService) -> Generator[TestClient, None, None]:
    """
    FastAPI test client with get_db overridden to use an isolated SQLite DB.

    Each test gets a fresh temp DB file so tests don't share state, and a
    reminder registry that sends through FakeEmailService.
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        test_db_path = Path(f.name)
    test_engine = create_engine(
        f"sqlite:///{test_db_path}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(test_engine)

    def override_get_db() -> Generator[Session, None, None]:
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    try:
        with TestClient(app) as client:
            app.state.reminders = ReminderSessionRegistry(
                email_service=fake_email,
                session_factory=lambda: Session(test_engine),
            )
            yield client
    finally:
        app.dependency_overrides.clear()
        test_engine.dispose()
        try:
            test_db_path.unlink(missing_ok=True)
        except OSError:
            pass


@pytest.fixture
def auth_headers(client_with_test_db: TestClient) -> dict[str, str]:
    return register_user(client_with_test_db)
