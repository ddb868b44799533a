# tests/conftest.py
"""
Pytest configuration for dosetrack tests.

- Sets safe dummy environment variables before dosetrack is imported, so the
  module-level settings never point at a real database or mail server.
- Provides an in-memory SQLite engine, a session, a row factory, and fake
  channels / collaborators for the dispatcher and the scheduler.
"""

import os
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional


def _ensure_project_root_in_sys_path() -> None:
    project_root = str(Path(__file__).resolve().parents[1])
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


def _ensure_test_env_vars() -> None:
    os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite://")
    os.environ.setdefault("VALID_API_KEYS", "test-key")
    os.environ.setdefault("REQUIRE_API_KEY", "true")
    os.environ.setdefault("METRICS_ENABLED", "false")
    os.environ.setdefault("CELERY_BROKER_URL", "memory://")


_ensure_project_root_in_sys_path()
_ensure_test_env_vars()

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from dosetrack.core.exceptions import ChannelDeliveryError  # noqa: E402
from dosetrack.db.base import Base  # noqa: E402
from dosetrack.models import (  # noqa: E402
    DoseInstance,
    Item,
    NotificationLog,
    NotificationPreference,
    Stock,
    User,
)
from dosetrack.schemas.notification import ChannelPreferences  # noqa: E402


UTC = timezone.utc


def at(hour: int, minute: int = 0, day: int = 1) -> datetime:
    """Fixed, timezone-aware test clock: 2024-01-<day> <hour>:<minute> UTC."""
    return datetime(2024, 1, day, hour, minute, tzinfo=UTC)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite so separate threads get separate connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'dosetrack.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


class Factory:
    """Creates committed rows with sensible defaults."""

    def __init__(self, db):
        self.db = db

    def _save(self, row):
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def user(self, email: Optional[str] = "user@example.com", **kwargs) -> User:
        return self._save(User(email=email, **kwargs))

    def item(self, user: User, name: str = "Aspirin", **kwargs) -> Item:
        return self._save(Item(user_id=user.id, name=name, **kwargs))

    def dose(self, item: Item, due_at: datetime, status: str = "scheduled", **kwargs) -> DoseInstance:
        return self._save(DoseInstance(item_id=item.id, due_at=due_at, status=status, **kwargs))

    def stock(self, item: Item, units_left: float = 30, units_total: Optional[float] = None, **kwargs) -> Stock:
        return self._save(
            Stock(
                item_id=item.id,
                units_left=units_left,
                units_total=units_total if units_total is not None else units_left,
                consumption_history=[],
                **kwargs,
            )
        )

    def notification(self, user: User, scheduled_at: datetime, **kwargs) -> NotificationLog:
        kwargs.setdefault("notification_type", "dose_reminder")
        kwargs.setdefault("title", "Time to take Aspirin")
        kwargs.setdefault("body", "Aspirin is due now.")
        kwargs.setdefault("priority", "normal")
        kwargs.setdefault("metadata_", {})
        kwargs.setdefault("channel_results", [])
        kwargs.setdefault("delivery_status", "scheduled")
        return self._save(NotificationLog(user_id=user.id, scheduled_at=scheduled_at, **kwargs))

    def preferences(self, user: User, **kwargs) -> NotificationPreference:
        return self._save(NotificationPreference(user_id=user.id, **kwargs))


@pytest.fixture
def factory(db):
    return Factory(db)


class FakeChannel:
    """Records every send; fails with `error` or blocks until `release` is set."""

    def __init__(self, name: str, error: Optional[str] = None, exc: Optional[Exception] = None, block: bool = False):
        self.name = name
        self.error = error
        self.exc = exc
        self.block = block
        self.release = threading.Event()
        self.calls: List[tuple] = []

    def send(self, notification, target: str) -> None:
        self.calls.append((notification.id, target))
        if self.block:
            self.release.wait(5)
        if self.exc is not None:
            raise self.exc
        if self.error is not None:
            raise ChannelDeliveryError(self.name, self.error)


class FakePreferences:
    def __init__(self, by_user: Optional[Dict[str, ChannelPreferences]] = None, error: Optional[Exception] = None):
        self.by_user = by_user or {}
        self.error = error

    def get_preferences(self, user_id: str) -> ChannelPreferences:
        if self.error is not None:
            raise self.error
        return self.by_user.get(user_id, ChannelPreferences())


class FakeIdentity:
    def __init__(self, emails: Optional[Dict[str, str]] = None):
        self.emails = emails or {}

    def resolve_email(self, user_id: str) -> Optional[str]:
        return self.emails.get(user_id)


class FakeNotification:
    def __init__(self, id: str = "n-1", title: str = "Time to take Aspirin", body: str = "Aspirin is due now."):
        self.id = id
        self.title = title
        self.body = body
        self.dose_id = None
        self.notification_type = "dose_reminder"
        self.priority = "high"
