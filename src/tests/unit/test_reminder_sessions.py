"""Tests for per-user reminder sessions and the email delivery they drive."""

import asyncio
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from dailyflow.core.config import Settings
from dailyflow.db.schema import Task, User
from dailyflow.services.reminder_scheduler import TaskSnapshot, UnavailableReminderScheduler
from dailyflow.services.reminders import (
    EMAIL_CHANNEL,
    LOCAL_CHANNEL,
    EmailReminderDelivery,
    ReminderSessionRegistry,
    TaskSnapshotLoader,
)
from tests.fakes import FakeEmailService

SessionFactory = Callable[[], Session]


def _add_user(session_factory: SessionFactory, email: str = "ada@example.com") -> uuid.UUID:
    with session_factory() as session:
        user = User(full_name="Ada Lovelace", email=email, password_hash="x")
        session.add(user)
        session.commit()
        return user.id


def _add_task(
    session_factory: SessionFactory,
    user_id: uuid.UUID,
    *,
    start_in: timedelta = timedelta(hours=1),
    minutes_before: int = 15,
    completed: bool = False,
) -> TaskSnapshot:
    start = datetime.now(timezone.utc) + start_in
    with session_factory() as session:
        task = Task(
            title="Write report",
            description="Quarterly numbers",
            start_time=start,
            end_time=start + timedelta(hours=1),
            completed=completed,
            user_id=user_id,
            reminder_enabled=True,
            reminder_minutes_before=minutes_before,
        )
        session.add(task)
        session.commit()
        session.refresh(task)
        return TaskSnapshot.from_task(task)


def _notified(session_factory: SessionFactory, task_id: uuid.UUID) -> bool:
    with session_factory() as session:
        return session.get(Task, task_id).reminder_notified


@pytest.fixture
def config() -> Settings:
    return Settings(reminder_timezone="UTC", notification_backend="inbox")


@pytest.fixture
def registry(session_factory: SessionFactory, fake_email: FakeEmailService, config: Settings):
    return ReminderSessionRegistry(
        email_service=fake_email, session_factory=session_factory, config=config
    )


# -- Delivery ------------------------------------------------------------------


async def test_email_delivery_sends_to_owner_and_marks_notified(
    session_factory: SessionFactory, fake_email: FakeEmailService
) -> None:
    user_id = _add_user(session_factory)
    task = _add_task(session_factory, user_id)

    delivered = await EmailReminderDelivery(fake_email, session_factory)(task)

    assert delivered is True
    [sent] = fake_email.sent
    assert sent["to"] == "ada@example.com"
    assert sent["name"] == "Ada Lovelace"
    assert sent["title"] == "Write report"
    assert sent["description"] == "Quarterly numbers"
    assert _notified(session_factory, task.id)


async def test_failed_email_leaves_task_unnotified(session_factory: SessionFactory) -> None:
    user_id = _add_user(session_factory)
    task = _add_task(session_factory, user_id)
    email = FakeEmailService(succeed=False)

    assert await EmailReminderDelivery(email, session_factory)(task) is False
    assert len(email.sent) == 1
    assert not _notified(session_factory, task.id)


async def test_delivery_without_owner_fails(
    session_factory: SessionFactory, fake_email: FakeEmailService
) -> None:
    orphan = TaskSnapshot(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        title="Nobody's",
        start_time=datetime.now(timezone.utc),
    )
    assert await EmailReminderDelivery(fake_email, session_factory)(orphan) is False
    assert fake_email.sent == []


async def test_loader_returns_current_state(session_factory: SessionFactory) -> None:
    user_id = _add_user(session_factory)
    task = _add_task(session_factory, user_id, completed=True)
    loader = TaskSnapshotLoader(session_factory)

    current = await loader(task.id)
    assert current is not None
    assert current.completed is True
    assert current.start_time.tzinfo is not None
    assert await loader(uuid.uuid4()) is None


# -- Registry ------------------------------------------------------------------


async def test_open_is_idempotent_per_user(registry: ReminderSessionRegistry) -> None:
    user_id = uuid.uuid4()
    first = registry.open(user_id)
    assert registry.open(user_id) is first
    assert user_id in registry
    assert len(registry) == 1
    await registry.close_all()


async def test_session_arms_both_channels(
    registry: ReminderSessionRegistry, session_factory: SessionFactory
) -> None:
    user_id = _add_user(session_factory)
    task = _add_task(session_factory, user_id)
    session = registry.open(user_id)

    session.schedule_task_reminder(task)

    channels = sorted(channel for channel, task_id, _ in session.entries() if task_id == task.id)
    assert channels == [EMAIL_CHANNEL, LOCAL_CHANNEL]
    await registry.close_all()


async def test_close_disarms_and_forgets_session(
    registry: ReminderSessionRegistry, session_factory: SessionFactory
) -> None:
    user_id = _add_user(session_factory)
    session = registry.open(user_id)
    session.schedule_multiple_reminders(
        [_add_task(session_factory, user_id), _add_task(session_factory, user_id)]
    )
    assert len(session.entries()) == 4

    await registry.close(user_id)

    assert session.entries() == []
    assert registry.get(user_id) is None
    await registry.close(user_id)


async def test_close_all_empties_registry(registry: ReminderSessionRegistry) -> None:
    for _ in range(3):
        registry.open(uuid.uuid4())
    await registry.close_all()
    assert len(registry) == 0


async def test_disabled_reminders_build_unavailable_schedulers(
    session_factory: SessionFactory, fake_email: FakeEmailService
) -> None:
    registry = ReminderSessionRegistry(
        email_service=fake_email,
        session_factory=session_factory,
        config=Settings(reminders_enabled=False, notification_backend="inbox"),
    )
    session = registry.open(uuid.uuid4())
    assert not session.available
    assert all(isinstance(s, UnavailableReminderScheduler) for s in session.schedulers.values())


async def test_local_channel_unavailable_without_backend(
    session_factory: SessionFactory, fake_email: FakeEmailService
) -> None:
    registry = ReminderSessionRegistry(
        email_service=fake_email,
        session_factory=session_factory,
        config=Settings(notification_backend="none"),
    )
    session = registry.open(uuid.uuid4())
    assert session.schedulers[EMAIL_CHANNEL].available
    assert not session.schedulers[LOCAL_CHANNEL].available
    await registry.close_all()


async def test_due_reminder_emails_and_notifies(
    registry: ReminderSessionRegistry,
    session_factory: SessionFactory,
    fake_email: FakeEmailService,
) -> None:
    user_id = _add_user(session_factory)
    task = _add_task(
        session_factory, user_id, start_in=timedelta(milliseconds=100), minutes_before=0
    )
    session = registry.open(user_id)
    session.schedule_task_reminder(task)

    await asyncio.sleep(0.3)
    for scheduler in session.schedulers.values():
        await scheduler.drain()

    assert [s["title"] for s in fake_email.sent] == ["Write report"]
    assert _notified(session_factory, task.id)
    [shown] = session.presenter.visible()
    assert shown.tag == f"task-reminder-{task.id}"
    assert session.entries() == []
    await registry.close_all()


async def test_task_completed_after_arming_is_not_emailed(
    registry: ReminderSessionRegistry,
    session_factory: SessionFactory,
    fake_email: FakeEmailService,
) -> None:
    user_id = _add_user(session_factory)
    task = _add_task(
        session_factory, user_id, start_in=timedelta(milliseconds=100), minutes_before=0
    )
    session = registry.open(user_id)
    session.schedule_task_reminder(task)
    # Completed in the database without re-arming the session
    with session_factory() as db:
        db.get(Task, task.id).completed = True
        db.commit()

    await asyncio.sleep(0.3)
    await registry.close_all()

    assert fake_email.sent == []
    assert not _notified(session_factory, task.id)


async def test_clicking_a_notification_is_logged(
    registry: ReminderSessionRegistry, caplog: pytest.LogCaptureFixture
) -> None:
    user_id = uuid.uuid4()
    session = registry.open(user_id)
    assert await session.presenter.show_notification("Task Reminder", tag="task-reminder-1")

    with caplog.at_level(logging.INFO, logger="dailyflow.services.reminders"):
        assert session.presenter.click("task-reminder-1")

    assert f"User {user_id} opened notification task-reminder-1" in caplog.text
    assert session.presenter.visible() == []
    await registry.close_all()
