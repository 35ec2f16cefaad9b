"""Per-user reminder sessions: an email scheduler and a local-notification scheduler.

A session is opened when a user logs in (or on their first authenticated
request) and closed with cancel-all at logout or shutdown. Routes hold the
session and re-arm it after every task mutation; a full task-list fetch
replaces the whole table.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Iterable
from datetime import datetime

from dailyflow.core.config import Settings, settings
from dailyflow.db.schema import User
from dailyflow.db.session import SessionFactory
from dailyflow.services.email import EmailService
from dailyflow.services.notification_presenter import (
    LocalNotificationPresenter,
    build_notification_backend,
)
from dailyflow.services.reminder_scheduler import (
    ReminderSchedulerProtocol,
    TaskSnapshot,
    build_reminder_scheduler,
)
from dailyflow.services.tasks import TaskService

logger = logging.getLogger(__name__)

EMAIL_CHANNEL = "email"
LOCAL_CHANNEL = "local"


class TaskSnapshotLoader:
    """Fetches the stored state of a task at fire time."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def _load(self, task_id: uuid.UUID) -> TaskSnapshot | None:
        with self._session_factory() as session:
            task = TaskService(session).find_task(task_id)
            return TaskSnapshot.from_task(task) if task else None

    async def __call__(self, task_id: uuid.UUID) -> TaskSnapshot | None:
        return await asyncio.to_thread(self._load, task_id)


class EmailReminderDelivery:
    """Emails a task's reminder to its owner and flags the task as notified."""

    def __init__(self, email_service: EmailService, session_factory: SessionFactory) -> None:
        self._email = email_service
        self._session_factory = session_factory

    def _recipient(self, user_id: uuid.UUID) -> tuple[str, str] | None:
        with self._session_factory() as session:
            user = session.query(User).filter(User.id == user_id).first()
            if not user or not user.email:
                return None
            return user.email, user.full_name or "User"

    def _mark_notified(self, task_id: uuid.UUID) -> None:
        with self._session_factory() as session:
            TaskService(session).mark_reminder_notified(task_id)

    async def __call__(self, task: TaskSnapshot) -> bool:
        recipient = await asyncio.to_thread(self._recipient, task.user_id)
        if recipient is None:
            logger.warning("No email address for owner of task %s", task.id)
            return False
        email, name = recipient
        sent = await self._email.send_task_reminder(
            email,
            name,
            task.title,
            task.description,
            task.start_time,
            task.end_time or task.start_time,
        )
        if sent:
            await asyncio.to_thread(self._mark_notified, task.id)
        return sent


class ReminderSession:
    """Both reminder channels for one user, driven from the same task data."""

    def __init__(
        self,
        user_id: uuid.UUID,
        email: ReminderSchedulerProtocol,
        local: ReminderSchedulerProtocol,
        presenter: LocalNotificationPresenter,
    ) -> None:
        self.user_id = user_id
        self.presenter = presenter
        # Held across a task read or write and the re-arm that follows it
        self.lock = asyncio.Lock()
        self.schedulers: dict[str, ReminderSchedulerProtocol] = {
            EMAIL_CHANNEL: email,
            LOCAL_CHANNEL: local,
        }

    @property
    def available(self) -> bool:
        return any(s.available for s in self.schedulers.values())

    def schedule_task_reminder(self, task: TaskSnapshot) -> None:
        for scheduler in self.schedulers.values():
            scheduler.schedule_task_reminder(task)

    def clear_task_reminder(self, task_id: uuid.UUID) -> None:
        for scheduler in self.schedulers.values():
            scheduler.clear_task_reminder(task_id)

    def schedule_multiple_reminders(self, tasks: Iterable[TaskSnapshot]) -> None:
        tasks = list(tasks)
        for scheduler in self.schedulers.values():
            scheduler.schedule_multiple_reminders(tasks)

    def clear_all_reminders(self) -> None:
        for scheduler in self.schedulers.values():
            scheduler.clear_all_reminders()

    def entries(self) -> list[tuple[str, uuid.UUID, datetime]]:
        return [
            (channel, task_id, fire_at)
            for channel, scheduler in self.schedulers.items()
            for task_id, fire_at in scheduler.entries()
        ]

    async def close(self, drain: bool = False) -> None:
        """Disarm everything; with ``drain``, also wait for deliveries in flight."""
        self.clear_all_reminders()
        self.presenter.close_all()
        if drain:
            for scheduler in self.schedulers.values():
                await scheduler.drain()
        for scheduler in self.schedulers.values():
            scheduler.shutdown()


class ReminderSessionRegistry:
    """Process-wide table of open reminder sessions, keyed by user id."""

    def __init__(
        self,
        *,
        email_service: EmailService,
        session_factory: SessionFactory,
        config: Settings = settings,
    ) -> None:
        self.email_service = email_service
        self._session_factory = session_factory
        self._config = config
        self._sessions: dict[uuid.UUID, ReminderSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: uuid.UUID) -> bool:
        return user_id in self._sessions

    def get(self, user_id: uuid.UUID) -> ReminderSession | None:
        return self._sessions.get(user_id)

    def _build(self, user_id: uuid.UUID) -> ReminderSession:
        config = self._config
        loader = (
            TaskSnapshotLoader(self._session_factory)
            if config.reminder_refetch_on_fire
            else None
        )
        presenter = LocalNotificationPresenter(
            build_notification_backend(
                config.notification_backend,
                config.app_name,
                config.notification_dismiss_seconds,
            ),
            dismiss_after=config.notification_dismiss_seconds,
            display_timezone=config.reminder_timezone,
            on_click=lambda tag: logger.info(
                "User %s opened notification %s", user_id, tag
            ),
        )
        email = build_reminder_scheduler(
            EmailReminderDelivery(self.email_service, self._session_factory),
            channel=EMAIL_CHANNEL,
            enabled=config.reminders_enabled,
            task_loader=loader,
        )
        local = build_reminder_scheduler(
            presenter.show_task_reminder,
            channel=LOCAL_CHANNEL,
            enabled=config.reminders_enabled and presenter.supported,
            task_loader=loader,
        )
        return ReminderSession(user_id, email=email, local=local, presenter=presenter)

    def open(self, user_id: uuid.UUID) -> ReminderSession:
        """Return the user's session, creating it on first use."""
        session = self._sessions.get(user_id)
        if session is None:
            session = self._build(user_id)
            self._sessions[user_id] = session
            logger.info(
                "Opened reminder session for user %s (available=%s)",
                user_id, session.available,
            )
        return session

    async def close(self, user_id: uuid.UUID, drain: bool = False) -> None:
        session = self._sessions.pop(user_id, None)
        if session is None:
            return
        await session.close(drain=drain)
        logger.info("Closed reminder session for user %s", user_id)

    async def close_all(self) -> None:
        for user_id in list(self._sessions):
            await self.close(user_id, drain=True)
