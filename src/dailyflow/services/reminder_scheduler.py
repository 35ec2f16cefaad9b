"""Reminder scheduler: one pending APScheduler job per task, fired once.

A scheduler owns an ``AsyncIOScheduler`` whose job store is the reminder
table, keyed by task id. Arming a task computes its fire time
(``start_time - minutes_before``) and adds a date-triggered job with
``replace_existing=True``, so the table holds at most one job per task. A
fired date job is dropped by APScheduler; the delivery it runs is tracked
until it finishes and its result is only logged. Nothing is persisted and
nothing is retried.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from dailyflow.db.schema import DEFAULT_MINUTES_BEFORE
from dailyflow.models.task import as_utc

if TYPE_CHECKING:
    from dailyflow.db.schema import Task

logger = logging.getLogger(__name__)

Delivery = Callable[["TaskSnapshot"], Awaitable[Optional[bool]]]
TaskLoader = Callable[[uuid.UUID], Awaitable[Optional["TaskSnapshot"]]]
Clock = Callable[[], datetime]

SCHEDULER_TIMEZONE = "UTC"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_fire_time(start_time: datetime, minutes_before: int) -> datetime:
    """Instant a reminder is due: start time minus the lead minutes."""
    return as_utc(start_time) - timedelta(minutes=minutes_before)


@dataclass(frozen=True)
class TaskSnapshot:
    """Read-only copy of the task fields the scheduler and deliveries need."""

    id: uuid.UUID
    user_id: uuid.UUID
    title: str
    start_time: datetime
    end_time: Optional[datetime] = None
    description: str = ""
    completed: bool = False
    reminder_enabled: bool = False
    minutes_before: int = DEFAULT_MINUTES_BEFORE

    @classmethod
    def from_task(cls, task: Task) -> TaskSnapshot:
        return cls(
            id=task.id,
            user_id=task.user_id,
            title=task.title,
            description=task.description or "",
            start_time=as_utc(task.start_time),
            end_time=as_utc(task.end_time) if task.end_time else None,
            completed=bool(task.completed),
            reminder_enabled=bool(task.reminder_enabled),
            minutes_before=task.reminder_minutes_before,
        )

    @property
    def fire_time(self) -> datetime:
        return compute_fire_time(self.start_time, self.minutes_before)


class ReminderSchedulerProtocol(Protocol):
    """Operations shared by the live scheduler and its unavailable stand-in."""

    channel: str
    available: bool

    def schedule_task_reminder(self, task: TaskSnapshot) -> None: ...

    def clear_task_reminder(self, task_id: uuid.UUID) -> None: ...

    def schedule_multiple_reminders(self, tasks: Iterable[TaskSnapshot]) -> None: ...

    def clear_all_reminders(self) -> None: ...

    def entries(self) -> list[tuple[uuid.UUID, datetime]]: ...

    async def drain(self) -> None: ...

    def shutdown(self) -> None: ...


class ReminderScheduler:
    """Arms, disarms and fires per-task reminder jobs for one delivery channel.

    Args:
        delivery: coroutine called with the task snapshot when a job fires.
        channel: label used in logs and introspection ("email", "local").
        task_loader: optional coroutine returning the current state of a task;
            when given, delivery is skipped if the task has meanwhile been
            deleted, completed, or had its reminder disabled, and otherwise
            receives the current state.
        loop: event loop the jobs run on (defaults to the running loop).
        clock: returns the current aware UTC time.
    """

    available = True

    def __init__(
        self,
        delivery: Delivery,
        *,
        channel: str = "email",
        task_loader: TaskLoader | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.channel = channel
        self._delivery = delivery
        self._task_loader = task_loader
        self._clock = clock
        self._inflight: set[asyncio.Task] = set()
        self._scheduler = AsyncIOScheduler(
            event_loop=loop or asyncio.get_running_loop(),
            timezone=SCHEDULER_TIMEZONE,
        )
        self._scheduler.start()

    @staticmethod
    def _job_id(task_id: uuid.UUID) -> str:
        return str(task_id)

    # -- Introspection ---------------------------------------------------------

    @property
    def scheduled_count(self) -> int:
        return len(self._scheduler.get_jobs())

    def is_scheduled(self, task_id: uuid.UUID) -> bool:
        return self._scheduler.get_job(self._job_id(task_id)) is not None

    def fire_time_for(self, task_id: uuid.UUID) -> datetime | None:
        job = self._scheduler.get_job(self._job_id(task_id))
        return job.args[0].fire_time if job else None

    def entries(self) -> list[tuple[uuid.UUID, datetime]]:
        return sorted(
            ((job.args[0].id, job.args[0].fire_time) for job in self._scheduler.get_jobs()),
            key=lambda item: item[1],
        )

    # -- Arm / disarm ----------------------------------------------------------

    def schedule_task_reminder(self, task: TaskSnapshot) -> None:
        """(Re-)arm the reminder for ``task``, or leave it disarmed."""
        self.clear_task_reminder(task.id)

        if not task.reminder_enabled or task.completed:
            return

        try:
            fire_at = task.fire_time
        except OverflowError:
            logger.warning(
                "[%s] Not arming task %s: lead of %d minutes is out of range",
                self.channel, task.id, task.minutes_before,
            )
            return
        if fire_at <= self._clock():
            # Reminder window already passed; never fire retroactively
            logger.debug(
                "[%s] Not arming task %s: fire time %s already passed",
                self.channel, task.id, fire_at.isoformat(),
            )
            return

        self._scheduler.add_job(
            self._run,
            trigger=DateTrigger(run_date=fire_at, timezone=SCHEDULER_TIMEZONE),
            id=self._job_id(task.id),
            name=f"{self.channel}:{task.title}",
            args=[task],
            misfire_grace_time=None,
            replace_existing=True,
        )
        logger.debug(
            "[%s] Armed task %s for %s", self.channel, task.id, fire_at.isoformat()
        )

    def clear_task_reminder(self, task_id: uuid.UUID) -> None:
        try:
            self._scheduler.remove_job(self._job_id(task_id))
        except JobLookupError:
            return
        logger.debug("[%s] Disarmed task %s", self.channel, task_id)

    def schedule_multiple_reminders(self, tasks: Iterable[TaskSnapshot]) -> None:
        """Replace the whole table with reminders for ``tasks``."""
        # Clear fully before re-arming so no replaced job can fire mid-reload
        self.clear_all_reminders()
        for task in tasks:
            self.schedule_task_reminder(task)
        logger.info(
            "[%s] Reloaded reminders: %d armed", self.channel, self.scheduled_count
        )

    def clear_all_reminders(self) -> None:
        cleared = self.scheduled_count
        self._scheduler.remove_all_jobs()
        if cleared:
            logger.debug("[%s] Cleared %d reminder(s)", self.channel, cleared)

    async def drain(self) -> None:
        """Wait for deliveries already started by fired jobs."""
        while True:
            pending = [t for t in self._inflight if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def shutdown(self) -> None:
        """Stop the underlying scheduler; pending jobs are dropped."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    # -- Firing ----------------------------------------------------------------

    async def _run(self, task: TaskSnapshot) -> None:
        """Job callback. APScheduler has already dropped the fired job."""
        current = asyncio.current_task()
        if current is not None:
            self._inflight.add(current)
        try:
            # Snapshot captured at arm time; completion elsewhere is caught by the loader
            if task.completed:
                return
            await self._deliver(task)
        finally:
            if current is not None:
                self._inflight.discard(current)

    async def _deliver(self, task: TaskSnapshot) -> None:
        try:
            if self._task_loader is not None:
                latest = await self._task_loader(task.id)
                if latest is None or latest.completed or not latest.reminder_enabled:
                    logger.info(
                        "[%s] Skipping reminder for task %s: no longer due",
                        self.channel, task.id,
                    )
                    return
                task = latest
            delivered = await self._delivery(task)
        except Exception:
            logger.exception(
                "[%s] Reminder delivery for task %s raised", self.channel, task.id
            )
            return

        if delivered is False:
            logger.warning(
                "[%s] Reminder delivery for task %s failed", self.channel, task.id
            )
        else:
            logger.info("[%s] Reminder delivered for task %s", self.channel, task.id)


class UnavailableReminderScheduler:
    """Explicit stand-in used where jobs cannot run or reminders are off."""

    available = False

    def __init__(self, channel: str = "email", reason: str = "") -> None:
        self.channel = channel
        self.reason = reason

    @property
    def scheduled_count(self) -> int:
        return 0

    def is_scheduled(self, task_id: uuid.UUID) -> bool:
        return False

    def fire_time_for(self, task_id: uuid.UUID) -> datetime | None:
        return None

    def entries(self) -> list[tuple[uuid.UUID, datetime]]:
        return []

    def schedule_task_reminder(self, task: TaskSnapshot) -> None:
        logger.debug(
            "[%s] Reminders unavailable (%s); not arming task %s",
            self.channel, self.reason, task.id,
        )

    def clear_task_reminder(self, task_id: uuid.UUID) -> None:
        pass

    def schedule_multiple_reminders(self, tasks: Iterable[TaskSnapshot]) -> None:
        pass

    def clear_all_reminders(self) -> None:
        pass

    async def drain(self) -> None:
        pass

    def shutdown(self) -> None:
        pass


def build_reminder_scheduler(
    delivery: Delivery,
    *,
    channel: str = "email",
    enabled: bool = True,
    task_loader: TaskLoader | None = None,
    clock: Clock = utcnow,
) -> ReminderScheduler | UnavailableReminderScheduler:
    """Return a live scheduler, or the unavailable variant when it cannot run."""
    if not enabled:
        return UnavailableReminderScheduler(channel, reason="disabled by configuration")
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return UnavailableReminderScheduler(channel, reason="no running event loop")
    return ReminderScheduler(
        delivery,
        channel=channel,
        task_loader=task_loader,
        loop=loop,
        clock=clock,
    )
