import uuid
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from fastapi import HTTPException
from sqlalchemy.orm import Session

from dailyflow.core.config import settings
from dailyflow.db.schema import Task
from dailyflow.models.task import (
    DailySummary,
    DashboardView,
    TaskGroup,
    TaskResponse,
    TaskStatusFilter,
    as_utc,
)
from dailyflow.services.base import BaseService

ALLOWED_DAY_WINDOWS = (7, 30, 90)


class ViewService(BaseService):
    """Day/status groupings over the user's tasks, computed in the display timezone."""

    def __init__(
        self,
        session: Session,
        display_timezone: str | None = None,
        now: datetime | None = None,
    ) -> None:
        super().__init__(session)
        self.tz = ZoneInfo(display_timezone or settings.reminder_timezone)
        self._now = now

    @property
    def now(self) -> datetime:
        return self._now or datetime.now(timezone.utc)

    def _tasks(self, user_id: uuid.UUID) -> list[Task]:
        with self.session as session:
            q = (
                session.query(Task)
                .filter(Task.user_id == user_id)
                .order_by(Task.start_time.asc())
            )
            return list(q.all())

    def _local_day(self, value: datetime):
        return as_utc(value).astimezone(self.tz).date()

    def _is_today(self, task: Task) -> bool:
        return self._local_day(task.start_time) == self._local_day(self.now)

    def _is_running(self, task: Task) -> bool:
        return as_utc(task.start_time) <= self.now <= as_utc(task.end_time)

    def _is_upcoming(self, task: Task) -> bool:
        return as_utc(task.start_time) > self.now

    def get_grouped_tasks(
        self,
        user_id: uuid.UUID,
        status: TaskStatusFilter = TaskStatusFilter.ALL,
        days: int | None = None,
    ) -> list[TaskGroup]:
        """Tasks grouped by local start day, newest day (and task) first."""
        if days is not None and days not in ALLOWED_DAY_WINDOWS:
            raise HTTPException(
                status_code=422,
                detail=f"days must be one of {list(ALLOWED_DAY_WINDOWS)}",
            )
        tasks = self._tasks(user_id)
        if status is TaskStatusFilter.COMPLETED:
            tasks = [t for t in tasks if t.completed]
        elif status is TaskStatusFilter.PENDING:
            tasks = [t for t in tasks if not t.completed]
        if days is not None:
            cutoff = self.now - timedelta(days=days)
            tasks = [t for t in tasks if as_utc(t.start_time) >= cutoff]

        tasks.sort(key=lambda t: as_utc(t.start_time), reverse=True)
        groups: dict[str, list[TaskResponse]] = {}
        for task in tasks:
            key = self._local_day(task.start_time).isoformat()
            groups.setdefault(key, []).append(TaskResponse.model_validate(task))
        return [TaskGroup(date=day, tasks=items) for day, items in groups.items()]

    def get_daily_summary(self, user_id: uuid.UUID) -> DailySummary:
        """Statistics over tasks starting today."""
        now = self.now
        today = [t for t in self._tasks(user_id) if self._is_today(t)]
        pending = [t for t in today if not t.completed]
        completed = len(today) - len(pending)
        upcoming = sorted(
            (t for t in pending if self._is_upcoming(t)),
            key=lambda t: as_utc(t.start_time),
        )
        return DailySummary(
            date=self._local_day(now).isoformat(),
            total=len(today),
            completed=completed,
            pending=len(pending),
            overdue=sum(1 for t in pending if as_utc(t.end_time) < now),
            upcoming=len(upcoming),
            in_progress=sum(1 for t in pending if self._is_running(t)),
            completion_rate=round(completed / len(today) * 100) if today else 0,
            next_task=TaskResponse.model_validate(upcoming[0]) if upcoming else None,
        )

    def get_dashboard(self, user_id: uuid.UUID) -> DashboardView:
        tasks = self._tasks(user_id)

        def dump(items: list[Task]) -> list[TaskResponse]:
            return [TaskResponse.model_validate(t) for t in items]

        return DashboardView(
            today=dump([t for t in tasks if self._is_today(t)]),
            running=dump([t for t in tasks if self._is_running(t) and not t.completed]),
            upcoming=dump([t for t in tasks if self._is_upcoming(t) and not t.completed]),
            completed=dump([t for t in tasks if t.completed]),
        )
