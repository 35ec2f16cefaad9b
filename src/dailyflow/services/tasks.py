"""Task service: CRUD scoped to the owning user, complete toggle, reminder flags."""

import uuid
from datetime import datetime

from fastapi import HTTPException

from dailyflow.db.schema import Task
from dailyflow.models.task import TaskCreate, TaskUpdate, as_utc
from dailyflow.services.base import BaseService
from dailyflow.services.reminder_scheduler import compute_fire_time


class TaskService(BaseService):
    @staticmethod
    def _validate_time_range(start_time: datetime, end_time: datetime) -> None:
        if as_utc(start_time) >= as_utc(end_time):
            raise HTTPException(
                status_code=400,
                detail="End time must be after start time",
            )

    @staticmethod
    def _sync_reminder_time(task: Task) -> None:
        task.reminder_time = (
            compute_fire_time(task.start_time, task.reminder_minutes_before)
            if task.reminder_enabled
            else None
        )

    @staticmethod
    def _fire_key(task: Task) -> tuple[bool, datetime | None]:
        fire = as_utc(task.reminder_time) if task.reminder_time else None
        return bool(task.reminder_enabled), fire

    def _get_owned(self, session, user_id: uuid.UUID, task_id: uuid.UUID) -> Task:
        task = (
            session.query(Task)
            .filter(Task.id == task_id, Task.user_id == user_id)
            .first()
        )
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")
        return task

    def get_tasks(self, user_id: uuid.UUID) -> list[Task]:
        """All of the user's tasks ordered by start time."""
        with self.session as session:
            q = (
                session.query(Task)
                .filter(Task.user_id == user_id)
                .order_by(Task.start_time.asc())
            )
            return list(q.all())

    def create_task(self, user_id: uuid.UUID, data: TaskCreate) -> Task:
        self._validate_time_range(data.start_time, data.end_time)
        with self.session as session:
            task = Task(
                title=data.title,
                description=data.description or "",
                start_time=data.start_time,
                end_time=data.end_time,
                priority=data.priority,
                completed=False,
                user_id=user_id,
            )
            if data.reminder is not None:
                task.reminder_enabled = data.reminder.enabled
                task.reminder_minutes_before = data.reminder.minutes_before
            task.reminder_notified = False
            self._sync_reminder_time(task)
            session.add(task)
            session.commit()
            session.refresh(task)
            return task

    def get_task(self, user_id: uuid.UUID, task_id: uuid.UUID) -> Task:
        with self.session as session:
            return self._get_owned(session, user_id, task_id)

    def find_task(self, task_id: uuid.UUID) -> Task | None:
        """Unscoped lookup used by reminder delivery."""
        with self.session as session:
            return session.query(Task).filter(Task.id == task_id).first()

    def update_task(self, user_id: uuid.UUID, task_id: uuid.UUID, data: TaskUpdate) -> Task:
        with self.session as session:
            task = self._get_owned(session, user_id, task_id)

            update_data = data.model_dump(exclude_unset=True, exclude={"reminder"})

            start_time = update_data.get("start_time") or task.start_time
            end_time = update_data.get("end_time") or task.end_time
            self._validate_time_range(start_time, end_time)

            previous_fire = self._fire_key(task)
            for key, value in update_data.items():
                if value is None:
                    continue
                setattr(task, key, value)
            if data.reminder is not None:
                # Fields left out of the reminder keep their stored values
                sent = data.reminder.model_fields_set
                if "enabled" in sent:
                    task.reminder_enabled = data.reminder.enabled
                if "minutes_before" in sent:
                    task.reminder_minutes_before = data.reminder.minutes_before
            self._sync_reminder_time(task)
            # A moved or re-enabled reminder has not been sent yet
            if self._fire_key(task) != previous_fire:
                task.reminder_notified = False

            session.commit()
            session.refresh(task)
            return task

    def delete_task(self, user_id: uuid.UUID, task_id: uuid.UUID) -> None:
        with self.session as session:
            task = self._get_owned(session, user_id, task_id)
            session.delete(task)
            session.commit()

    def complete_toggle(self, user_id: uuid.UUID, task_id: uuid.UUID) -> Task:
        with self.session as session:
            task = self._get_owned(session, user_id, task_id)
            task.completed = not task.completed
            session.commit()
            session.refresh(task)
            return task

    def mark_reminder_notified(self, task_id: uuid.UUID) -> bool:
        with self.session as session:
            task = session.query(Task).filter(Task.id == task_id).first()
            if not task:
                return False
            task.reminder_notified = True
            session.commit()
            return True
