"""Task API schemas."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from dailyflow.db.schema import DEFAULT_MINUTES_BEFORE, TaskPriority

# Lead times offered by the task form, in minutes
REMINDER_LEAD_OPTIONS = (5, 10, 15, 30, 60, 120, 1440)
# Longest accepted lead: one year
MAX_MINUTES_BEFORE = 365 * 24 * 60


def as_utc(value: datetime) -> datetime:
    """Naive timestamps (e.g. read back from SQLite) are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TaskStatusFilter(str, Enum):
    """Completion filter for grouped views."""

    ALL = "all"
    COMPLETED = "completed"
    PENDING = "pending"


class ReminderSettings(BaseModel):
    """Reminder descriptor as sent by the client."""

    enabled: bool = False
    minutes_before: int = Field(
        DEFAULT_MINUTES_BEFORE,
        ge=0,
        le=MAX_MINUTES_BEFORE,
        json_schema_extra={"examples": list(REMINDER_LEAD_OPTIONS)},
    )


class ReminderResponse(BaseModel):
    """Reminder descriptor in task response."""

    enabled: bool
    minutes_before: int
    notified: bool
    time: Optional[datetime] = None


class TaskCreate(BaseModel):
    """Schema for creating a task."""

    title: str
    description: str = ""
    start_time: datetime
    end_time: datetime
    priority: TaskPriority = TaskPriority.MEDIUM
    reminder: Optional[ReminderSettings] = None

    @field_validator("title")
    @classmethod
    def title_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("title must not be empty")
        return v.strip()

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_tz(cls, v: datetime) -> datetime:
        return as_utc(v)


class TaskUpdate(BaseModel):
    """Schema for updating a task (all fields optional)."""

    title: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    priority: Optional[TaskPriority] = None
    completed: Optional[bool] = None
    reminder: Optional[ReminderSettings] = None

    @field_validator("title")
    @classmethod
    def title_not_empty(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        if not v.strip():
            raise ValueError("title must not be empty")
        return v.strip()

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_tz(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return None
        return as_utc(v)


class TaskResponse(BaseModel):
    """Schema for task response with nested reminder."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    priority: TaskPriority
    completed: bool
    user_id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    reminder: Optional[ReminderResponse] = None

    @model_validator(mode="before")
    @classmethod
    def nest_reminder(cls, data: Any) -> Any:
        # ORM rows keep the reminder flattened into reminder_* columns
        if isinstance(data, dict) or not hasattr(data, "reminder_enabled"):
            return data
        return {
            "id": data.id,
            "title": data.title,
            "description": data.description or "",
            "start_time": as_utc(data.start_time),
            "end_time": as_utc(data.end_time),
            "priority": data.priority,
            "completed": data.completed,
            "user_id": data.user_id,
            "created_at": data.created_at,
            "updated_at": data.updated_at,
            "reminder": {
                "enabled": data.reminder_enabled,
                "minutes_before": data.reminder_minutes_before,
                "notified": data.reminder_notified,
                "time": as_utc(data.reminder_time) if data.reminder_time else None,
            },
        }


class TaskGroup(BaseModel):
    """Tasks sharing one local calendar day."""

    date: str
    tasks: list[TaskResponse]


class DailySummary(BaseModel):
    """Today's task statistics."""

    date: str
    total: int
    completed: int
    pending: int
    overdue: int
    upcoming: int
    in_progress: int
    completion_rate: int
    next_task: Optional[TaskResponse] = None


class DashboardView(BaseModel):
    """Dashboard buckets."""

    today: list[TaskResponse]
    running: list[TaskResponse]
    upcoming: list[TaskResponse]
    completed: list[TaskResponse]
