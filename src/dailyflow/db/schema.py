"""SQLAlchemy Base, enums, and declarative models."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

DEFAULT_MINUTES_BEFORE = 15


class Base(DeclarativeBase):
    type_annotation_map = {datetime: DateTime(timezone=True)}

    id = mapped_column(
        UUID(as_uuid=True), primary_key=True, index=True, default=uuid.uuid4
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


# Enums

class TaskPriority(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


# MODELS

class User(Base):
    __tablename__ = "user"

    full_name: Mapped[str]
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    password_hash: Mapped[str]

    tasks: Mapped[List["Task"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


class Task(Base):
    __tablename__ = "task"

    title: Mapped[str]
    description: Mapped[str] = mapped_column(default="")
    start_time: Mapped[datetime] = mapped_column(index=True)
    end_time: Mapped[datetime]
    priority: Mapped[TaskPriority] = mapped_column(
        SAEnum(TaskPriority, name="task_priority",
               values_callable=lambda e: [m.value for m in e]),
        default=TaskPriority.MEDIUM,
    )
    completed: Mapped[bool] = mapped_column(default=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("user.id", ondelete="CASCADE"),
        index=True,
    )

    # Reminder descriptor, flattened
    reminder_enabled: Mapped[bool] = mapped_column(default=False)
    reminder_minutes_before: Mapped[int] = mapped_column(
        default=DEFAULT_MINUTES_BEFORE)
    reminder_notified: Mapped[bool] = mapped_column(default=False)
    reminder_time: Mapped[Optional[datetime]]

    user: Mapped["User"] = relationship(back_populates="tasks")
