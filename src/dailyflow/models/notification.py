"""Notification API schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class EmailReminderRequest(BaseModel):
    """Body for POST /api/notifications/email."""

    task_title: Optional[str] = None
    task_description: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class EmailReminderResponse(BaseModel):
    message: str
    recipient: str
    task_title: str


class EmailServiceStatus(BaseModel):
    connected: bool
    configured: bool
    host: str
    user: str


class EmailStatusResponse(BaseModel):
    email_service: EmailServiceStatus


class PushRequest(BaseModel):
    """Body for POST /api/notifications/push."""

    title: Optional[str] = None
    body: Optional[str] = None
    task_id: Optional[uuid.UUID] = None
    schedule_time: Optional[datetime] = None


class PushResponse(BaseModel):
    message: str
    notification_id: str
    scheduled_for: str


class NotificationSupport(BaseModel):
    email: bool
    local: bool
    backend: str
    scheduling: bool


class PushStatusResponse(BaseModel):
    user_id: uuid.UUID
    notification_support: NotificationSupport
    message: str


class ScheduledReminderResponse(BaseModel):
    """One armed entry in a scheduler table."""

    channel: str
    task_id: uuid.UUID
    fire_at: datetime


class LocalNotificationResponse(BaseModel):
    """Notification currently shown through the inbox backend."""

    tag: str
    title: str
    body: str
    icon: str
    created_at: datetime
    expires_at: datetime
