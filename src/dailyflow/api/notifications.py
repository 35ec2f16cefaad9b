"""Notifications API: reminder email, push acknowledgement, scheduled and local notifications."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Response
from fastapi.concurrency import run_in_threadpool

from dailyflow.core.deps import (
    AuthServiceDep,
    CurrentUserIdDep,
    EmailServiceDep,
    ReminderSessionDep,
)
from dailyflow.models.notification import (
    EmailReminderRequest,
    EmailReminderResponse,
    EmailServiceStatus,
    EmailStatusResponse,
    LocalNotificationResponse,
    NotificationSupport,
    PushRequest,
    PushResponse,
    PushStatusResponse,
    ScheduledReminderResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("/email", response_model=EmailReminderResponse)
async def send_email_reminder(
    body: EmailReminderRequest,
    user_id: CurrentUserIdDep,
    auth_service: AuthServiceDep,
    email_service: EmailServiceDep,
) -> EmailReminderResponse:
    """Send a task reminder to the caller's registered email."""
    if not body.task_title or body.start_time is None:
        raise HTTPException(
            status_code=400,
            detail="Task title and start time are required",
        )
    user = await run_in_threadpool(auth_service.get_user, user_id)
    if not user.email:
        raise HTTPException(status_code=400, detail="User email not found")

    sent = await email_service.send_task_reminder(
        user.email,
        user.full_name or "User",
        body.task_title,
        body.task_description or "",
        body.start_time,
        body.end_time or body.start_time,
    )
    if not sent:
        raise HTTPException(status_code=500, detail="Failed to send email reminder")
    return EmailReminderResponse(
        message="Email reminder sent successfully",
        recipient=user.email,
        task_title=body.task_title,
    )


@router.get("/email", response_model=EmailStatusResponse)
async def email_status(
    user_id: CurrentUserIdDep, email_service: EmailServiceDep
) -> EmailStatusResponse:
    """Check the SMTP transport."""
    connected = await email_service.verify_connection()
    return EmailStatusResponse(
        email_service=EmailServiceStatus(
            connected=connected,
            configured=email_service.configured,
            host=email_service.host,
            user=email_service.masked_user,
        )
    )


@router.post("/push", response_model=PushResponse)
async def request_push(body: PushRequest, user_id: CurrentUserIdDep) -> PushResponse:
    """Acknowledge a push request; there is no push transport behind it."""
    if not body.title or not body.body:
        raise HTTPException(status_code=400, detail="Title and body are required")
    logger.info(
        "Push notification request for user %s: title=%r task=%s schedule=%s",
        user_id, body.title, body.task_id, body.schedule_time,
    )
    now_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    return PushResponse(
        message="Push notification scheduled successfully",
        notification_id=f"{user_id}_{now_ms}",
        scheduled_for=body.schedule_time.isoformat() if body.schedule_time else "immediate",
    )


@router.get("/push", response_model=PushStatusResponse)
async def push_status(
    user_id: CurrentUserIdDep,
    reminders: ReminderSessionDep,
    email_service: EmailServiceDep,
) -> PushStatusResponse:
    """Report which notification channels this server can drive."""
    return PushStatusResponse(
        user_id=user_id,
        notification_support=NotificationSupport(
            email=email_service.configured,
            local=reminders.presenter.supported,
            backend=reminders.presenter.backend_name,
            scheduling=reminders.available,
        ),
        message="Notification service status retrieved",
    )


@router.get("/scheduled", response_model=list[ScheduledReminderResponse])
async def list_scheduled(reminders: ReminderSessionDep) -> list[ScheduledReminderResponse]:
    """Reminders currently armed for the caller, per channel."""
    return [
        ScheduledReminderResponse(channel=channel, task_id=task_id, fire_at=fire_at)
        for channel, task_id, fire_at in reminders.entries()
    ]


@router.get("/local", response_model=list[LocalNotificationResponse])
async def list_local(reminders: ReminderSessionDep) -> list[LocalNotificationResponse]:
    """Local notifications currently visible (inbox backend)."""
    return [
        LocalNotificationResponse(
            tag=n.tag,
            title=n.title,
            body=n.body,
            icon=n.icon,
            created_at=n.created_at,
            expires_at=n.expires_at,
        )
        for n in reminders.presenter.visible()
    ]


@router.post("/local/{tag}/click", status_code=204, response_class=Response)
async def click_local(tag: str, reminders: ReminderSessionDep) -> None:
    """Focus-and-close for a visible notification."""
    if not reminders.presenter.click(tag):
        raise HTTPException(status_code=404, detail="Notification not found")
