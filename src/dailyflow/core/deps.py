"""Central place for FastAPI dependencies and shared *Dep type aliases."""

import uuid
from typing import Annotated

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from dailyflow.core.security import decode_access_token
from dailyflow.db.session import get_db
from dailyflow.services.auth import AuthService
from dailyflow.services.email import EmailService
from dailyflow.services.reminders import ReminderSession, ReminderSessionRegistry
from dailyflow.services.tasks import TaskService
from dailyflow.services.views import ViewService

SessionDep = Annotated[Session, Depends(get_db)]

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> uuid.UUID:
    """Verify the bearer token and return its subject user id."""
    user_id = decode_access_token(credentials.credentials) if credentials else None
    if user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id


CurrentUserIdDep = Annotated[uuid.UUID, Depends(get_current_user_id)]


def get_reminder_registry(request: Request) -> ReminderSessionRegistry:
    """The registry created by the application lifespan."""
    return request.app.state.reminders


ReminderRegistryDep = Annotated[ReminderSessionRegistry, Depends(get_reminder_registry)]


async def get_reminder_session(
    registry: ReminderRegistryDep, user_id: CurrentUserIdDep
) -> ReminderSession:
    """Provide the caller's reminder session (async so timers bind to the running loop)."""
    return registry.open(user_id)


def get_email_service(registry: ReminderRegistryDep) -> EmailService:
    return registry.email_service


def get_auth_service(session: SessionDep) -> AuthService:
    """Provide AuthService for this request."""
    return AuthService(session)


def get_task_service(session: SessionDep) -> TaskService:
    """Provide TaskService for this request."""
    return TaskService(session)


def get_view_service(session: SessionDep) -> ViewService:
    """Provide ViewService for this request."""
    return ViewService(session)


ReminderSessionDep = Annotated[ReminderSession, Depends(get_reminder_session)]
EmailServiceDep = Annotated[EmailService, Depends(get_email_service)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
TaskServiceDep = Annotated[TaskService, Depends(get_task_service)]
ViewServiceDep = Annotated[ViewService, Depends(get_view_service)]
