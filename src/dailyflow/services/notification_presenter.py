"""Local notification presenter with pluggable backends.

Backends:
- inbox:   keeps notifications in memory; the browser polls and renders them.
- desktop: OS notifications through plyer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Protocol
from zoneinfo import ZoneInfo

from plyer import notification as plyer_notification

from dailyflow.services.reminder_scheduler import Clock, utcnow

if TYPE_CHECKING:
    from dailyflow.services.reminder_scheduler import TaskSnapshot

logger = logging.getLogger(__name__)

DEFAULT_TAG = "daily-flow-task"
DEFAULT_ICON = "/favicon.ico"
DEFAULT_DISMISS_SECONDS = 10.0


class NotificationPermission(str, Enum):
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"


@dataclass(frozen=True)
class LocalNotification:
    tag: str
    title: str
    body: str
    icon: str
    created_at: datetime
    expires_at: datetime


class NotificationBackend(Protocol):
    """Minimal contract for something that can put a notification in front of the user."""

    name: str

    async def request_permission(self) -> NotificationPermission: ...

    async def show(self, notification: LocalNotification) -> None: ...

    def close(self, tag: str) -> None: ...


class InboxBackend:
    """Holds visible notifications per tag; a newer one with the same tag replaces the older."""

    name = "inbox"

    def __init__(self) -> None:
        self._visible: dict[str, LocalNotification] = {}

    async def request_permission(self) -> NotificationPermission:
        return NotificationPermission.GRANTED

    async def show(self, notification: LocalNotification) -> None:
        self._visible[notification.tag] = notification

    def close(self, tag: str) -> None:
        self._visible.pop(tag, None)

    def visible(self) -> list[LocalNotification]:
        return sorted(self._visible.values(), key=lambda n: n.created_at)


class DesktopBackend:
    """Uses plyer's notification facade (libnotify, Windows toast, macOS)."""

    name = "desktop"

    def __init__(self, app_name: str, timeout: float = DEFAULT_DISMISS_SECONDS) -> None:
        self._app_name = app_name
        self._timeout = timeout

    async def request_permission(self) -> NotificationPermission:
        # plyer exposes no permission prompt; failures surface from show()
        return NotificationPermission.GRANTED

    async def show(self, notification: LocalNotification) -> None:
        # plyer has no tag support; the OS groups by app name
        await asyncio.to_thread(
            plyer_notification.notify,
            title=notification.title,
            message=notification.body,
            app_name=self._app_name,
            timeout=int(self._timeout),
        )

    def close(self, tag: str) -> None:
        # OS bubbles close on their own timeout
        pass


def build_notification_backend(name: str, app_name: str, timeout: float) -> NotificationBackend | None:
    """Map a NOTIFICATION_BACKEND value to a backend; None means unsupported."""
    normalized = (name or "").strip().lower()
    if normalized == "inbox":
        return InboxBackend()
    if normalized == "desktop":
        return DesktopBackend(app_name, timeout)
    if normalized not in ("", "none"):
        logger.warning("Unknown notification backend %r; local notifications disabled", name)
    return None


class LocalNotificationPresenter:
    """Shows reminder alerts to the user, degrading to a no-op when it cannot.

    Notifications carry a stable tag so repeats for the same task collapse,
    and each one is dismissed after ``dismiss_after`` seconds.
    """

    def __init__(
        self,
        backend: NotificationBackend | None,
        *,
        dismiss_after: float = DEFAULT_DISMISS_SECONDS,
        display_timezone: str = "UTC",
        on_click: Callable[[str], None] | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._backend = backend
        self._dismiss_after = dismiss_after
        self._tz = ZoneInfo(display_timezone)
        self._on_click = on_click
        self._clock = clock
        self._permission = NotificationPermission.DEFAULT
        self._dismiss_timers: dict[str, asyncio.TimerHandle] = {}

    @property
    def backend_name(self) -> str:
        return self._backend.name if self._backend else "none"

    @property
    def supported(self) -> bool:
        return self._backend is not None

    @property
    def permission(self) -> NotificationPermission:
        return self._permission

    async def request_permission(self) -> bool:
        if self._backend is None:
            logger.warning("Local notifications are not supported in this environment")
            return False
        if self._permission is not NotificationPermission.DEFAULT:
            return self._permission is NotificationPermission.GRANTED
        try:
            self._permission = await self._backend.request_permission()
        except Exception:
            logger.exception("Notification permission request failed")
            self._permission = NotificationPermission.DENIED
        return self._permission is NotificationPermission.GRANTED

    async def show_notification(
        self,
        title: str,
        body: str = "",
        tag: str = DEFAULT_TAG,
        icon: str = DEFAULT_ICON,
    ) -> bool:
        """Show (or replace) the notification for ``tag``. Returns whether it was shown."""
        if self._backend is None:
            return False
        if self._permission is not NotificationPermission.GRANTED:
            if not await self.request_permission():
                logger.warning("Notification permission denied")
                return False

        now = self._clock()
        notification = LocalNotification(
            tag=tag,
            title=title,
            body=body,
            icon=icon,
            created_at=now,
            expires_at=now + timedelta(seconds=self._dismiss_after),
        )
        try:
            await self._backend.show(notification)
        except Exception:
            logger.exception("Failed to show notification %s", tag)
            return False

        # Another show for this tag may have finished during the await
        self._cancel_dismiss(tag)
        loop = asyncio.get_running_loop()
        self._dismiss_timers[tag] = loop.call_later(self._dismiss_after, self.close, tag)
        return True

    async def show_task_reminder(self, task: TaskSnapshot) -> bool:
        start = task.start_time.astimezone(self._tz)
        return await self.show_notification(
            "Task Reminder",
            f'"{task.title}" is starting at {start:%H:%M}',
            tag=f"task-reminder-{task.id}",
        )

    def visible(self) -> list[LocalNotification]:
        if isinstance(self._backend, InboxBackend):
            return self._backend.visible()
        return []

    def click(self, tag: str) -> bool:
        """Handle a click: focus the application, then close the notification."""
        if tag not in self._dismiss_timers:
            return False
        if self._on_click is not None:
            try:
                self._on_click(tag)
            except Exception:
                logger.exception("Notification click handler failed for %s", tag)
        self.close(tag)
        return True

    def close(self, tag: str) -> None:
        self._cancel_dismiss(tag)
        if self._backend is None:
            return
        try:
            self._backend.close(tag)
        except Exception:
            logger.exception("Failed to close notification %s", tag)

    def close_all(self) -> None:
        for tag in list(self._dismiss_timers):
            self.close(tag)

    def _cancel_dismiss(self, tag: str) -> None:
        handle = self._dismiss_timers.pop(tag, None)
        if handle is not None:
            handle.cancel()
