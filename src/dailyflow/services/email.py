"""Outbound email: Jinja2-rendered task reminders sent with aiosmtplib."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import aiosmtplib
from jinja2 import Environment, FileSystemLoader, select_autoescape

from dailyflow.core.config import Settings, settings
from dailyflow.models.task import as_utc

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"

SMTPFactory = Callable[..., Any]


def format_start_time(value: datetime, tz: ZoneInfo) -> str:
    """E.g. 'Monday, January 6, 2025 at 02:30 PM'."""
    local = as_utc(value).astimezone(tz)
    return f"{local:%A}, {local:%B} {local.day}, {local.year} at {local:%I:%M %p}"


def format_end_time(value: datetime, tz: ZoneInfo) -> str:
    return f"{as_utc(value).astimezone(tz):%I:%M %p}"


def mask_user(user: str) -> str:
    return f"{user[:3]}***" if user else "Not set"


class EmailService:
    """Renders and sends reminder emails.

    Sending is best-effort: every method reports failure as ``False`` and logs
    the cause instead of raising.
    """

    def __init__(
        self,
        config: Settings = settings,
        *,
        template_dir: Path = TEMPLATE_DIR,
        smtp_factory: SMTPFactory = aiosmtplib.SMTP,
    ) -> None:
        self._config = config
        self._smtp_factory = smtp_factory
        self._tz = ZoneInfo(config.reminder_timezone)
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        if not config.email_configured:
            logger.error(
                "Email service not configured. Set EMAIL_USER and EMAIL_PASSWORD."
            )

    @property
    def configured(self) -> bool:
        return self._config.email_configured

    @property
    def host(self) -> str:
        return self._config.email_host

    @property
    def masked_user(self) -> str:
        return mask_user(self._config.email_user)

    def render_task_reminder(
        self,
        recipient_name: str,
        task_title: str,
        task_description: str,
        start_time: datetime,
        end_time: datetime,
    ) -> tuple[str, str, str]:
        """Return (subject, html, text) for a task reminder."""
        context = {
            "user_name": recipient_name,
            "task_title": task_title,
            "task_description": task_description,
            "start_time": format_start_time(start_time, self._tz),
            "end_time": format_end_time(end_time, self._tz),
            "dashboard_url": f"{self._config.app_url.rstrip('/')}/dashboard",
        }
        html = self.env.get_template("task_reminder.html").render(**context)
        text = self.env.get_template("task_reminder.txt").render(**context).strip()
        return f"Task Reminder: {task_title}", html, text

    def _smtp(self) -> Any:
        secure = self._config.email_secure
        return self._smtp_factory(
            hostname=self._config.email_host,
            port=self._config.email_port,
            use_tls=secure,
            start_tls=not secure,
            timeout=self._config.email_timeout,
        )

    def _build_message(self, to: str, subject: str, html: str | None, text: str | None) -> MIMEMultipart:
        sender = self._config.email_user
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = formataddr((self._config.email_from_name, sender))
        message["To"] = to
        message["Reply-To"] = sender
        message["Message-ID"] = make_msgid()
        if text:
            message.attach(MIMEText(text, "plain", "utf-8"))
        if html:
            message.attach(MIMEText(html, "html", "utf-8"))
        return message

    async def send_email(
        self,
        to: str,
        subject: str,
        html: str | None = None,
        text: str | None = None,
    ) -> bool:
        if not self.configured:
            return False

        message = self._build_message(to, subject, html, text)
        try:
            async with self._smtp() as smtp:
                await smtp.login(self._config.email_user, self._config.email_password)
                errors, _response = await smtp.send_message(message)
        except (aiosmtplib.SMTPException, OSError, TimeoutError):
            logger.exception("Failed to send email to %s", to)
            return False

        if errors:
            logger.warning("SMTP recipients rejected: %s", sorted(errors))
            return False
        logger.info("Sent %r to %s", subject, to)
        return True

    async def send_task_reminder(
        self,
        recipient_email: str,
        recipient_name: str,
        task_title: str,
        task_description: str,
        start_time: datetime,
        end_time: datetime,
    ) -> bool:
        subject, html, text = self.render_task_reminder(
            recipient_name, task_title, task_description, start_time, end_time
        )
        return await self.send_email(recipient_email, subject, html=html, text=text)

    async def verify_connection(self) -> bool:
        if not self.configured:
            return False
        try:
            async with self._smtp() as smtp:
                await smtp.login(self._config.email_user, self._config.email_password)
        except (aiosmtplib.SMTPException, OSError, TimeoutError):
            logger.warning("SMTP connection check failed", exc_info=True)
            return False
        return True
