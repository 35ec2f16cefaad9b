"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dailyflow.api import auth, notifications, tasks, views
from dailyflow.core.config import settings
from dailyflow.db.session import init_db, new_session
from dailyflow.services.email import EmailService
from dailyflow.services.reminders import ReminderSessionRegistry

PREFIX = "/api"

logging.basicConfig(
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_db()
    app.state.reminders = ReminderSessionRegistry(
        email_service=EmailService(settings),
        session_factory=new_session,
    )
    logger.info("%s started", settings.app_name)
    try:
        yield
    finally:
        # Pending reminders do not survive a restart; cancel them cleanly
        await app.state.reminders.close_all()
        logger.info("%s stopped", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix=PREFIX)
app.include_router(tasks.router, prefix=PREFIX)
app.include_router(views.router, prefix=PREFIX)
app.include_router(notifications.router, prefix=PREFIX)


@app.get("/health")
def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}
