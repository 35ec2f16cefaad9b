"""SQLAlchemy engine and session factory."""

from collections.abc import Callable, Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from dailyflow.core.config import settings
from dailyflow.db.schema import Base

_connect_args = (
    {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
)
engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    connect_args=_connect_args,
)

SessionFactory = Callable[[], Session]


def new_session() -> Session:
    """Open a session outside a request (reminder delivery, startup)."""
    return Session(engine)


def init_db() -> None:
    """Create missing tables."""
    Base.metadata.create_all(engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency that yields a database session."""
    with Session(engine) as session:
        yield session
