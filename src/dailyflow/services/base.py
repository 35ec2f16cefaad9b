"""Base class for request-scoped, database-backed services."""

from sqlalchemy.orm import Session


class BaseService:
    """Holds the SQLAlchemy session a service works against."""

    def __init__(self, session: Session) -> None:
        self.session = session
