"""
Shared repository plumbing.

Repositories never commit: the dispatcher owns the unit of work and commits
or rolls back once per command.
"""
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from smswallet.core.exceptions import DatabaseError

logger = structlog.get_logger(__name__)


class BaseRepository:
    """Base class for repositories bound to one session."""

    def __init__(self, db: Session, code_ttl_minutes: Optional[int] = None):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
            code_ttl_minutes: When set, pending rows older than this are not
                matched by code lookups
        """
        self.db = db
        self.code_ttl_minutes = code_ttl_minutes

    def _code_cutoff(self) -> Optional[datetime]:
        if self.code_ttl_minutes is None:
            return None
        return datetime.utcnow() - timedelta(minutes=self.code_ttl_minutes)

    @contextmanager
    def _operation(self, operation: str, **context) -> Iterator[None]:
        """Translate SQLAlchemy errors into ``DatabaseError``."""
        try:
            yield
        except SQLAlchemyError as e:
            logger.error(
                "Database operation failed",
                operation=operation,
                error=str(e),
                **context
            )
            raise DatabaseError(f"Failed to {operation}: {str(e)}", operation=operation, **context) from e
