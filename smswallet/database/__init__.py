"""
Database engine, session factory and health check.
"""
from functools import lru_cache
from typing import Optional

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from smswallet.core.config import get_settings
from smswallet.models.database import Base

logger = structlog.get_logger(__name__)


def create_db_engine(database_url: Optional[str] = None, echo: Optional[bool] = None, **kwargs) -> Engine:
    """
    Create a SQLAlchemy engine for the configured database.

    Args:
        database_url: Database URL; defaults to ``settings.database_url``
        echo: Echo SQL statements; defaults to ``settings.database_echo``
        **kwargs: Extra ``create_engine`` arguments (e.g. ``poolclass``)

    Returns:
        Configured engine
    """
    settings = get_settings()
    database_url = database_url or settings.database_url
    echo = settings.database_echo if echo is None else echo

    if database_url.startswith("sqlite"):
        # Webhooks are served from a thread pool
        kwargs.setdefault("connect_args", {"check_same_thread": False})

    return create_engine(database_url, echo=echo, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to ``engine``."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@lru_cache()
def get_engine() -> Engine:
    """Get the application engine."""
    return create_db_engine()


@lru_cache()
def get_session_factory() -> sessionmaker:
    """Get the application session factory."""
    return create_session_factory(get_engine())


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables that do not exist yet."""
    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized", url=str(engine.url))


def check_database(engine: Optional[Engine] = None) -> bool:
    """
    Check database connectivity.

    Returns:
        True if a trivial query succeeds, False otherwise
    """
    engine = engine or get_engine()
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.warning("Database health check failed", error=str(e))
        return False
