"""
Database Connection Management for MorphMind

Provides engine construction, session scoping, and initialization utilities.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from morphmind.utils import get_logger

logger = get_logger(__name__)


def build_engine(database_config: dict) -> Engine:
    """
    Create SQLAlchemy engine from the `database` config section

    Args:
        database_config: Dict with 'url' and optional 'echo'

    Returns:
        SQLAlchemy Engine instance

    Raises:
        KeyError: If 'url' is missing (Fast Fail)
    """
    db_url = database_config['url']

    # SQLite needs its parent directory to exist
    if db_url.startswith('sqlite:///') and ':memory:' not in db_url:
        Path(db_url[len('sqlite:///'):]).parent.mkdir(parents=True, exist_ok=True)

    kwargs = {'echo': bool(database_config.get('echo', False))}
    if db_url.startswith('sqlite'):
        # Scheduler thread and caller threads share the engine
        kwargs['connect_args'] = {'check_same_thread': False}
    else:
        kwargs['pool_pre_ping'] = True

    engine = create_engine(db_url, **kwargs)

    logger.info(f"Database engine created: {engine.url.render_as_string(hide_password=True)}")

    return engine


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for database sessions

    Usage:
        >>> with session_scope(factory) as session:
        ...     users = session.query(UserRecord).all()
        ...     # Session auto-committed on success, rolled back on error

    Raises:
        Exception: Re-raises any exceptions after rollback
    """
    session = session_factory()

    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Session rollback due to error: {e}", exc_info=True)
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """
    Initialize database

    Creates all tables defined in models.
    Note: For production, use Alembic migrations instead.
    """
    from .models import Base

    Base.metadata.create_all(engine)
    logger.info("Database tables created/verified")
