"""
Database engine and session management for CryptoSage.
Uses SQLModel with SQLite as the ledger's backing store.
Features Write-Ahead Logging (WAL) mode so price ticks can read while the ledger writes.
"""

from sqlmodel import SQLModel, Session, create_engine
from typing import Optional
import logging

from config import get_settings

logger = logging.getLogger(__name__)

# Engine for the default settings, created lazily
_engine: Optional[object] = None


def create_db_engine(database_url: str, echo: bool = False):
    """Create an engine for the given URL, enabling WAL mode on SQLite files."""
    engine = create_engine(
        database_url,
        echo=echo,
        connect_args={
            "check_same_thread": False,  # Scheduler jobs run on worker threads
        }
    )
    _enable_wal_mode(engine)
    return engine


def get_engine():
    """Get or create the engine configured by the current settings."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_db_engine(settings.database_url, settings.db_echo)
    return _engine


def _enable_wal_mode(engine):
    """Enable SQLite WAL mode for improved concurrent read/write performance."""
    try:
        with engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            conn.exec_driver_sql("PRAGMA busy_timeout=5000")
            logger.info("SQLite WAL mode enabled for concurrent access")
    except Exception as e:
        logger.warning(f"Could not enable WAL mode: {e}")


def init_db(engine=None):
    """Initialize the database and create all tables."""
    from models import TransactionRecord, UserPreferences  # noqa: F401 - registers tables

    engine = engine or get_engine()
    SQLModel.metadata.create_all(engine)
    logger.info("Database initialized")


def get_session(engine=None) -> Session:
    """Get a new database session."""
    return Session(engine or get_engine())
