"""Database connection and session management."""

import logging
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Owns the engine and hands out transactional sessions.

    Args:
        database_url: SQLAlchemy URL. ``sqlite://`` (in-memory) shares a
            single connection so that every session sees the same data.
        echo: Log emitted SQL.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        engine_kwargs = {"echo": echo}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True

        self.engine = create_engine(database_url, **engine_kwargs)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        logger.debug(f"DatabaseManager initialized ({self.engine.dialect.name})")

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """Session scope: commit on success, rollback on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_tables(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info("Database tables created")

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def dispose(self) -> None:
        self.engine.dispose()


_db_manager: Optional[DatabaseManager] = None


def get_database_manager(database_url: Optional[str] = None) -> DatabaseManager:
    """Process-wide DatabaseManager, built from config on first use."""
    global _db_manager
    if _db_manager is None or (database_url and database_url != _db_manager.database_url):
        if database_url is None:
            from ..config.config_loader import get_config
            db_config = get_config().database
            _db_manager = DatabaseManager(db_config.url, echo=db_config.echo)
        else:
            _db_manager = DatabaseManager(database_url)
    return _db_manager


def wait_for_db(db_manager: DatabaseManager, retries: int = 10, delay: float = 2.0) -> bool:
    """Block until the database accepts connections.

    Returns:
        True once reachable, False after ``retries`` failed attempts.
    """
    for attempt in range(1, retries + 1):
        try:
            db_manager.ping()
            logger.info("Database is available")
            return True
        except OperationalError as e:
            logger.warning(f"Database not ready (attempt {attempt}/{retries}): {e}")
            if attempt < retries:
                time.sleep(delay)
    logger.error(f"Database unavailable after {retries} attempts")
    return False
