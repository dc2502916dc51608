"""
Database connection and session management.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool
from contextlib import contextmanager
from typing import Generator, Optional

from database.models import Base, User, UserRole
from core.change_feed import ChangeFeed, change_feed
from core.exceptions import StoreError
from core.logger import logger


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Database connection manager."""

    def __init__(
        self,
        database_url: str,
        pool_size: int = 10,
        max_overflow: int = 20,
        feed: Optional[ChangeFeed] = None
    ):
        """
        Initialize database connection.

        Args:
            database_url: PostgreSQL connection URL (sqlite:// for tests)
            pool_size: Number of connections to maintain
            max_overflow: Maximum overflow connections
            feed: Change feed receiving committed changes (global feed by default)
        """
        self.database_url = database_url
        if database_url.startswith("sqlite"):
            # In-memory SQLite must share one connection across threads
            self.engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=False
            )
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        else:
            self.engine = create_engine(
                database_url,
                poolclass=QueuePool,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,  # Verify connections before using
                echo=False  # Set to True for SQL query logging
            )
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine)
        self.feed = feed or change_feed
        self.feed.attach(self.SessionLocal)
        logger.info(f"Database engine initialized: {database_url.split('@')[1] if '@' in database_url else 'local'}")

    def create_tables(self):
        """Create all database tables."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables created")

    def drop_tables(self):
        """Drop all database tables (use with caution!)."""
        Base.metadata.drop_all(bind=self.engine)
        logger.warning("All database tables dropped")

    def ensure_system_user(self, system_user_id: str) -> None:
        """Create the sentinel sender used for SMS bookkeeping rows if missing."""
        with self.get_session() as session:
            if session.get(User, system_user_id) is None:
                session.add(User(
                    id=system_user_id,
                    email="sms-system@localhost",
                    full_name="Sistema SMS",
                    role=UserRole.ADMIN,
                    is_active=False,
                    is_system=True,
                ))
                logger.info(f"Created SMS system user {system_user_id}")

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Get database session context manager.

        Usage:
            with db.get_session() as session:
                # Use session
                pass
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def commit_or_raise(db: Session, operation: str) -> None:
    """Commit the session, converting driver failures into StoreError."""
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error during {operation}: {e}", exc_info=True)
        raise StoreError(operation, e)
