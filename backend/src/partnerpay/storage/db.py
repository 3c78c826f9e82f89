"""Database connection and session management."""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from partnerpay.logging_config import get_logger
from partnerpay.settings import settings

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None):
        """Initialize database connection.

        Args:
            database_url: Database URL (defaults to settings)
        """
        self.configure(database_url or settings.database_url)

    def configure(self, database_url: str) -> None:
        """(Re)bind the engine and session factory to a database URL.

        In-memory SQLite URLs share one connection so that every session
        sees the same database.
        """
        engine_kwargs: dict = {
            "echo": False,
            "pool_pre_ping": True,
        }
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool

        self.database_url = database_url
        self.engine = create_engine(database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )
        logger.info("database_initialized", url=self.engine.url.render_as_string(hide_password=True))

    def create_tables(self) -> None:
        """Create all tables in the database."""
        # Register every model on the metadata before creating
        import partnerpay.affiliates.models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info("tables_created")

    def drop_tables(self) -> None:
        """Drop all tables from the database."""
        import partnerpay.affiliates.models  # noqa: F401

        Base.metadata.drop_all(bind=self.engine)
        logger.warning("tables_dropped")

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Provide a transactional scope for database operations.

        Yields:
            Database session
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


# Global database instance
db = Database()
