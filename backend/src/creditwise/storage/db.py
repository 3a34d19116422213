"""Database connection and session management."""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from creditwise.logging_config import get_logger
from creditwise.settings import settings
from creditwise.storage.models import Base

logger = get_logger(__name__)


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None, echo: bool | None = None):
        """Initialize database connection.

        Args:
            database_url: Database URL (defaults to settings)
            echo: Log SQL statements (defaults to settings)
        """
        self.database_url = database_url or settings.database_url
        connect_args = {}
        if self.database_url.startswith("sqlite"):
            # Services hand sessions to worker threads (dual credit award)
            connect_args["check_same_thread"] = False
        self.engine = create_engine(
            self.database_url,
            echo=settings.database_echo if echo is None else echo,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )
        logger.info("database_initialized", url=self.engine.url.render_as_string(hide_password=True))

    def create_tables(self) -> None:
        """Create all tables in the database."""
        # Import model modules so they register on the metadata
        import creditwise.auth.models  # noqa: F401
        import creditwise.billing.models  # noqa: F401
        import creditwise.credits.models  # noqa: F401
        import creditwise.referral.models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info("tables_created")

    def drop_tables(self) -> None:
        """Drop all tables from the database."""
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

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()
