"""
Database session management for the Library Portal.

Each portal call opens one short-lived session, runs a single
read-then-write against the store and closes it. There is no locking and
no retry: a failed write is reported to the caller, who may try again.

Driver errors are translated into the repository error taxonomy here so
that nothing above the repository layer sees SQLAlchemy exceptions:
- missing tables, columns or indexes become ``IndexMissingError``
- every other database failure becomes ``StoreUnavailableError``
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from .repository import IndexMissingError, RepositoryException, StoreUnavailableError
from .schema import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Driver messages that mean the schema is not provisioned
_MISSING_SCHEMA_MARKERS = ("no such table", "no such column", "no such index")


class DatabaseManager:
    """
    Manages database connections and sessions for the portal.

    The engine and session factory are created lazily on first use.
    """

    def __init__(self, database_url: str | None = None):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL. If None, uses the configured SQLite file.
        """
        if database_url is None:
            db_path = get_config().database_path

            if not db_path.is_absolute():
                db_path = Path.cwd() / db_path

            db_path.parent.mkdir(exist_ok=True, parents=True)

            database_url = f"sqlite:///{db_path}"
            logger.info("Using SQLite database at: %s", db_path)

        self.database_url = database_url
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        """Get or create the database engine."""
        if self._engine is None:
            if self.database_url.startswith("sqlite"):
                self._engine = create_engine(
                    self.database_url,
                    # A single shared connection avoids "database is locked" errors
                    poolclass=StaticPool,
                    connect_args={"check_same_thread": False},
                    echo=False,
                )

                @event.listens_for(self._engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()
            else:
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    echo=False,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    def create_session(self) -> Session:
        """Create a new database session; the caller must close it."""
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for one portal call.

        ```python
        with db_manager.session_scope() as session:
            repo = SqlLibraryRepository(session)
            book = repo.get_book(book_id)
        ```

        Yields:
            Database session

        Raises:
            Any database errors are logged and re-raised
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except RepositoryException as e:
            # Refused transitions and translated store errors are reported by the caller
            logger.debug("Rolling back after %s: %s", type(e).__name__, e)
            session.rollback()
            raise
        except Exception:
            logger.exception("Database error, rolling back")
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Create the schema, including every index the portal views need.

        Args:
            drop_existing: If True, drop all tables before creating
        """
        engine = self.engine

        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=engine)

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        """Return True if a trivial query succeeds."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except SQLAlchemyError:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Dispose of the engine; called on server shutdown."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


_db_manager: DatabaseManager | None = None


def get_db_manager(database_url: str | None = None) -> DatabaseManager:
    """
    Get the global database manager instance.

    Args:
        database_url: Database URL (only used on first call)
    """
    global _db_manager  # noqa: PLW0603 - Singleton pattern for database manager

    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)

    return _db_manager


def reset_db_manager() -> None:
    """Dispose of the global manager (useful for testing)."""
    global _db_manager  # noqa: PLW0603

    if _db_manager is not None:
        _db_manager.close()
    _db_manager = None


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Convenience context manager for database sessions.

    Example:
        ```python
        with session_scope() as session:
            books = SqlLibraryRepository(session).list_all_books()
        ```
    """
    with get_db_manager().session_scope() as session:
        yield session


def _translate(error: SQLAlchemyError, message: str) -> StoreUnavailableError:
    if isinstance(error, OperationalError):
        detail = str(error.orig).lower() if error.orig is not None else str(error).lower()
        if any(marker in detail for marker in _MISSING_SCHEMA_MARKERS):
            return IndexMissingError(f"{message}: store schema or index missing ({error.orig})")
    return StoreUnavailableError(f"{message}: {error.__class__.__name__}")


def store_safe_commit(session: Session, operation: str) -> None:
    """
    Commit a session, translating driver errors.

    Args:
        session: The database session
        operation: Description of the operation (for error messages)

    Raises:
        StoreUnavailableError: If the commit fails; the session is rolled back
    """
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Commit failed: %s", operation)
        raise _translate(e, f"Database operation '{operation}' failed") from e


def store_safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Execute a query, translating driver errors.

    Args:
        session: The database session
        query_func: Function that performs the query
        error_msg: Error message for the portal response

    Returns:
        Query result

    Raises:
        StoreUnavailableError: If the query fails
    """
    try:
        return query_func(session)
    except SQLAlchemyError as e:
        logger.exception("Query failed")
        raise _translate(e, error_msg) from e
