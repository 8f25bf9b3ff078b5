"""
Database package for the Library Portal.

This package provides:
- The repository contract and error taxonomy (repository.py)
- SQLAlchemy schema definitions (schema.py)
- Session management and error translation (session.py)
- The SQLAlchemy-backed repository (sql_repository.py)
"""

from .repository import (
    BookOrder,
    IndexMissingError,
    LibraryRepository,
    NotFoundError,
    PermissionDeniedError,
    RepositoryException,
    StoreUnavailableError,
    TransitionError,
)
from .schema import Base, BookRecord, TransactionRecord, UserRecord
from .session import (
    DatabaseManager,
    get_db_manager,
    reset_db_manager,
    session_scope,
    store_safe_commit,
    store_safe_query,
)
from .sql_repository import SqlLibraryRepository

__all__ = [
    "Base",
    "BookOrder",
    "BookRecord",
    "DatabaseManager",
    "IndexMissingError",
    "LibraryRepository",
    "NotFoundError",
    "PermissionDeniedError",
    "RepositoryException",
    "SqlLibraryRepository",
    "StoreUnavailableError",
    "TransactionRecord",
    "TransitionError",
    "UserRecord",
    "get_db_manager",
    "reset_db_manager",
    "session_scope",
    "store_safe_commit",
    "store_safe_query",
]
