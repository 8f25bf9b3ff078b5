"""
Provision the Library Portal store.

This module:
1. Creates all tables and the composite indexes the portal views query by
2. Verifies every required index is present
3. Optionally registers an admin account

Usage:
    library-portal-init [--drop-existing] [--admin-id ID --admin-name NAME]
"""

import argparse
import logging
import sys

from sqlalchemy import inspect

from ..models.user import User, UserRole
from .schema import Base
from .session import DatabaseManager, get_db_manager
from .sql_repository import SqlLibraryRepository

logger = logging.getLogger(__name__)

# Indexes declared on the schema, by table
REQUIRED_INDEXES = {
    table.name: {index.name for index in table.indexes} for table in Base.metadata.sorted_tables
}


def missing_indexes(manager: DatabaseManager) -> dict[str, set[str]]:
    """
    Compare the live schema with the indexes the portal needs.

    Returns:
        Missing index names by table; a missing table lists all of its indexes
        (or the table name itself when it needs none)
    """
    inspector = inspect(manager.engine)
    tables = set(inspector.get_table_names())
    missing: dict[str, set[str]] = {}

    for table, required in REQUIRED_INDEXES.items():
        if table not in tables:
            missing[table] = set(required) or {table}
            continue
        present = {index["name"] for index in inspector.get_indexes(table)}
        absent = required - present
        if absent:
            missing[table] = absent

    return missing


def register_admin(manager: DatabaseManager, user_id: str, name: str | None = None) -> User:
    """Create or promote ``user_id`` to an admin account."""
    with manager.session_scope() as session:
        repository = SqlLibraryRepository(session)
        existing = repository.get_user(user_id)
        user = User(
            id=user_id,
            email=existing.email if existing else None,
            name=name or (existing.name if existing else None),
            role=UserRole.ADMIN,
        )
        saved = repository.save_user(user)
    logger.info("Admin account ready: %s", user_id)
    return saved


def main() -> None:
    """Entry point for the ``library-portal-init`` command."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(description="Initialize the Library Portal store")
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop existing tables before creating new ones",
    )
    parser.add_argument("--database-url", help="Override the configured database URL")
    parser.add_argument("--admin-id", help="Register this user id as an admin")
    parser.add_argument("--admin-name", help="Display name for the admin account")
    args = parser.parse_args()

    manager = get_db_manager(args.database_url)
    if not manager.verify_connection():
        logger.error("Failed to connect to database")
        sys.exit(1)

    try:
        manager.init_database(drop_existing=args.drop_existing)

        missing = missing_indexes(manager)
        if missing:
            logger.error("Store is missing required indexes: %s", missing)
            sys.exit(1)

        if args.admin_id:
            register_admin(manager, args.admin_id, args.admin_name)

        logger.info("Library Portal store is ready")
    except Exception:
        logger.exception("Store initialization failed")
        sys.exit(1)
    finally:
        manager.close()


if __name__ == "__main__":
    main()
