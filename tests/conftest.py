"""Test configuration and fixtures for the Library Portal.

Every test gets its own SQLite file with the full schema, a configuration
pointing at it, and a controllable clock so that due dates are exact.
"""

from collections.abc import Generator
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy.orm import Session

from library_portal.config import PortalConfig, _ConfigStore, reset_config
from library_portal.database import session as session_module
from library_portal.database.repository import StoreUnavailableError
from library_portal.database.session import DatabaseManager, session_scope
from library_portal.database.sql_repository import SqlLibraryRepository
from library_portal.lifecycle.machine import Actor, BookLifecycle
from library_portal.models.book import Book, BookCreate, BookStatus, IssueDetails
from library_portal.models.transaction import Transaction, TransactionCreate
from library_portal.models.user import User, UserRole

ADMIN_ID = "admin001"
MEMBER_ID = "user123"
OTHER_MEMBER_ID = "user456"


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> datetime:
        self.now = self.now + timedelta(days=days, hours=hours)
        return self.now


# === Configuration Fixtures ===


@pytest.fixture
def test_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test_library.db"


@pytest.fixture
def test_config(test_db_path: Path, monkeypatch) -> Generator[PortalConfig, None, None]:
    """Portal configuration installed as the global one for the test."""
    reset_config()
    config = PortalConfig(
        server_name="test-library-portal",
        server_version="0.0.1-test",
        database_path=test_db_path,
        debug=True,
        log_level="DEBUG",
    )
    monkeypatch.setattr(_ConfigStore, "_instance", config)

    yield config

    reset_config()


# === Database Fixtures ===


@pytest.fixture
def db_manager(test_config: PortalConfig, monkeypatch) -> Generator[DatabaseManager, None, None]:
    """A provisioned store, installed as the global manager used by ``session_scope``."""
    manager = DatabaseManager(test_config.get_database_url())
    manager.init_database()
    monkeypatch.setattr(session_module, "_db_manager", manager)

    yield manager

    manager.close()


@pytest.fixture
def test_db_session(db_manager: DatabaseManager) -> Generator[Session, None, None]:
    session = db_manager.create_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 3, 1, 10, 0, 0))


@pytest.fixture
def repository(test_db_session: Session, clock: FixedClock) -> SqlLibraryRepository:
    return SqlLibraryRepository(test_db_session, clock=clock)


@pytest.fixture
def lifecycle(repository, test_config, clock) -> BookLifecycle:
    return BookLifecycle(repository, config=test_config, clock=clock)


# === Users ===


@pytest.fixture
def admin_user(repository: SqlLibraryRepository) -> User:
    return repository.save_user(
        User(id=ADMIN_ID, email="admin@library.test", name="Library Admin", role=UserRole.ADMIN)
    )


@pytest.fixture
def member_user(repository: SqlLibraryRepository) -> User:
    return repository.save_user(User(id=MEMBER_ID, email="student@library.test", name="PES Student"))


@pytest.fixture
def other_member(repository: SqlLibraryRepository) -> User:
    return repository.save_user(User(id=OTHER_MEMBER_ID, email="reader@library.test"))


@pytest.fixture
def admin(admin_user: User) -> Actor:
    return Actor.from_user(admin_user)


@pytest.fixture
def member(member_user: User) -> Actor:
    return Actor.from_user(member_user)


@pytest.fixture
def other(other_member: User) -> Actor:
    return Actor.from_user(other_member)


# === Books ===


def make_book(repository: SqlLibraryRepository, title: str = "The Great Gatsby", **fields) -> Book:
    data = {"author": "F. Scott Fitzgerald", "isbn": "978-0743273565", "category": "Fiction"}
    data.update(fields)
    return repository.create_book(BookCreate(title=title, **data))


def put_on_loan(
    repository: SqlLibraryRepository,
    book: Book,
    user_id: str,
    issue_date: datetime,
    due_date: datetime | None,
    status: BookStatus = BookStatus.ISSUED,
    user_name: str = "PES Student",
) -> Book:
    """Place a book directly into an issue state, bypassing the lifecycle."""
    details = IssueDetails(
        user_id=user_id, user_name=user_name, issue_date=issue_date, due_date=due_date
    )
    return repository.update_book_status(book.id, status, details)


@pytest.fixture
def available_book(repository: SqlLibraryRepository) -> Book:
    return make_book(repository)


@pytest.fixture
def issued_book(repository, member_user, clock) -> Book:
    """A book issued to the member today, due in 14 days."""
    book = make_book(repository, "Dune", author="Frank Herbert", isbn="978-0441172719")
    return put_on_loan(repository, book, member_user.id, clock.now, clock.now + timedelta(days=14))


# === Failure Injection ===


class FailingTransactionRepository(SqlLibraryRepository):
    """Store whose transaction log is down while book writes still succeed."""

    def append_transaction(self, data: TransactionCreate) -> Transaction:
        raise StoreUnavailableError("transaction log unreachable")


class FailingWriteRepository(SqlLibraryRepository):
    """Store that can be read but rejects every status write."""

    def update_book_status(self, book_id, status, issue_details):
        raise StoreUnavailableError("store unreachable")

    def delete_book(self, book_id: str) -> bool:
        raise StoreUnavailableError("store unreachable")


@pytest.fixture
def failing_log_lifecycle(test_db_session, test_config, clock) -> BookLifecycle:
    repository = FailingTransactionRepository(test_db_session, clock=clock)
    return BookLifecycle(repository, config=test_config, clock=clock)


@pytest.fixture
def failing_write_lifecycle(test_db_session, test_config, clock) -> BookLifecycle:
    repository = FailingWriteRepository(test_db_session, clock=clock)
    return BookLifecycle(repository, config=test_config, clock=clock)


# === Portal Fixtures ===
# Tools and resources open their own sessions through ``session_scope``; these
# helpers seed and inspect the store the same way.


def seed(action):
    """Run ``action(repository)`` in its own committed session and return the result."""
    with session_scope() as session:
        return action(SqlLibraryRepository(session))


def stored_book(book_id: str) -> Book | None:
    return seed(lambda repo: repo.get_book(book_id))


def stored_transactions() -> list[Transaction]:
    return seed(lambda repo: repo.list_recent_transactions(1000))


@pytest.fixture
def portal_users(db_manager) -> dict[str, User]:
    """Admin and two members saved in the global store."""
    users = [
        User(id=ADMIN_ID, email="admin@library.test", name="Library Admin", role=UserRole.ADMIN),
        User(id=MEMBER_ID, email="student@library.test", name="PES Student"),
        User(id=OTHER_MEMBER_ID, email="reader@library.test"),
    ]
    return {user.id: seed(lambda repo, u=user: repo.save_user(u)) for user in users}


@pytest.fixture
def portal_book(db_manager) -> Book:
    return seed(lambda repo: make_book(repo))


def text_of(result: dict) -> str:
    return result["content"][0]["text"]
