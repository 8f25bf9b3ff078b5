"""
SQLAlchemy implementation of the Library Portal repository contract.

Rows are converted to Pydantic models before they leave this module, so
the lifecycle and the portal views only ever see ``Book``, ``Transaction``
and ``User``. Every write is validated against the Book model invariants
before it is committed: a status/loan combination that the model rejects
is rolled back and never becomes visible to other readers.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from uuid import uuid4

from pydantic import ValidationError
from sqlalchemy import asc, desc, select
from sqlalchemy.orm import Session

from ..models.book import Book, BookCreate, BookStatus, BookUpdate, DonationDetails, IssueDetails
from ..models.transaction import Transaction, TransactionCreate, TransactionType
from ..models.user import User, UserRole
from .repository import BookOrder, LibraryRepository, NotFoundError, TransitionError
from .schema import BookRecord, TransactionRecord, UserRecord
from .session import store_safe_commit, store_safe_query

logger = logging.getLogger(__name__)

_ORDER_COLUMNS = {
    BookOrder.TITLE: BookRecord.title,
    BookOrder.ISSUE_DATE: BookRecord.issue_date,
    BookOrder.DUE_DATE: BookRecord.due_date,
    BookOrder.DONATED_AT: BookRecord.donated_at,
}

# Catalogue columns that cannot be blanked by an update
_REQUIRED_FIELDS = frozenset({"title", "author", "isbn"})


def _book_to_model(row: BookRecord) -> Book:
    issue_details = None
    if row.issue_user_id is not None:
        issue_details = IssueDetails(
            user_id=row.issue_user_id,
            user_name=row.issue_user_name or "",
            issue_date=row.issue_date,
            due_date=row.due_date,
            returned_date=row.returned_date,
        )

    donated_by = None
    if row.donor_user_id is not None:
        donated_by = DonationDetails(
            user_id=row.donor_user_id,
            user_name=row.donor_user_name or "",
            date=row.donated_at,
        )

    return Book(
        id=row.id,
        title=row.title,
        author=row.author,
        isbn=row.isbn or "",
        category=row.category,
        published_date=row.published_date,
        description=row.description,
        cover_image_url=row.cover_image_url,
        status=BookStatus(row.status),
        issue_details=issue_details,
        donated_by=donated_by,
    )


def _transaction_to_model(row: TransactionRecord) -> Transaction:
    return Transaction(
        id=row.id,
        book_id=row.book_id,
        book_title=row.book_title,
        user_id=row.user_id,
        user_name=row.user_name,
        type=TransactionType(row.type),
        timestamp=row.timestamp,
        due_date=row.due_date,
        notes=row.notes,
        fine_amount=row.fine_amount,
    )


def _user_to_model(row: UserRecord) -> User:
    return User(id=row.id, email=row.email, name=row.name, role=UserRole(row.role))


def _write_issue_details(row: BookRecord, issue_details: IssueDetails | None) -> None:
    """Write the loan block; None clears every loan column."""
    if issue_details is None:
        row.issue_user_id = None
        row.issue_user_name = None
        row.issue_date = None
        row.due_date = None
        row.returned_date = None
        return
    row.issue_user_id = issue_details.user_id
    row.issue_user_name = issue_details.user_name
    row.issue_date = issue_details.issue_date
    row.due_date = issue_details.due_date
    row.returned_date = issue_details.returned_date


class SqlLibraryRepository(LibraryRepository):
    """
    Repository backed by a SQLAlchemy session.

    The session is owned by the caller (usually ``session_scope``); this
    class commits after each write so that every write stands on its own.
    """

    def __init__(self, session: Session, clock: Callable[[], datetime] = datetime.now):
        """
        Args:
            session: Database session
            clock: Source of store-assigned timestamps
        """
        self.session = session
        self._clock = clock

    # === Books ===

    def _get_book_row(self, book_id: str) -> BookRecord | None:
        return store_safe_query(
            self.session,
            lambda s: s.get(BookRecord, book_id),
            f"Failed to get book {book_id}",
        )

    def _require_book_row(self, book_id: str) -> BookRecord:
        row = self._get_book_row(book_id)
        if row is None:
            raise NotFoundError(f"Book {book_id} not found")
        return row

    def _list_books(self, query) -> list[Book]:
        rows = store_safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            "Failed to list books",
        )
        return [_book_to_model(row) for row in rows]

    def get_book(self, book_id: str) -> Book | None:
        row = self._get_book_row(book_id)
        return _book_to_model(row) if row is not None else None

    def create_book(
        self,
        data: BookCreate,
        status: BookStatus = BookStatus.AVAILABLE,
        donated_by: DonationDetails | None = None,
    ) -> Book:
        row = BookRecord(
            id=f"book_{uuid4().hex[:12]}",
            status=status.value,
            **data.model_dump(),
        )
        if donated_by is not None:
            row.donor_user_id = donated_by.user_id
            row.donor_user_name = donated_by.user_name
            row.donated_at = donated_by.date

        book = _book_to_model(row)
        self.session.add(row)
        store_safe_commit(self.session, "create book")
        logger.debug("Created book %s (%s) with status %s", row.id, row.title, status.value)
        return book

    def update_book_status(
        self,
        book_id: str,
        status: BookStatus,
        issue_details: IssueDetails | None,
    ) -> Book:
        row = self._require_book_row(book_id)
        row.status = status.value
        _write_issue_details(row, issue_details)

        try:
            book = _book_to_model(row)
        except ValidationError as e:
            self.session.rollback()
            raise TransitionError(
                f"Book {book_id} cannot move to '{status.value}' with the given issue details"
            ) from e

        store_safe_commit(self.session, "update book status")
        return book

    def update_book_fields(self, book_id: str, data: BookUpdate) -> Book:
        row = self._require_book_row(book_id)

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None and field in _REQUIRED_FIELDS:
                continue
            setattr(row, field, value)

        book = _book_to_model(row)
        store_safe_commit(self.session, "update book")
        return book

    def delete_book(self, book_id: str) -> bool:
        row = self._get_book_row(book_id)
        if row is None:
            return False

        self.session.delete(row)
        store_safe_commit(self.session, "delete book")
        return True

    def list_books_by_status(
        self,
        statuses: Iterable[BookStatus],
        order_by: BookOrder = BookOrder.TITLE,
        descending: bool = False,
    ) -> list[Book]:
        column = _ORDER_COLUMNS[order_by]
        query = (
            select(BookRecord)
            .where(BookRecord.status.in_([status.value for status in statuses]))
            .order_by(desc(column) if descending else asc(column), BookRecord.id)
        )
        return self._list_books(query)

    def list_books_by_holder(
        self,
        user_id: str,
        statuses: Iterable[BookStatus],
    ) -> list[Book]:
        query = (
            select(BookRecord)
            .where(
                BookRecord.issue_user_id == user_id,
                BookRecord.status.in_([status.value for status in statuses]),
            )
            .order_by(asc(BookRecord.due_date), BookRecord.id)
        )
        return self._list_books(query)

    def list_books_by_donor(self, user_id: str) -> list[Book]:
        query = (
            select(BookRecord)
            .where(BookRecord.donor_user_id == user_id)
            .order_by(desc(BookRecord.donated_at), BookRecord.id)
        )
        return self._list_books(query)

    def list_all_books(self) -> list[Book]:
        return self._list_books(select(BookRecord).order_by(asc(BookRecord.title), BookRecord.id))

    # === Transactions ===

    def append_transaction(self, data: TransactionCreate) -> Transaction:
        row = TransactionRecord(
            id=f"txn_{uuid4().hex[:12]}",
            timestamp=self._clock(),
            **data.model_dump(mode="python"),
        )
        row.type = data.type.value

        self.session.add(row)
        store_safe_commit(self.session, "append transaction")
        return _transaction_to_model(row)

    def list_recent_transactions(self, limit: int) -> list[Transaction]:
        query = select(TransactionRecord).order_by(desc(TransactionRecord.timestamp)).limit(limit)
        rows = store_safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            "Failed to list transactions",
        )
        return [_transaction_to_model(row) for row in rows]

    # === Users ===

    def get_user(self, user_id: str) -> User | None:
        row = store_safe_query(
            self.session,
            lambda s: s.get(UserRecord, user_id),
            f"Failed to get user {user_id}",
        )
        return _user_to_model(row) if row is not None else None

    def save_user(self, user: User) -> User:
        row = UserRecord(id=user.id, email=user.email, name=user.name, role=user.role.value)
        merged = self.session.merge(row)
        store_safe_commit(self.session, "save user")
        return _user_to_model(merged)
