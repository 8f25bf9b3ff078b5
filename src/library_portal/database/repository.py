"""
Repository contract for the Library Portal.

The book lifecycle never talks to a database directly. It goes through
``LibraryRepository``, a small capability set over three collections:

1. **books**: keyed by generated identifier; filtered by status, holder or
   donor, ordered by title or by one of the nested date fields
2. **transactions**: append-only; read back newest first with a bound
3. **users**: read-only lookup by identity for name resolution

Any store that honours this contract can back the portal. Ordering and
status-membership queries are the store's business: the SQL store declares
the composite indexes they need on its schema, a hosted document store would
need the same indexes provisioned. A missing index is reported as
``IndexMissingError`` - a deployment defect, not something a retry fixes.
"""

import enum
from abc import ABC, abstractmethod
from collections.abc import Iterable

from ..models.book import Book, BookCreate, BookStatus, BookUpdate, DonationDetails, IssueDetails
from ..models.transaction import Transaction, TransactionCreate
from ..models.user import User


class RepositoryException(Exception):
    """Base exception for repository operations."""


class NotFoundError(RepositoryException):
    """Raised when a book or user is not found."""


class TransitionError(RepositoryException):
    """Raised when a lifecycle event is not valid for the book's current state."""


class PermissionDeniedError(RepositoryException):
    """Raised when the actor's role does not allow the event."""


class StoreUnavailableError(RepositoryException):
    """Raised when the store cannot be reached or a write cannot be committed."""

    retryable = True


class IndexMissingError(StoreUnavailableError):
    """Raised when the store lacks an index or table a query depends on."""

    retryable = False


class BookOrder(str, enum.Enum):
    """Orderings the book queries support."""

    TITLE = "title"
    ISSUE_DATE = "issue_date"
    DUE_DATE = "due_date"
    DONATED_AT = "donated_at"


class LibraryRepository(ABC):
    """
    Data access contract used by the book lifecycle and the portal views.

    Every write method commits on its own; there are no multi-document
    transactions. ``update_book_status`` writes the status together with the
    issue details in one commit, so readers never observe one without the
    other.
    """

    # === Books ===

    @abstractmethod
    def get_book(self, book_id: str) -> Book | None:
        """Get a book by id, or None if it does not exist."""

    @abstractmethod
    def create_book(
        self,
        data: BookCreate,
        status: BookStatus = BookStatus.AVAILABLE,
        donated_by: DonationDetails | None = None,
    ) -> Book:
        """Create a book record with a generated id."""

    @abstractmethod
    def update_book_status(
        self,
        book_id: str,
        status: BookStatus,
        issue_details: IssueDetails | None,
    ) -> Book:
        """
        Set the status and the issue details of a book in one commit.

        ``issue_details=None`` removes every issue field from the record.
        Donation provenance is never touched.

        Raises:
            NotFoundError: If the book does not exist
            StoreUnavailableError: If the write cannot be committed
        """

    @abstractmethod
    def update_book_fields(self, book_id: str, data: BookUpdate) -> Book:
        """Update catalogue metadata; lifecycle fields are not writable here."""

    @abstractmethod
    def delete_book(self, book_id: str) -> bool:
        """Delete a book; returns False if it did not exist."""

    @abstractmethod
    def list_books_by_status(
        self,
        statuses: Iterable[BookStatus],
        order_by: BookOrder = BookOrder.TITLE,
        descending: bool = False,
    ) -> list[Book]:
        """Books whose status is one of ``statuses``."""

    @abstractmethod
    def list_books_by_holder(
        self,
        user_id: str,
        statuses: Iterable[BookStatus],
    ) -> list[Book]:
        """Books held or requested by ``user_id``, earliest due date first."""

    @abstractmethod
    def list_books_by_donor(self, user_id: str) -> list[Book]:
        """Books donated by ``user_id``, newest donation first."""

    @abstractmethod
    def list_all_books(self) -> list[Book]:
        """The whole catalogue ordered by title."""

    # === Transactions ===

    @abstractmethod
    def append_transaction(self, data: TransactionCreate) -> Transaction:
        """Append a transaction; the store assigns its id and timestamp."""

    @abstractmethod
    def list_recent_transactions(self, limit: int) -> list[Transaction]:
        """At most ``limit`` transactions, newest first."""

    # === Users ===

    @abstractmethod
    def get_user(self, user_id: str) -> User | None:
        """Get a user by identity, or None if it does not exist."""

    @abstractmethod
    def save_user(self, user: User) -> User:
        """Create or replace a user record."""
