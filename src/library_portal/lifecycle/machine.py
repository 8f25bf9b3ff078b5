"""
Book lifecycle state machine.

Every lifecycle event follows the same pattern:

1. Load the book and check the event is valid for its status and the actor
2. Write the new status (and loan block) in a single repository call
3. Append one transaction describing the event

Step 2 is the primary effect. If it fails, the error propagates and no
transaction is written. Step 3 is the audit entry. If it fails after a
successful step 2, the primary effect stands and the failure is logged as a
warning only.

Transitions:

    available / donated_approved --request_issue--> issue_requested
    issue_requested  --approve_issue--> issued
    issue_requested  --reject_issue--> available
    issued           --request_renewal--> issued (due date + renewal period)
    issued           --request_return--> return_requested
    return_requested --approve_return--> available
    return_requested --reject_return--> issued
    issued           --mark_returned--> available
    (new)            --donate--> donated_pending_approval
    donated_pending_approval --approve_donation--> available
    donated_pending_approval --reject_donation--> (deleted)
    available / donated_approved --issue_directly--> issued

Two concurrent events on the same book are not coordinated: each is a
plain read-then-write and the last writer wins.
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import PortalConfig, get_config
from ..database.repository import (
    LibraryRepository,
    NotFoundError,
    PermissionDeniedError,
    RepositoryException,
    StoreUnavailableError,
    TransitionError,
)
from ..models.book import (
    Book,
    BookCreate,
    BookStatus,
    BookUpdate,
    DonationDetails,
    IssueDetails,
)
from ..models.transaction import Transaction, TransactionCreate, TransactionType
from ..models.user import User, UserRole
from .status import is_overdue

logger = logging.getLogger(__name__)

UNKNOWN_USER_NAME = "Unknown User"


class Actor(BaseModel):
    """
    The user on whose behalf an event is performed.

    Passed explicitly into every transition; there is no ambient current user.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def from_user(cls, user: User, default_name: str = "User") -> "Actor":
        return cls(id=user.id, name=user.display_name(default_name), role=user.role)


def resolve_actor(
    repository: LibraryRepository,
    user_id: str,
    default_name: str = "User",
) -> Actor:
    """
    Build an actor from the stored user record.

    Raises:
        NotFoundError: If no user has this identity
    """
    user = repository.get_user(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return Actor.from_user(user, default_name)


def _format_day(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")


class BookLifecycle:
    """
    Applies lifecycle events to books through a repository.

    Args:
        repository: Store access
        config: Lending rules; defaults to the global configuration
        clock: Source of the current time; defaults to ``datetime.now``
    """

    def __init__(
        self,
        repository: LibraryRepository,
        config: PortalConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.config = config or get_config()
        self._clock = clock

    @property
    def loan_period(self) -> timedelta:
        return timedelta(days=self.config.loan_period_days)

    @property
    def renewal_period(self) -> timedelta:
        return timedelta(days=self.config.renewal_period_days)

    def today(self) -> date:
        return self._clock().date()

    # === Helpers ===

    def _load(self, book_id: str) -> Book:
        book = self.repository.get_book(book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found")
        return book

    @staticmethod
    def _require_admin(actor: Actor, event: str) -> None:
        if not actor.is_admin:
            raise PermissionDeniedError(f"Only an admin can {event}")

    @staticmethod
    def _require_status(book: Book, event: str, *allowed: BookStatus) -> None:
        if book.status not in allowed:
            raise TransitionError(
                f"Cannot {event} '{book.title}': book is '{book.status.value}'"
            )

    @staticmethod
    def _require_issue_details(book: Book, event: str) -> IssueDetails:
        if book.issue_details is None:
            raise TransitionError(f"Cannot {event} '{book.title}': issue details are missing")
        return book.issue_details

    @staticmethod
    def _require_holder(book: Book, actor: Actor, event: str) -> IssueDetails:
        details = BookLifecycle._require_issue_details(book, event)
        if book.holder_id != actor.id:
            raise PermissionDeniedError(f"Cannot {event} '{book.title}': it is not issued to you")
        return details

    def _log(
        self,
        book_id: str,
        book_title: str,
        user_id: str,
        user_name: str,
        event_type: TransactionType,
        due_date: datetime | None = None,
        notes: str | None = None,
    ) -> Transaction | None:
        """Append the audit entry; a failure here never undoes the primary effect."""
        try:
            entry = TransactionCreate(
                book_id=book_id,
                book_title=book_title,
                user_id=user_id,
                user_name=user_name,
                type=event_type,
                due_date=due_date,
                notes=notes,
            )
            transaction = self.repository.append_transaction(entry)
        except (RepositoryException, ValidationError) as e:
            logger.warning(
                "Transaction log failed for %s on book %s: %s", event_type.value, book_id, e
            )
            return None
        logger.info("%s: book=%s user=%s", event_type.value, book_id, user_id)
        return transaction

    # === Member events ===

    def request_issue(self, actor: Actor, book_id: str) -> Book:
        """Ask to borrow an available book; the due date is set on approval."""
        book = self._load(book_id)
        if not book.is_lendable:
            raise TransitionError(
                f"'{book.title}' is not available for issue (status '{book.status.value}')"
            )

        details = IssueDetails(
            user_id=actor.id,
            user_name=actor.name,
            issue_date=self._clock(),
            due_date=None,
        )
        updated = self.repository.update_book_status(
            book.id, BookStatus.ISSUE_REQUESTED, details
        )
        self._log(book.id, book.title, actor.id, actor.name, TransactionType.ISSUE_REQUEST)
        return updated

    def request_renewal(self, actor: Actor, book_id: str) -> Book:
        """Push the due date back by the renewal period, unless the book is overdue."""
        book = self._load(book_id)
        if book.status == BookStatus.RETURN_REQUESTED:
            raise TransitionError(f"Cannot renew '{book.title}': a return is already requested")
        self._require_status(book, "renew", BookStatus.ISSUED)
        details = self._require_holder(book, actor, "renew")
        if details.due_date is None:
            raise TransitionError(f"Cannot renew '{book.title}': it has no due date")

        if is_overdue(book, self.today(), self.config.due_soon_days):
            raise TransitionError(
                f"Cannot renew '{book.title}': overdue books cannot be renewed, "
                "please contact the library"
            )

        new_due = details.due_date + self.renewal_period
        updated = self.repository.update_book_status(
            book.id,
            BookStatus.ISSUED,
            details.model_copy(update={"due_date": new_due}),
        )
        self._log(
            book.id,
            book.title,
            actor.id,
            actor.name,
            TransactionType.RENEWAL,
            due_date=new_due,
            notes=f"Renewed from {_format_day(details.due_date)} to {_format_day(new_due)}",
        )
        return updated

    def request_return(self, actor: Actor, book_id: str) -> Book:
        """Tell the library the book is being handed back."""
        book = self._load(book_id)
        self._require_status(book, "request a return of", BookStatus.ISSUED)
        details = self._require_holder(book, actor, "request a return of")

        updated = self.repository.update_book_status(
            book.id, BookStatus.RETURN_REQUESTED, details
        )
        self._log(
            book.id,
            book.title,
            actor.id,
            actor.name,
            TransactionType.RETURN_REQUEST,
            notes=f"User requested to return '{book.title}'",
        )
        return updated

    def donate(self, actor: Actor, data: BookCreate) -> Book:
        """Submit a book for the admins to approve into the catalogue."""
        donated_by = DonationDetails(user_id=actor.id, user_name=actor.name, date=self._clock())
        book = self.repository.create_book(
            data, status=BookStatus.DONATED_PENDING_APPROVAL, donated_by=donated_by
        )
        self._log(
            book.id,
            book.title,
            actor.id,
            actor.name,
            TransactionType.DONATE_REQUEST,
            notes=f"User submitted donation for '{book.title}'",
        )
        return book

    # === Admin events ===

    def approve_issue(self, actor: Actor, book_id: str) -> Book:
        """Lend a requested book; the loan starts now and runs for the loan period."""
        self._require_admin(actor, "approve issue requests")
        book = self._load(book_id)
        self._require_status(book, "approve the issue of", BookStatus.ISSUE_REQUESTED)
        details = self._require_issue_details(book, "approve the issue of")

        issue_date = self._clock()
        due_date = issue_date + self.loan_period
        updated = self.repository.update_book_status(
            book.id,
            BookStatus.ISSUED,
            details.model_copy(update={"issue_date": issue_date, "due_date": due_date}),
        )
        self._log(
            book.id,
            book.title,
            details.user_id,
            details.user_name,
            TransactionType.ISSUE,
            due_date=due_date,
            notes=f"Request approved by Admin: {actor.name}",
        )
        return updated

    def reject_issue(self, actor: Actor, book_id: str) -> Book:
        self._require_admin(actor, "reject issue requests")
        book = self._load(book_id)
        self._require_status(book, "reject the issue of", BookStatus.ISSUE_REQUESTED)
        details = self._require_issue_details(book, "reject the issue of")

        updated = self.repository.update_book_status(book.id, BookStatus.AVAILABLE, None)
        self._log(
            book.id,
            book.title,
            details.user_id,
            details.user_name,
            TransactionType.ISSUE_REJECT,
            notes=f"Request rejected by Admin: {actor.name}",
        )
        return updated

    def approve_return(self, actor: Actor, book_id: str) -> Book:
        """Take a book back into circulation; the loan block is removed entirely."""
        self._require_admin(actor, "approve returns")
        book = self._load(book_id)
        self._require_status(book, "approve the return of", BookStatus.RETURN_REQUESTED)
        details = self._require_issue_details(book, "approve the return of")

        updated = self.repository.update_book_status(book.id, BookStatus.AVAILABLE, None)
        self._log(
            book.id,
            book.title,
            details.user_id,
            details.user_name,
            TransactionType.RETURN,
            notes=f"Return approved by Admin: {actor.name}",
        )
        return updated

    def reject_return(self, actor: Actor, book_id: str) -> Book:
        """Send a return request back; the loan continues unchanged."""
        self._require_admin(actor, "reject returns")
        book = self._load(book_id)
        self._require_status(book, "reject the return of", BookStatus.RETURN_REQUESTED)
        details = self._require_issue_details(book, "reject the return of")

        updated = self.repository.update_book_status(book.id, BookStatus.ISSUED, details)
        self._log(
            book.id,
            book.title,
            details.user_id,
            details.user_name,
            TransactionType.RETURN_REJECT,
            notes=f"Return request rejected by Admin: {actor.name}",
        )
        return updated

    def mark_returned(self, actor: Actor, book_id: str) -> Book:
        """Record a book handed back at the desk without a return request."""
        self._require_admin(actor, "mark books returned")
        book = self._load(book_id)
        self._require_status(book, "mark as returned", BookStatus.ISSUED)
        details = book.issue_details

        updated = self.repository.update_book_status(book.id, BookStatus.AVAILABLE, None)
        self._log(
            book.id,
            book.title,
            details.user_id if details else "unknown_user_return",
            details.user_name if details else UNKNOWN_USER_NAME,
            TransactionType.RETURN,
            notes=f"Returned to Admin: {actor.name}",
        )
        return updated

    def issue_directly(
        self,
        actor: Actor,
        book_id: str,
        user_id: str,
        user_name: str | None = None,
    ) -> Book:
        """
        Issue an available book to a user without a prior request.

        The holder's name is taken from ``user_name`` when supplied, otherwise
        looked up in the users collection; if the lookup finds nothing or
        fails, the book is still issued under "Unknown User".
        """
        self._require_admin(actor, "issue books")
        if not user_id:
            raise TransitionError("A target user id is required to issue a book")
        book = self._load(book_id)
        if not book.is_lendable:
            raise TransitionError(
                f"'{book.title}' cannot be issued (status '{book.status.value}')"
            )

        holder_name = user_name or self._lookup_user_name(user_id)
        issue_date = self._clock()
        due_date = issue_date + self.loan_period
        details = IssueDetails(
            user_id=user_id,
            user_name=holder_name,
            issue_date=issue_date,
            due_date=due_date,
        )
        updated = self.repository.update_book_status(book.id, BookStatus.ISSUED, details)
        self._log(
            book.id,
            book.title,
            user_id,
            holder_name,
            TransactionType.ISSUE,
            due_date=due_date,
            notes=f"Issued by Admin: {actor.name}",
        )
        return updated

    def _lookup_user_name(self, user_id: str) -> str:
        try:
            user = self.repository.get_user(user_id)
        except StoreUnavailableError as e:
            logger.warning("Could not look up user %s, issuing as unknown: %s", user_id, e)
            return UNKNOWN_USER_NAME
        if user is None:
            logger.warning("User %s not found, issuing as unknown", user_id)
            return UNKNOWN_USER_NAME
        return user.display_name("User")

    def approve_donation(self, actor: Actor, book_id: str) -> Book:
        """Accept a donated book into circulation; the donor record is kept."""
        self._require_admin(actor, "approve donations")
        book = self._load(book_id)
        self._require_status(book, "approve the donation of", BookStatus.DONATED_PENDING_APPROVAL)

        updated = self.repository.update_book_status(book.id, BookStatus.AVAILABLE, None)
        donor = book.donated_by
        self._log(
            book.id,
            book.title,
            donor.user_id if donor else "unknown_donor",
            donor.user_name if donor else "Unknown Donor",
            TransactionType.DONATE_APPROVE,
            notes=f"Donation approved by Admin: {actor.name}",
        )
        return updated

    def reject_donation(self, actor: Actor, book_id: str) -> Book:
        """
        Reject a donation by deleting the book record.

        The audit entry still references the deleted id and carries the title
        snapshot taken before deletion. Returns that snapshot.
        """
        self._require_admin(actor, "reject donations")
        book = self._load(book_id)
        self._require_status(book, "reject the donation of", BookStatus.DONATED_PENDING_APPROVAL)

        if not self.repository.delete_book(book.id):
            raise NotFoundError(f"Book {book_id} not found")
        donor = book.donated_by
        self._log(
            book.id,
            book.title,
            donor.user_id if donor else "unknown_donor",
            donor.user_name if donor else "Unknown Donor",
            TransactionType.DONATE_REJECT,
            notes=f"Donation rejected by Admin: {actor.name}",
        )
        return book

    # === Catalogue administration ===

    def add_book(self, actor: Actor, data: BookCreate) -> Book:
        """Add a book to the catalogue as available; no transaction is logged."""
        self._require_admin(actor, "add books")
        book = self.repository.create_book(data, status=BookStatus.AVAILABLE)
        logger.info("Book added: %s (%s)", book.id, book.title)
        return book

    def update_book(self, actor: Actor, book_id: str, data: BookUpdate) -> Book:
        """Edit catalogue metadata; status and lifecycle blocks are not editable."""
        self._require_admin(actor, "edit books")
        self._load(book_id)
        book = self.repository.update_book_fields(book_id, data)
        logger.info("Book updated: %s", book_id)
        return book

    def delete_book(self, actor: Actor, book_id: str) -> Book:
        """Remove a book from the catalogue; no transaction is logged."""
        self._require_admin(actor, "delete books")
        book = self._load(book_id)
        if not self.repository.delete_book(book_id):
            raise NotFoundError(f"Book {book_id} not found")
        logger.info("Book deleted: %s (%s)", book.id, book.title)
        return book
