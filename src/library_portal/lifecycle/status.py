"""
Due-date classification and display status for books.

Overdue and due-soon are never stored on a book record. They are derived
from the due date every time a book is read, so a loan silently moves from
``issued`` to ``due_soon`` to ``overdue`` as calendar days pass.

Both dates are compared at calendar-day granularity: a book due today is
``due_soon``, not ``overdue``, whatever the time of day.
"""

import enum
from datetime import date, datetime

from ..config import get_config
from ..models.book import Book, BookStatus


class DueStatus(str, enum.Enum):
    """Derived state of an issued book."""

    ISSUED = "issued"
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"


DEFAULT_DUE_SOON_DAYS = 3


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_until_due(due: date | datetime, today: date | datetime) -> int:
    """Whole calendar days from ``today`` to ``due``; negative once overdue."""
    return (_as_date(due) - _as_date(today)).days


def classify_due(
    due: date | datetime,
    today: date | datetime | None = None,
    due_soon_days: int = DEFAULT_DUE_SOON_DAYS,
) -> DueStatus:
    """
    Classify a loan by its due date.

    Args:
        due: Due date or timestamp of the loan
        today: Reference day; defaults to the local current date
        due_soon_days: Width of the due-soon window in days

    Returns:
        OVERDUE if the due day is before today, DUE_SOON if it falls within
        the next ``due_soon_days`` days (today included), ISSUED otherwise
    """
    remaining = days_until_due(due, today if today is not None else date.today())
    if remaining < 0:
        return DueStatus.OVERDUE
    if remaining <= due_soon_days:
        return DueStatus.DUE_SOON
    return DueStatus.ISSUED


def _window(due_soon_days: int | None) -> int:
    return get_config().due_soon_days if due_soon_days is None else due_soon_days


def is_overdue(
    book: Book,
    today: date | datetime | None = None,
    due_soon_days: int | None = None,
) -> bool:
    """True for an issued book whose due day has passed; the window does not affect this."""
    if book.status != BookStatus.ISSUED or book.issue_details is None:
        return False
    due = book.issue_details.due_date
    if due is None:
        return False
    window = DEFAULT_DUE_SOON_DAYS if due_soon_days is None else due_soon_days
    return classify_due(due, today, window) == DueStatus.OVERDUE


def display_status(
    book: Book,
    today: date | datetime | None = None,
    due_soon_days: int | None = None,
) -> str:
    """
    Status shown to readers of the catalogue.

    Issued books are reported through ``classify_due`` with the configured
    due-soon window unless one is given; donation states are folded into what
    a reader cares about (pending or available).
    """
    if book.status == BookStatus.ISSUED:
        due = book.issue_details.due_date if book.issue_details else None
        if due is None:
            return DueStatus.ISSUED.value
        return classify_due(due, today, _window(due_soon_days)).value
    if book.status == BookStatus.DONATED_PENDING_APPROVAL:
        return "pending_approval"
    if book.status == BookStatus.DONATED_APPROVED:
        return BookStatus.AVAILABLE.value
    return book.status.value


def donation_status_label(book: Book) -> str:
    """Label shown to a donor in their donation history."""
    if book.status == BookStatus.DONATED_PENDING_APPROVAL:
        return "Pending Approval"
    if book.status in (BookStatus.AVAILABLE, BookStatus.DONATED_APPROVED):
        return "Approved & Available"
    return "Approved (In Circulation)"


def book_view(
    book: Book,
    today: date | datetime | None = None,
    due_soon_days: int | None = None,
) -> dict:
    """JSON-ready book with its display status, for portal responses."""
    payload = book.model_dump(mode="json")
    payload["display_status"] = display_status(book, today, due_soon_days)
    return payload
