"""User Resources - a member's own loans and donations

Resources:
- library://users/{user_id}/issued - books the user holds, soonest due first
- library://users/{user_id}/issued/{loan_filter} - the same, narrowed to
  due_soon, overdue or return_requested
- library://users/{user_id}/donations - the user's donation history, newest first

Due-soon and overdue are computed when the resource is read; the store only
knows ``issued`` and ``return_requested``.
"""

import enum
import logging
from datetime import date
from typing import Any

from fastmcp.exceptions import ResourceError

from ..config import get_config
from ..database.repository import LibraryRepository
from ..database.session import session_scope
from ..database.sql_repository import SqlLibraryRepository
from ..lifecycle.status import (
    DEFAULT_DUE_SOON_DAYS,
    book_view,
    classify_due,
    donation_status_label,
)
from ..models.book import Book, BookStatus
from ..observability import trace_resource
from .books import matches_query
from .common import resource_failure

logger = logging.getLogger(__name__)

HELD_STATES = frozenset({BookStatus.ISSUED, BookStatus.RETURN_REQUESTED})


class LoanFilter(str, enum.Enum):
    """Filters offered on the "my issued books" view."""

    ALL = "all"
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"
    RETURN_REQUESTED = "return_requested"


def _matches_filter(book: Book, loan_filter: LoanFilter, today: date, due_soon_days: int) -> bool:
    if loan_filter == LoanFilter.ALL:
        return True
    if loan_filter == LoanFilter.RETURN_REQUESTED:
        return book.status == BookStatus.RETURN_REQUESTED
    # due_soon and overdue only apply to books still out on loan
    if book.status != BookStatus.ISSUED or book.issue_details is None:
        return False
    due = book.issue_details.due_date
    if due is None:
        return False
    return classify_due(due, today, due_soon_days).value == loan_filter.value


def issued_books(
    repository: LibraryRepository,
    user_id: str,
    loan_filter: LoanFilter = LoanFilter.ALL,
    query: str | None = None,
    today: date | None = None,
    due_soon_days: int = DEFAULT_DUE_SOON_DAYS,
) -> list[Book]:
    """
    Books held by ``user_id``, ordered by due date ascending.

    The text search covers title and author only.
    """
    today = today or date.today()
    books = repository.list_books_by_holder(user_id, HELD_STATES)
    return [
        book
        for book in books
        if _matches_filter(book, loan_filter, today, due_soon_days)
        and matches_query(book, query, include_isbn=False)
    ]


def donation_history(repository: LibraryRepository, user_id: str) -> list[dict[str, Any]]:
    """Donations made by ``user_id``, newest first, with their donor-facing label."""
    entries = []
    for book in repository.list_books_by_donor(user_id):
        entry = book_view(book)
        entry["donation_status"] = donation_status_label(book)
        entries.append(entry)
    return entries


async def _issued_view(user_id: str, loan_filter: LoanFilter) -> dict[str, Any]:
    config = get_config()
    today = date.today()
    with session_scope() as session:
        books = issued_books(
            SqlLibraryRepository(session),
            user_id,
            loan_filter,
            today=today,
            due_soon_days=config.due_soon_days,
        )
    return {
        "user_id": user_id,
        "filter": loan_filter.value,
        "books": [book_view(book, today, config.due_soon_days) for book in books],
        "count": len(books),
    }


@trace_resource("users.issued")
async def user_issued_handler(user_id: str) -> dict[str, Any]:
    """Books the user currently holds."""
    try:
        return await _issued_view(user_id, LoanFilter.ALL)
    except Exception as e:
        raise resource_failure("users/{user_id}/issued", e) from e


@trace_resource("users.issued.filtered")
async def user_issued_filtered_handler(user_id: str, loan_filter: str) -> dict[str, Any]:
    """Books the user holds, narrowed by due state or pending return."""
    try:
        selected = LoanFilter(loan_filter)
    except ValueError as e:
        allowed = ", ".join(f.value for f in LoanFilter)
        raise ResourceError(f"Unknown filter '{loan_filter}'. Use one of: {allowed}") from e

    try:
        return await _issued_view(user_id, selected)
    except Exception as e:
        raise resource_failure("users/{user_id}/issued/{loan_filter}", e) from e


@trace_resource("users.donations")
async def user_donations_handler(user_id: str) -> dict[str, Any]:
    """The user's donations, newest first."""
    try:
        with session_scope() as session:
            entries = donation_history(SqlLibraryRepository(session), user_id)
        return {"user_id": user_id, "donations": entries, "count": len(entries)}
    except Exception as e:
        raise resource_failure("users/{user_id}/donations", e) from e


user_resources: list[dict[str, Any]] = [
    {
        "uri_template": "library://users/{user_id}/issued",
        "name": "My Issued Books",
        "description": "Books issued to the user or awaiting return, soonest due first.",
        "mime_type": "application/json",
        "handler": user_issued_handler,
    },
    {
        "uri_template": "library://users/{user_id}/issued/{loan_filter}",
        "name": "My Issued Books (filtered)",
        "description": "Issued books filtered by due_soon, overdue, return_requested or all.",
        "mime_type": "application/json",
        "handler": user_issued_filtered_handler,
    },
    {
        "uri_template": "library://users/{user_id}/donations",
        "name": "My Donations",
        "description": "Books the user has donated, newest first, with approval state.",
        "mime_type": "application/json",
        "handler": user_donations_handler,
    },
]
