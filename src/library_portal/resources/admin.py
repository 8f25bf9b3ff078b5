"""Admin Resources - queues and records for library staff

Resources:
- library://admin/issue-requests - pending issue requests, newest first
- library://admin/return-requests - pending return requests, newest first
- library://admin/donations - donations waiting for approval, newest first
- library://admin/books - every book in the store, ordered by title
- library://admin/books/search/{query} - the same, searched by title, author or ISBN
- library://admin/transactions - the most recent transaction log entries
"""

import logging
from typing import Any

from ..config import get_config
from ..database.repository import BookOrder, LibraryRepository
from ..database.session import session_scope
from ..database.sql_repository import SqlLibraryRepository
from ..lifecycle.status import book_view
from ..models.book import Book, BookStatus
from ..observability import trace_resource
from .books import matches_query
from .common import resource_failure

logger = logging.getLogger(__name__)


def issue_requests(repository: LibraryRepository) -> list[Book]:
    return repository.list_books_by_status(
        {BookStatus.ISSUE_REQUESTED}, BookOrder.ISSUE_DATE, descending=True
    )


def return_requests(repository: LibraryRepository) -> list[Book]:
    return repository.list_books_by_status(
        {BookStatus.RETURN_REQUESTED}, BookOrder.ISSUE_DATE, descending=True
    )


def pending_donations(repository: LibraryRepository) -> list[Book]:
    return repository.list_books_by_status(
        {BookStatus.DONATED_PENDING_APPROVAL}, BookOrder.DONATED_AT, descending=True
    )


def all_books(repository: LibraryRepository, query: str | None = None) -> list[Book]:
    """Every book regardless of status, ordered by title and optionally searched."""
    return [book for book in repository.list_all_books() if matches_query(book, query)]


def _book_list(books: list[Book]) -> dict[str, Any]:
    return {"books": [book_view(book) for book in books], "count": len(books)}


@trace_resource("admin.issue_requests")
async def issue_requests_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            books = issue_requests(SqlLibraryRepository(session))
        return _book_list(books)
    except Exception as e:
        raise resource_failure("admin/issue-requests", e) from e


@trace_resource("admin.return_requests")
async def return_requests_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            books = return_requests(SqlLibraryRepository(session))
        return _book_list(books)
    except Exception as e:
        raise resource_failure("admin/return-requests", e) from e


@trace_resource("admin.donations")
async def pending_donations_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            books = pending_donations(SqlLibraryRepository(session))
        return _book_list(books)
    except Exception as e:
        raise resource_failure("admin/donations", e) from e


@trace_resource("admin.books")
async def all_books_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            books = all_books(SqlLibraryRepository(session))
        return _book_list(books)
    except Exception as e:
        raise resource_failure("admin/books", e) from e


@trace_resource("admin.books.search")
async def search_all_books_handler(query: str) -> dict[str, Any]:
    try:
        with session_scope() as session:
            books = all_books(SqlLibraryRepository(session), query)
        response = _book_list(books)
        response["query"] = query
        return response
    except Exception as e:
        raise resource_failure("admin/books/search", e) from e


@trace_resource("admin.transactions")
async def transactions_handler() -> dict[str, Any]:
    """Most recent transactions first, capped by the configured log limit."""
    try:
        limit = get_config().transaction_log_limit
        with session_scope() as session:
            entries = SqlLibraryRepository(session).list_recent_transactions(limit)
        return {
            "transactions": [entry.model_dump(mode="json") for entry in entries],
            "count": len(entries),
            "limit": limit,
        }
    except Exception as e:
        raise resource_failure("admin/transactions", e) from e


admin_resources: list[dict[str, Any]] = [
    {
        "uri": "library://admin/issue-requests",
        "name": "Issue Requests",
        "description": "Books with a pending issue request, most recent request first.",
        "mime_type": "application/json",
        "handler": issue_requests_handler,
    },
    {
        "uri": "library://admin/return-requests",
        "name": "Return Requests",
        "description": "Books with a pending return request, most recently issued first.",
        "mime_type": "application/json",
        "handler": return_requests_handler,
    },
    {
        "uri": "library://admin/donations",
        "name": "Pending Donations",
        "description": "Donated books waiting for approval, newest donation first.",
        "mime_type": "application/json",
        "handler": pending_donations_handler,
    },
    {
        "uri": "library://admin/books",
        "name": "All Books",
        "description": "Every book in the library in any status, ordered by title.",
        "mime_type": "application/json",
        "handler": all_books_handler,
    },
    {
        "uri_template": "library://admin/books/search/{query}",
        "name": "All Books Search",
        "description": "Search every book by title, author or ISBN (case-insensitive).",
        "mime_type": "application/json",
        "handler": search_all_books_handler,
    },
    {
        "uri": "library://admin/transactions",
        "name": "Transaction Log",
        "description": "Most recent circulation and donation events, newest first.",
        "mime_type": "application/json",
        "handler": transactions_handler,
    },
]
