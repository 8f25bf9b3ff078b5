"""Book Resources - Library Catalogue Access

Exposes the catalogue as read-only resources for members.

Resources:
- library://books/catalog - books that can be requested, ordered by title
- library://books/catalog/category/{category} - the same, limited to one category
- library://books/search/{query} - catalogue search over title, author and ISBN
- library://books/{book_id} - one book with its display status
"""

import logging
from typing import Any

from fastmcp.exceptions import ResourceError

from ..database.repository import BookOrder, LibraryRepository
from ..database.session import session_scope
from ..database.sql_repository import SqlLibraryRepository
from ..lifecycle.status import book_view
from ..models.book import LENDABLE_STATES, Book
from ..observability import trace_resource
from .common import resource_failure

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "All"


def matches_query(book: Book, query: str | None, include_isbn: bool = True) -> bool:
    """Case-insensitive substring match on title, author and (optionally) ISBN."""
    if not query:
        return True
    needle = query.strip().lower()
    fields = [book.title, book.author]
    if include_isbn:
        fields.append(book.isbn)
    return any(needle in (value or "").lower() for value in fields)


def browse_catalog(
    repository: LibraryRepository,
    query: str | None = None,
    category: str | None = None,
) -> list[Book]:
    """
    Books a member can request: available or approved donations.

    Args:
        repository: Store access
        query: Optional search term over title, author and ISBN
        category: Optional category; "All" or None disables the filter
    """
    books = repository.list_books_by_status(LENDABLE_STATES, BookOrder.TITLE)
    if category and category != ALL_CATEGORIES:
        books = [book for book in books if book.category == category]
    return [book for book in books if matches_query(book, query)]


def _catalog_response(books: list[Book]) -> dict[str, Any]:
    return {"books": [book_view(book) for book in books], "count": len(books)}


@trace_resource("books.catalog")
async def catalog_handler() -> dict[str, Any]:
    """Returns the lendable catalogue ordered by title."""
    try:
        with session_scope() as session:
            books = browse_catalog(SqlLibraryRepository(session))
        return _catalog_response(books)
    except Exception as e:
        raise resource_failure("books/catalog", e) from e


@trace_resource("books.catalog.category")
async def catalog_by_category_handler(category: str) -> dict[str, Any]:
    """Returns the lendable catalogue limited to one category."""
    try:
        with session_scope() as session:
            books = browse_catalog(SqlLibraryRepository(session), category=category)
        response = _catalog_response(books)
        response["category"] = category
        return response
    except Exception as e:
        raise resource_failure("books/catalog/category", e) from e


@trace_resource("books.search")
async def search_catalog_handler(query: str) -> dict[str, Any]:
    """Returns lendable books whose title, author or ISBN contains the query."""
    try:
        with session_scope() as session:
            books = browse_catalog(SqlLibraryRepository(session), query=query)
        response = _catalog_response(books)
        response["query"] = query
        return response
    except Exception as e:
        raise resource_failure("books/search", e) from e


@trace_resource("books.detail")
async def get_book_handler(book_id: str) -> dict[str, Any]:
    """Returns one book, whatever its status."""
    try:
        logger.debug("Resource request - books/%s", book_id)

        with session_scope() as session:
            book = SqlLibraryRepository(session).get_book(book_id)

        if book is None:
            raise ResourceError(f"Book not found: {book_id}")
        return book_view(book)

    except ResourceError:
        raise
    except Exception as e:
        raise resource_failure("books/{book_id}", e) from e


book_resources: list[dict[str, Any]] = [
    {
        "uri": "library://books/catalog",
        "name": "Book Catalogue",
        "description": "Books available to request, ordered by title.",
        "mime_type": "application/json",
        "handler": catalog_handler,
    },
    {
        "uri_template": "library://books/catalog/category/{category}",
        "name": "Book Catalogue by Category",
        "description": "Books available to request in one category, ordered by title.",
        "mime_type": "application/json",
        "handler": catalog_by_category_handler,
    },
    {
        "uri_template": "library://books/search/{query}",
        "name": "Catalogue Search",
        "description": "Search available books by title, author or ISBN (case-insensitive).",
        "mime_type": "application/json",
        "handler": search_catalog_handler,
    },
    {
        "uri_template": "library://books/{book_id}",
        "name": "Book Details",
        "description": "Details and current status of a book.",
        "mime_type": "application/json",
        "handler": get_book_handler,
    },
]
