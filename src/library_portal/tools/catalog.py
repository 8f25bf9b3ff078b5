"""
Catalogue administration tools for the Library Portal.

Admins add, edit and remove catalogue entries. These are not lifecycle
events: no transaction is logged, new books always start as available, and
an edit can never change a book's status, loan or donation record.
"""

import logging
from typing import Any

from pydantic import Field, ValidationError

from ..models.book import BookCreate, BookUpdate
from ..observability import trace_tool
from .common import (
    ActorInput,
    BookActionInput,
    book_view,
    failure_response,
    invalid_parameters,
    open_lifecycle,
    success_response,
)

logger = logging.getLogger(__name__)


class AddBookInput(ActorInput):
    """Input schema for the add_book tool."""

    title: str = Field(..., min_length=1, max_length=500, examples=["The Great Gatsby"])
    author: str = Field(..., max_length=300, examples=["F. Scott Fitzgerald"])
    isbn: str = Field(default="", max_length=50, examples=["978-0743273565"])
    category: str | None = Field(default=None, max_length=100)
    published_date: str | None = Field(default=None, max_length=50)
    description: str | None = Field(default=None, max_length=5000)
    cover_image_url: str | None = None

    def to_book_create(self) -> BookCreate:
        return BookCreate.model_validate(self.model_dump(exclude={"actor_id"}))


class UpdateBookInput(BookActionInput):
    """Input schema for the update_book tool; omitted fields are left unchanged."""

    title: str | None = Field(default=None, min_length=1, max_length=500)
    author: str | None = Field(default=None, max_length=300)
    isbn: str | None = Field(default=None, max_length=50)
    category: str | None = Field(default=None, max_length=100)
    published_date: str | None = Field(default=None, max_length=50)
    description: str | None = Field(default=None, max_length=5000)
    cover_image_url: str | None = None

    def to_book_update(self) -> BookUpdate:
        fields = self.model_dump(exclude_unset=True, exclude={"actor_id", "book_id"})
        return BookUpdate.model_validate(fields)


@trace_tool("add_book")
async def add_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the add_book tool."""
    try:
        params = AddBookInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_parameters("add book", e)

    try:
        with open_lifecycle(params.actor_id) as (lifecycle, actor):
            book = lifecycle.add_book(actor, params.to_book_create())
    except Exception as e:
        return failure_response("Add book", e)

    return success_response(
        f"'{book.title}' has been successfully added.",
        {"book": book_view(book)},
    )


@trace_tool("update_book")
async def update_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the update_book tool."""
    try:
        params = UpdateBookInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_parameters("update book", e)

    try:
        with open_lifecycle(params.actor_id) as (lifecycle, actor):
            book = lifecycle.update_book(actor, params.book_id, params.to_book_update())
    except Exception as e:
        return failure_response("Update book", e)

    return success_response(
        f"'{book.title}' has been successfully updated.",
        {"book": book_view(book)},
    )


@trace_tool("delete_book")
async def delete_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the delete_book tool."""
    try:
        params = BookActionInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_parameters("delete book", e)

    try:
        with open_lifecycle(params.actor_id) as (lifecycle, actor):
            book = lifecycle.delete_book(actor, params.book_id)
    except Exception as e:
        return failure_response("Delete book", e)

    return success_response(
        f"'{book.title}' has been removed from the library.",
        {"deleted_book_id": book.id},
    )


add_book = {
    "name": "add_book",
    "description": "Admin: add a book to the catalogue. New books are available immediately.",
    "inputSchema": AddBookInput.model_json_schema(),
    "handler": add_book_handler,
}

update_book = {
    "name": "update_book",
    "description": (
        "Admin: edit a book's catalogue details (title, author, ISBN, category, published "
        "date, description, cover). Status and loan details cannot be edited."
    ),
    "inputSchema": UpdateBookInput.model_json_schema(),
    "handler": update_book_handler,
}

delete_book = {
    "name": "delete_book",
    "description": "Admin: remove a book from the catalogue.",
    "inputSchema": BookActionInput.model_json_schema(),
    "handler": delete_book_handler,
}

catalog_tools = [add_book, update_book, delete_book]
