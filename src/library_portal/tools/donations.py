"""
Donation tools for the Library Portal.

1. donate_book: a member submits a book; it waits for approval
2. approve_donation: an admin puts the donated book into circulation
3. reject_donation: an admin refuses the donation and the record is deleted

Rejected donations are deleted rather than kept with a rejected status, so
the donor's history no longer shows them. The transaction log still holds
the ``donate_reject`` entry with the title and the deleted book's id.
"""

import logging
from typing import Any
from urllib.parse import quote

from pydantic import Field, ValidationError

from ..models.book import BookCreate
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

PLACEHOLDER_COVER_URL = "https://placehold.co/300x450.png?text={title}"


class DonateBookInput(ActorInput):
    """Input schema for the donate_book tool."""

    title: str = Field(..., description="Title of the donated book", min_length=1, max_length=500)
    author: str = Field(..., description="Author of the book", min_length=1, max_length=300)
    isbn: str = Field(default="", description="ISBN as printed", max_length=50)
    category: str | None = Field(default=None, max_length=100, examples=["Fiction", "Science"])
    published_date: str | None = Field(default=None, max_length=50, examples=["1925", "2019-04"])
    description: str | None = Field(default=None, max_length=5000)
    cover_image_url: str | None = Field(
        default=None,
        description="Cover image; a placeholder showing the title is used when omitted",
    )

    def to_book_create(self) -> BookCreate:
        return BookCreate(
            title=self.title,
            author=self.author,
            isbn=self.isbn,
            category=self.category,
            published_date=self.published_date,
            description=self.description,
            cover_image_url=self.cover_image_url
            or PLACEHOLDER_COVER_URL.format(title=quote(self.title)),
        )


@trace_tool("donate_book")
async def donate_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the donate_book tool."""
    try:
        params = DonateBookInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_parameters("donation", e)

    try:
        with open_lifecycle(params.actor_id, default_name="Anonymous User") as (lifecycle, actor):
            book = lifecycle.donate(actor, params.to_book_create())
    except Exception as e:
        return failure_response("Donation", e)

    return success_response(
        f"Thank you for donating '{book.title}'! Your request is pending approval.",
        {"book": book_view(book)},
    )


@trace_tool("approve_donation")
async def approve_donation_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the approve_donation tool."""
    try:
        params = BookActionInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_parameters("donation approval", e)

    try:
        with open_lifecycle(params.actor_id) as (lifecycle, actor):
            book = lifecycle.approve_donation(actor, params.book_id)
    except Exception as e:
        return failure_response("Donation approval", e)

    return success_response(
        f"'{book.title}' has been approved and added to the library as available.",
        {"book": book_view(book)},
    )


@trace_tool("reject_donation")
async def reject_donation_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the reject_donation tool."""
    try:
        params = BookActionInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_parameters("donation rejection", e)

    try:
        with open_lifecycle(params.actor_id) as (lifecycle, actor):
            book = lifecycle.reject_donation(actor, params.book_id)
    except Exception as e:
        return failure_response("Donation rejection", e)

    return success_response(
        f"The donation request for '{book.title}' has been rejected and removed.",
        {"deleted_book_id": book.id, "title": book.title},
    )


donate_book = {
    "name": "donate_book",
    "description": (
        "Donate a book to the library. The book is listed as pending approval until an "
        "admin approves it into circulation or rejects it."
    ),
    "inputSchema": DonateBookInput.model_json_schema(),
    "handler": donate_book_handler,
}

approve_donation = {
    "name": "approve_donation",
    "description": "Admin: approve a pending donation; the book becomes available to borrow.",
    "inputSchema": BookActionInput.model_json_schema(),
    "handler": approve_donation_handler,
}

reject_donation = {
    "name": "reject_donation",
    "description": "Admin: reject a pending donation. The book record is deleted.",
    "inputSchema": BookActionInput.model_json_schema(),
    "handler": reject_donation_handler,
}

donation_tools = [donate_book, approve_donation, reject_donation]
