"""
Circulation tools for the Library Portal.

Member tools:
1. request_issue: ask to borrow an available book
2. request_renewal: extend the due date of a book you hold
3. request_return: tell the library you are handing a book back

Admin tools:
4. approve_issue_request / reject_issue_request
5. approve_return_request / reject_return_request
6. mark_returned: take back an issued book at the desk
7. issue_book: lend an available book to a user directly

Each tool applies exactly one lifecycle event and reports the book's new
state. Overdue books cannot be renewed; the check uses calendar days, so a
book due today can still be renewed.
"""

import logging
from collections.abc import Callable
from typing import Any

from pydantic import Field, ValidationError

from ..lifecycle.machine import Actor, BookLifecycle
from ..models.book import Book
from ..observability import trace_tool
from .common import (
    BookActionInput,
    book_view,
    failure_response,
    invalid_parameters,
    open_lifecycle,
    success_response,
)

logger = logging.getLogger(__name__)

BookEvent = Callable[[BookLifecycle, Actor], Book]


def _apply(operation: str, params: BookActionInput, event: BookEvent) -> Book | dict[str, Any]:
    """Run one event; returns the updated book or an error payload."""
    try:
        with open_lifecycle(params.actor_id) as (lifecycle, actor):
            return event(lifecycle, actor)
    except Exception as e:
        return failure_response(operation, e)


def _due_text(book: Book) -> str:
    if book.issue_details is None or book.issue_details.due_date is None:
        return ""
    return f" Due date: {book.issue_details.due_date.strftime('%B %d, %Y')}."


# =============================================================================
# MEMBER TOOLS
# =============================================================================


@trace_tool("request_issue")
async def request_issue_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the request_issue tool."""
    try:
        params = BookActionInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_parameters("issue request", e)

    result = _apply(
        "Issue request",
        params,
        lambda lifecycle, actor: lifecycle.request_issue(actor, params.book_id),
    )
    if isinstance(result, dict):
        return result

    return success_response(
        f"Request sent for '{result.title}'. You will be notified once an admin approves it.",
        {"book": book_view(result)},
    )


@trace_tool("request_renewal")
async def request_renewal_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the request_renewal tool."""
    try:
        params = BookActionInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_parameters("renewal", e)

    result = _apply(
        "Renewal",
        params,
        lambda lifecycle, actor: lifecycle.request_renewal(actor, params.book_id),
    )
    if isinstance(result, dict):
        return result

    return success_response(
        f"'{result.title}' renewed.{_due_text(result)}",
        {"book": book_view(result)},
    )


@trace_tool("request_return")
async def request_return_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the request_return tool."""
    try:
        params = BookActionInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_parameters("return request", e)

    result = _apply(
        "Return request",
        params,
        lambda lifecycle, actor: lifecycle.request_return(actor, params.book_id),
    )
    if isinstance(result, dict):
        return result

    return success_response(
        f"Return requested for '{result.title}'. An admin will confirm once it is received.",
        {"book": book_view(result)},
    )


# =============================================================================
# ADMIN TOOLS
# =============================================================================


@trace_tool("approve_issue_request")
async def approve_issue_request_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the approve_issue_request tool."""
    try:
        params = BookActionInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_parameters("issue approval", e)

    result = _apply(
        "Issue approval",
        params,
        lambda lifecycle, actor: lifecycle.approve_issue(actor, params.book_id),
    )
    if isinstance(result, dict):
        return result

    return success_response(
        f"'{result.title}' issued to {result.issue_details.user_name}.{_due_text(result)}",
        {"book": book_view(result)},
    )


@trace_tool("reject_issue_request")
async def reject_issue_request_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the reject_issue_request tool."""
    try:
        params = BookActionInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_parameters("issue rejection", e)

    result = _apply(
        "Issue rejection",
        params,
        lambda lifecycle, actor: lifecycle.reject_issue(actor, params.book_id),
    )
    if isinstance(result, dict):
        return result

    return success_response(
        f"Issue request for '{result.title}' rejected. The book is available again.",
        {"book": book_view(result)},
    )


@trace_tool("approve_return_request")
async def approve_return_request_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the approve_return_request tool."""
    try:
        params = BookActionInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_parameters("return approval", e)

    result = _apply(
        "Return approval",
        params,
        lambda lifecycle, actor: lifecycle.approve_return(actor, params.book_id),
    )
    if isinstance(result, dict):
        return result

    return success_response(
        f"Return approved. '{result.title}' is now available in the library.",
        {"book": book_view(result)},
    )


@trace_tool("reject_return_request")
async def reject_return_request_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the reject_return_request tool."""
    try:
        params = BookActionInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_parameters("return rejection", e)

    result = _apply(
        "Return rejection",
        params,
        lambda lifecycle, actor: lifecycle.reject_return(actor, params.book_id),
    )
    if isinstance(result, dict):
        return result

    return success_response(
        f"Return request for '{result.title}' rejected. The book remains issued.",
        {"book": book_view(result)},
    )


@trace_tool("mark_returned")
async def mark_returned_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the mark_returned tool."""
    try:
        params = BookActionInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_parameters("return", e)

    result = _apply(
        "Return",
        params,
        lambda lifecycle, actor: lifecycle.mark_returned(actor, params.book_id),
    )
    if isinstance(result, dict):
        return result

    return success_response(
        f"'{result.title}' has been marked as available.",
        {"book": book_view(result)},
    )


class IssueBookInput(BookActionInput):
    """Input schema for the issue_book tool."""

    user_id: str = Field(
        ...,
        description="Identity of the user receiving the book",
        min_length=1,
        max_length=100,
        examples=["user123"],
    )

    user_name: str | None = Field(
        default=None,
        description="Display name of the user; looked up from the user record when omitted",
        max_length=200,
    )


@trace_tool("issue_book")
async def issue_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the issue_book tool."""
    try:
        params = IssueBookInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_parameters("issue", e)

    result = _apply(
        "Issue",
        params,
        lambda lifecycle, actor: lifecycle.issue_directly(
            actor, params.book_id, params.user_id, params.user_name
        ),
    )
    if isinstance(result, dict):
        return result

    return success_response(
        f"'{result.title}' has been issued to {result.issue_details.user_name}.{_due_text(result)}",
        {"book": book_view(result)},
    )


# =============================================================================
# TOOL REGISTRATION
# =============================================================================

request_issue = {
    "name": "request_issue",
    "description": (
        "Request to borrow an available book. The book is held for you until an admin "
        "approves or rejects the request; the due date is set on approval."
    ),
    "inputSchema": BookActionInput.model_json_schema(),
    "handler": request_issue_handler,
}

request_renewal = {
    "name": "request_renewal",
    "description": (
        "Renew a book issued to you, extending its due date by the renewal period. "
        "Overdue books and books with a pending return cannot be renewed."
    ),
    "inputSchema": BookActionInput.model_json_schema(),
    "handler": request_renewal_handler,
}

request_return = {
    "name": "request_return",
    "description": "Request to return a book issued to you. An admin confirms the return.",
    "inputSchema": BookActionInput.model_json_schema(),
    "handler": request_return_handler,
}

approve_issue_request = {
    "name": "approve_issue_request",
    "description": "Admin: approve a pending issue request. The loan runs from now for the loan period.",
    "inputSchema": BookActionInput.model_json_schema(),
    "handler": approve_issue_request_handler,
}

reject_issue_request = {
    "name": "reject_issue_request",
    "description": "Admin: reject a pending issue request and make the book available again.",
    "inputSchema": BookActionInput.model_json_schema(),
    "handler": reject_issue_request_handler,
}

approve_return_request = {
    "name": "approve_return_request",
    "description": "Admin: confirm a returned book and put it back into circulation.",
    "inputSchema": BookActionInput.model_json_schema(),
    "handler": approve_return_request_handler,
}

reject_return_request = {
    "name": "reject_return_request",
    "description": "Admin: reject a return request; the book stays issued with its due date.",
    "inputSchema": BookActionInput.model_json_schema(),
    "handler": reject_return_request_handler,
}

mark_returned = {
    "name": "mark_returned",
    "description": "Admin: mark an issued book as returned without a prior return request.",
    "inputSchema": BookActionInput.model_json_schema(),
    "handler": mark_returned_handler,
}

issue_book = {
    "name": "issue_book",
    "description": (
        "Admin: issue an available book directly to a user. The holder's name is looked "
        "up from the user record unless supplied."
    ),
    "inputSchema": IssueBookInput.model_json_schema(),
    "handler": issue_book_handler,
}

circulation_tools = [
    request_issue,
    request_renewal,
    request_return,
    approve_issue_request,
    reject_issue_request,
    approve_return_request,
    reject_return_request,
    mark_returned,
    issue_book,
]
