"""
Shared plumbing for the portal tools.

Every tool runs the same way:
1. Validate the raw arguments against the tool's input schema
2. Open one store session and resolve the acting user
3. Apply one lifecycle event
4. Turn the outcome into a tool response

Failures never escape as exceptions. They come back as error payloads
(``{"isError": True, ...}``) that say whether retrying can help: precondition
failures and missing records cannot, store outages can, a missing index is
a deployment defect and cannot.
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from pydantic import BaseModel, Field

from ..database.repository import (
    IndexMissingError,
    NotFoundError,
    PermissionDeniedError,
    RepositoryException,
    StoreUnavailableError,
    TransitionError,
)
from ..database.session import session_scope
from ..database.sql_repository import SqlLibraryRepository
from ..lifecycle.machine import Actor, BookLifecycle, resolve_actor
from ..lifecycle.status import book_view

logger = logging.getLogger(__name__)

BOOK_ID_PATTERN = r"^book_[a-zA-Z0-9]{6,}$"


class ActorInput(BaseModel):
    """Identity of the user performing the operation."""

    actor_id: str = Field(
        ...,
        description="Identity of the user performing the operation",
        min_length=1,
        max_length=100,
        examples=["user123", "admin001"],
    )


class BookActionInput(ActorInput):
    """Input for tools that apply one event to one book."""

    book_id: str = Field(
        ...,
        description="Identifier of the book record",
        pattern=BOOK_ID_PATTERN,
        examples=["book_3f9a1c2b7d4e"],
    )


@contextmanager
def open_lifecycle(
    actor_id: str,
    default_name: str = "User",
) -> Generator[tuple[BookLifecycle, Actor], None, None]:
    """Open a store session and yield the lifecycle together with the resolved actor."""
    with session_scope() as session:
        repository = SqlLibraryRepository(session)
        actor = resolve_actor(repository, actor_id, default_name)
        yield BookLifecycle(repository), actor


def success_response(message: str, data: dict[str, Any]) -> dict[str, Any]:
    return {
        "content": [{"type": "text", "text": message}],
        "data": data,
    }


def error_response(text: str, retryable: bool = False) -> dict[str, Any]:
    return {
        "isError": True,
        "retryable": retryable,
        "content": [{"type": "text", "text": text}],
    }


def failure_response(operation: str, error: Exception) -> dict[str, Any]:
    """
    Map an exception raised by a portal operation to an error payload.

    Args:
        operation: Human-readable name of the operation, for the message
        error: The exception raised

    Returns:
        Error payload with a ``retryable`` flag
    """
    if isinstance(error, NotFoundError | TransitionError | PermissionDeniedError):
        logger.info("%s refused: %s", operation, error)
        return error_response(str(error))

    if isinstance(error, IndexMissingError):
        logger.error("%s failed - store is missing an index: %s", operation, error)
        return error_response(
            f"{operation} failed: the library store is not fully provisioned. "
            "Please contact the administrator."
        )

    if isinstance(error, StoreUnavailableError):
        logger.warning("%s failed - store unavailable: %s", operation, error)
        return error_response(
            f"{operation} failed: the library store is unavailable. Please try again.",
            retryable=True,
        )

    if isinstance(error, RepositoryException):
        logger.warning("%s failed: %s", operation, error)
        return error_response(f"{operation} failed: {error}")

    logger.exception("Unexpected error in %s", operation)
    return error_response(f"An unexpected error occurred: {error!s}")


def invalid_parameters(operation: str, error: Exception) -> dict[str, Any]:
    logger.warning("Invalid %s parameters: %s", operation, error)
    return error_response(f"Invalid parameters: {error}")
