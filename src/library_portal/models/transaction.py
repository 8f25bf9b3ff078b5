"""
Transaction model for the Library Portal.

A transaction is an immutable audit record of one lifecycle event. It is
appended once, never updated and never deleted, and it is the only history
the portal keeps: the book title is a snapshot taken at the time of the
event so the entry stays readable after the book is edited or deleted.
"""

import enum
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class TransactionType(str, enum.Enum):
    """Kind of lifecycle event recorded by a transaction."""

    ISSUE = "issue"
    ISSUE_REQUEST = "issue_request"
    ISSUE_REJECT = "issue_reject"
    RETURN = "return"
    RETURN_REQUEST = "return_request"
    RETURN_REJECT = "return_reject"
    DONATE_REQUEST = "donate_request"
    DONATE_APPROVE = "donate_approve"
    DONATE_REJECT = "donate_reject"
    RENEWAL = "renewal"
    FINE_PAID = "fine_paid"


class TransactionCreate(BaseModel):
    """Fields supplied by the caller; id and timestamp are assigned by the store."""

    book_id: str = Field(..., description="Book the event concerns")
    book_title: str = Field(..., description="Title snapshot at event time")
    user_id: str = Field(..., description="Identity of the user the event concerns")
    user_name: str = Field(..., description="Display name of the user")
    type: TransactionType
    due_date: datetime | None = Field(None, description="Due date set by issue or renewal")
    notes: str | None = Field(None, max_length=1000)
    fine_amount: float | None = Field(None, ge=0.0)


class Transaction(TransactionCreate):
    """A stored transaction record."""

    id: str = Field(..., description="Store-assigned identifier")
    timestamp: datetime = Field(..., description="Store-assigned event time")

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "txn_5b0e7c4a19f2",
                "book_id": "book_3f9a1c2b7d4e",
                "book_title": "The Great Gatsby",
                "user_id": "user123",
                "user_name": "PES Student",
                "type": "issue",
                "timestamp": "2024-03-01T10:00:00",
                "due_date": "2024-03-15T10:00:00",
                "notes": "Request approved by Admin: Library Admin",
            }
        },
    )
