"""
Library Portal Models.

Pydantic models for the entities of the portal:
- Book: a catalogue record and its lifecycle state
- Transaction: an immutable audit record of one lifecycle event
- User: a portal account with its role
"""

from .book import (
    ISSUE_STATES,
    LENDABLE_STATES,
    Book,
    BookCreate,
    BookStatus,
    BookUpdate,
    DonationDetails,
    IssueDetails,
)
from .transaction import Transaction, TransactionCreate, TransactionType
from .user import User, UserRole

__all__ = [
    "ISSUE_STATES",
    "LENDABLE_STATES",
    "Book",
    "BookCreate",
    "BookStatus",
    "BookUpdate",
    "DonationDetails",
    "IssueDetails",
    "Transaction",
    "TransactionCreate",
    "TransactionType",
    "User",
    "UserRole",
]
