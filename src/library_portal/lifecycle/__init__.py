"""
Book lifecycle: the state machine and the due-date classification.

- status: derived states (overdue, due soon) computed on every read
- machine: transitions between stored states, each with its audit entry
"""

from .machine import UNKNOWN_USER_NAME, Actor, BookLifecycle, resolve_actor
from .status import (
    DueStatus,
    book_view,
    classify_due,
    days_until_due,
    display_status,
    donation_status_label,
    is_overdue,
)

__all__ = [
    "UNKNOWN_USER_NAME",
    "Actor",
    "BookLifecycle",
    "DueStatus",
    "book_view",
    "classify_due",
    "days_until_due",
    "display_status",
    "donation_status_label",
    "is_overdue",
    "resolve_actor",
]
