"""
Portal tools: operations with side effects.

Member tools request lifecycle events (issue, renewal, return, donation);
admin tools decide them and maintain the catalogue. Read-only views live in
``library_portal.resources``.
"""

from .catalog import add_book, catalog_tools, delete_book, update_book
from .circulation import (
    approve_issue_request,
    approve_return_request,
    circulation_tools,
    issue_book,
    mark_returned,
    reject_issue_request,
    reject_return_request,
    request_issue,
    request_renewal,
    request_return,
)
from .donations import approve_donation, donate_book, donation_tools, reject_donation

# Export all tools for server registration
all_tools = circulation_tools + donation_tools + catalog_tools

__all__ = [
    "add_book",
    "all_tools",
    "approve_donation",
    "approve_issue_request",
    "approve_return_request",
    "delete_book",
    "donate_book",
    "issue_book",
    "mark_returned",
    "reject_donation",
    "reject_issue_request",
    "reject_return_request",
    "request_issue",
    "request_renewal",
    "request_return",
    "update_book",
]
