"""Library Portal resources: read-only views over the book store.

Resources never change a book. Every state change goes through a tool.
"""

from .admin import admin_resources
from .books import book_resources
from .users import user_resources

all_resources = book_resources + user_resources + admin_resources

__all__ = [
    "admin_resources",
    "all_resources",
    "book_resources",
    "user_resources",
]
