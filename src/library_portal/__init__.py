"""
Library Portal Package.

This package implements the book lifecycle of a small library: cataloguing,
issue/return/renewal workflows, donation intake and approval, and an
append-only transaction log, exposed as a user portal and an admin portal.

Key Components:
- models: Pydantic models for books, transactions and users
- lifecycle: the book state machine and due-date classification
- database: repository contract and the SQLAlchemy-backed store
- config: Configuration management with pydantic-settings
- tools: portal operations with side effects (transitions)
- resources: read-only portal views
"""

__version__ = "0.1.0"

from . import database

__all__ = [
    "__version__",
    "database",
]
