"""
SQLAlchemy database schema for the Library Portal.

The portal's records are document-shaped: a book carries an optional loan
block and an optional donation block. Here both blocks are flattened into
nullable columns of the ``books`` table; the repository rebuilds the nested
Pydantic models on read and clears every loan column together when the loan
block is removed.

The composite indexes below are the ones the portal views rely on:
- books by status ordered by title (catalogue, admin lists)
- books by status ordered by request/issue date (issue and return requests)
- books by status ordered by donation date (pending donations)
- books by holder and status ordered by due date (a user's loans)
- books by donor ordered by donation date (a user's donations)
- transactions by timestamp (transaction log)
"""

from sqlalchemy import CheckConstraint, Column, DateTime, Float, Index, String, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from ..models.book import BookStatus
from ..models.transaction import TransactionType
from ..models.user import UserRole

# Base class for all SQLAlchemy models
Base = declarative_base()


def _values(enum_cls) -> str:
    return ", ".join(f"'{member.value}'" for member in enum_cls)


class BookRecord(Base):
    """
    Books table - one row per physical or donated volume.

    Loan columns (``issue_*``, ``due_date``, ``returned_date``) are set only
    while the book is in an issue-related state. Donation columns are written
    once and kept after approval.
    """

    __tablename__ = "books"

    id = Column(String(50), primary_key=True)
    title = Column(String(500), nullable=False)
    author = Column(String(300), nullable=False)
    isbn = Column(String(50), nullable=False, default="")
    category = Column(String(100), nullable=True)
    published_date = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    cover_image_url = Column(String(1000), nullable=True)

    status = Column(String(40), nullable=False, default=BookStatus.AVAILABLE.value)

    # Loan block
    issue_user_id = Column(String(100), nullable=True)
    issue_user_name = Column(String(200), nullable=True)
    issue_date = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True)
    returned_date = Column(DateTime, nullable=True)

    # Donation block
    donor_user_id = Column(String(100), nullable=True)
    donor_user_name = Column(String(200), nullable=True)
    donated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_book_status_title", "status", "title"),
        Index("idx_book_status_issue_date", "status", "issue_date"),
        Index("idx_book_status_donated_at", "status", "donated_at"),
        Index("idx_book_holder_status_due", "issue_user_id", "status", "due_date"),
        Index("idx_book_donor_donated_at", "donor_user_id", "donated_at"),
        Index("idx_book_title", "title"),
        CheckConstraint("id LIKE 'book_%'", name="check_book_id_format"),
        CheckConstraint(f"status IN ({_values(BookStatus)})", name="check_book_status"),
    )


class TransactionRecord(Base):
    """
    Transactions table - the append-only audit trail.

    Rows are inserted once and never updated or deleted, so there is no
    ``updated_at`` column and no foreign key to ``books``: a transaction
    outlives the book it refers to.
    """

    __tablename__ = "transactions"

    id = Column(String(50), primary_key=True)
    book_id = Column(String(50), nullable=False)
    book_title = Column(String(500), nullable=False)
    user_id = Column(String(100), nullable=False)
    user_name = Column(String(200), nullable=False)
    type = Column(String(30), nullable=False)
    timestamp = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    fine_amount = Column(Float, nullable=True)

    __table_args__ = (
        Index("idx_transaction_timestamp", "timestamp"),
        Index("idx_transaction_book", "book_id"),
        CheckConstraint("id LIKE 'txn_%'", name="check_transaction_id_format"),
        CheckConstraint(f"type IN ({_values(TransactionType)})", name="check_transaction_type"),
        CheckConstraint("fine_amount IS NULL OR fine_amount >= 0", name="check_fine_non_negative"),
    )


class UserRecord(Base):
    """Users table - identity, contact and role."""

    __tablename__ = "users"

    id = Column(String(100), primary_key=True)
    email = Column(String(255), nullable=True)
    name = Column(String(200), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)

    created_at = Column(DateTime, nullable=False, default=func.now())

    __table_args__ = (
        Index("idx_user_email", "email"),
        CheckConstraint(f"role IN ({_values(UserRole)})", name="check_user_role"),
    )
