"""
Book model for the Library Portal.

A book record represents one physical (or donated) volume. Its ``status``
field is the state of the book lifecycle; the nested ``issue_details`` and
``donated_by`` blocks carry the loan and the donation provenance.

Invariants:
- ``issue_details`` is present only while the book is in an issue-related
  state (issue_requested, issued, return_requested).
- ``donated_by`` is written once at donation and kept forever.
"""

import enum
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BookStatus(str, enum.Enum):
    """Lifecycle state of a book record."""

    AVAILABLE = "available"
    ISSUED = "issued"
    DONATED_PENDING_APPROVAL = "donated_pending_approval"
    DONATED_APPROVED = "donated_approved"
    ISSUE_REQUESTED = "issue_requested"
    RETURN_REQUESTED = "return_requested"
    LOST = "lost"
    MAINTENANCE = "maintenance"


# States in which a book carries issue details
ISSUE_STATES = frozenset(
    {BookStatus.ISSUE_REQUESTED, BookStatus.ISSUED, BookStatus.RETURN_REQUESTED}
)

# States from which a book may be requested or issued
LENDABLE_STATES = frozenset({BookStatus.AVAILABLE, BookStatus.DONATED_APPROVED})


class IssueDetails(BaseModel):
    """Loan block of a book: who holds it and until when."""

    user_id: str = Field(..., description="Identity of the holder", min_length=1)
    user_name: str = Field(..., description="Display name of the holder")
    issue_date: datetime = Field(
        ...,
        description="When the book was requested or issued",
    )
    due_date: datetime | None = Field(
        None,
        description="When the book is due back; unset while the request is pending",
    )
    returned_date: datetime | None = Field(
        None,
        description="When the book was handed back",
    )


class DonationDetails(BaseModel):
    """Provenance block of a donated book."""

    user_id: str = Field(..., description="Identity of the donor", min_length=1)
    user_name: str = Field(..., description="Display name of the donor")
    date: datetime = Field(..., description="When the donation was submitted")


class Book(BaseModel):
    """
    A book in the library catalogue.

    Title, author and ISBN are free text; category, published date,
    description and cover image are display metadata and are not validated.
    """

    id: str = Field(
        ...,
        description="Generated identifier of the book record",
        examples=["book_3f9a1c2b7d4e"],
    )

    title: str = Field(
        ...,
        description="The title of the book",
        min_length=1,
        max_length=500,
        examples=["The Great Gatsby"],
    )

    author: str = Field(
        ...,
        description="Author of the book",
        max_length=300,
        examples=["F. Scott Fitzgerald"],
    )

    isbn: str = Field(
        default="",
        description="ISBN as entered",
        max_length=50,
        examples=["978-0743273565"],
    )

    category: str | None = Field(None, description="Shelf category", max_length=100)
    published_date: str | None = Field(
        None,
        description="Publication date or year as entered",
        max_length=50,
    )
    description: str | None = Field(None, description="Summary of the book", max_length=5000)
    cover_image_url: str | None = Field(None, description="Cover image reference")

    status: BookStatus = Field(
        default=BookStatus.AVAILABLE,
        description="Lifecycle state of the book",
    )

    issue_details: IssueDetails | None = Field(
        None,
        description="Loan block, present only in issue-related states",
    )

    donated_by: DonationDetails | None = Field(
        None,
        description="Donation provenance, kept after approval",
    )

    @model_validator(mode="after")
    def validate_issue_details(self) -> "Book":
        """Issue details exist exactly while the book is in an issue state."""
        in_issue_state = self.status in ISSUE_STATES
        if in_issue_state and self.issue_details is None:
            raise ValueError(f"Book in status '{self.status.value}' requires issue details")
        if not in_issue_state and self.issue_details is not None:
            raise ValueError(f"Book in status '{self.status.value}' cannot carry issue details")
        return self

    @property
    def is_lendable(self) -> bool:
        """Whether the book can be requested or issued right now."""
        return self.status in LENDABLE_STATES

    @property
    def holder_id(self) -> str | None:
        return self.issue_details.user_id if self.issue_details else None

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "book_3f9a1c2b7d4e",
                "title": "The Great Gatsby",
                "author": "F. Scott Fitzgerald",
                "isbn": "978-0743273565",
                "category": "Fiction",
                "status": "issued",
                "issue_details": {
                    "user_id": "user123",
                    "user_name": "PES Student",
                    "issue_date": "2024-03-01T10:00:00",
                    "due_date": "2024-03-15T10:00:00",
                },
            }
        },
    )


class BookCreate(BaseModel):
    """Catalogue fields accepted when a book record is created."""

    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., max_length=300)
    isbn: str = Field(default="", max_length=50)
    category: str | None = Field(None, max_length=100)
    published_date: str | None = Field(None, max_length=50)
    description: str | None = Field(None, max_length=5000)
    cover_image_url: str | None = None


class BookUpdate(BaseModel):
    """Catalogue fields an admin may edit - lifecycle fields are not editable."""

    title: str | None = Field(None, min_length=1, max_length=500)
    author: str | None = Field(None, max_length=300)
    isbn: str | None = Field(None, max_length=50)
    category: str | None = Field(None, max_length=100)
    published_date: str | None = Field(None, max_length=50)
    description: str | None = Field(None, max_length=5000)
    cover_image_url: str | None = None
