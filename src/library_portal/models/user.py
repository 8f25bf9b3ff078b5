"""User model for the Library Portal.

The role is the only business meaning a user record carries: it decides
which lifecycle events the user may trigger.
"""

import enum

from pydantic import BaseModel, Field


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class User(BaseModel):
    """A portal account."""

    id: str = Field(..., description="Identity of the user", min_length=1)
    email: str | None = Field(None, description="Login email")
    name: str | None = Field(None, description="Display name")
    role: UserRole = Field(default=UserRole.USER)

    def display_name(self, default: str = "User") -> str:
        """Name, else email, else ``default``."""
        return self.name or self.email or default
