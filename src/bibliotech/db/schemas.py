"""Pydantic schemas for data validation.

These are the records every storage backend accepts and returns, so the
engine never sees ORM objects or raw JSON.
"""

from datetime import date
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..utils import coerce_local_date, is_valid_matricula


class LoanStatus(str, Enum):
    """Persisted status of a loan request."""

    PENDING = "PENDING"  # Requested by a student, not picked up yet
    ACTIVE = "ACTIVE"  # Picked up
    OVERDUE = "OVERDUE"  # Explicitly marked overdue by staff
    RETURNED = "RETURNED"  # Terminal


class UserRole(str, Enum):
    """Role of a registered user."""

    STUDENT = "STUDENT"
    ADMIN = "ADMIN"


# Statuses that keep a book checked out of the catalog
HOLDING_STATUSES = (LoanStatus.PENDING, LoanStatus.ACTIVE)


# ============================================================================
# Books
# ============================================================================


class BookBase(BaseModel):
    """Base book fields common to create/update operations."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, description="Book title")
    author: str = Field(..., min_length=1, description="Book author")
    description: str = ""
    cover_url: str = Field("", description="Image URL, data URI or empty")


class BookCreate(BookBase):
    """Schema for adding a book to the catalog."""

    pass


class BookUpdate(BaseModel):
    """Schema for editing a book. Availability is not editable here."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(None, min_length=1)
    author: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    cover_url: Optional[str] = None


class Book(BookBase):
    """A catalog book as stored."""

    model_config = ConfigDict(str_strip_whitespace=True, from_attributes=True)

    id: str
    available: bool = True


# ============================================================================
# Users
# ============================================================================


class User(BaseModel):
    """A registered student or admin."""

    model_config = ConfigDict(str_strip_whitespace=True, from_attributes=True)

    id: str = ""
    name: str = Field(..., min_length=1)
    role: UserRole
    matricula: Optional[str] = None  # Students only, 8 digits
    password: Optional[str] = None  # Stored but never checked

    @model_validator(mode="after")
    def check_identifier(self) -> "User":
        """Students need a valid matricula; admins have none."""
        if self.role == UserRole.STUDENT:
            if not is_valid_matricula(self.matricula):
                raise ValueError("matricula must be exactly 8 digits")
        elif self.matricula:
            raise ValueError("admins do not have a matricula")
        return self


# ============================================================================
# Loans
# ============================================================================


class LoanRequest(BaseModel):
    """A loan request.

    Field order is the transfer order. ``student_name``, ``student_matricula``
    and ``book_title`` are snapshots taken at creation and never refreshed.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: str = ""
    book_id: str
    student_id: str
    student_name: str
    student_matricula: str
    book_title: str
    pickup_date: date
    return_date: date
    status: LoanStatus = LoanStatus.PENDING

    @field_validator("pickup_date", "return_date", mode="before")
    @classmethod
    def calendar_date(cls, v: Any) -> date:
        """Only ``YYYY-MM-DD`` text or plain dates are accepted."""
        return coerce_local_date(v)
