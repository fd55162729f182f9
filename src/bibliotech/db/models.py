"""SQLAlchemy ORM models for the SQLite backend.

Tables:
- books: Catalog entries and their availability flag
- loans: Loan requests with snapshot fields
- users: Registered students and admins
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..utils import generate_uuid
from .schemas import LoanStatus


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Book(Base):
    """Book model - a catalog entry."""

    __tablename__ = "books"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    # May hold a data URI, hence Text
    cover_url: Mapped[str] = mapped_column(Text, default="")

    available: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=_now)
    updated_at: Mapped[str] = mapped_column(String(32), default=_now, onupdate=_now)

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title='{self.title}', available={self.available})>"


class Loan(Base):
    """Loan model - one loan request and its lifecycle status."""

    __tablename__ = "loans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    book_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("books.id"),
        nullable=False,
        index=True,
    )
    # Not a foreign key: users may live in another identity store
    student_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # Snapshot fields, copied at creation
    student_name: Mapped[str] = mapped_column(String(200), nullable=False)
    student_matricula: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    book_title: Mapped[str] = mapped_column(String(500), nullable=False)

    # Dates
    pickup_date: Mapped[str] = mapped_column(String(10), nullable=False)  # ISO date
    return_date: Mapped[str] = mapped_column(String(10), nullable=False)  # ISO date

    status: Mapped[str] = mapped_column(
        String(20), default=LoanStatus.PENDING.value, index=True
    )

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=_now)
    updated_at: Mapped[str] = mapped_column(String(32), default=_now, onupdate=_now)

    def __repr__(self) -> str:
        return f"<Loan(id={self.id}, book_id={self.book_id}, status={self.status})>"


class User(Base):
    """User model - a student (by matricula) or an admin (by name)."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    matricula: Mapped[Optional[str]] = mapped_column(String(8), unique=True)
    password: Mapped[Optional[str]] = mapped_column(String(200))

    created_at: Mapped[str] = mapped_column(String(32), default=_now)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name='{self.name}', role={self.role})>"
