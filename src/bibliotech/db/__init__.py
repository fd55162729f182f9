"""Database module: record schemas and the SQLite ORM tables.

The SQLAlchemy backend itself lives in ``bibliotech.db.sqlite``.
"""

from .schemas import (
    Book,
    BookCreate,
    BookUpdate,
    HOLDING_STATUSES,
    LoanRequest,
    LoanStatus,
    User,
    UserRole,
)

__all__ = [
    "Book",
    "BookCreate",
    "BookUpdate",
    "HOLDING_STATUSES",
    "LoanRequest",
    "LoanStatus",
    "User",
    "UserRole",
]
