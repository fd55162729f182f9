"""Pydantic schemas for lending reports."""

from datetime import date

from pydantic import BaseModel


class LendingStats(BaseModel):
    """Overall lending statistics for one day."""

    as_of: date

    # Persisted status counts
    total_loans: int
    pending: int
    active: int
    overdue: int
    returned: int

    # Derived from dates
    overdue_now: int
    due_soon: int

    # Catalog
    books_available: int
    books_unavailable: int
