"""Loan lifecycle module.

Provides functionality for:
- Creating loan requests and approving pickups
- Returns, explicit overdue marking and availability release
- Overdue / due-soon status derived from dates
- The transfer payload exchanged through QR codes
"""

from .engine import ALLOWED_TRANSITIONS, LoanEngine
from .payload import decode_loan, encode_loan
from .schemas import LendingStats
from .status import (
    DUE_SOON_DAYS,
    DerivedFilter,
    DisplayStatus,
    compute_display_status,
    due_label,
    filter_by_derived_status,
    report_status,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "LoanEngine",
    "decode_loan",
    "encode_loan",
    "LendingStats",
    "DUE_SOON_DAYS",
    "DerivedFilter",
    "DisplayStatus",
    "compute_display_status",
    "due_label",
    "filter_by_derived_status",
    "report_status",
]
