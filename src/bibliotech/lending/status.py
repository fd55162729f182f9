"""Read-time loan status derived from calendar dates.

Nothing here touches storage. ``DisplayStatus.is_overdue`` is a view of the
dates and must not be confused with the persisted ``LoanStatus.OVERDUE``,
which only staff (or ``LoanEngine.sweep_overdue``) can set.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, Iterator, Optional, Union

from ..db.schemas import LoanRequest, LoanStatus

# Due-soon window: due today up to and including this many days ahead
DUE_SOON_DAYS = 3


class DerivedFilter(str, Enum):
    """Filters over derived loan status."""

    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    ACTIVE = "active"
    PENDING = "pending"


@dataclass(frozen=True)
class DisplayStatus:
    """Derived status of a loan on a given day."""

    is_overdue: bool
    is_due_soon: bool
    diff_days: int  # return_date - today, negative when past due


def compute_display_status(
    loan: LoanRequest, today: Optional[date] = None
) -> DisplayStatus:
    """Derive overdue / due-soon flags for a loan.

    Overdue wins over due-soon; the two are never both true.

    Args:
        loan: Loan to inspect
        today: Local calendar date (default: date.today())

    Returns:
        DisplayStatus for that day
    """
    today = today or date.today()
    diff_days = (loan.return_date - today).days

    is_overdue = loan.status == LoanStatus.OVERDUE or (
        loan.status == LoanStatus.ACTIVE and diff_days < 0
    )
    is_due_soon = (
        loan.status == LoanStatus.ACTIVE
        and not is_overdue
        and 0 <= diff_days <= DUE_SOON_DAYS
    )

    return DisplayStatus(is_overdue=is_overdue, is_due_soon=is_due_soon, diff_days=diff_days)


def _matches(loan: LoanRequest, which: DerivedFilter, today: date) -> bool:
    if which == DerivedFilter.PENDING:
        return loan.status == LoanStatus.PENDING
    if which == DerivedFilter.ACTIVE:
        return loan.status == LoanStatus.ACTIVE

    status = compute_display_status(loan, today)
    if which == DerivedFilter.OVERDUE:
        return status.is_overdue
    return status.is_due_soon


def filter_by_derived_status(
    loans: Iterable[LoanRequest],
    which: Union[DerivedFilter, str],
    today: Optional[date] = None,
) -> Iterator[LoanRequest]:
    """Lazily yield the loans matching a derived filter.

    Args:
        loans: Any iterable of loans
        which: overdue, due_soon, active or pending
        today: Local calendar date (default: date.today())

    Raises:
        ValueError: If ``which`` is not a known filter (raised immediately)
    """
    which = DerivedFilter(which)
    today = today or date.today()
    return (loan for loan in loans if _matches(loan, which, today))


def due_label(loan: LoanRequest, today: Optional[date] = None) -> str:
    """Human-readable due text for a loan."""
    status = compute_display_status(loan, today)
    days = status.diff_days

    if days < 0:
        return f"Overdue by {abs(days)} day{'s' if days != -1 else ''}"
    if days == 0:
        return "Due today"
    if days == 1:
        return "Due tomorrow"
    return f"Due in {days} days"


def report_status(loan: LoanRequest, today: Optional[date] = None) -> str:
    """Badge shown on a printed loan report: OVERDUE or ACTIVE."""
    return "OVERDUE" if compute_display_status(loan, today).is_overdue else "ACTIVE"
