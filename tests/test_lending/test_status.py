"""Tests for date-derived loan status."""

import types
from datetime import date, timedelta

import pytest

from bibliotech.db.schemas import LoanStatus
from bibliotech.lending import (
    DUE_SOON_DAYS,
    DerivedFilter,
    compute_display_status,
    due_label,
    filter_by_derived_status,
    report_status,
)


class TestComputeDisplayStatus:
    """Tests for compute_display_status."""

    def test_due_in_two_days_is_due_soon(self, make_loan, today):
        """An active loan due in two days is due soon, not overdue."""
        status = compute_display_status(make_loan(today + timedelta(days=2)), today)

        assert status.is_due_soon is True
        assert status.is_overdue is False
        assert status.diff_days == 2

    def test_due_yesterday_is_overdue(self, make_loan, today):
        """An active loan due yesterday is overdue, not due soon."""
        status = compute_display_status(make_loan(today - timedelta(days=1)), today)

        assert status.is_overdue is True
        assert status.is_due_soon is False
        assert status.diff_days == -1

    def test_due_today_is_due_soon(self, make_loan, today):
        """Due today is the start of the due-soon window."""
        status = compute_display_status(make_loan(today), today)
        assert status.is_due_soon is True
        assert status.is_overdue is False

    def test_window_edge(self, make_loan, today):
        """The window includes its last day and nothing after."""
        edge = compute_display_status(make_loan(today + timedelta(days=DUE_SOON_DAYS)), today)
        beyond = compute_display_status(
            make_loan(today + timedelta(days=DUE_SOON_DAYS + 1)), today
        )

        assert edge.is_due_soon is True
        assert beyond.is_due_soon is False
        assert beyond.is_overdue is False

    def test_due_three_days_ago_is_overdue(self, make_loan, today):
        """Due 2024-06-07 and still out on 2024-06-10 is three days overdue."""
        status = compute_display_status(make_loan(date(2024, 6, 7)), today)

        assert today == date(2024, 6, 10)
        assert status.is_overdue is True
        assert status.is_due_soon is False
        assert status.diff_days == -3

    def test_persisted_overdue_always_overdue(self, make_loan, today):
        """A loan marked OVERDUE stays overdue whatever the dates say."""
        loan = make_loan(today + timedelta(days=30), status=LoanStatus.OVERDUE)
        status = compute_display_status(loan, today)

        assert status.is_overdue is True
        assert status.is_due_soon is False

    @pytest.mark.parametrize("loan_status", [LoanStatus.PENDING, LoanStatus.RETURNED])
    def test_not_picked_up_or_returned(self, make_loan, today, loan_status):
        """Pending and returned loans are never overdue or due soon."""
        for offset in (-10, -1, 0, 2, 10):
            loan = make_loan(today + timedelta(days=offset), status=loan_status)
            status = compute_display_status(loan, today)
            assert status.is_overdue is False
            assert status.is_due_soon is False

    def test_flags_never_both_true(self, make_loan, today):
        """Overdue and due soon are mutually exclusive."""
        for loan_status in LoanStatus:
            for offset in range(-5, 8):
                loan = make_loan(today + timedelta(days=offset), status=loan_status)
                status = compute_display_status(loan, today)
                assert not (status.is_overdue and status.is_due_soon)


class TestFilterByDerivedStatus:
    """Tests for filter_by_derived_status."""

    @pytest.fixture
    def loans(self, make_loan, today):
        return [
            make_loan(today - timedelta(days=3), loan_id="late"),
            make_loan(today + timedelta(days=1), loan_id="soon"),
            make_loan(today + timedelta(days=20), loan_id="later"),
            make_loan(today + timedelta(days=1), status=LoanStatus.PENDING, loan_id="waiting"),
            make_loan(today + timedelta(days=9), status=LoanStatus.OVERDUE, loan_id="marked"),
            make_loan(today - timedelta(days=9), status=LoanStatus.RETURNED, loan_id="done"),
        ]

    @pytest.mark.parametrize(
        "which,expected",
        [
            ("overdue", ["late", "marked"]),
            ("due_soon", ["soon"]),
            ("active", ["late", "soon", "later"]),
            ("pending", ["waiting"]),
        ],
    )
    def test_filters(self, loans, today, which, expected):
        """Each filter selects the matching loans in input order."""
        result = filter_by_derived_status(loans, which, today)
        assert [loan.id for loan in result] == expected

    def test_accepts_enum(self, loans, today):
        """DerivedFilter members work as well as their values."""
        result = filter_by_derived_status(loans, DerivedFilter.DUE_SOON, today)
        assert [loan.id for loan in result] == ["soon"]

    def test_is_lazy(self, make_loan, today):
        """Loans are consumed only as results are requested."""
        consumed = []

        def source():
            for offset in (1, 2, 3):
                consumed.append(offset)
                yield make_loan(today + timedelta(days=offset))

        result = filter_by_derived_status(source(), "due_soon", today)

        assert isinstance(result, types.GeneratorType)
        assert consumed == []
        next(result)
        assert consumed == [1]

    def test_unknown_filter_fails_immediately(self, loans, today):
        """An unknown filter raises before iteration starts."""
        with pytest.raises(ValueError):
            filter_by_derived_status(loans, "late", today)


class TestLabels:
    """Tests for due_label and report_status."""

    @pytest.mark.parametrize(
        "offset,label",
        [
            (-3, "Overdue by 3 days"),
            (-1, "Overdue by 1 day"),
            (0, "Due today"),
            (1, "Due tomorrow"),
            (5, "Due in 5 days"),
        ],
    )
    def test_due_label(self, make_loan, today, offset, label):
        assert due_label(make_loan(today + timedelta(days=offset)), today) == label

    def test_report_status(self, make_loan, today):
        """Reports show OVERDUE or ACTIVE."""
        assert report_status(make_loan(today - timedelta(days=1)), today) == "OVERDUE"
        assert report_status(make_loan(today + timedelta(days=1)), today) == "ACTIVE"
        marked = make_loan(today + timedelta(days=10), status=LoanStatus.OVERDUE)
        assert report_status(marked, today) == "OVERDUE"
