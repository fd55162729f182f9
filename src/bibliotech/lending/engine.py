"""Loan lifecycle engine.

Owns the loan state machine and the book availability side effects:

    PENDING --approve--> ACTIVE --mark overdue--> OVERDUE
                           |                        |
                           +------mark returned-----+--> RETURNED

Every status change is a compare-and-set against storage, so a transition
computed from a stale read fails instead of overwriting a newer status.
"""

import logging
from datetime import date
from typing import Optional, Union

from ..config import get_config
from ..db.schemas import HOLDING_STATUSES, Book, LoanRequest, LoanStatus, User, UserRole
from ..errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from ..storage import StorageBackend, get_storage
from ..utils import coerce_local_date, is_valid_matricula
from .payload import decode_loan
from .schemas import LendingStats
from .status import DerivedFilter, compute_display_status, filter_by_derived_status

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[LoanStatus, frozenset[LoanStatus]] = {
    LoanStatus.PENDING: frozenset({LoanStatus.ACTIVE}),
    LoanStatus.ACTIVE: frozenset({LoanStatus.OVERDUE, LoanStatus.RETURNED}),
    LoanStatus.OVERDUE: frozenset({LoanStatus.RETURNED}),
    LoanStatus.RETURNED: frozenset(),
}


class LoanEngine:
    """Manages the loan request lifecycle."""

    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        release_on_return: Optional[bool] = None,
    ):
        """Initialize the engine.

        Args:
            storage: Storage backend (default: global storage)
            release_on_return: Whether ``mark_returned`` also frees the book.
                Defaults to the configured policy.
        """
        self.storage = storage or get_storage()
        if release_on_return is None:
            release_on_return = get_config().release_on_return
        self.release_on_return = release_on_return

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_loan(self, loan_id: str) -> LoanRequest:
        """Get a loan by ID.

        Raises:
            NotFoundError: If no such loan exists
        """
        loan = self.storage.get_loan(loan_id)
        if loan is None:
            raise NotFoundError("Loan", loan_id)
        return loan

    def list_loans(
        self,
        status: Optional[LoanStatus] = None,
        student_id: Optional[str] = None,
        book_id: Optional[str] = None,
    ) -> list[LoanRequest]:
        """List loans, newest first, with optional filters."""
        loans = self.storage.get_loans()
        if status:
            loans = [loan for loan in loans if loan.status == status]
        if student_id:
            loans = [loan for loan in loans if loan.student_id == student_id]
        if book_id:
            loans = [loan for loan in loans if loan.book_id == book_id]
        return loans

    def loans_for_student(self, student_id: str) -> list[LoanRequest]:
        """All loans requested by one student, newest first."""
        return self.list_loans(student_id=student_id)

    def _get_book(self, book_id: str) -> Book:
        book = self.storage.get_book(book_id)
        if book is None:
            raise NotFoundError("Book", book_id)
        return book

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def create_loan_request(
        self,
        book_id: str,
        student: User,
        pickup_date: Union[date, str],
        return_date: Union[date, str],
        today: Optional[date] = None,
    ) -> LoanRequest:
        """Create a PENDING loan and take the book off the shelf.

        Args:
            book_id: Book to borrow
            student: Requesting student
            pickup_date: Planned pickup (date or YYYY-MM-DD)
            return_date: Planned return (date or YYYY-MM-DD)
            today: Local calendar date (default: date.today())

        Returns:
            The created loan

        Raises:
            ValidationError: Bad dates or a requester that is not a student
            NotFoundError: Unknown book
            ConflictError: Book is not available
        """
        today = today or date.today()
        pickup = coerce_local_date(pickup_date)
        due = coerce_local_date(return_date)

        if student.role != UserRole.STUDENT or not is_valid_matricula(student.matricula):
            raise ValidationError("Only registered students can request loans")
        if pickup < today:
            raise ValidationError(f"Pickup date {pickup} is in the past")
        if pickup > due:
            raise ValidationError(
                f"Pickup date {pickup} must not be after return date {due}"
            )

        book = self._get_book(book_id)
        if not book.available:
            raise ConflictError(f"Book is not available: {book.title}")

        loan = LoanRequest(
            book_id=book.id,
            student_id=student.id,
            student_name=student.name,
            student_matricula=student.matricula,
            book_title=book.title,
            pickup_date=pickup,
            return_date=due,
            status=LoanStatus.PENDING,
        )
        loan_id = self.storage.reserve_book_and_save_loan(loan)
        logger.info(
            "Loan %s requested by %s for '%s' (%s to %s)",
            loan_id,
            student.matricula,
            book.title,
            pickup,
            due,
        )
        return loan.model_copy(update={"id": loan_id})

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def transition(self, loan_id: str, target: LoanStatus) -> LoanRequest:
        """Move a loan to ``target`` without any availability side effect.

        Raises:
            NotFoundError: Unknown loan
            InvalidTransitionError: The state machine forbids the move, or
                another writer changed the status first
        """
        loan = self.get_loan(loan_id)
        if target not in ALLOWED_TRANSITIONS[loan.status]:
            raise InvalidTransitionError(loan_id, loan.status.value, target.value)

        if not self.storage.compare_and_set_loan_status(loan_id, loan.status, target):
            current = self.get_loan(loan_id).status
            raise InvalidTransitionError(loan_id, current.value, target.value)

        logger.info("Loan %s: %s -> %s", loan_id, loan.status.value, target.value)
        return loan.model_copy(update={"status": target})

    def approve_pickup(self, loan_id: str) -> LoanRequest:
        """Confirm a PENDING loan was picked up. Availability is unchanged."""
        return self.transition(loan_id, LoanStatus.ACTIVE)

    def approve_payload(self, text: str) -> LoanRequest:
        """Approve the loan referenced by scanned transfer text.

        Raises:
            ValidationError: If the payload is partial or malformed
        """
        reference = decode_loan(text)
        return self.approve_pickup(reference.id)

    def mark_returned(self, loan_id: str) -> LoanRequest:
        """Record a return from ACTIVE or OVERDUE.

        The book is freed as well when ``release_on_return`` is set. The
        status change is committed first; if freeing the book then fails
        (for example with ``BackendUnavailableError``) the loan stays
        RETURNED and ``release_book`` puts the book back on the shelf.
        """
        loan = self.transition(loan_id, LoanStatus.RETURNED)
        if self.release_on_return:
            self._release_if_unheld(loan.book_id)
        return loan

    def mark_overdue(self, loan_id: str) -> LoanRequest:
        """Mark an ACTIVE loan overdue and free its book for other borrowers."""
        loan = self.transition(loan_id, LoanStatus.OVERDUE)
        self._release_if_unheld(loan.book_id)
        return loan

    # -------------------------------------------------------------------------
    # Availability
    # -------------------------------------------------------------------------

    def _holding_loans(self, book_id: str) -> list[LoanRequest]:
        return [
            loan
            for loan in self.list_loans(book_id=book_id)
            if loan.status in HOLDING_STATUSES
        ]

    def _release_if_unheld(self, book_id: str) -> bool:
        # The book may already be lent again after an overdue release
        holders = self._holding_loans(book_id)
        if holders:
            logger.info(
                "Book %s left unavailable: still held by loan %s", book_id, holders[0].id
            )
            return False
        released = self.storage.compare_and_set_availability(book_id, False, True)
        if released:
            logger.info("Book %s is available again", book_id)
        return released

    def release_book(self, book_id: str) -> Book:
        """Put a book back on the shelf (manual restock).

        Idempotent for a book that is already available.

        Raises:
            NotFoundError: Unknown book
            ConflictError: A PENDING or ACTIVE loan still holds the book
        """
        book = self._get_book(book_id)
        holders = self._holding_loans(book_id)
        if holders:
            raise ConflictError(
                f"Book '{book.title}' is still held by loan {holders[0].id}"
            )
        self.storage.compare_and_set_availability(book_id, False, True)
        return self._get_book(book_id)

    # -------------------------------------------------------------------------
    # Derived status
    # -------------------------------------------------------------------------

    def sweep_overdue(self, today: Optional[date] = None) -> list[LoanRequest]:
        """Persist OVERDUE for every ACTIVE loan past its return date.

        Returns:
            The loans that were marked overdue
        """
        today = today or date.today()
        late = list(
            filter_by_derived_status(
                self.list_loans(status=LoanStatus.ACTIVE), DerivedFilter.OVERDUE, today
            )
        )
        return [self.mark_overdue(loan.id) for loan in late]

    def get_stats(self, today: Optional[date] = None) -> LendingStats:
        """Get lending statistics as of ``today``."""
        today = today or date.today()
        loans = self.storage.get_loans()
        books = self.storage.get_books()

        def count(status: LoanStatus) -> int:
            return sum(1 for loan in loans if loan.status == status)

        derived = [compute_display_status(loan, today) for loan in loans]
        available = sum(1 for book in books if book.available)

        return LendingStats(
            as_of=today,
            total_loans=len(loans),
            pending=count(LoanStatus.PENDING),
            active=count(LoanStatus.ACTIVE),
            overdue=count(LoanStatus.OVERDUE),
            returned=count(LoanStatus.RETURNED),
            overdue_now=sum(1 for d in derived if d.is_overdue),
            due_soon=sum(1 for d in derived if d.is_due_soon),
            books_available=available,
            books_unavailable=len(books) - available,
        )
