"""Storage port.

Every backend (SQLite, local JSON file) implements ``StorageBackend``. The
lifecycle engine and the managers only talk to this interface.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..db.schemas import Book, LoanRequest, LoanStatus, User


class StorageBackend(ABC):
    """Base class for all storage backends.

    Backend failures must surface as ``BackendUnavailableError``. Unknown ids
    on update raise ``NotFoundError``. The ``compare_and_set_*`` methods and
    ``reserve_book_and_save_loan`` are atomic with respect to other calls on
    the same backend.
    """

    name: str = "unknown"

    # ------------------------------------------------------------------
    # Books
    # ------------------------------------------------------------------

    @abstractmethod
    def get_books(self) -> list[Book]:
        """Return every book in the catalog."""

    @abstractmethod
    def get_book(self, book_id: str) -> Optional[Book]:
        """Return a book by id, or None."""

    @abstractmethod
    def save_book(self, book: Book) -> Book:
        """Insert a new book. An empty id is replaced with a generated one."""

    @abstractmethod
    def update_book(self, book: Book) -> Book:
        """Overwrite a book's descriptive fields. Availability is left alone."""

    @abstractmethod
    def compare_and_set_availability(
        self, book_id: str, expected: bool, new: bool
    ) -> bool:
        """Set ``available`` to ``new`` only if it currently equals ``expected``.

        Returns:
            True if the flag was written
        """

    # ------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------

    @abstractmethod
    def get_loans(self) -> list[LoanRequest]:
        """Return every loan request."""

    @abstractmethod
    def get_loan(self, loan_id: str) -> Optional[LoanRequest]:
        """Return a loan by id, or None."""

    @abstractmethod
    def save_loan(self, loan: LoanRequest) -> str:
        """Insert a loan request and return its id."""

    @abstractmethod
    def update_loan_status(self, loan_id: str, status: LoanStatus) -> None:
        """Unconditionally overwrite a loan's status."""

    @abstractmethod
    def compare_and_set_loan_status(
        self, loan_id: str, expected: LoanStatus, new: LoanStatus
    ) -> bool:
        """Set the status to ``new`` only if it currently equals ``expected``.

        Returns:
            True if the status was written
        """

    @abstractmethod
    def reserve_book_and_save_loan(self, loan: LoanRequest) -> str:
        """Claim the loan's book (available -> unavailable) and insert the loan.

        Both happen or neither does.

        Raises:
            NotFoundError: If the book does not exist
            ConflictError: If the book is not available
        """

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @abstractmethod
    def get_users(self) -> list[User]:
        """Return every registered user."""

    @abstractmethod
    def lookup_user(self, identifier: str) -> Optional[User]:
        """Find a user by matricula, falling back to name."""

    @abstractmethod
    def save_user(self, user: User) -> User:
        """Register a user.

        Raises:
            ConflictError: If the matricula (students) or the admin name is
                already registered
        """

    def close(self) -> None:
        """Release backend resources."""
        return None
