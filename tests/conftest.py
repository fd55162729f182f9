"""Pytest configuration and shared fixtures.

This module provides fixtures for testing BiblioTech: both storage
backends, the managers built on them, and sample books, students and loans.
"""

from datetime import date, timedelta
from typing import Callable, Generator

import pytest

from bibliotech.accounts import AccountManager
from bibliotech.catalog import CatalogManager
from bibliotech.config import reset_config
from bibliotech.db.schemas import Book, BookCreate, LoanRequest, LoanStatus, User
from bibliotech.db.sqlite import Database
from bibliotech.lending import LoanEngine
from bibliotech.storage import LocalStorage, StorageBackend, reset_storage

TEST_ADMIN_KEY = "test-admin-key"


# ============================================================================
# Global State
# ============================================================================


@pytest.fixture(autouse=True)
def clean_globals() -> Generator[None, None, None]:
    """Reset cached config and storage around every test."""
    reset_config()
    reset_storage()
    yield
    reset_storage()
    reset_config()


# ============================================================================
# Storage Fixtures
# ============================================================================


@pytest.fixture
def db() -> Generator[Database, None, None]:
    """Create an in-memory database for testing."""
    database = Database(":memory:")
    database.create_tables()
    yield database
    database.close()


@pytest.fixture
def local_storage() -> LocalStorage:
    """Create an in-memory local storage backend."""
    return LocalStorage()


@pytest.fixture(params=["sqlite", "local"])
def storage(request, db: Database, local_storage: LocalStorage) -> StorageBackend:
    """Run the test against each storage backend."""
    return db if request.param == "sqlite" else local_storage


# ============================================================================
# Manager Fixtures
# ============================================================================


@pytest.fixture
def engine(storage: StorageBackend) -> LoanEngine:
    """Create a LoanEngine that releases books on return."""
    return LoanEngine(storage, release_on_return=True)


@pytest.fixture
def catalog(storage: StorageBackend) -> CatalogManager:
    """Create a CatalogManager with test storage."""
    return CatalogManager(storage)


@pytest.fixture
def accounts(storage: StorageBackend) -> AccountManager:
    """Create an AccountManager with a known admin key."""
    return AccountManager(storage, admin_key=TEST_ADMIN_KEY)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def today() -> date:
    """Fixed calendar day used by date-sensitive tests."""
    return date(2024, 6, 10)


@pytest.fixture
def book(catalog: CatalogManager) -> Book:
    """Create an available book."""
    return catalog.add_book(
        BookCreate(
            title="Cien años de soledad",
            author="Gabriel García Márquez",
            description="Macondo",
        )
    )


@pytest.fixture
def student(accounts: AccountManager) -> User:
    """Register a sample student."""
    return accounts.register_student("Ana Torres", "20240001")


@pytest.fixture
def other_student(accounts: AccountManager) -> User:
    """Register a second student."""
    return accounts.register_student("Luis Pérez", "20240002")


@pytest.fixture
def pending_loan(
    engine: LoanEngine, book: Book, student: User, today: date
) -> LoanRequest:
    """Create a PENDING loan for one week from today."""
    return engine.create_loan_request(
        book.id, student, today, today + timedelta(days=7), today=today
    )


@pytest.fixture
def active_loan(engine: LoanEngine, pending_loan: LoanRequest) -> LoanRequest:
    """Create an ACTIVE loan."""
    return engine.approve_pickup(pending_loan.id)


@pytest.fixture
def make_loan() -> Callable[..., LoanRequest]:
    """Factory for unsaved loans, used by pure status computations."""

    def _make(
        return_date: date,
        status: LoanStatus = LoanStatus.ACTIVE,
        pickup_date: date = date(2024, 6, 1),
        loan_id: str = "loan-1",
    ) -> LoanRequest:
        return LoanRequest(
            id=loan_id,
            book_id="book-1",
            student_id="student-1",
            student_name="Ana Torres",
            student_matricula="20240001",
            book_title="Cien años de soledad",
            pickup_date=min(pickup_date, return_date),
            return_date=return_date,
            status=status,
        )

    return _make
