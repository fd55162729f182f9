"""SQLite database operations.

Handles database connection, session management, and the storage port
operations on top of SQLAlchemy. Status and availability changes are single
conditional UPDATE statements, so two racing transitions cannot both win.
"""

import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..errors import BackendUnavailableError, ConflictError, NotFoundError
from ..storage.base import StorageBackend
from ..utils import format_local_date, generate_uuid
from . import models
from .schemas import Book, LoanRequest, LoanStatus, User, UserRole

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _book_record(row: models.Book) -> Book:
    return Book.model_validate(row)


def _loan_record(row: models.Loan) -> LoanRequest:
    return LoanRequest(
        id=row.id,
        book_id=row.book_id,
        student_id=row.student_id,
        student_name=row.student_name,
        student_matricula=row.student_matricula,
        book_title=row.book_title,
        pickup_date=row.pickup_date,
        return_date=row.return_date,
        status=LoanStatus(row.status),
    )


def _user_record(row: models.User) -> User:
    return User.model_validate(row)


class Database(StorageBackend):
    """Database connection and operations manager."""

    name = "sqlite"

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     BIBLIOTECH_DB_PATH env var or default location.
        """
        if db_path is None:
            db_path = os.environ.get(
                "BIBLIOTECH_DB_PATH",
                str(Path.home() / ".bibliotech" / "library.db"),
            )

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # This ensures all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackendUnavailableError(
                f"Cannot create database directory {self.db_path.parent}: {e}"
            ) from e

    def create_tables(self) -> None:
        """Create all database tables."""
        try:
            models.Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise BackendUnavailableError(f"Cannot open database {self.db_path}: {e}") from e

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager.

        SQLAlchemy errors leave as ``ConflictError`` (integrity violations) or
        ``BackendUnavailableError`` (everything else).
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise ConflictError(f"Duplicate or conflicting record: {e.orig}") from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Database error on %s: %s", self.db_path, e)
            raise BackendUnavailableError(f"Database error: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # Book Operations
    # ========================================================================

    def get_books(self) -> list[Book]:
        with self.get_session() as s:
            rows = s.execute(select(models.Book).order_by(models.Book.title)).scalars()
            return [_book_record(row) for row in rows]

    def get_book(self, book_id: str) -> Optional[Book]:
        with self.get_session() as s:
            row = s.get(models.Book, book_id)
            return _book_record(row) if row else None

    def save_book(self, book: Book) -> Book:
        with self.get_session() as s:
            row = models.Book(
                id=book.id or generate_uuid(),
                title=book.title,
                author=book.author,
                description=book.description,
                cover_url=book.cover_url,
                available=book.available,
            )
            s.add(row)
            s.flush()
            return _book_record(row)

    def update_book(self, book: Book) -> Book:
        with self.get_session() as s:
            row = s.get(models.Book, book.id)
            if not row:
                raise NotFoundError("Book", book.id)

            row.title = book.title
            row.author = book.author
            row.description = book.description
            row.cover_url = book.cover_url
            row.updated_at = _now()
            s.flush()
            return _book_record(row)

    def compare_and_set_availability(
        self, book_id: str, expected: bool, new: bool
    ) -> bool:
        with self.get_session() as s:
            return self._swap_availability(s, book_id, expected, new)

    def _swap_availability(
        self, s: Session, book_id: str, expected: bool, new: bool
    ) -> bool:
        result = s.execute(
            update(models.Book)
            .where(models.Book.id == book_id, models.Book.available == expected)
            .values(available=new, updated_at=_now())
        )
        if result.rowcount == 0:
            if s.get(models.Book, book_id) is None:
                raise NotFoundError("Book", book_id)
            return False
        return True

    # ========================================================================
    # Loan Operations
    # ========================================================================

    def get_loans(self) -> list[LoanRequest]:
        with self.get_session() as s:
            stmt = select(models.Loan).order_by(models.Loan.created_at.desc())
            return [_loan_record(row) for row in s.execute(stmt).scalars()]

    def get_loan(self, loan_id: str) -> Optional[LoanRequest]:
        with self.get_session() as s:
            row = s.get(models.Loan, loan_id)
            return _loan_record(row) if row else None

    def save_loan(self, loan: LoanRequest) -> str:
        with self.get_session() as s:
            return self._insert_loan(s, loan)

    def _insert_loan(self, s: Session, loan: LoanRequest) -> str:
        row = models.Loan(
            id=loan.id or generate_uuid(),
            book_id=loan.book_id,
            student_id=loan.student_id,
            student_name=loan.student_name,
            student_matricula=loan.student_matricula,
            book_title=loan.book_title,
            pickup_date=format_local_date(loan.pickup_date),
            return_date=format_local_date(loan.return_date),
            status=loan.status.value,
        )
        s.add(row)
        s.flush()
        return row.id

    def update_loan_status(self, loan_id: str, status: LoanStatus) -> None:
        with self.get_session() as s:
            row = s.get(models.Loan, loan_id)
            if not row:
                raise NotFoundError("Loan", loan_id)
            row.status = status.value
            row.updated_at = _now()

    def compare_and_set_loan_status(
        self, loan_id: str, expected: LoanStatus, new: LoanStatus
    ) -> bool:
        with self.get_session() as s:
            result = s.execute(
                update(models.Loan)
                .where(models.Loan.id == loan_id, models.Loan.status == expected.value)
                .values(status=new.value, updated_at=_now())
            )
            if result.rowcount == 0:
                if s.get(models.Loan, loan_id) is None:
                    raise NotFoundError("Loan", loan_id)
                return False
            return True

    def reserve_book_and_save_loan(self, loan: LoanRequest) -> str:
        with self.get_session() as s:
            if not self._swap_availability(s, loan.book_id, True, False):
                raise ConflictError(f"Book is not available: {loan.book_title}")
            return self._insert_loan(s, loan)

    # ========================================================================
    # User Operations
    # ========================================================================

    def get_users(self) -> list[User]:
        with self.get_session() as s:
            rows = s.execute(select(models.User).order_by(models.User.name)).scalars()
            return [_user_record(row) for row in rows]

    def lookup_user(self, identifier: str) -> Optional[User]:
        with self.get_session() as s:
            row = s.execute(
                select(models.User).where(models.User.matricula == identifier)
            ).scalars().first()
            if not row:
                row = s.execute(
                    select(models.User)
                    .where(models.User.name == identifier)
                    .order_by(models.User.created_at)
                ).scalars().first()
            return _user_record(row) if row else None

    def save_user(self, user: User) -> User:
        with self.get_session() as s:
            if user.role == UserRole.STUDENT:
                stmt = select(models.User).where(models.User.matricula == user.matricula)
                message = f"A student with matricula {user.matricula} is already registered"
            else:
                stmt = select(models.User).where(
                    models.User.name == user.name,
                    models.User.role == UserRole.ADMIN.value,
                )
                message = f"An admin named {user.name} is already registered"

            if s.execute(stmt).scalars().first():
                raise ConflictError(message)

            row = models.User(
                id=user.id or generate_uuid(),
                name=user.name,
                role=user.role.value,
                matricula=user.matricula,
                password=user.password,
            )
            s.add(row)
            s.flush()
            return _user_record(row)

