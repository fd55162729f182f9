"""Local JSON storage backend.

Keeps books, loans and users in a single JSON document, either on disk or
purely in memory. Used when no database is wanted, or as the explicit
fallback when the SQLite backend cannot be opened.
"""

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional, Union

from filelock import FileLock, Timeout

from ..db.schemas import Book, LoanRequest, LoanStatus, User, UserRole
from ..errors import BackendUnavailableError, ConflictError, NotFoundError
from ..utils import generate_uuid
from .base import StorageBackend

logger = logging.getLogger(__name__)

COLLECTIONS = ("books", "loans", "users")

# Seconds to wait for another process to finish writing the library file
LOCK_TIMEOUT = 10.0


def _empty_document() -> dict:
    return {name: [] for name in COLLECTIONS}


class LocalStorage(StorageBackend):
    """JSON document store.

    Every read-modify-write holds a thread lock and, for a file-backed
    store, an OS file lock next to the document, so separate processes
    sharing one library file see each other's writes.
    """

    name = "local"

    def __init__(self, path: Optional[Union[str, Path]] = None):
        """Initialize local storage.

        Args:
            path: JSON file to persist to. None keeps everything in memory.
        """
        self.path = Path(path).expanduser() if path else None
        self._lock = threading.RLock()
        self._file_lock = (
            FileLock(str(self.path.with_name(self.path.name + ".lock")))
            if self.path
            else None
        )
        self._memory = _empty_document()

    # ------------------------------------------------------------------
    # Document handling
    # ------------------------------------------------------------------

    def _load(self) -> dict:
        if self.path is None:
            return self._memory
        if not self.path.exists():
            return _empty_document()
        try:
            with open(self.path, encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise BackendUnavailableError(f"Cannot read {self.path}: {e}") from e

        for name in COLLECTIONS:
            document.setdefault(name, [])
        return document

    def _save(self, document: dict) -> None:
        if self.path is None:
            self._memory = document
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=".library-", suffix=".json"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
            logger.debug("Saved library document to %s", self.path)
        except OSError as e:
            raise BackendUnavailableError(f"Cannot write {self.path}: {e}") from e

    @contextmanager
    def _locked(self) -> Generator[None, None, None]:
        with self._lock:
            if self._file_lock is None:
                yield
                return

            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._file_lock.acquire(timeout=LOCK_TIMEOUT)
            except (Timeout, OSError) as e:
                raise BackendUnavailableError(f"Cannot lock {self.path}: {e}") from e
            try:
                yield
            finally:
                self._file_lock.release()

    @contextmanager
    def _transaction(self) -> Generator[dict, None, None]:
        """Load, yield for mutation, then save. Nothing is saved on error."""
        with self._locked():
            document = self._load()
            # Work on a copy so a failed mutation leaves memory untouched
            working = json.loads(json.dumps(document))
            yield working
            self._save(working)

    def _read(self) -> dict:
        with self._locked():
            return self._load()

    @staticmethod
    def _find(items: list[dict], item_id: str) -> Optional[dict]:
        return next((item for item in items if item.get("id") == item_id), None)

    # ------------------------------------------------------------------
    # Books
    # ------------------------------------------------------------------

    def get_books(self) -> list[Book]:
        books = [Book.model_validate(item) for item in self._read()["books"]]
        return sorted(books, key=lambda b: b.title)

    def get_book(self, book_id: str) -> Optional[Book]:
        item = self._find(self._read()["books"], book_id)
        return Book.model_validate(item) if item else None

    def save_book(self, book: Book) -> Book:
        stored = book.model_copy(update={"id": book.id or generate_uuid()})
        with self._transaction() as doc:
            if self._find(doc["books"], stored.id):
                raise ConflictError(f"Book id already exists: {stored.id}")
            doc["books"].append(stored.model_dump(mode="json"))
        return stored

    def update_book(self, book: Book) -> Book:
        with self._transaction() as doc:
            item = self._find(doc["books"], book.id)
            if item is None:
                raise NotFoundError("Book", book.id)
            item.update(
                title=book.title,
                author=book.author,
                description=book.description,
                cover_url=book.cover_url,
            )
            updated = Book.model_validate(item)
        return updated

    def compare_and_set_availability(
        self, book_id: str, expected: bool, new: bool
    ) -> bool:
        with self._transaction() as doc:
            return self._swap_availability(doc, book_id, expected, new)

    def _swap_availability(
        self, doc: dict, book_id: str, expected: bool, new: bool
    ) -> bool:
        item = self._find(doc["books"], book_id)
        if item is None:
            raise NotFoundError("Book", book_id)
        if item.get("available", True) != expected:
            return False
        item["available"] = new
        return True

    # ------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------

    def get_loans(self) -> list[LoanRequest]:
        # Newest first, matching the SQLite backend
        items = reversed(self._read()["loans"])
        return [LoanRequest.model_validate(item) for item in items]

    def get_loan(self, loan_id: str) -> Optional[LoanRequest]:
        item = self._find(self._read()["loans"], loan_id)
        return LoanRequest.model_validate(item) if item else None

    def save_loan(self, loan: LoanRequest) -> str:
        with self._transaction() as doc:
            return self._insert_loan(doc, loan)

    def _insert_loan(self, doc: dict, loan: LoanRequest) -> str:
        loan_id = loan.id or generate_uuid()
        if self._find(doc["loans"], loan_id):
            raise ConflictError(f"Loan id already exists: {loan_id}")
        stored = loan.model_copy(update={"id": loan_id})
        doc["loans"].append(stored.model_dump(mode="json", by_alias=True))
        return loan_id

    def update_loan_status(self, loan_id: str, status: LoanStatus) -> None:
        with self._transaction() as doc:
            item = self._find(doc["loans"], loan_id)
            if item is None:
                raise NotFoundError("Loan", loan_id)
            item["status"] = status.value

    def compare_and_set_loan_status(
        self, loan_id: str, expected: LoanStatus, new: LoanStatus
    ) -> bool:
        with self._transaction() as doc:
            item = self._find(doc["loans"], loan_id)
            if item is None:
                raise NotFoundError("Loan", loan_id)
            if item.get("status") != expected.value:
                return False
            item["status"] = new.value
            return True

    def reserve_book_and_save_loan(self, loan: LoanRequest) -> str:
        with self._transaction() as doc:
            if not self._swap_availability(doc, loan.book_id, True, False):
                raise ConflictError(f"Book is not available: {loan.book_title}")
            return self._insert_loan(doc, loan)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_users(self) -> list[User]:
        users = [User.model_validate(item) for item in self._read()["users"]]
        return sorted(users, key=lambda u: u.name)

    def lookup_user(self, identifier: str) -> Optional[User]:
        items = self._read()["users"]
        item = next((u for u in items if u.get("matricula") == identifier), None)
        if item is None:
            item = next((u for u in items if u.get("name") == identifier), None)
        return User.model_validate(item) if item else None

    def save_user(self, user: User) -> User:
        stored = user.model_copy(update={"id": user.id or generate_uuid()})
        with self._transaction() as doc:
            for item in doc["users"]:
                if user.role == UserRole.STUDENT and item.get("matricula") == user.matricula:
                    raise ConflictError(
                        f"A student with matricula {user.matricula} is already registered"
                    )
                if (
                    user.role == UserRole.ADMIN
                    and item.get("role") == UserRole.ADMIN.value
                    and item.get("name") == user.name
                ):
                    raise ConflictError(f"An admin named {user.name} is already registered")
            doc["users"].append(stored.model_dump(mode="json"))
        return stored
