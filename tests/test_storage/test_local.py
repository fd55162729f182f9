"""Tests for the local JSON storage backend."""

import json
import multiprocessing
from datetime import date

import pytest

from bibliotech.db.schemas import Book, LoanRequest, LoanStatus, User, UserRole
from bibliotech.errors import BackendUnavailableError, ConflictError, NotFoundError
from bibliotech.storage import LocalStorage


def make_request(book: Book) -> LoanRequest:
    return LoanRequest(
        book_id=book.id,
        student_id="student-1",
        student_name="Ana Torres",
        student_matricula="20240001",
        book_title=book.title,
        pickup_date=date(2024, 6, 10),
        return_date=date(2024, 6, 17),
    )


def _reserve_in_child(path, book, start, results):
    storage = LocalStorage(path)
    start.wait(timeout=30)
    try:
        storage.reserve_book_and_save_loan(make_request(book))
        results.put("ok")
    except ConflictError:
        results.put("conflict")


@pytest.fixture
def file_storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path / "library.json")


class TestInMemory:
    """Tests for the in-memory mode."""

    def test_starts_empty(self, local_storage: LocalStorage):
        assert local_storage.get_books() == []
        assert local_storage.get_loans() == []
        assert local_storage.get_users() == []

    def test_duplicate_book_id(self, local_storage: LocalStorage):
        book = local_storage.save_book(Book(id="", title="Aura", author="Carlos Fuentes"))
        with pytest.raises(ConflictError):
            local_storage.save_book(book)

    def test_loans_newest_first(self, local_storage: LocalStorage):
        book = local_storage.save_book(Book(id="", title="Aura", author="Carlos Fuentes"))
        first = local_storage.save_loan(make_request(book))
        second = local_storage.save_loan(make_request(book))

        assert [loan.id for loan in local_storage.get_loans()] == [second, first]

    def test_failed_reservation_changes_nothing(self, local_storage: LocalStorage):
        """A reservation that fails part-way leaves the book available."""
        book = local_storage.save_book(Book(id="", title="Aura", author="Carlos Fuentes"))
        loan_id = local_storage.save_loan(make_request(book))
        duplicate = make_request(book).model_copy(update={"id": loan_id})

        with pytest.raises(ConflictError):
            local_storage.reserve_book_and_save_loan(duplicate)

        assert local_storage.get_book(book.id).available is True
        assert len(local_storage.get_loans()) == 1

    def test_missing_records(self, local_storage: LocalStorage):
        with pytest.raises(NotFoundError):
            local_storage.update_loan_status("missing", LoanStatus.ACTIVE)
        with pytest.raises(NotFoundError):
            local_storage.compare_and_set_availability("missing", True, False)
        with pytest.raises(NotFoundError):
            local_storage.update_book(Book(id="missing", title="X", author="Y"))


class TestFilePersistence:
    """Tests for the on-disk mode."""

    def test_survives_reopen(self, tmp_path, file_storage: LocalStorage):
        book = file_storage.save_book(Book(id="", title="Aura", author="Carlos Fuentes"))
        loan_id = file_storage.reserve_book_and_save_loan(make_request(book))
        file_storage.save_user(User(name="Ana", role=UserRole.STUDENT, matricula="20240001"))

        reopened = LocalStorage(tmp_path / "library.json")

        assert reopened.get_book(book.id).available is False
        assert reopened.get_loan(loan_id).status == LoanStatus.PENDING
        assert reopened.lookup_user("20240001").name == "Ana"

    def test_loans_stored_camel_case(self, tmp_path, file_storage: LocalStorage):
        """Loans on disk use the same field names as the transfer payload."""
        book = file_storage.save_book(Book(id="", title="Aura", author="Carlos Fuentes"))
        file_storage.save_loan(make_request(book))

        document = json.loads((tmp_path / "library.json").read_text(encoding="utf-8"))
        stored = document["loans"][0]

        assert stored["studentMatricula"] == "20240001"
        assert stored["pickupDate"] == "2024-06-10"

    def test_missing_file_is_empty(self, file_storage: LocalStorage):
        assert file_storage.get_books() == []

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "library.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(BackendUnavailableError):
            LocalStorage(path).get_books()

    def test_failed_write_keeps_file(self, tmp_path, file_storage: LocalStorage):
        """An error inside a transaction leaves the file as it was."""
        book = file_storage.save_book(Book(id="", title="Aura", author="Carlos Fuentes"))
        before = (tmp_path / "library.json").read_text(encoding="utf-8")

        with pytest.raises(ConflictError):
            file_storage.save_book(book)

        assert (tmp_path / "library.json").read_text(encoding="utf-8") == before

    def test_two_handles_share_writes(self, tmp_path, file_storage: LocalStorage):
        other = LocalStorage(tmp_path / "library.json")
        book = file_storage.save_book(Book(id="", title="Aura", author="Carlos Fuentes"))

        other.reserve_book_and_save_loan(make_request(book))

        with pytest.raises(ConflictError):
            file_storage.reserve_book_and_save_loan(make_request(book))
        assert len(file_storage.get_loans()) == 1


class TestCrossProcess:
    """Several processes sharing one library file."""

    def test_one_reservation_wins(self, tmp_path, file_storage: LocalStorage):
        book = file_storage.save_book(Book(id="", title="Aura", author="Carlos Fuentes"))
        ctx = multiprocessing.get_context()
        start = ctx.Event()
        results = ctx.Queue()
        workers = [
            ctx.Process(
                target=_reserve_in_child,
                args=(str(tmp_path / "library.json"), book, start, results),
            )
            for _ in range(8)
        ]
        for worker in workers:
            worker.start()
        start.set()

        outcomes = [results.get(timeout=60) for _ in workers]
        for worker in workers:
            worker.join(timeout=60)

        assert outcomes.count("ok") == 1
        assert outcomes.count("conflict") == 7
        assert len(file_storage.get_loans()) == 1
        assert file_storage.get_book(book.id).available is False
