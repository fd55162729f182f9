"""Catalog manager for book operations."""

import logging
from typing import Optional
from uuid import uuid4

from ..db.schemas import Book, BookCreate, BookUpdate
from ..errors import NotFoundError, ValidationError
from ..storage import StorageBackend, get_storage

logger = logging.getLogger(__name__)

AVAILABILITY_FILTERS = ("all", "available", "unavailable")

# Inserted by seed_defaults() into an empty catalog
DEFAULT_BOOKS = [
    BookCreate(
        title="Cien años de soledad",
        author="Gabriel García Márquez",
        description="La historia de la familia Buendía en el pueblo ficticio de Macondo.",
        cover_url="https://picsum.photos/200/300?random=1",
    ),
    BookCreate(
        title="Don Quijote de la Mancha",
        author="Miguel de Cervantes",
        description=(
            "Las aventuras de un hidalgo pobre que lee tantas novelas de "
            "caballería que enloquece."
        ),
        cover_url="https://picsum.photos/200/300?random=2",
    ),
]


def placeholder_cover() -> str:
    """Random placeholder image for books added without a cover."""
    return f"https://picsum.photos/200/300?random={uuid4().int % 100000}"


class CatalogManager:
    """Manages the book catalog."""

    def __init__(self, storage: Optional[StorageBackend] = None):
        """Initialize catalog manager.

        Args:
            storage: Storage backend (default: global storage)
        """
        self.storage = storage or get_storage()

    def add_book(self, data: BookCreate) -> Book:
        """Add a new, available book to the catalog.

        Args:
            data: Book creation data

        Returns:
            Created book
        """
        book = Book(
            id="",
            title=data.title,
            author=data.author,
            description=data.description,
            cover_url=data.cover_url or placeholder_cover(),
            available=True,
        )
        book = self.storage.save_book(book)
        logger.info("Added book %s: '%s'", book.id, book.title)
        return book

    def get_book(self, book_id: str) -> Book:
        """Get a book by ID.

        Raises:
            NotFoundError: If no such book exists
        """
        book = self.storage.get_book(book_id)
        if book is None:
            raise NotFoundError("Book", book_id)
        return book

    def edit_book(self, book_id: str, data: BookUpdate) -> Book:
        """Edit a book's descriptive fields. Availability is preserved.

        Args:
            book_id: Book ID
            data: Fields to change

        Returns:
            Updated book
        """
        book = self.get_book(book_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        updated = book.model_copy(update=changes)
        return self.storage.update_book(updated)

    def list_books(self, availability: str = "all") -> list[Book]:
        """List books, optionally by availability.

        Args:
            availability: all, available or unavailable
        """
        if availability not in AVAILABILITY_FILTERS:
            raise ValidationError(
                f"Unknown availability filter '{availability}' "
                f"(expected one of: {', '.join(AVAILABILITY_FILTERS)})"
            )

        books = self.storage.get_books()
        if availability == "available":
            return [b for b in books if b.available]
        if availability == "unavailable":
            return [b for b in books if not b.available]
        return books

    def search_books(self, term: str, availability: str = "all") -> list[Book]:
        """Case-insensitive search on title or author."""
        needle = term.strip().lower()
        return [
            book
            for book in self.list_books(availability)
            if needle in book.title.lower() or needle in book.author.lower()
        ]

    def seed_defaults(self) -> list[Book]:
        """Insert the sample books if the catalog is empty.

        Returns:
            The books inserted (empty if the catalog already had books)
        """
        if self.storage.get_books():
            return []
        logger.info("Empty catalog: seeding %d sample books", len(DEFAULT_BOOKS))
        return [self.add_book(data) for data in DEFAULT_BOOKS]
