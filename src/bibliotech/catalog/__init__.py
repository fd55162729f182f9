"""Book catalog module."""

from .manager import AVAILABILITY_FILTERS, DEFAULT_BOOKS, CatalogManager

__all__ = ["AVAILABILITY_FILTERS", "DEFAULT_BOOKS", "CatalogManager"]
