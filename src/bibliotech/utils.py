"""Small helpers shared across BiblioTech: ids, calendar dates, matriculas."""

import re
from datetime import date
from typing import Optional, Union
from uuid import uuid4

from .errors import ValidationError

ISO_DATE_RE = re.compile(r"([0-9]{4})-([0-9]{2})-([0-9]{2})")
MATRICULA_RE = re.compile(r"[0-9]{8}")


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def parse_local_date(value: str) -> date:
    """
    Parse a ``YYYY-MM-DD`` string into a local calendar date.

    The string is split into integer components, so no timezone can shift
    the result by a day.

    Args:
        value: Date text, exactly 4-2-2 zero-padded digits

    Returns:
        The calendar date

    Raises:
        ValidationError: If the text is not a valid ``YYYY-MM-DD`` date

    Example:
        >>> parse_local_date("2024-06-10")
        datetime.date(2024, 6, 10)
    """
    match = ISO_DATE_RE.fullmatch(value) if isinstance(value, str) else None
    if not match:
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD")

    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError as e:
        raise ValidationError(f"Invalid date '{value}': {e}") from e


def format_local_date(value: date) -> str:
    """Format a calendar date as ``YYYY-MM-DD``."""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def coerce_local_date(value: Union[date, str]) -> date:
    """Accept a date or ``YYYY-MM-DD`` text and return a date."""
    if isinstance(value, str):
        return parse_local_date(value)
    # datetime is a date subclass; a time component is not accepted
    if type(value) is date:
        return value
    raise ValidationError(f"Expected a calendar date, got {type(value).__name__}")


def is_valid_matricula(value: Optional[str]) -> bool:
    """Check a student matricula is exactly 8 digits.

    Example:
        >>> is_valid_matricula("20241234")
        True
        >>> is_valid_matricula("2024-123")
        False
    """
    return bool(value) and bool(MATRICULA_RE.fullmatch(value))
