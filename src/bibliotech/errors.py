"""Exceptions raised by BiblioTech operations.

Every failure surfaced by the engine, the managers or a storage backend is
one of these. The CLI catches ``BiblioTechError`` and reports it.
"""

from typing import Optional


class BiblioTechError(Exception):
    """Base exception for all BiblioTech errors."""

    pass


class NotFoundError(BiblioTechError):
    """Raised when a referenced loan, book or user does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class InvalidTransitionError(BiblioTechError):
    """Raised when a loan status change is not allowed."""

    def __init__(self, loan_id: str, current: Optional[str], target: str):
        self.loan_id = loan_id
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move loan {loan_id} from {current} to {target}"
        )


class ValidationError(BiblioTechError, ValueError):
    """Raised for malformed input (matricula, dates, book fields, payloads).

    Also a ValueError, so pydantic validators may raise it directly.
    """

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationError":
        """Build from a pydantic ValidationError, keeping the first message."""
        errors = exc.errors()
        if not errors:
            return cls(str(exc))
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "invalid value")
        if location:
            return cls(f"{location}: {message}")
        return cls(message)


class ConflictError(ValidationError):
    """Raised on duplicate registration or when a book is already on loan."""

    pass


class BackendUnavailableError(BiblioTechError):
    """Raised when the storage backend cannot be reached."""

    pass
