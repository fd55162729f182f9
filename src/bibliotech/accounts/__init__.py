"""Student and admin accounts."""

from .manager import AccountManager

__all__ = ["AccountManager"]
