"""Account manager: registration and login lookup.

There is no password check. Students are identified by matricula, admins
by name, and admin registration is gated by a shared secret key.
"""

import hmac
import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from ..config import get_config
from ..db.schemas import User, UserRole
from ..errors import NotFoundError, ValidationError
from ..storage import StorageBackend, get_storage
from ..utils import is_valid_matricula

logger = logging.getLogger(__name__)


class AccountManager:
    """Manages student and admin accounts."""

    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        admin_key: Optional[str] = None,
    ):
        """Initialize account manager.

        Args:
            storage: Storage backend (default: global storage)
            admin_key: Shared secret for admin registration (default: config)
        """
        self.storage = storage or get_storage()
        self.admin_key = admin_key if admin_key is not None else get_config().admin_key

    def _build_user(self, **fields) -> User:
        try:
            return User(**fields)
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e) from e

    def register_student(self, name: str, matricula: str) -> User:
        """Register a student.

        Raises:
            ValidationError: Matricula is not exactly 8 digits, or no name
            ConflictError: Matricula already registered
        """
        matricula = matricula.strip()
        if not is_valid_matricula(matricula):
            raise ValidationError("Matricula must be exactly 8 digits")

        user = self._build_user(name=name, role=UserRole.STUDENT, matricula=matricula)
        user = self.storage.save_user(user)
        logger.info("Registered student %s (%s)", user.name, user.matricula)
        return user

    def register_admin(self, name: str, secret_key: str) -> User:
        """Register an admin after checking the shared secret.

        Raises:
            ValidationError: Wrong secret key, or no name
            ConflictError: Admin name already registered
        """
        if not hmac.compare_digest(secret_key.encode(), self.admin_key.encode()):
            logger.warning("Admin registration for %r rejected: wrong key", name)
            raise ValidationError("Incorrect admin key")

        user = self._build_user(name=name, role=UserRole.ADMIN)
        user = self.storage.save_user(user)
        logger.info("Registered admin %s", user.name)
        return user

    def login(self, identifier: str) -> User:
        """Look up a user by matricula or name.

        Raises:
            NotFoundError: No user with that identifier
        """
        user = self.storage.lookup_user(identifier.strip())
        if user is None:
            raise NotFoundError("User", identifier)
        return user
