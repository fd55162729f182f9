"""Storage backends.

``open_storage`` builds the backend named by the configuration. A failure to
open SQLite is raised, unless the local fallback is switched on, in which
case the switch is logged as a warning.
"""

import logging
from typing import Optional

from ..config import Config, get_config
from ..errors import BackendUnavailableError
from .base import StorageBackend
from .local import LocalStorage

logger = logging.getLogger(__name__)


def open_storage(config: Optional[Config] = None) -> StorageBackend:
    """Open the configured storage backend.

    Args:
        config: Configuration to use (default: global config)

    Returns:
        A ready-to-use backend

    Raises:
        BackendUnavailableError: If the backend cannot be opened and no
            fallback is configured
    """
    config = config or get_config()

    if config.backend == "local":
        return LocalStorage(config.local_path)
    if config.backend != "sqlite":
        raise BackendUnavailableError(f"Unknown storage backend: {config.backend}")

    # Imported here: db.sqlite depends on storage.base
    from ..db.sqlite import Database

    try:
        db = Database(str(config.db_path))
        db.create_tables()
        return db
    except BackendUnavailableError as e:
        if not config.local_fallback:
            raise
        logger.warning(
            "SQLite backend unavailable (%s); falling back to local storage at %s",
            e,
            config.local_path,
        )
        return LocalStorage(config.local_path)


# Global storage instance
_storage: Optional[StorageBackend] = None


def get_storage() -> StorageBackend:
    """Get or create the global storage instance."""
    global _storage
    if _storage is None:
        _storage = open_storage()
    return _storage


def reset_storage() -> None:
    """Reset the global storage instance. Used for testing."""
    global _storage
    if _storage is not None:
        _storage.close()
    _storage = None


__all__ = [
    "StorageBackend",
    "LocalStorage",
    "open_storage",
    "get_storage",
    "reset_storage",
]
