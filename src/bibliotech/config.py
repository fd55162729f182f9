"""Configuration management for BiblioTech.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

DEFAULT_ADMIN_KEY = "BIBLIO-KEY-2024"
BACKENDS = ("sqlite", "local")


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Application configuration."""

    # Storage
    backend: str
    db_path: Path
    local_path: Path
    local_fallback: bool

    # Policy
    admin_key: str
    release_on_return: bool

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        base_dir = Path.home() / ".bibliotech"

        db_path_str = os.environ.get("BIBLIOTECH_DB_PATH", str(base_dir / "library.db"))
        local_path_str = os.environ.get(
            "BIBLIOTECH_LOCAL_PATH", str(base_dir / "library.json")
        )

        return cls(
            backend=os.environ.get("BIBLIOTECH_BACKEND", "sqlite").strip().lower(),
            db_path=Path(db_path_str).expanduser(),
            local_path=Path(local_path_str).expanduser(),
            local_fallback=_env_flag("BIBLIOTECH_LOCAL_FALLBACK", False),
            admin_key=os.environ.get("BIBLIOTECH_ADMIN_KEY", DEFAULT_ADMIN_KEY),
            release_on_return=_env_flag("BIBLIOTECH_RELEASE_ON_RETURN", True),
            log_level=os.environ.get("BIBLIOTECH_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.backend not in BACKENDS:
            errors.append(
                f"Unknown backend '{self.backend}' (expected one of: {', '.join(BACKENDS)})"
            )

        path = self.local_path if self.backend == "local" else self.db_path
        if str(path) != ":memory:" and not path.parent.exists():
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
            except OSError:
                errors.append(f"Cannot create data directory: {path.parent}")

        return errors


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
