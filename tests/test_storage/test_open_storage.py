"""Tests for backend selection."""

import logging
from pathlib import Path

import pytest

from bibliotech.config import Config
from bibliotech.db.sqlite import Database
from bibliotech.errors import BackendUnavailableError
from bibliotech.storage import LocalStorage, get_storage, open_storage, reset_storage


def make_config(tmp_path: Path, **overrides) -> Config:
    fields = dict(
        backend="sqlite",
        db_path=tmp_path / "library.db",
        local_path=tmp_path / "library.json",
        local_fallback=False,
        admin_key="key",
        release_on_return=True,
        log_level="WARNING",
    )
    fields.update(overrides)
    return Config(**fields)


@pytest.fixture
def blocked_db_path(tmp_path) -> Path:
    """A database path whose parent is a regular file."""
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    return blocker / "library.db"


class TestOpenStorage:
    """Tests for open_storage."""

    def test_sqlite(self, tmp_path):
        storage = open_storage(make_config(tmp_path))

        assert isinstance(storage, Database)
        assert storage.get_books() == []
        storage.close()

    def test_local(self, tmp_path):
        storage = open_storage(make_config(tmp_path, backend="local"))

        assert isinstance(storage, LocalStorage)
        assert storage.path == tmp_path / "library.json"

    def test_unknown_backend(self, tmp_path):
        with pytest.raises(BackendUnavailableError):
            open_storage(make_config(tmp_path, backend="firebase"))

    def test_failure_is_raised_without_fallback(self, tmp_path, blocked_db_path):
        with pytest.raises(BackendUnavailableError):
            open_storage(make_config(tmp_path, db_path=blocked_db_path))

    def test_fallback_is_logged(self, tmp_path, blocked_db_path, caplog):
        """With the fallback on, the switch to local storage is a warning."""
        config = make_config(tmp_path, db_path=blocked_db_path, local_fallback=True)

        with caplog.at_level(logging.WARNING, logger="bibliotech.storage"):
            storage = open_storage(config)

        assert isinstance(storage, LocalStorage)
        assert "falling back to local storage" in caplog.text


class TestGlobalStorage:
    """Tests for the cached global storage."""

    def test_uses_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BIBLIOTECH_BACKEND", "local")
        monkeypatch.setenv("BIBLIOTECH_LOCAL_PATH", str(tmp_path / "lib.json"))

        storage = get_storage()

        assert isinstance(storage, LocalStorage)
        assert get_storage() is storage

        reset_storage()
        assert get_storage() is not storage
