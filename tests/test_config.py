"""
Tests for cadence.config.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from cadence.config import (
    JournalMode,
    StoreConfig,
    SynchronousLevel,
    get_store_config,
    load_store_config,
    reload_store_config,
)


class TestStoreConfig:
    def test_default_file_loads(self) -> None:
        config = load_store_config()

        assert config.database.path == "cadence.db"
        assert config.database.journal_mode is JournalMode.WAL
        assert config.database.synchronous is SynchronousLevel.NORMAL
        assert config.database.busy_timeout_ms == 5000
        assert config.retry.max_attempts == 3
        assert config.retry.backoff_factor == 2.0

    def test_custom_file(self, tmp_path: Path) -> None:
        path = tmp_path / "store.toml"
        path.write_text(
            """
[database]
path = "/var/lib/cadence/catalog.db"
journal_mode = "delete"
synchronous = "full"

[retry]
max_attempts = 5
initial_delay = 0.5
max_delay = 4.0
""",
            encoding="utf-8",
        )

        config = load_store_config(path)

        assert config.database.path == "/var/lib/cadence/catalog.db"
        assert config.database.journal_mode is JournalMode.DELETE
        assert config.database.synchronous is SynchronousLevel.FULL
        assert config.retry.max_attempts == 5
        assert config.retry.initial_delay == 0.5
        assert config.retry.max_delay == 4.0

    def test_missing_sections_use_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.toml"
        path.write_text("", encoding="utf-8")

        assert load_store_config(path) == StoreConfig()

    def test_invalid_values_fall_back(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "bad.toml"
        path.write_text(
            """
[database]
journal_mode = "SIDEWAYS"
busy_timeout_ms = -1

[retry]
max_attempts = 0
backoff_factor = "fast"
initial_delay = 1.0
max_delay = 0.5
""",
            encoding="utf-8",
        )

        with caplog.at_level(logging.WARNING, logger="cadence.config"):
            config = load_store_config(path)

        assert config.database.journal_mode is JournalMode.WAL
        assert config.database.busy_timeout_ms == 5000
        assert config.retry.max_attempts == 3
        assert config.retry.backoff_factor == 2.0
        assert config.retry.max_delay == 1.0
        assert "SIDEWAYS" in caplog.text

    def test_singleton_and_reload(self) -> None:
        first = get_store_config()
        assert get_store_config() is first

        reloaded = reload_store_config()
        assert reloaded is not first
        assert get_store_config() is reloaded
        assert reloaded == first
