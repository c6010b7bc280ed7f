"""
Configuration management for Cadence.

This module loads the catalog store settings (database location, SQLite
pragmas, retry policy) from a TOML file.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent


class JournalMode(Enum):
    """SQLite journal modes accepted in `[database].journal_mode`."""

    WAL = "WAL"
    DELETE = "DELETE"
    TRUNCATE = "TRUNCATE"
    MEMORY = "MEMORY"


class SynchronousLevel(Enum):
    """SQLite synchronous levels accepted in `[database].synchronous`."""

    OFF = "OFF"
    NORMAL = "NORMAL"
    FULL = "FULL"
    EXTRA = "EXTRA"


@dataclass(frozen=True)
class DatabaseSettings:
    """Where the catalog lives and how the connection is tuned."""

    path: str = "cadence.db"
    journal_mode: JournalMode = JournalMode.WAL
    synchronous: SynchronousLevel = SynchronousLevel.NORMAL
    busy_timeout_ms: int = 5000


@dataclass(frozen=True)
class RetrySettings:
    """Backoff policy for write transactions that hit a locked database."""

    max_attempts: int = 3
    initial_delay: float = 0.1
    backoff_factor: float = 2.0
    max_delay: float = 2.0


@dataclass(frozen=True)
class StoreConfig:
    """Loaded store configuration."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)


def _parse_enum(enum_cls: type[Enum], value: Any, default: Enum, key: str) -> Any:
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        logger.warning("Invalid %s %r in store config, using %s", key, value, default.value)
        return default


def _parse_number(value: Any, default: Any, key: str, *, minimum: float) -> Any:
    kind = type(default)
    try:
        number = kind(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s %r in store config, using %s", key, value, default)
        return default
    if number < minimum:
        logger.warning("%s must be >= %s (got %r), using %s", key, minimum, value, default)
        return default
    return number


def _parse_database(data: dict[str, Any]) -> DatabaseSettings:
    defaults = DatabaseSettings()
    return DatabaseSettings(
        path=str(data.get("path", defaults.path)),
        journal_mode=_parse_enum(
            JournalMode, data.get("journal_mode", "WAL"), defaults.journal_mode, "journal_mode"
        ),
        synchronous=_parse_enum(
            SynchronousLevel,
            data.get("synchronous", "NORMAL"),
            defaults.synchronous,
            "synchronous",
        ),
        busy_timeout_ms=_parse_number(
            data.get("busy_timeout_ms", defaults.busy_timeout_ms),
            defaults.busy_timeout_ms,
            "busy_timeout_ms",
            minimum=0,
        ),
    )


def _parse_retry(data: dict[str, Any]) -> RetrySettings:
    defaults = RetrySettings()
    initial_delay = _parse_number(
        data.get("initial_delay", defaults.initial_delay),
        defaults.initial_delay,
        "initial_delay",
        minimum=0,
    )
    max_delay = _parse_number(
        data.get("max_delay", defaults.max_delay), defaults.max_delay, "max_delay", minimum=0
    )
    if max_delay < initial_delay:
        logger.warning(
            "max_delay %s is below initial_delay %s, raising it", max_delay, initial_delay
        )
        max_delay = initial_delay
    return RetrySettings(
        max_attempts=_parse_number(
            data.get("max_attempts", defaults.max_attempts),
            defaults.max_attempts,
            "max_attempts",
            minimum=1,
        ),
        initial_delay=initial_delay,
        backoff_factor=_parse_number(
            data.get("backoff_factor", defaults.backoff_factor),
            defaults.backoff_factor,
            "backoff_factor",
            minimum=1,
        ),
        max_delay=max_delay,
    )


def load_store_config(config_path: Path | None = None) -> StoreConfig:
    """
    Load store configuration from TOML file.

    Args:
        config_path: Path to store.toml. If None, uses default location.

    Returns:
        Loaded StoreConfig instance.
    """
    if config_path is None:
        config_path = CONFIG_DIR / "store.toml"

    logger.debug("Loading store config from %s", config_path)

    with config_path.open("rb") as f:
        data = tomllib.load(f)

    return StoreConfig(
        database=_parse_database(data.get("database", {})),
        retry=_parse_retry(data.get("retry", {})),
    )


# Global singleton instance (lazy loaded)
_store_config: StoreConfig | None = None


def get_store_config() -> StoreConfig:
    """
    Get the global store configuration (lazy loaded singleton).

    Returns:
        The StoreConfig instance.
    """
    global _store_config

    if _store_config is None:
        _store_config = load_store_config()

    return _store_config


def reload_store_config() -> StoreConfig:
    """
    Force reload of store configuration.

    Returns:
        The newly loaded StoreConfig instance.
    """
    global _store_config
    _store_config = load_store_config()
    return _store_config
