"""Runtime configuration model for meetvault.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from core.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_DB_PATH,
    DEFAULT_LOG_LEVEL,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_SNAPSHOT_PATH,
    SUPPORTED_LOG_LEVELS,
)
from core.errors import VaultConfigError

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


@dataclass(frozen=True)
class VaultConfig:
    """Validated runtime configuration.

    Attributes:
        db_path: SQLite database file holding current state and history.
        snapshot_path: External snapshot file to ingest and watch.
        batch_size: Documents per atomic ingest transaction.
        poll_interval: Seconds between snapshot file modification checks.
        persist_fingerprints: Keep fingerprints in the database across restarts.
        log_level: Minimum structured log level.
    """

    db_path: Path
    snapshot_path: Path
    batch_size: int = DEFAULT_BATCH_SIZE
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    persist_fingerprints: bool = False
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            VaultConfigError: If environment values are invalid.
        """
        db_path_value = os.getenv("MEETVAULT_DB_PATH") or os.getenv("DB_PATH")
        snapshot_value = os.getenv("MEETVAULT_SNAPSHOT_PATH", str(DEFAULT_SNAPSHOT_PATH))
        return cls(
            db_path=resolve_path(db_path_value or str(DEFAULT_DB_PATH)),
            snapshot_path=resolve_path(snapshot_value),
            batch_size=parse_batch_size(
                os.getenv("MEETVAULT_BATCH_SIZE", str(DEFAULT_BATCH_SIZE)),
                "MEETVAULT_BATCH_SIZE",
            ),
            poll_interval=parse_poll_interval(
                os.getenv("MEETVAULT_POLL_INTERVAL", str(DEFAULT_POLL_INTERVAL_SECONDS)),
                "MEETVAULT_POLL_INTERVAL",
            ),
            persist_fingerprints=parse_flag(
                os.getenv("MEETVAULT_PERSIST_FINGERPRINTS", "false"),
                "MEETVAULT_PERSIST_FINGERPRINTS",
            ),
            log_level=_resolve_log_level(),
        )


def resolve_path(raw_value: str) -> Path:
    """Expand and resolve a user-supplied path."""
    return Path(raw_value).expanduser().resolve()


def parse_batch_size(raw_value: str, source: str) -> int:
    """Parse a positive batch size.

    Args:
        raw_value: Raw value from environment or config file.
        source: Setting name used in error messages.

    Returns:
        Parsed batch size.

    Raises:
        VaultConfigError: If value is not a positive integer.
    """
    try:
        batch_size = int(raw_value)
    except ValueError as error:
        raise VaultConfigError(
            f"Invalid {source} value: expected integer, got '{raw_value}'. "
            f"Set {source} to a positive number such as {DEFAULT_BATCH_SIZE}."
        ) from error
    if batch_size < 1:
        raise VaultConfigError(
            f"Invalid {source} value: batch size must be at least 1, got {batch_size}."
        )
    return batch_size


def parse_poll_interval(raw_value: str, source: str) -> float:
    """Parse a positive polling interval in seconds.

    Raises:
        VaultConfigError: If value is not a positive number.
    """
    try:
        interval = float(raw_value)
    except ValueError as error:
        raise VaultConfigError(
            f"Invalid {source} value: expected seconds, got '{raw_value}'. "
            f"Set {source} to a positive number such as {DEFAULT_POLL_INTERVAL_SECONDS}."
        ) from error
    if interval <= 0:
        raise VaultConfigError(
            f"Invalid {source} value: polling interval must be positive, got {interval}."
        )
    return interval


def parse_flag(raw_value: str, source: str) -> bool:
    """Parse a boolean flag value.

    Raises:
        VaultConfigError: If value is not a recognized boolean literal.
    """
    normalized = raw_value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise VaultConfigError(
        f"Invalid {source} value: expected true/false, got '{raw_value}'."
    )


def parse_log_level(raw_value: str, source: str) -> str:
    """Validate a log level name.

    Raises:
        VaultConfigError: If level is not supported.
    """
    normalized = raw_value.strip().lower()
    if normalized not in SUPPORTED_LOG_LEVELS:
        raise VaultConfigError(
            f"Invalid {source} value '{raw_value}'. "
            f"Use one of: {', '.join(SUPPORTED_LOG_LEVELS)}."
        )
    return normalized


def _resolve_log_level() -> str:
    raw_level = os.getenv("MEETVAULT_LOG_LEVEL")
    if raw_level:
        return parse_log_level(raw_level, "MEETVAULT_LOG_LEVEL")
    if os.getenv("DEBUG", "").lower() == "true":
        return "debug"
    return DEFAULT_LOG_LEVEL
