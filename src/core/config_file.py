"""YAML config-file overrides for meetvault.

This module loads an optional YAML file and applies its values on top
of the environment-derived config. Unknown keys are rejected so typos
fail loudly instead of silently falling back to defaults.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Mapping, cast

import yaml

from core.config import (
    VaultConfig,
    parse_batch_size,
    parse_flag,
    parse_log_level,
    parse_poll_interval,
    resolve_path,
)
from core.constants import CONFIG_FILE_VERSION
from core.errors import VaultConfigError

_ALLOWED_KEYS = {
    "version",
    "db_path",
    "snapshot_path",
    "batch_size",
    "poll_interval",
    "persist_fingerprints",
    "log_level",
}


def load_config_file(config_path: str, base: VaultConfig) -> VaultConfig:
    """Load a YAML config file and merge it into a base config.

    Args:
        config_path: File path to YAML config.
        base: Config built from environment defaults.

    Returns:
        Config with file values applied.

    Raises:
        VaultConfigError: If file is missing, invalid, or has bad values.
    """
    payload = _load_yaml_payload(config_path)
    mapping = _expect_mapping(payload)
    _validate_keys(mapping)
    _validate_version(mapping)
    return _apply_overrides(base, mapping)


def _load_yaml_payload(config_path: str) -> object:
    config_file = Path(config_path).expanduser().resolve()
    if not config_file.exists():
        raise VaultConfigError(
            f"Config file does not exist at {config_file}. Provide a valid YAML file path."
        )
    try:
        payload = cast(object, yaml.safe_load(config_file.read_text(encoding="utf-8")))
    except OSError as error:
        raise VaultConfigError(
            f"Failed to read config file at {config_file}: {error}. "
            "Check file permissions and retry."
        ) from error
    except yaml.YAMLError as error:
        raise VaultConfigError(
            f"Failed to parse YAML config at {config_file}: {error}. Fix YAML syntax and retry."
        ) from error
    if payload is None:
        raise VaultConfigError(f"Config file at {config_file} is empty. Define 'version: 1'.")
    return payload


def _expect_mapping(value: object) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise VaultConfigError(
            f"Invalid config file root: expected mapping, got {type(value).__name__}."
        )
    for key in value:
        if not isinstance(key, str):
            raise VaultConfigError(
                f"Invalid config file: expected string keys, got {type(key).__name__}."
            )
    return cast(Mapping[str, object], value)


def _validate_keys(mapping: Mapping[str, object]) -> None:
    unknown_keys = sorted(set(mapping) - _ALLOWED_KEYS)
    if unknown_keys:
        raise VaultConfigError(
            f"Unknown config file keys: {', '.join(unknown_keys)}. "
            f"Supported keys: {', '.join(sorted(_ALLOWED_KEYS))}."
        )


def _validate_version(mapping: Mapping[str, object]) -> None:
    version = mapping.get("version")
    if version != CONFIG_FILE_VERSION:
        raise VaultConfigError(
            f"Unsupported config file version {version!r}. Use version: {CONFIG_FILE_VERSION}."
        )


def _apply_overrides(base: VaultConfig, mapping: Mapping[str, object]) -> VaultConfig:
    config = base
    if "db_path" in mapping:
        config = replace(config, db_path=resolve_path(str(mapping["db_path"])))
    if "snapshot_path" in mapping:
        config = replace(config, snapshot_path=resolve_path(str(mapping["snapshot_path"])))
    if "batch_size" in mapping:
        config = replace(
            config, batch_size=parse_batch_size(str(mapping["batch_size"]), "batch_size")
        )
    if "poll_interval" in mapping:
        config = replace(
            config,
            poll_interval=parse_poll_interval(str(mapping["poll_interval"]), "poll_interval"),
        )
    if "persist_fingerprints" in mapping:
        config = replace(
            config,
            persist_fingerprints=parse_flag(
                str(mapping["persist_fingerprints"]), "persist_fingerprints"
            ),
        )
    if "log_level" in mapping:
        config = replace(
            config, log_level=parse_log_level(str(mapping["log_level"]), "log_level")
        )
    return config
