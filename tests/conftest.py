"""Pytest configuration for repository test runs."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_sessionstart() -> None:
    """Add src and project root to sys.path for test imports."""
    project_root = Path(__file__).resolve().parent.parent
    for import_root in (project_root / "src", project_root):
        if str(import_root) not in sys.path:
            sys.path.insert(0, str(import_root))


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host meetvault settings out of tests."""
    for name in (
        "MEETVAULT_DB_PATH",
        "DB_PATH",
        "MEETVAULT_SNAPSHOT_PATH",
        "MEETVAULT_BATCH_SIZE",
        "MEETVAULT_POLL_INTERVAL",
        "MEETVAULT_PERSIST_FINGERPRINTS",
        "MEETVAULT_LOG_LEVEL",
        "DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
