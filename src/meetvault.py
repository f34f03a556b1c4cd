"""Public SDK surface for meetvault.

This module provides a stable import path for library users.
It re-exports the client, configuration, and result models.
"""

from __future__ import annotations

from core.config import VaultConfig
from core.errors import (
    BatchIngestError,
    InvalidEntityError,
    MalformedSnapshotError,
    StorageFailureError,
    VaultConfigError,
    VaultError,
)
from core.types import HistoricalDocument, IngestReport, SnapshotGraph
from ingest.snapshot_reader import read_snapshot
from store.vault_sdk import VaultClient

__all__ = [
    "BatchIngestError",
    "HistoricalDocument",
    "IngestReport",
    "InvalidEntityError",
    "MalformedSnapshotError",
    "SnapshotGraph",
    "StorageFailureError",
    "VaultClient",
    "VaultConfig",
    "VaultConfigError",
    "VaultError",
    "read_snapshot",
]
