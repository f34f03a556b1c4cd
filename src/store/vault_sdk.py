"""Python SDK for vault operations.

This module exposes high-level APIs for one-shot ingest, continuous
monitoring, and history inspection backed by the vault database.
"""

from __future__ import annotations

from pathlib import Path
import threading

from core.config import VaultConfig
from core.constants import COUNTED_TABLES
from core.logging_config import configure_logging
from core.types import HistoricalDocument, IngestReport
from ingest.change_trigger import ChangeTrigger
from ingest.pipeline import build_engine, run_ingest_cycle, run_until_shutdown
from store.database import VaultDatabase
from store.history_recorder import HistoryRecorder


class VaultClient:
    """Primary SDK entry point for ingest and history workflows."""

    def __init__(self, config: VaultConfig | None = None) -> None:
        """Create SDK client and open the vault database.

        Args:
            config: Optional runtime configuration; read from the
                environment when omitted.

        Raises:
            VaultConfigError: If environment configuration is invalid.
            StorageFailureError: If the database cannot be opened.
        """
        self._config = config or VaultConfig.from_env()
        configure_logging(self._config.log_level)
        self._database = VaultDatabase(self._config.db_path)
        self._engine = build_engine(self._config, self._database)
        self._history = HistoryRecorder(self._database)

    @property
    def config(self) -> VaultConfig:
        return self._config

    def ingest_once(self, snapshot_path: str | Path | None = None) -> IngestReport:
        """Ingest the snapshot once.

        Fingerprints persist across calls on the same client, so a second
        call with an unchanged snapshot writes nothing.

        Args:
            snapshot_path: Optional override of the configured snapshot.

        Returns:
            Counters of the run.

        Raises:
            MalformedSnapshotError: If the snapshot cannot be decoded.
            BatchIngestError: If a batch fails and is rolled back.
        """
        return run_ingest_cycle(self._engine, snapshot_path or self._config.snapshot_path)

    def watch(
        self,
        stop_event: threading.Event | None = None,
        snapshot_path: str | Path | None = None,
    ) -> ChangeTrigger:
        """Load the snapshot, then re-ingest on every change until stopped.

        Args:
            stop_event: Optional shutdown flag; SIGINT/SIGTERM also stop
                the watch when running on the main thread.
            snapshot_path: Optional override of the configured snapshot.

        Returns:
            The trigger used, for inspecting cycle counters.
        """
        return run_until_shutdown(
            self._engine,
            snapshot_path or self._config.snapshot_path,
            self._config.poll_interval,
            stop_event,
        )

    def history(self, document_id: str) -> list[HistoricalDocument]:
        """Return prior states of a document, newest first."""
        return self._history.history(document_id)

    def table_counts(self) -> dict[str, int]:
        """Return row counts for every vault table."""
        return {table: self._database.count(table) for table in COUNTED_TABLES}

    def close(self) -> None:
        """Close the vault database."""
        self._database.close()

    def __enter__(self) -> "VaultClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False
