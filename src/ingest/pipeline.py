"""Ingest orchestration for one-shot and continuous runs.

This module wires the snapshot reader, change detector, history recorder,
and repositories into an ingestion engine, and runs it either once or
under a file watcher until the process is asked to shut down.
"""

from __future__ import annotations

from pathlib import Path
import signal
import threading
from typing import Any

from core.config import VaultConfig
from core.logging_config import get_logger
from core.types import IngestReport
from ingest.batch_engine import BatchIngestionEngine
from ingest.change_detector import ChangeDetector
from ingest.change_trigger import ChangeTrigger, SnapshotFileWatcher
from ingest.fingerprint_store import (
    FingerprintStore,
    InMemoryFingerprintStore,
    SqliteFingerprintStore,
)
from ingest.snapshot_reader import read_snapshot
from store.database import VaultDatabase
from store.history_recorder import HistoryRecorder
from store.repositories import Repositories

_LOGGER = get_logger(__name__)

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def build_engine(config: VaultConfig, database: VaultDatabase) -> BatchIngestionEngine:
    """Assemble an ingestion engine over one database.

    Args:
        config: Runtime configuration.
        database: Open vault database.

    Returns:
        Engine with its own change detector and fingerprint store.
    """
    store: FingerprintStore
    if config.persist_fingerprints:
        store = SqliteFingerprintStore(database)
    else:
        store = InMemoryFingerprintStore()
    return BatchIngestionEngine(
        database=database,
        detector=ChangeDetector(store),
        history_recorder=HistoryRecorder(database),
        repositories=Repositories.for_database(database),
        batch_size=config.batch_size,
    )


def run_ingest_cycle(engine: BatchIngestionEngine, snapshot_path: str | Path) -> IngestReport:
    """Read the snapshot and ingest it once.

    Args:
        engine: Ingestion engine.
        snapshot_path: Snapshot file to read.

    Returns:
        Counters of the run.

    Raises:
        MalformedSnapshotError: If the snapshot cannot be decoded. No
            state is modified in that case.
        BatchIngestError: If a batch fails and is rolled back.
    """
    graph = read_snapshot(snapshot_path)
    if graph.is_empty:
        _LOGGER.info("snapshot_empty", path=str(snapshot_path))
    return engine.ingest(graph)


def run_until_shutdown(
    engine: BatchIngestionEngine,
    snapshot_path: str | Path,
    poll_interval: float,
    stop_event: threading.Event | None = None,
) -> ChangeTrigger:
    """Run the initial load, then ingest on every snapshot change.

    The watcher starts polling only after the initial load returns; a
    change made during that load still triggers one more cycle.

    Blocks until ``stop_event`` is set or SIGINT/SIGTERM arrives. Signal
    handlers are only installed when called from the main thread. An
    in-flight cycle always finishes before this returns.

    Args:
        engine: Ingestion engine.
        snapshot_path: Snapshot file to watch.
        poll_interval: Seconds between file checks.
        stop_event: Optional external shutdown flag.

    Returns:
        The trigger used, for inspecting cycle counters.
    """
    stop = stop_event or threading.Event()
    trigger = ChangeTrigger(lambda: run_ingest_cycle(engine, snapshot_path))
    watcher = SnapshotFileWatcher(snapshot_path, trigger.notify, poll_interval)
    previous_handlers = _install_signal_handlers(stop)
    try:
        trigger.start()
        watcher.start()
        while not stop.wait(poll_interval):
            continue
    finally:
        watcher.stop()
        trigger.wait_idle()
        _restore_signal_handlers(previous_handlers)
    return trigger


def _install_signal_handlers(stop: threading.Event) -> dict[int, Any]:
    if threading.current_thread() is not threading.main_thread():
        return {}

    def _request_shutdown(signum: int, _frame: object) -> None:
        _LOGGER.info("shutdown_requested", signal=signal.Signals(signum).name)
        stop.set()

    previous: dict[int, Any] = {}
    for signum in _SHUTDOWN_SIGNALS:
        previous[signum] = signal.signal(signum, _request_shutdown)
    return previous


def _restore_signal_handlers(previous: dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)
