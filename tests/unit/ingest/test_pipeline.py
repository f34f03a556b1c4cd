"""Unit tests for ingest orchestration."""

from __future__ import annotations

import os
from pathlib import Path
import signal
import threading
import time
from typing import Callable

import pytest

from core.config import VaultConfig
from core.constants import TABLE_DOCUMENTS
from core.errors import MalformedSnapshotError
from ingest.fingerprint_store import SqliteFingerprintStore
from ingest import pipeline as pipeline_module
from ingest.pipeline import build_engine, run_ingest_cycle, run_until_shutdown
from store.database import VaultDatabase
from tests.snapshot_factory import document_payload, write_raw, write_snapshot


def _config(tmp_path: Path, **overrides) -> VaultConfig:
    values = {
        "db_path": tmp_path / "vault.db",
        "snapshot_path": tmp_path / "cache.json",
        "poll_interval": 0.02,
    }
    values.update(overrides)
    return VaultConfig(**values)


def _wait_for(condition: Callable[[], bool], timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.02)
    return False


def _document_count(db_path: Path) -> int:
    with VaultDatabase(db_path) as observer:
        return observer.count(TABLE_DOCUMENTS)


def test_build_engine_selects_persistent_store(tmp_path: Path) -> None:
    """persist_fingerprints should back the detector with the database."""
    config = _config(tmp_path, persist_fingerprints=True)
    with VaultDatabase(config.db_path) as database:
        engine = build_engine(config, database)

        assert isinstance(engine._detector._store, SqliteFingerprintStore)


def test_malformed_snapshot_leaves_store_unchanged(tmp_path: Path) -> None:
    """A broken snapshot should not change the document count."""
    config = _config(tmp_path)
    write_snapshot(config.snapshot_path, [document_payload("doc-1")])
    with VaultDatabase(config.db_path) as database:
        engine = build_engine(config, database)
        run_ingest_cycle(engine, config.snapshot_path)
        write_raw(config.snapshot_path, '{"cache": "{truncated')

        with pytest.raises(MalformedSnapshotError):
            run_ingest_cycle(engine, config.snapshot_path)

        assert database.count(TABLE_DOCUMENTS) == 1


def test_run_until_shutdown_ingests_changes_until_stopped(tmp_path: Path) -> None:
    """The watch loop should load, react to a change, then stop on request."""
    config = _config(tmp_path)
    write_snapshot(config.snapshot_path, [document_payload("doc-1")])
    stop = threading.Event()
    seen_counts: list[bool] = []

    def drive() -> None:
        try:
            seen_counts.append(_wait_for(lambda: _document_count(config.db_path) == 1))
            write_snapshot(
                config.snapshot_path,
                [document_payload("doc-1"), document_payload("doc-2", title="Follow-up")],
            )
            seen_counts.append(_wait_for(lambda: _document_count(config.db_path) == 2))
        finally:
            stop.set()

    driver = threading.Thread(target=drive)
    with VaultDatabase(config.db_path) as database:
        engine = build_engine(config, database)
        driver.start()
        trigger = run_until_shutdown(engine, config.snapshot_path, config.poll_interval, stop)
    driver.join(10)

    assert seen_counts == [True, True]
    assert trigger.cycles_run >= 2
    assert trigger.failures == 0


def test_sigterm_requests_graceful_shutdown(tmp_path: Path) -> None:
    """SIGTERM should stop the watch loop after the in-flight cycle."""
    config = _config(tmp_path)
    write_snapshot(config.snapshot_path, [document_payload("doc-1")])
    previous_handler = signal.getsignal(signal.SIGTERM)

    def send_sigterm() -> None:
        try:
            _wait_for(lambda: _document_count(config.db_path) == 1)
        finally:
            os.kill(os.getpid(), signal.SIGTERM)

    sender = threading.Thread(target=send_sigterm)
    with VaultDatabase(config.db_path) as database:
        engine = build_engine(config, database)
        sender.start()
        trigger = run_until_shutdown(engine, config.snapshot_path, config.poll_interval)
    sender.join(10)

    assert trigger.cycles_run >= 1
    assert signal.getsignal(signal.SIGTERM) == previous_handler


def test_initial_load_runs_before_watcher_starts(tmp_path: Path, monkeypatch) -> None:
    """No watcher thread should be polling while the initial load runs."""
    config = _config(tmp_path)
    write_snapshot(config.snapshot_path, [document_payload("doc-1")])
    watcher_alive: list[bool] = []

    def _observe_cycle(engine, snapshot_path) -> None:
        watcher_alive.append(
            any(thread.name == "meetvault-watcher" for thread in threading.enumerate())
        )

    monkeypatch.setattr(pipeline_module, "run_ingest_cycle", _observe_cycle)
    stop = threading.Event()
    stop.set()
    with VaultDatabase(config.db_path) as database:
        trigger = run_until_shutdown(
            build_engine(config, database), config.snapshot_path, 0.02, stop_event=stop
        )

    assert watcher_alive == [False]
    assert trigger.cycles_run == 1
