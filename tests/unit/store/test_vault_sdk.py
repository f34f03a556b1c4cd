"""Unit tests for the SDK client."""

from __future__ import annotations

from pathlib import Path
import threading

from core.config import VaultConfig
from core.constants import COUNTED_TABLES
from store.vault_sdk import VaultClient
from tests.snapshot_factory import document_payload, transcript_line, write_snapshot


def _config(tmp_path: Path) -> VaultConfig:
    return VaultConfig(
        db_path=tmp_path / "vault.db",
        snapshot_path=tmp_path / "cache.json",
        poll_interval=0.02,
    )


def test_ingest_once_is_idempotent_within_a_client(tmp_path: Path) -> None:
    """A second ingest of the same snapshot should write nothing."""
    config = _config(tmp_path)
    write_snapshot(
        config.snapshot_path,
        [document_payload("doc-1")],
        transcripts={"doc-1": [transcript_line("line-1", "hi")]},
    )
    with VaultClient(config) as client:
        first = client.ingest_once()
        second = client.ingest_once()

    assert first.total_upserts == 2
    assert second.total_upserts == 0


def test_ingest_once_accepts_snapshot_override(tmp_path: Path) -> None:
    """An explicit snapshot path should win over the configured one."""
    other = write_snapshot(tmp_path / "other.json", [document_payload("doc-7")])
    with VaultClient(_config(tmp_path)) as client:
        report = client.ingest_once(other)

    assert report.documents_seen == 1


def test_table_counts_cover_every_table(tmp_path: Path) -> None:
    """table_counts should report all vault tables."""
    with VaultClient(_config(tmp_path)) as client:
        counts = client.table_counts()

    assert tuple(counts) == COUNTED_TABLES


def test_watch_stops_on_event(tmp_path: Path) -> None:
    """watch should run the initial load and return once stopped."""
    config = _config(tmp_path)
    write_snapshot(config.snapshot_path, [document_payload("doc-1")])
    stop = threading.Event()
    stop.set()
    with VaultClient(config) as client:
        trigger = client.watch(stop_event=stop)
        counts = client.table_counts()

    assert trigger.cycles_run == 1
    assert counts["documents"] == 1
