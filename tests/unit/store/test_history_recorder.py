"""Unit tests for append-only document history."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest

from core.types import Document
from store import history_recorder as history_module
from store.database import VaultDatabase
from store.history_recorder import HistoryRecorder
from store.repositories import Repositories


@pytest.fixture()
def database(tmp_path: Path) -> Iterator[VaultDatabase]:
    with VaultDatabase(tmp_path / "vault.db") as vault_database:
        yield vault_database


def test_first_insert_records_nothing(database: VaultDatabase) -> None:
    """A document never persisted has no prior state to archive."""
    recorder = HistoryRecorder(database)

    record = recorder.record_before_update("doc-1")

    assert record is None
    assert recorder.count() == 0


def test_record_copies_persisted_state(database: VaultDatabase) -> None:
    """The history row should hold the persisted columns, not new values."""
    Repositories.for_database(database).documents.upsert(
        Document(id="doc-1", title="Initial", public=False)
    )
    recorder = HistoryRecorder(database)

    record = recorder.record_before_update("doc-1")

    assert record is not None
    assert record.document_id == "doc-1"
    assert record.state["title"] == "Initial"
    assert recorder.count("doc-1") == 1


def test_history_is_newest_first(database: VaultDatabase) -> None:
    """history should list records from newest to oldest."""
    documents = Repositories.for_database(database).documents
    recorder = HistoryRecorder(database)
    for title in ("v1", "v2", "v3"):
        documents.upsert(Document(id="doc-1", title=title))
        recorder.record_before_update("doc-1")

    history = recorder.history("doc-1")

    assert [record.state["title"] for record in history] == ["v3", "v2", "v1"]
    assert history[0].captured_at > history[1].captured_at


def test_capture_times_increase_when_clock_stalls(
    database: VaultDatabase, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Two captures in the same clock tick should still be ordered."""
    frozen = datetime(2024, 1, 1, tzinfo=timezone.utc)

    class _FrozenDatetime(datetime):
        @classmethod
        def now(cls, tz=None):
            return frozen

    monkeypatch.setattr(history_module, "datetime", _FrozenDatetime)
    Repositories.for_database(database).documents.upsert(Document(id="doc-1"))
    recorder = HistoryRecorder(database)

    first = recorder.record_before_update("doc-1")
    second = recorder.record_before_update("doc-1")

    assert first is not None and second is not None
    assert first.captured_at == "2024-01-01T00:00:00.000000Z"
    assert second.captured_at == "2024-01-01T00:00:00.000001Z"


def test_history_of_unknown_document_is_empty(database: VaultDatabase) -> None:
    """Unknown documents have no history."""
    assert HistoryRecorder(database).history("missing") == []


def test_record_lists_changed_fields(database: VaultDatabase) -> None:
    """Fields that differ from the incoming document should be recorded."""
    Repositories.for_database(database).documents.upsert(
        Document(id="doc-1", title="Initial", public=False, updated_at="t1")
    )
    recorder = HistoryRecorder(database)
    incoming = Document(id="doc-1", title="Updated", public=True, updated_at="t2")

    record = recorder.record_before_update("doc-1", incoming)

    assert record is not None
    assert record.changed_fields == ("title", "public")
    assert recorder.history("doc-1")[0].changed_fields == ("title", "public")


def test_record_without_incoming_has_no_changed_fields(database: VaultDatabase) -> None:
    """Without an incoming document no changed fields are reported."""
    Repositories.for_database(database).documents.upsert(Document(id="doc-1"))
    recorder = HistoryRecorder(database)

    recorder.record_before_update("doc-1")

    assert recorder.history("doc-1")[0].changed_fields == ()
