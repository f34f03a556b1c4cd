"""Unit tests for batched snapshot ingestion."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
import threading
from typing import Iterator

import pytest

from core.constants import (
    ENTITY_CALENDAR_EVENT,
    ENTITY_DOCUMENT,
    ENTITY_PERSON,
    ENTITY_TRANSCRIPT_ENTRY,
    TABLE_CALENDAR_EVENTS,
    TABLE_DOCUMENTS,
    TABLE_HISTORICAL_DOCUMENTS,
    TABLE_PEOPLE,
    TABLE_TRANSCRIPT_ENTRIES,
)
from core.errors import BatchIngestError, StorageFailureError, VaultConfigError
from core.types import (
    CalendarAttendee,
    CalendarEvent,
    Document,
    IngestReport,
    SkippedEntity,
    SnapshotGraph,
    TranscriptEntry,
)
from ingest.batch_engine import BatchIngestionEngine, derive_participants, participant_id
from ingest.change_detector import ChangeDetector
from ingest.fingerprint_store import InMemoryFingerprintStore, SqliteFingerprintStore
from store.database import VaultDatabase
from store.history_recorder import HistoryRecorder
from store.repositories import DocumentRepository, Repositories


class _FailingDocumentRepository(DocumentRepository):
    """Document repository that fails for one document id."""

    def __init__(self, database: VaultDatabase, failing_id: str) -> None:
        super().__init__(database)
        self._failing_id = failing_id

    def upsert(self, entity: Document) -> None:
        if entity.id == self._failing_id:
            raise StorageFailureError(f"simulated failure for {entity.id}")
        super().upsert(entity)


class _BlockingDocumentRepository(DocumentRepository):
    """Document repository whose first upsert blocks, then fails."""

    def __init__(self, database: VaultDatabase) -> None:
        super().__init__(database)
        self.entered = threading.Event()
        self.release = threading.Event()
        self._calls = 0

    def upsert(self, entity: Document) -> None:
        self._calls += 1
        if self._calls == 1:
            self.entered.set()
            self.release.wait(timeout=5)
            raise StorageFailureError(f"simulated failure for {entity.id}")
        super().upsert(entity)


@pytest.fixture()
def database(tmp_path: Path) -> Iterator[VaultDatabase]:
    with VaultDatabase(tmp_path / "vault.db") as vault_database:
        yield vault_database


def _engine(
    database: VaultDatabase,
    detector: ChangeDetector | None = None,
    repositories: Repositories | None = None,
    batch_size: int = 100,
) -> BatchIngestionEngine:
    return BatchIngestionEngine(
        database=database,
        detector=detector or ChangeDetector(InMemoryFingerprintStore()),
        history_recorder=HistoryRecorder(database),
        repositories=repositories or Repositories.for_database(database),
        batch_size=batch_size,
    )


def _graph(*documents: Document, **kwargs) -> SnapshotGraph:
    return SnapshotGraph(documents=tuple(documents), **kwargs)


def _event(document_id: str) -> CalendarEvent:
    return CalendarEvent(
        id=f"evt-{document_id}",
        document_id=document_id,
        summary="Sync",
        organizer_email="alice@example.com",
        attendees=(
            CalendarAttendee(email="alice@example.com", display_name="Alice", organizer=True),
            CalendarAttendee(email="bob@example.com", display_name="Bob"),
        ),
    )


def test_ingest_is_idempotent(database: VaultDatabase) -> None:
    """Re-ingesting an identical graph should write nothing."""
    engine = _engine(database)
    graph = _graph(Document(id="doc-1", title="Sync", calendar_event=_event("doc-1")))
    engine.ingest(graph)

    report = engine.ingest(graph)

    assert report.total_upserts == 0
    assert report.history_records == 0
    assert database.count(TABLE_DOCUMENTS) == 1
    assert database.count(TABLE_HISTORICAL_DOCUMENTS) == 0


def test_changed_document_records_history_before_overwrite(database: VaultDatabase) -> None:
    """A changed document should archive its prior persisted state."""
    engine = _engine(database)
    engine.ingest(_graph(Document(id="doc-1", title="Initial")))

    report = engine.ingest(_graph(Document(id="doc-1", title="Updated")))

    history = HistoryRecorder(database).history("doc-1")
    current = Repositories.for_database(database).documents.get("doc-1")
    assert report.upserts == {ENTITY_DOCUMENT: 1}
    assert report.history_records == 1
    assert [record.state["title"] for record in history] == ["Initial"]
    assert current is not None
    assert current["title"] == "Updated"


def test_volatile_update_is_not_a_change(database: VaultDatabase) -> None:
    """Only updated_at changing should produce no upsert and no history."""
    engine = _engine(database)
    engine.ingest(_graph(Document(id="doc-1", title="Sync", updated_at="2024-01-01T00:00:00Z")))

    report = engine.ingest(
        _graph(Document(id="doc-1", title="Sync", updated_at="2024-03-03T00:00:00Z"))
    )

    assert report.total_upserts == 0
    assert database.count(TABLE_HISTORICAL_DOCUMENTS) == 0


def test_unchanged_document_still_writes_changed_children(database: VaultDatabase) -> None:
    """Transcript changes should apply even when the document is unchanged."""
    engine = _engine(database)
    document = Document(id="doc-1", title="Sync")
    line = TranscriptEntry(id="line-1", document_id="doc-1", text="helo")
    engine.ingest(_graph(document, transcripts={"doc-1": (line,)}))

    report = engine.ingest(
        _graph(document, transcripts={"doc-1": (replace(line, text="hello"),)})
    )

    assert report.upserts == {ENTITY_TRANSCRIPT_ENTRY: 1}
    assert database.count(TABLE_TRANSCRIPT_ENTRIES) == 1
    assert database.count(TABLE_HISTORICAL_DOCUMENTS) == 0


def test_calendar_event_derives_participants(database: VaultDatabase) -> None:
    """Calendar attendees should become participant rows with roles."""
    engine = _engine(database)

    report = engine.ingest(_graph(Document(id="doc-1", calendar_event=_event("doc-1"))))

    roles = database.fetch_all("SELECT email, role FROM people ORDER BY email")
    assert report.upserts[ENTITY_CALENDAR_EVENT] == 1
    assert report.upserts[ENTITY_PERSON] == 2
    assert database.count(TABLE_CALENDAR_EVENTS) == 1
    assert [(row["email"], row["role"]) for row in roles] == [
        ("alice@example.com", "organizer"),
        ("bob@example.com", "attendee"),
    ]


def test_participant_ids_are_stable() -> None:
    """Participant ids should depend only on document and email."""
    people, missing = derive_participants(_event("doc-1"))

    assert missing == 0
    assert people[0].id == participant_id("doc-1", "alice@example.com")
    assert participant_id("doc-1", "a@x.io") != participant_id("doc-2", "a@x.io")


def test_attendee_without_email_is_skipped(database: VaultDatabase) -> None:
    """Attendees without email should be skipped and counted."""
    event = replace(
        _event("doc-1"),
        attendees=(CalendarAttendee(email=None), CalendarAttendee(email="bob@example.com")),
    )
    engine = _engine(database)

    report = engine.ingest(_graph(Document(id="doc-1", calendar_event=event)))

    assert report.skipped_entities == 1
    assert database.count(TABLE_PEOPLE) == 1


def test_reader_skips_are_reported(database: VaultDatabase) -> None:
    """Entities dropped during decode should count as skipped."""
    engine = _engine(database)
    graph = _graph(
        Document(id="doc-1"),
        skipped=(SkippedEntity(ENTITY_DOCUMENT, None, "document has no id"),),
    )

    report = engine.ingest(graph)

    assert report.skipped_entities == 1
    assert report.documents_seen == 1


def test_failed_batch_rolls_back_and_keeps_earlier_batches(database: VaultDatabase) -> None:
    """A failing batch should roll back whole while earlier batches stay."""
    detector = ChangeDetector(InMemoryFingerprintStore())
    failing = replace(
        Repositories.for_database(database),
        documents=_FailingDocumentRepository(database, failing_id="doc-4"),
    )
    engine = _engine(database, detector=detector, repositories=failing, batch_size=2)
    graph = _graph(*(Document(id=f"doc-{index}") for index in range(1, 6)))

    with pytest.raises(BatchIngestError) as error_info:
        engine.ingest(graph)

    error = error_info.value
    assert error.batch_index == 1
    assert error.committed_batches == 1
    assert error.document_id == "doc-4"
    assert error.entity_class == ENTITY_DOCUMENT
    assert error.stage == "upsert"
    assert isinstance(error.__cause__, StorageFailureError)
    assert database.count(TABLE_DOCUMENTS) == 2


def test_rolled_back_batch_is_retried_next_cycle(database: VaultDatabase) -> None:
    """Documents of a rolled-back batch should be re-detected as changed."""
    detector = ChangeDetector(InMemoryFingerprintStore())
    failing = replace(
        Repositories.for_database(database),
        documents=_FailingDocumentRepository(database, failing_id="doc-2"),
    )
    graph = _graph(Document(id="doc-1"), Document(id="doc-2"))
    with pytest.raises(BatchIngestError):
        _engine(database, detector=detector, repositories=failing).ingest(graph)

    report = _engine(database, detector=detector).ingest(graph)

    assert report.upserts == {ENTITY_DOCUMENT: 2}
    assert database.count(TABLE_DOCUMENTS) == 2


def test_persisted_fingerprints_survive_new_engine(database: VaultDatabase) -> None:
    """A fresh detector over persisted fingerprints should see no changes."""
    graph = _graph(Document(id="doc-1", title="Sync", calendar_event=_event("doc-1")))
    _engine(database, detector=ChangeDetector(SqliteFingerprintStore(database))).ingest(graph)

    report = _engine(
        database, detector=ChangeDetector(SqliteFingerprintStore(database))
    ).ingest(graph)

    assert report.total_upserts == 0


def test_batches_are_counted(database: VaultDatabase) -> None:
    """Documents should be partitioned into batches of the configured size."""
    engine = _engine(database, batch_size=2)

    report = engine.ingest(_graph(*(Document(id=f"doc-{index}") for index in range(5))))

    assert report.batches_committed == 3
    assert report.documents_seen == 5


def test_empty_graph_commits_nothing(database: VaultDatabase) -> None:
    """An empty snapshot should be a no-op run."""
    report = _engine(database).ingest(_graph())

    assert report.batches_committed == 0
    assert report.total_upserts == 0


def test_invalid_batch_size_is_rejected(database: VaultDatabase) -> None:
    """Batch sizes below one should be rejected."""
    with pytest.raises(VaultConfigError):
        _engine(database, batch_size=0)


def test_concurrent_ingests_are_serialized(database: VaultDatabase) -> None:
    """A second ingest should wait for the first and then redo its rolled-back work."""
    blocking = _BlockingDocumentRepository(database)
    engine = _engine(
        database, repositories=replace(Repositories.for_database(database), documents=blocking)
    )
    graph = _graph(Document(id="doc-1"))
    errors: list[BatchIngestError] = []
    reports: list[IngestReport] = []

    def _first_ingest() -> None:
        try:
            engine.ingest(graph)
        except BatchIngestError as error:
            errors.append(error)

    first = threading.Thread(target=_first_ingest)
    second = threading.Thread(target=lambda: reports.append(engine.ingest(graph)))
    first.start()
    try:
        assert blocking.entered.wait(timeout=5)
        second.start()
        second.join(timeout=0.2)
        assert second.is_alive()
    finally:
        blocking.release.set()
        first.join(timeout=5)
        if second.ident is not None:
            second.join(timeout=5)

    assert len(errors) == 1
    assert reports[0].upserts == {ENTITY_DOCUMENT: 1}
    assert database.count(TABLE_DOCUMENTS) == 1


def test_persisted_fingerprints_roll_back_with_batch(database: VaultDatabase) -> None:
    """A failed batch should leave no persisted fingerprints behind."""
    detector = ChangeDetector(SqliteFingerprintStore(database))
    failing = replace(
        Repositories.for_database(database),
        documents=_FailingDocumentRepository(database, failing_id="doc-2"),
    )
    graph = _graph(Document(id="doc-1"), Document(id="doc-2"))
    with pytest.raises(BatchIngestError):
        _engine(database, detector=detector, repositories=failing).ingest(graph)

    report = _engine(database, detector=detector).ingest(graph)

    assert report.upserts == {ENTITY_DOCUMENT: 2}
    assert database.count(TABLE_DOCUMENTS) == 2
