"""Batched, transactional ingestion of a snapshot graph.

This module partitions documents into fixed-size batches and applies
each batch inside one transaction: changed entities are detected, the
prior document state is copied into history, and changed rows are
upserted. A failing batch is rolled back as a whole, including the
fingerprints recorded while it was open.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
import threading
from typing import Iterator, Sequence
import uuid

from core.constants import (
    DEFAULT_BATCH_SIZE,
    ENTITY_CALENDAR_EVENT,
    ENTITY_DOCUMENT,
    ENTITY_DOCUMENT_PANEL,
    ENTITY_PANEL_TEMPLATE,
    ENTITY_PERSON,
    ENTITY_TEMPLATE_SECTION,
    ENTITY_TRANSCRIPT_ENTRY,
    PARTICIPANT_ID_NAMESPACE,
    ROLE_ATTENDEE,
    ROLE_ORGANIZER,
    UNSCOPED,
)
from core.errors import BatchIngestError, VaultConfigError
from core.logging_config import get_logger
from core.types import (
    CalendarEvent,
    Document,
    DocumentPanel,
    IngestReport,
    PanelTemplate,
    Person,
    SnapshotGraph,
    TemplateSection,
    TranscriptEntry,
)
from ingest.change_detector import ChangeDetector
from store.database import VaultDatabase
from store.history_recorder import HistoryRecorder
from store.repositories import Repositories, UpsertRepository

_LOGGER = get_logger(__name__)

_PARTICIPANT_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, PARTICIPANT_ID_NAMESPACE)

STAGE_DETECT = "detect"
STAGE_HISTORY = "history"
STAGE_UPSERT = "upsert"
STAGE_COMMIT = "commit"


@dataclass
class _BatchCursor:
    """Position inside the batch being applied, used for error context."""

    document_id: str | None = None
    entity_class: str | None = None
    stage: str = STAGE_DETECT


@dataclass
class _DocumentChanges:
    """Entities of one document that must be written."""

    document_id: str
    document: Document | None = None
    calendar_event: CalendarEvent | None = None
    people: list[Person] = field(default_factory=list)
    transcript_entries: list[TranscriptEntry] = field(default_factory=list)
    panel_templates: list[PanelTemplate] = field(default_factory=list)
    template_sections: list[TemplateSection] = field(default_factory=list)
    document_panels: list[DocumentPanel] = field(default_factory=list)


def participant_id(document_id: str, email: str) -> str:
    """Return the stable participant id for an attendee of a document."""
    return str(uuid.uuid5(_PARTICIPANT_NAMESPACE, f"{document_id}:{email}"))


def derive_participants(event: CalendarEvent) -> tuple[list[Person], int]:
    """Derive participant rows from a calendar event's attendees.

    Participants are keyed by email, so attendees without one are left out.

    Args:
        event: Calendar event attached to a document.

    Returns:
        People in attendee order, and the number of attendees left out.
    """
    people: list[Person] = []
    missing_email = 0
    for attendee in event.attendees:
        if not attendee.email:
            missing_email += 1
            continue
        people.append(
            Person(
                id=participant_id(event.document_id, attendee.email),
                document_id=event.document_id,
                email=attendee.email,
                name=attendee.display_name,
                role=ROLE_ORGANIZER if attendee.organizer else ROLE_ATTENDEE,
                response_status=attendee.response_status,
            )
        )
    return people, missing_email


class BatchIngestionEngine:
    """Applies snapshot graphs to the vault in atomic batches."""

    def __init__(
        self,
        database: VaultDatabase,
        detector: ChangeDetector,
        history_recorder: HistoryRecorder,
        repositories: Repositories,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise VaultConfigError(
                f"Invalid batch size {batch_size}. Use an integer greater than zero."
            )
        self._database = database
        self._detector = detector
        self._history = history_recorder
        self._repositories = repositories
        self._batch_size = batch_size
        self._lock = threading.Lock()

    def ingest(self, graph: SnapshotGraph) -> IngestReport:
        """Ingest every document of a snapshot graph.

        Concurrent calls are serialized; a second caller waits until the
        running ingest finishes.

        Args:
            graph: Decoded snapshot graph.

        Returns:
            Counters of the completed run.

        Raises:
            BatchIngestError: If a batch fails. Batches committed before
                the failure stay committed and later batches are not run.
        """
        with self._lock:
            return self._ingest(graph)

    def _ingest(self, graph: SnapshotGraph) -> IngestReport:
        for skipped in graph.skipped:
            _LOGGER.warning(
                "invalid_entity_skipped",
                entity_class=skipped.entity_class,
                document_id=skipped.document_id,
                reason=skipped.reason,
            )
        upserts: Counter[str] = Counter()
        history_records = 0
        skipped_entities = len(graph.skipped)
        committed_batches = 0
        for batch_index, batch in enumerate(_chunks(graph.documents, self._batch_size)):
            batch_upserts, batch_history, batch_skipped = self._apply_batch(
                batch_index, batch, graph, committed_batches
            )
            committed_batches += 1
            upserts.update(batch_upserts)
            history_records += batch_history
            skipped_entities += batch_skipped
        report = IngestReport(
            documents_seen=len(graph.documents),
            batches_committed=committed_batches,
            history_records=history_records,
            upserts=dict(upserts),
            skipped_entities=skipped_entities,
        )
        _LOGGER.info(
            "ingest_completed",
            documents_seen=report.documents_seen,
            batches_committed=report.batches_committed,
            history_records=report.history_records,
            total_upserts=report.total_upserts,
            skipped_entities=report.skipped_entities,
        )
        return report

    def _apply_batch(
        self,
        batch_index: int,
        batch: Sequence[Document],
        graph: SnapshotGraph,
        committed_batches: int,
    ) -> tuple[Counter[str], int, int]:
        cursor = _BatchCursor()
        upserts: Counter[str] = Counter()
        history_records = 0
        skipped = 0
        try:
            with self._database.transaction():
                self._detector.begin_batch()
                planned: list[_DocumentChanges] = []
                for document in batch:
                    cursor.document_id = document.id
                    changes, document_skipped = self._plan_document(document, graph, cursor)
                    planned.append(changes)
                    skipped += document_skipped
                for changes in planned:
                    history_records += self._write_document(changes, cursor, upserts)
                cursor.document_id = None
                cursor.entity_class = None
                cursor.stage = STAGE_COMMIT
        except Exception as error:
            restored = self._detector.rollback_batch()
            _LOGGER.error(
                "batch_rolled_back",
                batch_index=batch_index,
                document_id=cursor.document_id,
                entity_class=cursor.entity_class,
                stage=cursor.stage,
                fingerprints_restored=restored,
                error=str(error),
            )
            raise BatchIngestError(
                f"Batch {batch_index} failed at stage '{cursor.stage}' "
                f"(document '{cursor.document_id or '-'}', "
                f"entity '{cursor.entity_class or '-'}'): {error}. "
                f"{committed_batches} earlier batch(es) stay committed; "
                "fix the cause and re-run to retry this batch.",
                batch_index=batch_index,
                document_id=cursor.document_id,
                entity_class=cursor.entity_class,
                stage=cursor.stage,
                committed_batches=committed_batches,
            ) from error
        self._detector.commit_batch()
        _LOGGER.info(
            "batch_committed",
            batch_index=batch_index,
            documents=len(batch),
            upserts=sum(upserts.values()),
            history_records=history_records,
        )
        return upserts, history_records, skipped

    def _plan_document(
        self,
        document: Document,
        graph: SnapshotGraph,
        cursor: _BatchCursor,
    ) -> tuple[_DocumentChanges, int]:
        """Detect which entities of one document changed."""
        cursor.stage = STAGE_DETECT
        doc_id = document.id
        changes = _DocumentChanges(document_id=doc_id)
        skipped = 0

        cursor.entity_class = ENTITY_DOCUMENT
        if self._detector.has_changed(ENTITY_DOCUMENT, UNSCOPED, doc_id, document):
            changes.document = document

        event = document.calendar_event
        if event is not None:
            cursor.entity_class = ENTITY_CALENDAR_EVENT
            if self._detector.has_changed(ENTITY_CALENDAR_EVENT, doc_id, event.id, event):
                changes.calendar_event = event
                cursor.entity_class = ENTITY_PERSON
                people, missing_email = derive_participants(event)
                for _ in range(missing_email):
                    _LOGGER.warning(
                        "invalid_entity_skipped",
                        entity_class=ENTITY_PERSON,
                        document_id=doc_id,
                        reason=f"attendee of calendar event '{event.id}' has no email",
                    )
                skipped += missing_email
                changes.people = [
                    person
                    for person in people
                    if self._detector.has_changed(ENTITY_PERSON, doc_id, person.id, person)
                ]

        cursor.entity_class = ENTITY_TRANSCRIPT_ENTRY
        for entry in graph.transcripts.get(doc_id, ()):
            if self._detector.has_changed(ENTITY_TRANSCRIPT_ENTRY, doc_id, entry.id, entry):
                changes.transcript_entries.append(entry)

        bundle = graph.templates.get(doc_id)
        if bundle is not None:
            cursor.entity_class = ENTITY_PANEL_TEMPLATE
            changes.panel_templates = [
                template
                for template in bundle.panel_templates
                if self._detector.has_changed(
                    ENTITY_PANEL_TEMPLATE, UNSCOPED, template.id, template
                )
            ]
            cursor.entity_class = ENTITY_TEMPLATE_SECTION
            changes.template_sections = [
                section
                for section in bundle.template_sections
                if self._detector.has_changed(
                    ENTITY_TEMPLATE_SECTION, UNSCOPED, section.id, section
                )
            ]
            cursor.entity_class = ENTITY_DOCUMENT_PANEL
            changes.document_panels = [
                panel
                for panel in bundle.document_panels
                if self._detector.has_changed(ENTITY_DOCUMENT_PANEL, doc_id, panel.id, panel)
            ]
        return changes, skipped

    def _write_document(
        self,
        changes: _DocumentChanges,
        cursor: _BatchCursor,
        upserts: Counter[str],
    ) -> int:
        """Apply one document's planned writes; return history records written."""
        repos = self._repositories
        cursor.document_id = changes.document_id
        history_records = 0
        if changes.document is not None:
            cursor.entity_class = ENTITY_DOCUMENT
            cursor.stage = STAGE_HISTORY
            record = self._history.record_before_update(changes.document_id, changes.document)
            if record is not None:
                history_records += 1
            cursor.stage = STAGE_UPSERT
            repos.documents.upsert(changes.document)
            upserts[ENTITY_DOCUMENT] += 1
        cursor.stage = STAGE_UPSERT
        if changes.calendar_event is not None:
            cursor.entity_class = ENTITY_CALENDAR_EVENT
            repos.calendar_events.upsert(changes.calendar_event)
            upserts[ENTITY_CALENDAR_EVENT] += 1
        _upsert_all(repos.people, ENTITY_PERSON, changes.people, cursor, upserts)
        _upsert_all(
            repos.transcript_entries,
            ENTITY_TRANSCRIPT_ENTRY,
            changes.transcript_entries,
            cursor,
            upserts,
        )
        _upsert_all(
            repos.panel_templates, ENTITY_PANEL_TEMPLATE, changes.panel_templates, cursor, upserts
        )
        _upsert_all(
            repos.template_sections,
            ENTITY_TEMPLATE_SECTION,
            changes.template_sections,
            cursor,
            upserts,
        )
        _upsert_all(
            repos.document_panels, ENTITY_DOCUMENT_PANEL, changes.document_panels, cursor, upserts
        )
        return history_records


def _upsert_all(
    repository: UpsertRepository,
    entity_class: str,
    entities: Sequence[object],
    cursor: _BatchCursor,
    upserts: Counter[str],
) -> None:
    cursor.entity_class = entity_class
    for entity in entities:
        repository.upsert(entity)
        upserts[entity_class] += 1


def _chunks(documents: Sequence[Document], size: int) -> Iterator[Sequence[Document]]:
    for start in range(0, len(documents), size):
        yield documents[start : start + size]
