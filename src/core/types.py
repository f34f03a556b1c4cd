"""Shared typed models.

This module defines immutable data models used by the snapshot reader,
change detection, batch ingestion, and store layers to keep interfaces
explicit and stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class CalendarAttendee:
    """One attendee listed on a calendar event.

    Attributes:
        email: Attendee email address.
        display_name: Human readable name when provided.
        organizer: Whether the attendee organizes the event.
        response_status: Invitation response (accepted, declined, ...).
    """

    email: str | None
    display_name: str | None = None
    organizer: bool = False
    response_status: str | None = None


@dataclass(frozen=True)
class CalendarEvent:
    """Calendar event attached to a meeting document.

    Attributes:
        id: Calendar provider event id.
        document_id: Owning document id.
        summary: Event title.
        description: Event description body.
        start_time: Start timestamp.
        end_time: End timestamp.
        timezone: Event time zone name.
        status: Provider status (confirmed, cancelled, ...).
        calendar_id: Owning calendar id.
        html_link: Browser link to the event.
        hangout_link: Video conference link.
        location: Free-form location.
        organizer_email: Organizer email address.
        created_at: Provider creation timestamp.
        updated_at: Provider update timestamp.
        attendees: Invited attendees in provider order.
    """

    id: str
    document_id: str
    summary: str | None = None
    description: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    timezone: str | None = None
    status: str | None = None
    calendar_id: str | None = None
    html_link: str | None = None
    hangout_link: str | None = None
    location: str | None = None
    organizer_email: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    attendees: tuple[CalendarAttendee, ...] = ()


@dataclass(frozen=True)
class Document:
    """Meeting document, the versioned root entity.

    Attributes:
        id: Stable document id.
        title: Meeting title.
        created_at: Creation timestamp.
        updated_at: Last update timestamp (bookkeeping only).
        deleted_at: Soft-deletion timestamp from the source.
        user_id: Owning user id.
        notes_markdown: Notes rendered as markdown.
        notes_plain: Notes as plain text.
        transcribe: Whether transcription is enabled.
        public: Whether the document is public.
        type: Source document type.
        valid_meeting: Whether the source treats this as a real meeting.
        has_shareable_link: Whether a share link exists.
        creation_source: Client that created the document.
        subscription_plan_id: Plan id at creation time.
        privacy_mode_enabled: Whether privacy mode is on.
        calendar_event: Attached calendar event, if any.
    """

    id: str
    title: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    deleted_at: str | None = None
    user_id: str | None = None
    notes_markdown: str | None = None
    notes_plain: str | None = None
    transcribe: bool | None = None
    public: bool | None = None
    type: str | None = None
    valid_meeting: bool | None = None
    has_shareable_link: bool | None = None
    creation_source: str | None = None
    subscription_plan_id: str | None = None
    privacy_mode_enabled: bool | None = None
    calendar_event: CalendarEvent | None = None


@dataclass(frozen=True)
class Person:
    """Meeting participant derived from a calendar attendee."""

    id: str
    document_id: str
    email: str | None
    name: str | None = None
    role: str | None = None
    response_status: str | None = None
    avatar_url: str | None = None
    company_name: str | None = None
    job_title: str | None = None


@dataclass(frozen=True)
class TranscriptEntry:
    """One transcript line of a document.

    Attributes:
        id: Line id, unique within its document.
        document_id: Owning document id.
        text: Transcribed text.
        source: Audio source (microphone, system).
        speaker: Speaker label.
        start_timestamp: Start of the spoken segment.
        end_timestamp: End of the spoken segment.
        is_final: Whether the line is final.
        sequence_number: Ordering hint within the document.
    """

    id: str
    document_id: str
    text: str | None = None
    source: str | None = None
    speaker: str | None = None
    start_timestamp: str | None = None
    end_timestamp: str | None = None
    is_final: bool | None = None
    sequence_number: int | None = None


@dataclass(frozen=True)
class PanelTemplate:
    """Note template referenced by document panels."""

    id: str
    category: str | None = None
    title: str | None = None
    description: str | None = None
    color: str | None = None
    symbol: str | None = None
    is_granola: bool | None = None
    created_at: str | None = None
    updated_at: str | None = None
    deleted_at: str | None = None
    shared_with: str | None = None
    user_types: Any = None


@dataclass(frozen=True)
class TemplateSection:
    """Heading section of a panel template."""

    id: str
    template_id: str | None = None
    heading: str | None = None
    section_description: str | None = None
    sequence_number: int | None = None


@dataclass(frozen=True)
class DocumentPanel:
    """Template-generated panel content attached to a document."""

    id: str
    document_id: str
    template_id: str | None = None
    content: Any = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class TemplateBundle:
    """Template artifacts associated with one document.

    Attributes:
        panel_templates: Templates referenced by the document.
        template_sections: Sections of those templates.
        document_panels: Panels rendered for the document.
    """

    panel_templates: tuple[PanelTemplate, ...] = ()
    template_sections: tuple[TemplateSection, ...] = ()
    document_panels: tuple[DocumentPanel, ...] = ()


@dataclass(frozen=True)
class SkippedEntity:
    """Snapshot entry dropped during decode because it cannot be tracked.

    Attributes:
        entity_class: Entity class of the dropped entry.
        document_id: Owning document id when known.
        reason: Why the entry was dropped.
    """

    entity_class: str
    document_id: str | None
    reason: str


@dataclass(frozen=True)
class SnapshotGraph:
    """Normalized entity graph decoded from one snapshot.

    Attributes:
        documents: Documents in snapshot order.
        transcripts: Transcript lines keyed by document id.
        templates: Template artifacts keyed by document id.
        skipped: Entries dropped during decode.
    """

    documents: tuple[Document, ...]
    transcripts: Mapping[str, tuple[TranscriptEntry, ...]] = field(default_factory=dict)
    templates: Mapping[str, TemplateBundle] = field(default_factory=dict)
    skipped: tuple[SkippedEntity, ...] = ()

    @property
    def is_empty(self) -> bool:
        """Return whether the snapshot is valid but holds no documents."""
        return not self.documents


@dataclass(frozen=True)
class HistoricalDocument:
    """Immutable copy of a document's persisted state before an update.

    Attributes:
        history_id: Synthetic record id.
        document_id: Id of the document this state belonged to.
        captured_at: UTC capture timestamp, monotonically increasing.
        state: Persisted document columns at capture time.
        changed_fields: Document fields the update changed.
    """

    history_id: str
    document_id: str
    captured_at: str
    state: Mapping[str, Any]
    changed_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class IngestReport:
    """Outcome counters of one ingest run.

    Attributes:
        documents_seen: Documents present in the snapshot.
        batches_committed: Batches committed by the run.
        history_records: Historical records written.
        upserts: Upsert count per entity class.
        skipped_entities: Entities skipped for missing identity.
    """

    documents_seen: int
    batches_committed: int
    history_records: int
    upserts: Mapping[str, int]
    skipped_entities: int = 0

    @property
    def total_upserts(self) -> int:
        """Return upserts summed across entity classes."""
        return sum(self.upserts.values())
