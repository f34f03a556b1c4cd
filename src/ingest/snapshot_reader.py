"""Snapshot file reader.

This module decodes the cache snapshot (a JSON envelope whose ``cache``
value is itself JSON) into a normalized, typed entity graph. Each decode
layer is validated explicitly so a failure names the layer that broke.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

from core.constants import (
    ENTITY_CALENDAR_EVENT,
    ENTITY_DOCUMENT,
    ENTITY_DOCUMENT_PANEL,
    ENTITY_PANEL_TEMPLATE,
    ENTITY_TEMPLATE_SECTION,
    ENTITY_TRANSCRIPT_ENTRY,
)
from core.errors import MalformedSnapshotError
from core.logging_config import get_logger
from core.types import (
    CalendarAttendee,
    CalendarEvent,
    Document,
    DocumentPanel,
    PanelTemplate,
    SkippedEntity,
    SnapshotGraph,
    TemplateBundle,
    TemplateSection,
    TranscriptEntry,
)

_LOGGER = get_logger(__name__)


def read_snapshot(source_path: str | Path) -> SnapshotGraph:
    """Read and decode one snapshot file.

    Args:
        source_path: Path to the snapshot JSON file.

    Returns:
        Normalized entity graph. A snapshot without documents yields an
        empty graph rather than an error.

    Raises:
        MalformedSnapshotError: If any decode layer fails.
    """
    path = Path(source_path).expanduser()
    state = _decode_state(path)
    skipped: list[SkippedEntity] = []
    documents = _decode_documents(path, state, skipped)
    transcripts = _decode_transcripts(path, state.get("transcripts"), skipped)
    templates = _decode_templates(path, state.get("templates"), skipped)
    graph = SnapshotGraph(
        documents=tuple(documents),
        transcripts=transcripts,
        templates=templates,
        skipped=tuple(skipped),
    )
    _LOGGER.info(
        "snapshot_read",
        path=str(path),
        documents=len(graph.documents),
        transcript_documents=len(graph.transcripts),
        template_documents=len(graph.templates),
        skipped=len(graph.skipped),
    )
    return graph


def _decode_state(path: Path) -> Mapping[str, Any]:
    """Unwrap envelope and payload layers down to the state object.

    Raises:
        MalformedSnapshotError: If file, envelope, payload, or state is invalid.
    """
    try:
        raw_text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as error:
        raise _malformed(
            path,
            "file",
            f"Failed to read snapshot at {path}: {error}. "
            "Check that the file exists and is readable.",
        ) from error
    try:
        envelope = json.loads(raw_text)
    except json.JSONDecodeError as error:
        raise _malformed(
            path,
            "envelope",
            f"Snapshot at {path} is not valid JSON: {error}. "
            "The file may be mid-write; the next change will retry.",
        ) from error
    if not isinstance(envelope, dict) or "cache" not in envelope:
        raise _malformed(
            path,
            "envelope",
            f"Snapshot at {path} has no 'cache' field. Expected {{\"cache\": \"<json>\"}}.",
        )
    payload = _decode_payload(path, envelope["cache"])
    state = payload.get("state")
    if not isinstance(state, dict):
        raise _malformed(
            path,
            "state",
            f"Snapshot payload at {path} has no 'state' object.",
        )
    if "documents" not in state:
        raise _malformed(
            path,
            "state",
            f"Snapshot state at {path} has no 'documents' collection.",
        )
    return state


def _decode_payload(path: Path, cache: Any) -> Mapping[str, Any]:
    if isinstance(cache, dict):
        return cache
    if not isinstance(cache, str):
        raise _malformed(
            path,
            "payload",
            f"Snapshot 'cache' at {path} must be a JSON string or object, "
            f"got {type(cache).__name__}.",
        )
    try:
        payload = json.loads(cache)
    except json.JSONDecodeError as error:
        raise _malformed(
            path,
            "payload",
            f"Snapshot 'cache' string at {path} is not valid JSON: {error}.",
        ) from error
    if not isinstance(payload, dict):
        raise _malformed(
            path,
            "payload",
            f"Snapshot payload at {path} must be a JSON object, got {type(payload).__name__}.",
        )
    return payload


def _decode_documents(
    path: Path,
    state: Mapping[str, Any],
    skipped: list[SkippedEntity],
) -> list[Document]:
    raw_documents = state["documents"]
    if not isinstance(raw_documents, (list, dict)):
        raise _malformed(
            path,
            "documents",
            f"Snapshot documents at {path} must be an array or an id-keyed object, "
            f"got {_type_name(raw_documents)}.",
        )
    documents: list[Document] = []
    for key, entry in _iter_entries(path, "documents", raw_documents):
        if not isinstance(entry, dict):
            raise _malformed(
                path,
                "document",
                f"Document entry '{key}' at {path} must be a JSON object, "
                f"got {type(entry).__name__}.",
            )
        document_id = _entity_id(entry, key)
        if document_id is None:
            skipped.append(SkippedEntity(ENTITY_DOCUMENT, None, "document has no id"))
            continue
        documents.append(_build_document(document_id, entry, skipped))
    return documents


def _build_document(
    document_id: str,
    entry: Mapping[str, Any],
    skipped: list[SkippedEntity],
) -> Document:
    calendar_event = None
    raw_event = entry.get("google_calendar_event")
    if isinstance(raw_event, dict):
        calendar_event = _build_calendar_event(document_id, raw_event)
        if calendar_event is None:
            skipped.append(
                SkippedEntity(ENTITY_CALENDAR_EVENT, document_id, "calendar event has no id")
            )
    return Document(
        id=document_id,
        title=entry.get("title"),
        created_at=entry.get("created_at"),
        updated_at=entry.get("updated_at"),
        deleted_at=entry.get("deleted_at"),
        user_id=entry.get("user_id"),
        notes_markdown=entry.get("notes_markdown"),
        notes_plain=entry.get("notes_plain"),
        transcribe=entry.get("transcribe"),
        public=entry.get("public"),
        type=entry.get("type"),
        valid_meeting=entry.get("valid_meeting"),
        has_shareable_link=entry.get("has_shareable_link"),
        creation_source=entry.get("creation_source"),
        subscription_plan_id=entry.get("subscription_plan_id"),
        privacy_mode_enabled=entry.get("privacy_mode_enabled"),
        calendar_event=calendar_event,
    )


def _build_calendar_event(document_id: str, raw: Mapping[str, Any]) -> CalendarEvent | None:
    """Map a provider calendar event, accepting Google or flat field names."""
    event_id = _entity_id(raw, None)
    if event_id is None:
        return None
    start = raw.get("start") if isinstance(raw.get("start"), dict) else {}
    end = raw.get("end") if isinstance(raw.get("end"), dict) else {}
    organizer = raw.get("organizer") if isinstance(raw.get("organizer"), dict) else {}
    attendees = raw.get("attendees") if isinstance(raw.get("attendees"), list) else []
    return CalendarEvent(
        id=event_id,
        document_id=document_id,
        summary=raw.get("summary"),
        description=raw.get("description"),
        start_time=_first(start.get("dateTime"), start.get("date"), raw.get("start_time")),
        end_time=_first(end.get("dateTime"), end.get("date"), raw.get("end_time")),
        timezone=_first(start.get("timeZone"), raw.get("timezone")),
        status=raw.get("status"),
        calendar_id=_first(raw.get("calendarId"), raw.get("calendar_id")),
        html_link=_first(raw.get("htmlLink"), raw.get("html_link")),
        hangout_link=_first(raw.get("hangoutLink"), raw.get("hangout_link")),
        location=raw.get("location"),
        organizer_email=_first(organizer.get("email"), raw.get("organizer_email")),
        created_at=_first(raw.get("created"), raw.get("created_at")),
        updated_at=_first(raw.get("updated"), raw.get("updated_at")),
        attendees=tuple(
            CalendarAttendee(
                email=attendee.get("email"),
                display_name=_first(attendee.get("displayName"), attendee.get("display_name")),
                organizer=bool(attendee.get("organizer", False)),
                response_status=_first(
                    attendee.get("responseStatus"), attendee.get("response_status")
                ),
            )
            for attendee in attendees
            if isinstance(attendee, dict)
        ),
    )


def _decode_transcripts(
    path: Path,
    raw_transcripts: Any,
    skipped: list[SkippedEntity],
) -> dict[str, tuple[TranscriptEntry, ...]]:
    if raw_transcripts is None:
        return {}
    if not isinstance(raw_transcripts, dict):
        raise _malformed(
            path,
            "transcripts",
            f"Snapshot transcripts at {path} must be an object keyed by document id.",
        )
    transcripts: dict[str, tuple[TranscriptEntry, ...]] = {}
    for document_id, raw_lines in raw_transcripts.items():
        if raw_lines is None:
            continue
        if not isinstance(raw_lines, (list, dict)):
            raise _malformed(
                path,
                "transcripts",
                f"Transcript lines of document '{document_id}' at {path} must be "
                "an array or an id-keyed object.",
            )
        entries: list[TranscriptEntry] = []
        for key, line in _iter_entries(path, "transcripts", raw_lines):
            line_id = _entity_id(line, key) if isinstance(line, dict) else None
            if line_id is None:
                skipped.append(
                    SkippedEntity(
                        ENTITY_TRANSCRIPT_ENTRY, document_id, "transcript line has no id"
                    )
                )
                continue
            entries.append(
                TranscriptEntry(
                    id=line_id,
                    document_id=document_id,
                    text=line.get("text"),
                    source=line.get("source"),
                    speaker=line.get("speaker"),
                    start_timestamp=line.get("start_timestamp"),
                    end_timestamp=line.get("end_timestamp"),
                    is_final=line.get("is_final"),
                    sequence_number=line.get("sequence_number"),
                )
            )
        transcripts[document_id] = tuple(entries)
    return transcripts


def _decode_templates(
    path: Path,
    raw_templates: Any,
    skipped: list[SkippedEntity],
) -> dict[str, TemplateBundle]:
    if raw_templates is None:
        return {}
    if not isinstance(raw_templates, dict):
        raise _malformed(
            path,
            "templates",
            f"Snapshot templates at {path} must be an object keyed by document id.",
        )
    bundles: dict[str, TemplateBundle] = {}
    for document_id, raw_bundle in raw_templates.items():
        if raw_bundle is None:
            continue
        if not isinstance(raw_bundle, dict):
            raise _malformed(
                path,
                "templates",
                f"Templates of document '{document_id}' at {path} must be a JSON object.",
            )
        bundles[document_id] = _build_template_bundle(path, document_id, raw_bundle, skipped)
    return bundles


def _build_template_bundle(
    path: Path,
    document_id: str,
    raw_bundle: Mapping[str, Any],
    skipped: list[SkippedEntity],
) -> TemplateBundle:
    """Decode ``{"templates": [...], "panels": [...]}`` or one bare template."""
    if "templates" in raw_bundle or "panels" in raw_bundle:
        raw_templates = raw_bundle.get("templates")
        raw_panels = raw_bundle.get("panels")
    else:
        raw_templates = [raw_bundle]
        raw_panels = []
    templates: list[PanelTemplate] = []
    sections: list[TemplateSection] = []
    panels: list[DocumentPanel] = []
    for key, raw in _iter_entries(path, "templates", raw_templates):
        template_id = _entity_id(raw, key) if isinstance(raw, dict) else None
        if template_id is None:
            skipped.append(
                SkippedEntity(ENTITY_PANEL_TEMPLATE, document_id, "template has no id")
            )
            continue
        templates.append(_build_panel_template(template_id, raw))
        for section_key, raw_section in _iter_entries(path, "templates", raw.get("sections")):
            section_id = (
                _entity_id(raw_section, section_key) if isinstance(raw_section, dict) else None
            )
            if section_id is None:
                skipped.append(
                    SkippedEntity(ENTITY_TEMPLATE_SECTION, document_id, "section has no id")
                )
                continue
            sections.append(
                TemplateSection(
                    id=section_id,
                    template_id=template_id,
                    heading=raw_section.get("heading"),
                    section_description=raw_section.get("section_description"),
                    sequence_number=raw_section.get("sequence_number"),
                )
            )
    for key, raw in _iter_entries(path, "templates", raw_panels):
        panel_id = _entity_id(raw, key) if isinstance(raw, dict) else None
        if panel_id is None:
            skipped.append(SkippedEntity(ENTITY_DOCUMENT_PANEL, document_id, "panel has no id"))
            continue
        panels.append(
            DocumentPanel(
                id=panel_id,
                document_id=document_id,
                template_id=raw.get("template_id"),
                content=raw.get("content"),
                created_at=raw.get("created_at"),
                updated_at=raw.get("updated_at"),
            )
        )
    return TemplateBundle(
        panel_templates=tuple(templates),
        template_sections=tuple(sections),
        document_panels=tuple(panels),
    )


def _build_panel_template(template_id: str, raw: Mapping[str, Any]) -> PanelTemplate:
    return PanelTemplate(
        id=template_id,
        category=raw.get("category"),
        title=raw.get("title"),
        description=raw.get("description"),
        color=raw.get("color"),
        symbol=raw.get("symbol"),
        is_granola=raw.get("is_granola"),
        created_at=raw.get("created_at"),
        updated_at=raw.get("updated_at"),
        deleted_at=raw.get("deleted_at"),
        shared_with=raw.get("shared_with"),
        user_types=raw.get("user_types"),
    )


def _iter_entries(path: Path, layer: str, collection: Any) -> list[tuple[str | None, Any]]:
    """Normalize an array or id-keyed object into ``(key, entry)`` pairs.

    A missing (null) collection is empty; any other type is malformed.
    """
    if collection is None:
        return []
    if isinstance(collection, dict):
        return [(str(key), value) for key, value in collection.items()]
    if isinstance(collection, list):
        return [(None, value) for value in collection]
    raise _malformed(
        path,
        layer,
        f"Snapshot {layer} collection at {path} must be an array or an id-keyed object, "
        f"got {_type_name(collection)}.",
    )


def _type_name(value: Any) -> str:
    return "null" if value is None else type(value).__name__


def _entity_id(entry: Mapping[str, Any], fallback: str | None) -> str | None:
    raw_id = entry.get("id")
    if raw_id is None or raw_id == "":
        return fallback or None
    return str(raw_id)


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _malformed(path: Path, layer: str, message: str) -> MalformedSnapshotError:
    _LOGGER.warning("snapshot_malformed", path=str(path), layer=layer, error=message)
    return MalformedSnapshotError(message, layer=layer, path=str(path))
