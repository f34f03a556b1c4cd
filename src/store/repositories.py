"""Per-entity upsert repositories.

Each repository maps one typed entity onto one table with
insert-or-replace semantics keyed by the entity id.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Any, Callable, Generic, Sequence, TypeVar

from core.constants import (
    DOCUMENT_COLUMNS,
    TABLE_CALENDAR_EVENTS,
    TABLE_DOCUMENT_PANELS,
    TABLE_DOCUMENTS,
    TABLE_PANEL_TEMPLATES,
    TABLE_PEOPLE,
    TABLE_TEMPLATE_SECTIONS,
    TABLE_TRANSCRIPT_ENTRIES,
)
from core.logging_config import get_logger
from core.types import (
    CalendarEvent,
    Document,
    DocumentPanel,
    PanelTemplate,
    Person,
    TemplateSection,
    TranscriptEntry,
)
from store.database import VaultDatabase

_LOGGER = get_logger(__name__)

EntityT = TypeVar("EntityT")


class UpsertRepository(Generic[EntityT]):
    """Insert-or-replace writer for one table."""

    def __init__(
        self,
        database: VaultDatabase,
        table: str,
        columns: Sequence[str],
        to_row: Callable[[EntityT], Sequence[object]],
    ) -> None:
        self._database = database
        self._table = table
        self._to_row = to_row
        placeholders = ", ".join("?" for _ in columns)
        updates = ", ".join(f"{column} = excluded.{column}" for column in columns[1:])
        self._sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
            f"ON CONFLICT (id) DO UPDATE SET {updates}"
        )

    @property
    def table(self) -> str:
        return self._table

    def upsert(self, entity: EntityT) -> None:
        """Insert the entity row or replace the existing one."""
        row = self._to_row(entity)
        _LOGGER.debug("entity_upserted", table=self._table, entity_id=row[0])
        self._database.execute(self._sql, row)


class DocumentRepository(UpsertRepository[Document]):
    """Current-state writer and reader for documents."""

    def __init__(self, database: VaultDatabase) -> None:
        super().__init__(database, TABLE_DOCUMENTS, DOCUMENT_COLUMNS, _document_row)

    def get(self, document_id: str) -> dict[str, Any] | None:
        """Return the persisted document row, or None when absent."""
        rows = self._database.fetch_all(
            f"SELECT {', '.join(DOCUMENT_COLUMNS)} FROM {TABLE_DOCUMENTS} WHERE id = ?",
            (document_id,),
        )
        if not rows:
            return None
        return dict(rows[0])


@dataclass(frozen=True)
class Repositories:
    """Bundle of all per-entity repositories sharing one database."""

    documents: DocumentRepository
    calendar_events: UpsertRepository[CalendarEvent]
    people: UpsertRepository[Person]
    transcript_entries: UpsertRepository[TranscriptEntry]
    panel_templates: UpsertRepository[PanelTemplate]
    template_sections: UpsertRepository[TemplateSection]
    document_panels: UpsertRepository[DocumentPanel]

    @classmethod
    def for_database(cls, database: VaultDatabase) -> "Repositories":
        """Build every repository against one database."""
        return cls(
            documents=DocumentRepository(database),
            calendar_events=UpsertRepository(
                database,
                TABLE_CALENDAR_EVENTS,
                (
                    "id",
                    "document_id",
                    "summary",
                    "description",
                    "start_time",
                    "end_time",
                    "timezone",
                    "status",
                    "calendar_id",
                    "html_link",
                    "hangout_link",
                    "location",
                    "organizer_email",
                    "created_at",
                    "updated_at",
                ),
                _calendar_event_row,
            ),
            people=UpsertRepository(
                database,
                TABLE_PEOPLE,
                (
                    "id",
                    "document_id",
                    "email",
                    "name",
                    "role",
                    "response_status",
                    "avatar_url",
                    "company_name",
                    "job_title",
                ),
                _person_row,
            ),
            transcript_entries=UpsertRepository(
                database,
                TABLE_TRANSCRIPT_ENTRIES,
                (
                    "id",
                    "document_id",
                    "text",
                    "source",
                    "speaker",
                    "start_timestamp",
                    "end_timestamp",
                    "is_final",
                    "sequence_number",
                ),
                _transcript_row,
            ),
            panel_templates=UpsertRepository(
                database,
                TABLE_PANEL_TEMPLATES,
                (
                    "id",
                    "category",
                    "title",
                    "description",
                    "color",
                    "symbol",
                    "is_granola",
                    "created_at",
                    "updated_at",
                    "deleted_at",
                    "shared_with",
                    "user_types",
                ),
                _panel_template_row,
            ),
            template_sections=UpsertRepository(
                database,
                TABLE_TEMPLATE_SECTIONS,
                ("id", "template_id", "heading", "section_description", "sequence_number"),
                _template_section_row,
            ),
            document_panels=UpsertRepository(
                database,
                TABLE_DOCUMENT_PANELS,
                ("id", "document_id", "template_id", "content", "created_at", "updated_at"),
                _document_panel_row,
            ),
        )


def _document_row(doc: Document) -> tuple[object, ...]:
    return tuple(getattr(doc, column) for column in DOCUMENT_COLUMNS)


def _calendar_event_row(event: CalendarEvent) -> tuple[object, ...]:
    return (
        event.id,
        event.document_id,
        event.summary,
        event.description,
        event.start_time,
        event.end_time,
        event.timezone,
        event.status,
        event.calendar_id,
        event.html_link,
        event.hangout_link,
        event.location,
        event.organizer_email,
        event.created_at,
        event.updated_at,
    )


def _person_row(person: Person) -> tuple[object, ...]:
    return (
        person.id,
        person.document_id,
        person.email,
        person.name,
        person.role,
        person.response_status,
        person.avatar_url,
        person.company_name,
        person.job_title,
    )


def _transcript_row(entry: TranscriptEntry) -> tuple[object, ...]:
    return (
        entry.id,
        entry.document_id,
        entry.text,
        entry.source,
        entry.speaker,
        entry.start_timestamp,
        entry.end_timestamp,
        entry.is_final,
        entry.sequence_number,
    )


def _panel_template_row(template: PanelTemplate) -> tuple[object, ...]:
    return (
        template.id,
        template.category,
        template.title,
        template.description,
        template.color,
        template.symbol,
        template.is_granola,
        template.created_at,
        template.updated_at,
        template.deleted_at,
        template.shared_with,
        _json_column(template.user_types),
    )


def _template_section_row(section: TemplateSection) -> tuple[object, ...]:
    return (
        section.id,
        section.template_id,
        section.heading,
        section.section_description,
        section.sequence_number,
    )


def _document_panel_row(panel: DocumentPanel) -> tuple[object, ...]:
    return (
        panel.id,
        panel.document_id,
        panel.template_id,
        _json_column(panel.content),
        panel.created_at,
        panel.updated_at,
    )


def _json_column(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, sort_keys=True)
