"""Core constants used across meetvault modules.

This module centralizes non-domain-specific constants.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_DB_PATH = Path(".meetvault") / "meetvault.db"
DEFAULT_SNAPSHOT_PATH = (
    Path("~") / "Library" / "Application Support" / "Granola" / "cache-v3.json"
)
DEFAULT_BATCH_SIZE = 100
DEFAULT_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_LOG_LEVEL = "info"
SUPPORTED_LOG_LEVELS = ("debug", "info", "warning", "error")
CONFIG_FILE_VERSION = 1
HASH_ALGORITHM = "sha256"
FINGERPRINT_LENGTH = 16
HISTORY_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
PARTICIPANT_ID_NAMESPACE = "meetvault.participant"
ROLE_ORGANIZER = "organizer"
ROLE_ATTENDEE = "attendee"

ENTITY_DOCUMENT = "document"
ENTITY_CALENDAR_EVENT = "calendar_event"
ENTITY_PERSON = "person"
ENTITY_TRANSCRIPT_ENTRY = "transcript_entry"
ENTITY_PANEL_TEMPLATE = "panel_template"
ENTITY_TEMPLATE_SECTION = "template_section"
ENTITY_DOCUMENT_PANEL = "document_panel"

# Unscoped entity classes use an empty scope id in fingerprint keys.
UNSCOPED = ""

TABLE_DOCUMENTS = "documents"
TABLE_CALENDAR_EVENTS = "calendar_events"
TABLE_PEOPLE = "people"
TABLE_TRANSCRIPT_ENTRIES = "transcript_entries"
TABLE_PANEL_TEMPLATES = "panel_templates"
TABLE_TEMPLATE_SECTIONS = "template_sections"
TABLE_DOCUMENT_PANELS = "document_panels"
TABLE_HISTORICAL_DOCUMENTS = "historical_documents"
TABLE_FINGERPRINT_MEMO = "fingerprint_memo"
COUNTED_TABLES = (
    TABLE_DOCUMENTS,
    TABLE_CALENDAR_EVENTS,
    TABLE_PEOPLE,
    TABLE_TRANSCRIPT_ENTRIES,
    TABLE_PANEL_TEMPLATES,
    TABLE_TEMPLATE_SECTIONS,
    TABLE_DOCUMENT_PANELS,
    TABLE_HISTORICAL_DOCUMENTS,
)

DOCUMENT_COLUMNS = (
    "id",
    "title",
    "created_at",
    "updated_at",
    "deleted_at",
    "user_id",
    "notes_markdown",
    "notes_plain",
    "transcribe",
    "public",
    "type",
    "valid_meeting",
    "has_shareable_link",
    "creation_source",
    "subscription_plan_id",
    "privacy_mode_enabled",
)

# Fields whose change is a meaningful document change. ``updated_at`` is
# bookkeeping and the nested calendar event is fingerprinted on its own.
DOCUMENT_FINGERPRINT_FIELDS = (
    "title",
    "created_at",
    "deleted_at",
    "user_id",
    "notes_markdown",
    "notes_plain",
    "transcribe",
    "public",
    "type",
    "valid_meeting",
    "has_shareable_link",
    "creation_source",
    "subscription_plan_id",
    "privacy_mode_enabled",
)
CALENDAR_EVENT_FINGERPRINT_FIELDS = (
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
    "attendees",
)
PERSON_FINGERPRINT_FIELDS = (
    "email",
    "name",
    "role",
    "response_status",
    "avatar_url",
    "company_name",
    "job_title",
)
TRANSCRIPT_ENTRY_FINGERPRINT_FIELDS = (
    "text",
    "source",
    "speaker",
    "start_timestamp",
    "end_timestamp",
    "is_final",
    "sequence_number",
)
PANEL_TEMPLATE_FINGERPRINT_FIELDS = (
    "category",
    "title",
    "description",
    "color",
    "symbol",
    "is_granola",
    "deleted_at",
    "shared_with",
    "user_types",
)
TEMPLATE_SECTION_FINGERPRINT_FIELDS = (
    "template_id",
    "heading",
    "section_description",
    "sequence_number",
)
DOCUMENT_PANEL_FINGERPRINT_FIELDS = (
    "template_id",
    "content",
)
