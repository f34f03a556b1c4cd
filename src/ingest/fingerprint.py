"""Entity fingerprinting.

This module projects each entity class onto its documented relevant
fields and hashes the projection as canonical JSON. Key order, and the
difference between a null field and an absent field, never affect the
resulting fingerprint.
"""

from __future__ import annotations

from dataclasses import asdict, is_dataclass
import hashlib
import json
from typing import Any, Mapping

from core.constants import (
    CALENDAR_EVENT_FINGERPRINT_FIELDS,
    DOCUMENT_FINGERPRINT_FIELDS,
    DOCUMENT_PANEL_FINGERPRINT_FIELDS,
    ENTITY_CALENDAR_EVENT,
    ENTITY_DOCUMENT,
    ENTITY_DOCUMENT_PANEL,
    ENTITY_PANEL_TEMPLATE,
    ENTITY_PERSON,
    ENTITY_TEMPLATE_SECTION,
    ENTITY_TRANSCRIPT_ENTRY,
    FINGERPRINT_LENGTH,
    HASH_ALGORITHM,
    PANEL_TEMPLATE_FINGERPRINT_FIELDS,
    PERSON_FINGERPRINT_FIELDS,
    TEMPLATE_SECTION_FINGERPRINT_FIELDS,
    TRANSCRIPT_ENTRY_FINGERPRINT_FIELDS,
)
from core.errors import InvalidEntityError

FINGERPRINT_FIELDS: Mapping[str, tuple[str, ...]] = {
    ENTITY_DOCUMENT: DOCUMENT_FINGERPRINT_FIELDS,
    ENTITY_CALENDAR_EVENT: CALENDAR_EVENT_FINGERPRINT_FIELDS,
    ENTITY_PERSON: PERSON_FINGERPRINT_FIELDS,
    ENTITY_TRANSCRIPT_ENTRY: TRANSCRIPT_ENTRY_FINGERPRINT_FIELDS,
    ENTITY_PANEL_TEMPLATE: PANEL_TEMPLATE_FINGERPRINT_FIELDS,
    ENTITY_TEMPLATE_SECTION: TEMPLATE_SECTION_FINGERPRINT_FIELDS,
    ENTITY_DOCUMENT_PANEL: DOCUMENT_PANEL_FINGERPRINT_FIELDS,
}


def project_fields(entity_class: str, entity: object) -> dict[str, Any]:
    """Project an entity onto the relevant fields of its class.

    Args:
        entity_class: Entity class name.
        entity: Typed entity dataclass or plain mapping.

    Returns:
        Mapping of relevant field name to canonical value.

    Raises:
        InvalidEntityError: If the entity class has no field list.
    """
    fields = FINGERPRINT_FIELDS.get(entity_class)
    if fields is None:
        raise InvalidEntityError(
            f"Cannot fingerprint unknown entity class '{entity_class}'. "
            f"Known classes: {', '.join(sorted(FINGERPRINT_FIELDS))}.",
            entity_class=entity_class,
        )
    return {name: _canonical(_field_value(entity, name)) for name in fields}


def compute_fingerprint(entity_class: str, entity: object) -> str:
    """Compute the deterministic fingerprint of an entity.

    Args:
        entity_class: Entity class name.
        entity: Typed entity dataclass or plain mapping.

    Returns:
        Short hex digest of the relevant-field projection.
    """
    projection = project_fields(entity_class, entity)
    serialized = json.dumps(
        projection,
        ensure_ascii=True,
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    hasher = hashlib.new(HASH_ALGORITHM)
    hasher.update(serialized.encode("utf-8"))
    return hasher.hexdigest()[:FINGERPRINT_LENGTH]


def _field_value(entity: object, name: str) -> Any:
    if isinstance(entity, Mapping):
        return entity.get(name)
    return getattr(entity, name, None)


def _canonical(value: Any) -> Any:
    """Convert nested values into JSON-friendly, order-insensitive form."""
    if is_dataclass(value) and not isinstance(value, type):
        return _canonical(asdict(value))
    if isinstance(value, Mapping):
        return {str(key): _canonical(item) for key, item in value.items() if item is not None}
    if isinstance(value, (list, tuple)):
        return [_canonical(item) for item in value]
    return value
