"""Fingerprint stores for change detection.

This module holds the last-seen fingerprint per tracked entity. The
in-memory store is the default; the SQLite store keeps fingerprints in
the vault database so a restart does not make every entity look new.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from core.constants import TABLE_FINGERPRINT_MEMO
from store.database import VaultDatabase


@dataclass(frozen=True)
class FingerprintKey:
    """Identity of a fingerprinted entity.

    Attributes:
        entity_class: Entity class name.
        scope_id: Owning document id, or empty for unscoped classes.
        entity_id: Entity id, unique within class and scope.
    """

    entity_class: str
    scope_id: str
    entity_id: str


class FingerprintStore(Protocol):
    # True when writes join the batch transaction and roll back with it.
    transactional: bool

    def get(self, key: FingerprintKey) -> str | None: ...

    def set(self, key: FingerprintKey, fingerprint: str) -> None: ...

    def discard(self, key: FingerprintKey) -> None: ...


class InMemoryFingerprintStore:
    """Process-local fingerprint map, empty after every restart."""

    transactional = False

    def __init__(self) -> None:
        self._fingerprints: dict[FingerprintKey, str] = {}

    def get(self, key: FingerprintKey) -> str | None:
        """Return the stored fingerprint, or None for unseen entities."""
        return self._fingerprints.get(key)

    def set(self, key: FingerprintKey, fingerprint: str) -> None:
        """Store the latest fingerprint for an entity."""
        self._fingerprints[key] = fingerprint

    def discard(self, key: FingerprintKey) -> None:
        """Forget an entity so it is reported as unseen again."""
        self._fingerprints.pop(key, None)

    def __len__(self) -> int:
        return len(self._fingerprints)


class SqliteFingerprintStore:
    """Fingerprint map persisted in the vault database.

    Writes go through the shared connection, so they join whatever batch
    transaction is open and roll back with it.
    """

    transactional = True

    def __init__(self, database: VaultDatabase) -> None:
        self._database = database

    def get(self, key: FingerprintKey) -> str | None:
        """Return the stored fingerprint, or None for unseen entities."""
        rows = self._database.fetch_all(
            f"SELECT fingerprint FROM {TABLE_FINGERPRINT_MEMO} "
            "WHERE entity_class = ? AND scope_id = ? AND entity_id = ?",
            (key.entity_class, key.scope_id, key.entity_id),
        )
        if not rows:
            return None
        return str(rows[0]["fingerprint"])

    def set(self, key: FingerprintKey, fingerprint: str) -> None:
        """Insert or replace the fingerprint for an entity."""
        self._database.execute(
            f"INSERT INTO {TABLE_FINGERPRINT_MEMO} "
            "(entity_class, scope_id, entity_id, fingerprint) VALUES (?, ?, ?, ?) "
            "ON CONFLICT (entity_class, scope_id, entity_id) "
            "DO UPDATE SET fingerprint = excluded.fingerprint",
            (key.entity_class, key.scope_id, key.entity_id, fingerprint),
        )

    def discard(self, key: FingerprintKey) -> None:
        """Forget an entity so it is reported as unseen again."""
        self._database.execute(
            f"DELETE FROM {TABLE_FINGERPRINT_MEMO} "
            "WHERE entity_class = ? AND scope_id = ? AND entity_id = ?",
            (key.entity_class, key.scope_id, key.entity_id),
        )
