"""Fingerprint-based change detection.

This module decides whether an entity changed since it was last seen.
Detection is split into a pure ``compute`` step and a ``compare_and_set``
step, so the comparison and the store mutation are each auditable.
Fingerprint writes made while a batch is open are journaled and can be
undone when that batch's transaction rolls back.
"""

from __future__ import annotations

import threading

from core.errors import InvalidEntityError
from ingest.fingerprint import compute_fingerprint
from ingest.fingerprint_store import FingerprintKey, FingerprintStore


class ChangeDetector:
    """Sole owner and mutator of a fingerprint store."""

    def __init__(self, store: FingerprintStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._journal: dict[FingerprintKey, str | None] | None = None

    def compute(self, entity_class: str, entity: object) -> str:
        """Compute an entity fingerprint without touching the store."""
        return compute_fingerprint(entity_class, entity)

    def compare_and_set(self, key: FingerprintKey, fingerprint: str) -> bool:
        """Store ``fingerprint`` if it differs from the stored one.

        Args:
            key: Entity identity.
            fingerprint: Newly computed fingerprint.

        Returns:
            True when the entity is new or changed, False when identical.
        """
        with self._lock:
            previous = self._store.get(key)
            if previous == fingerprint:
                return False
            if self._journal is not None and key not in self._journal:
                self._journal[key] = previous
            self._store.set(key, fingerprint)
            return True

    def has_changed(
        self,
        entity_class: str,
        scope_id: str,
        entity_id: str | None,
        entity: object,
    ) -> bool:
        """Report whether an entity changed, recording its new fingerprint.

        Args:
            entity_class: Entity class name.
            scope_id: Owning document id, or empty for unscoped classes.
            entity_id: Entity id within class and scope.
            entity: Entity to fingerprint.

        Returns:
            True when the entity is new or changed.

        Raises:
            InvalidEntityError: If the entity has no id.
        """
        if not entity_id:
            raise InvalidEntityError(
                f"Cannot detect changes for {entity_class} without an id "
                f"(scope '{scope_id or '-'}'). Fix the source entry or skip it.",
                entity_class=entity_class,
            )
        fingerprint = self.compute(entity_class, entity)
        key = FingerprintKey(entity_class=entity_class, scope_id=scope_id, entity_id=entity_id)
        return self.compare_and_set(key, fingerprint)

    def begin_batch(self) -> None:
        """Start journaling fingerprint writes for one batch."""
        with self._lock:
            self._journal = {}

    def commit_batch(self) -> None:
        """Keep journaled writes and stop journaling."""
        with self._lock:
            self._journal = None

    def rollback_batch(self) -> int:
        """Restore fingerprints overwritten since ``begin_batch``.

        A transactional store is restored by the batch rollback itself, so
        only the journal is dropped and nothing is written back.

        Returns:
            Number of fingerprints restored.
        """
        with self._lock:
            journal = self._journal or {}
            self._journal = None
            if self._store.transactional:
                return len(journal)
            for key, previous in journal.items():
                if previous is None:
                    self._store.discard(key)
                else:
                    self._store.set(key, previous)
            return len(journal)
