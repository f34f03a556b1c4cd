"""meetvault exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each subsystem raises a specific error type for debuggability.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base exception for all meetvault failures."""


class VaultConfigError(VaultError):
    """Raised for invalid runtime configuration."""


class MalformedSnapshotError(VaultError):
    """Raised when a snapshot file cannot be decoded into an entity graph.

    Attributes:
        layer: Decode layer that failed (file, envelope, payload, state, ...).
        path: Snapshot path being read.
    """

    def __init__(self, message: str, *, layer: str, path: str) -> None:
        super().__init__(message)
        self.layer = layer
        self.path = path


class StorageFailureError(VaultError):
    """Raised for transaction or connection failures in the relational store."""


class InvalidEntityError(VaultError):
    """Raised when an entity lacks the identity fields needed to track it.

    Attributes:
        entity_class: Entity class of the rejected entity.
        entity_id: Identifier when partially present, else None.
    """

    def __init__(
        self,
        message: str,
        *,
        entity_class: str,
        entity_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.entity_class = entity_class
        self.entity_id = entity_id


class BatchIngestError(VaultError):
    """Raised when one batch aborts and its transaction is rolled back.

    Attributes:
        batch_index: Zero-based index of the failed batch.
        document_id: Document being processed when the batch failed.
        entity_class: Entity class being written when the batch failed.
        stage: Pipeline stage (detect, history, upsert, commit).
        committed_batches: Number of batches committed before the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        batch_index: int,
        document_id: str | None,
        entity_class: str | None,
        stage: str,
        committed_batches: int,
    ) -> None:
        super().__init__(message)
        self.batch_index = batch_index
        self.document_id = document_id
        self.entity_class = entity_class
        self.stage = stage
        self.committed_batches = committed_batches
