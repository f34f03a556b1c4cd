"""Append-only document history.

This module copies the persisted state of a document into the history
table before that state is overwritten. History rows are never updated
or deleted by the pipeline.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import json
import threading
import uuid

from core.constants import (
    DOCUMENT_COLUMNS,
    DOCUMENT_FINGERPRINT_FIELDS,
    HISTORY_TIMESTAMP_FORMAT,
    TABLE_DOCUMENTS,
    TABLE_HISTORICAL_DOCUMENTS,
)
from core.logging_config import get_logger
from core.types import Document, HistoricalDocument
from store.database import VaultDatabase

_LOGGER = get_logger(__name__)

_STATE_COLUMNS = DOCUMENT_COLUMNS[1:]


class HistoryRecorder:
    """Writes and reads historical document records."""

    def __init__(self, database: VaultDatabase) -> None:
        self._database = database
        self._lock = threading.Lock()
        self._last_captured: datetime | None = None

    def record_before_update(
        self,
        document_id: str,
        incoming: Document | None = None,
    ) -> HistoricalDocument | None:
        """Copy the persisted document row into history.

        Must run inside the batch transaction, before the document upsert.

        Args:
            document_id: Id of the document about to be overwritten.
            incoming: Document about to replace the persisted row; its
                differing fields are recorded as ``changed_fields``.

        Returns:
            The written record, or None when the document was never
            persisted (a first insert has no prior state).

        Raises:
            StorageFailureError: If reading or writing fails.
        """
        rows = self._database.fetch_all(
            f"SELECT {', '.join(_STATE_COLUMNS)} FROM {TABLE_DOCUMENTS} WHERE id = ?",
            (document_id,),
        )
        if not rows:
            return None
        state = dict(rows[0])
        record = HistoricalDocument(
            history_id=uuid.uuid4().hex,
            document_id=document_id,
            captured_at=self._next_timestamp(),
            state=state,
            changed_fields=changed_fields(state, incoming),
        )
        columns = ("id", "document_id", *_STATE_COLUMNS, "changed_fields", "history_timestamp")
        values = (
            record.history_id,
            document_id,
            *(state[column] for column in _STATE_COLUMNS),
            json.dumps(list(record.changed_fields)),
            record.captured_at,
        )
        self._database.execute(
            f"INSERT INTO {TABLE_HISTORICAL_DOCUMENTS} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})",
            values,
        )
        _LOGGER.info(
            "history_recorded",
            document_id=document_id,
            history_id=record.history_id,
            captured_at=record.captured_at,
            changed_fields=list(record.changed_fields),
        )
        return record

    def history(self, document_id: str) -> list[HistoricalDocument]:
        """Return recorded prior states of a document, newest first."""
        rows = self._database.fetch_all(
            "SELECT id, document_id, history_timestamp, changed_fields, "
            f"{', '.join(_STATE_COLUMNS)} "
            f"FROM {TABLE_HISTORICAL_DOCUMENTS} WHERE document_id = ? "
            "ORDER BY history_timestamp DESC",
            (document_id,),
        )
        return [
            HistoricalDocument(
                history_id=row["id"],
                document_id=row["document_id"],
                captured_at=row["history_timestamp"],
                state={column: row[column] for column in _STATE_COLUMNS},
                changed_fields=tuple(json.loads(row["changed_fields"] or "[]")),
            )
            for row in rows
        ]

    def count(self, document_id: str | None = None) -> int:
        """Return the number of history records, optionally for one document."""
        if document_id is None:
            return self._database.count(TABLE_HISTORICAL_DOCUMENTS)
        rows = self._database.fetch_all(
            f"SELECT COUNT(*) AS total FROM {TABLE_HISTORICAL_DOCUMENTS} WHERE document_id = ?",
            (document_id,),
        )
        return int(rows[0]["total"])

    def _next_timestamp(self) -> str:
        # Capture times never repeat, even when the clock stalls or steps back.
        with self._lock:
            now = datetime.now(timezone.utc)
            if self._last_captured is not None and now <= self._last_captured:
                now = self._last_captured + timedelta(microseconds=1)
            self._last_captured = now
        return now.strftime(HISTORY_TIMESTAMP_FORMAT)


def changed_fields(state: dict[str, object], incoming: Document | None) -> tuple[str, ...]:
    """Return document fields whose persisted value differs from ``incoming``.

    Only fields that take part in document change detection are compared.
    Without an incoming document nothing is reported.
    """
    if incoming is None:
        return ()
    return tuple(
        name
        for name in DOCUMENT_FINGERPRINT_FIELDS
        if state.get(name) != getattr(incoming, name)
    )
