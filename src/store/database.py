"""SQLite connection, schema bootstrap, and transaction boundaries.

This module owns the single vault connection. The connection runs in
autocommit mode and batches open explicit transactions, so a statement
outside ``transaction()`` is durable immediately and a statement inside
it is durable only once the batch commits.

The connection is shared across threads. Every statement holds the
connection lock, and a transaction holds it from BEGIN until COMMIT or
ROLLBACK, so readers on other threads never observe an open batch.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import sqlite3
import threading
from typing import Iterator, Sequence

from core.constants import COUNTED_TABLES
from core.errors import StorageFailureError
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)

_SCHEMA = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    title TEXT,
    created_at TEXT,
    updated_at TEXT,
    deleted_at TEXT,
    user_id TEXT,
    notes_markdown TEXT,
    notes_plain TEXT,
    transcribe BOOLEAN DEFAULT FALSE,
    public BOOLEAN DEFAULT FALSE,
    type TEXT,
    valid_meeting BOOLEAN DEFAULT TRUE,
    has_shareable_link BOOLEAN DEFAULT FALSE,
    creation_source TEXT,
    subscription_plan_id TEXT,
    privacy_mode_enabled BOOLEAN DEFAULT FALSE
);
CREATE INDEX IF NOT EXISTS idx_documents_created_at ON documents(created_at);
CREATE INDEX IF NOT EXISTS idx_documents_user_id ON documents(user_id);

CREATE TABLE IF NOT EXISTS calendar_events (
    id TEXT PRIMARY KEY,
    document_id TEXT REFERENCES documents(id),
    summary TEXT,
    description TEXT,
    start_time TEXT,
    end_time TEXT,
    timezone TEXT,
    status TEXT,
    calendar_id TEXT,
    html_link TEXT,
    hangout_link TEXT,
    location TEXT,
    organizer_email TEXT,
    created_at TEXT,
    updated_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_calendar_events_start_time ON calendar_events(start_time);

CREATE TABLE IF NOT EXISTS people (
    id TEXT PRIMARY KEY,
    document_id TEXT REFERENCES documents(id),
    email TEXT,
    name TEXT,
    role TEXT,
    response_status TEXT,
    avatar_url TEXT,
    company_name TEXT,
    job_title TEXT
);

CREATE TABLE IF NOT EXISTS transcript_entries (
    id TEXT PRIMARY KEY,
    document_id TEXT REFERENCES documents(id),
    text TEXT,
    source TEXT,
    speaker TEXT,
    start_timestamp TEXT,
    end_timestamp TEXT,
    is_final BOOLEAN,
    sequence_number INTEGER
);
CREATE INDEX IF NOT EXISTS idx_transcript_entries_document_id
    ON transcript_entries(document_id);

CREATE TABLE IF NOT EXISTS panel_templates (
    id TEXT PRIMARY KEY,
    category TEXT,
    title TEXT,
    description TEXT,
    color TEXT,
    symbol TEXT,
    is_granola BOOLEAN,
    created_at TEXT,
    updated_at TEXT,
    deleted_at TEXT,
    shared_with TEXT,
    user_types TEXT
);

CREATE TABLE IF NOT EXISTS template_sections (
    id TEXT PRIMARY KEY,
    template_id TEXT REFERENCES panel_templates(id),
    heading TEXT,
    section_description TEXT,
    sequence_number INTEGER
);

CREATE TABLE IF NOT EXISTS document_panels (
    id TEXT PRIMARY KEY,
    document_id TEXT REFERENCES documents(id),
    template_id TEXT REFERENCES panel_templates(id),
    content TEXT,
    created_at TEXT,
    updated_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_document_panels_document_id ON document_panels(document_id);

CREATE TABLE IF NOT EXISTS historical_documents (
    id TEXT NOT NULL,
    document_id TEXT NOT NULL,
    title TEXT,
    created_at TEXT,
    updated_at TEXT,
    deleted_at TEXT,
    user_id TEXT,
    notes_markdown TEXT,
    notes_plain TEXT,
    transcribe BOOLEAN,
    public BOOLEAN,
    type TEXT,
    valid_meeting BOOLEAN,
    has_shareable_link BOOLEAN,
    creation_source TEXT,
    subscription_plan_id TEXT,
    privacy_mode_enabled BOOLEAN,
    changed_fields TEXT,
    history_timestamp TEXT NOT NULL,
    PRIMARY KEY (id, history_timestamp)
);
CREATE INDEX IF NOT EXISTS idx_historical_documents_document_id
    ON historical_documents(document_id);

CREATE TABLE IF NOT EXISTS fingerprint_memo (
    entity_class TEXT NOT NULL,
    scope_id TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    fingerprint TEXT NOT NULL,
    PRIMARY KEY (entity_class, scope_id, entity_id)
);
"""


class VaultDatabase:
    """SQLite-backed relational store for current state and history."""

    def __init__(self, path: str | Path) -> None:
        """Open the database and create missing tables.

        Args:
            path: SQLite file path; parent directories are created.

        Raises:
            StorageFailureError: If the database cannot be opened.
        """
        self._path = Path(path)
        self._lock = threading.RLock()
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(
                self._path,
                isolation_level=None,
                check_same_thread=False,
            )
            self._connection.row_factory = sqlite3.Row
            self._connection.executescript(_SCHEMA)
        except (OSError, sqlite3.Error) as error:
            raise StorageFailureError(
                f"Failed to open vault database at {self._path}: {error}. "
                "Check the path and directory permissions."
            ) from error
        self._closed = False
        _LOGGER.debug("database_opened", path=str(self._path))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def in_transaction(self) -> bool:
        return self._connection.in_transaction

    def execute(self, sql: str, params: Sequence[object] = ()) -> int:
        """Execute one write statement.

        Returns:
            Number of affected rows.

        Raises:
            StorageFailureError: If the statement fails.
        """
        with self._lock:
            try:
                cursor = self._connection.execute(sql, tuple(params))
            except sqlite3.Error as error:
                raise StorageFailureError(
                    f"Failed to execute statement on {self._path}: {error}."
                ) from error
            return cursor.rowcount

    def fetch_all(self, sql: str, params: Sequence[object] = ()) -> list[sqlite3.Row]:
        """Run a query and return all rows.

        Raises:
            StorageFailureError: If the query fails.
        """
        with self._lock:
            try:
                return self._connection.execute(sql, tuple(params)).fetchall()
            except sqlite3.Error as error:
                raise StorageFailureError(
                    f"Failed to query {self._path}: {error}."
                ) from error

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the enclosed statements as one atomic transaction.

        Commits on normal exit and rolls back when the block raises.
        Other threads block on the connection until the transaction ends.

        Raises:
            StorageFailureError: If a transaction is already open, or
                begin/commit fails.
        """
        with self._lock:
            if self._connection.in_transaction:
                raise StorageFailureError(
                    f"Nested transaction requested on {self._path}. "
                    "Commit or roll back the open batch first."
                )
            try:
                self._connection.execute("BEGIN")
            except sqlite3.Error as error:
                raise StorageFailureError(
                    f"Failed to begin transaction on {self._path}: {error}."
                ) from error
            try:
                yield
            except BaseException:
                self._rollback()
                raise
            try:
                self._connection.execute("COMMIT")
            except sqlite3.Error as error:
                self._rollback()
                raise StorageFailureError(
                    f"Failed to commit transaction on {self._path}: {error}. "
                    "The batch was rolled back."
                ) from error

    def count(self, table: str) -> int:
        """Return the row count of a known table.

        Raises:
            StorageFailureError: If the table is not a vault table.
        """
        if table not in COUNTED_TABLES:
            raise StorageFailureError(
                f"Unknown vault table '{table}'. Known tables: {', '.join(COUNTED_TABLES)}."
            )
        rows = self.fetch_all(f"SELECT COUNT(*) AS total FROM {table}")
        return int(rows[0]["total"])

    def close(self) -> None:
        """Close the connection; safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._connection.close()
            self._closed = True
        _LOGGER.debug("database_closed", path=str(self._path))

    def __enter__(self) -> "VaultDatabase":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    def _rollback(self) -> None:
        if not self._connection.in_transaction:
            return
        try:
            self._connection.execute("ROLLBACK")
        except sqlite3.Error as error:
            _LOGGER.error("rollback_failed", path=str(self._path), error=str(error))
