"""Document store capability used by the relay.

The relay consumes the bot registry and message archive as an opaque
create/read/query-by-field capability over named collections (``bots``,
``messages``). ``SQLiteDocumentStore`` is the bundled implementation:
documents are JSON blobs keyed by ``(collection, doc_id)``.
"""

from __future__ import annotations

import asyncio
import json
import re
import sqlite3
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    doc_id TEXT NOT NULL,
    data_json TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (collection, doc_id)
);

CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection);
"""

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class StoreUnavailableError(Exception):
    """Raised when the document store cannot be reached or fails a call."""

    pass


class DocumentStore(Protocol):
    async def create(
        self, collection: str, data: dict[str, Any], doc_id: str | None = None,
    ) -> str: ...

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    async def query(
        self, collection: str, field: str, value: object, limit: int | None = None,
    ) -> list[dict[str, Any]]: ...


class SQLiteDocumentStore:
    """SQLite-backed document store.

    Provides:
    - WAL mode for crash recovery
    - Parameterized queries, field names checked against an identifier pattern
    - ``StoreUnavailableError`` for every failed call, so callers handle one type

    SQL runs in a worker thread so the event loop keeps serving while the
    database is busy. One lock serializes access to the shared connection.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._initialize()

    def _initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        # Calls arrive from worker threads, never the thread that opened it.
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreUnavailableError("Document store connection is closed")
        return self._conn

    async def create(
        self, collection: str, data: dict[str, Any], doc_id: str | None = None,
    ) -> str:
        """Insert a document and return its id (generated when not given)."""
        doc_id = doc_id or str(uuid.uuid4())
        await asyncio.to_thread(self._insert, collection, doc_id, data)
        return doc_id

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._select_one, collection, doc_id)

    async def query(
        self, collection: str, field: str, value: object, limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return documents in ``collection`` whose top-level ``field`` equals ``value``."""
        if not _FIELD_NAME.match(field):
            raise ValueError(f"Invalid field name: {field!r}")
        return await asyncio.to_thread(self._select_where, collection, field, value, limit)

    def _insert(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        with self._lock:
            try:
                conn = self._connection()
                conn.execute(
                    """INSERT INTO documents (collection, doc_id, data_json, created_at)
                       VALUES (?, ?, ?, ?)""",
                    (
                        collection,
                        doc_id,
                        json.dumps(data, default=str),
                        datetime.now(UTC).isoformat(),
                    ),
                )
                conn.commit()
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"create in '{collection}' failed: {e}") from e

    def _select_one(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            try:
                row = self._connection().execute(
                    "SELECT doc_id, data_json FROM documents WHERE collection = ? AND doc_id = ?",
                    (collection, doc_id),
                ).fetchone()
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"get from '{collection}' failed: {e}") from e
        if row is None:
            return None
        return self._row_to_document(row)

    def _select_where(
        self, collection: str, field: str, value: object, limit: int | None,
    ) -> list[dict[str, Any]]:
        sql = """SELECT doc_id, data_json FROM documents
                 WHERE collection = ? AND json_extract(data_json, ?) = ?
                 ORDER BY created_at, rowid"""
        params: tuple[Any, ...] = (collection, f"$.{field}", value)
        if limit is not None:
            sql += " LIMIT ?"
            params += (limit,)

        with self._lock:
            try:
                rows = self._connection().execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"query on '{collection}' failed: {e}") from e
        return [self._row_to_document(row) for row in rows]

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> SQLiteDocumentStore:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()

    @staticmethod
    def _row_to_document(row: sqlite3.Row) -> dict[str, Any]:
        document: dict[str, Any] = json.loads(row["data_json"])
        document["id"] = row["doc_id"]
        return document
