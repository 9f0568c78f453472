"""SQLite-backed chunk and processing-record store.

Persists embedded chunks and per-document processing records to a local
SQLite database at ``data/documents.db``.  Uses ``aiosqlite`` for async
I/O; every call opens its own short-lived connection.

Embeddings are stored as JSON arrays in a TEXT column.  The fixed width
is enforced on write so a mis-configured provider cannot poison the table.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from ragingest.interfaces.document_store import IChunkStore, IRecordStore
from ragingest.models.document import (
    ChunkInput,
    DocumentChunk,
    FileType,
    ProcessingRecord,
    ProcessingStats,
)
from ragingest.models.progress import ProcessingStatus
from ragingest.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/documents.db")

_PROVIDER_NAME = "sqlite"

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS document_chunks (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id  TEXT    NOT NULL,
    chunk_order  INTEGER NOT NULL,
    content      TEXT    NOT NULL,
    embedding    TEXT    NOT NULL,
    created_at   TEXT    NOT NULL,
    UNIQUE(document_id, chunk_order)
);
""",
    """\
CREATE TABLE IF NOT EXISTS processing_records (
    document_id  TEXT    PRIMARY KEY,
    user_id      TEXT    NOT NULL,
    filename     TEXT    NOT NULL,
    file_type    TEXT    NOT NULL,
    chunk_count  INTEGER NOT NULL DEFAULT 0,
    status       TEXT    NOT NULL,
    error        TEXT,
    metadata     TEXT    NOT NULL DEFAULT '{}',
    created_at   TEXT    NOT NULL,
    updated_at   TEXT    NOT NULL
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON document_chunks(document_id);",
    "CREATE INDEX IF NOT EXISTS idx_records_user_created "
    "ON processing_records(user_id, created_at DESC);",
]

_INSERT_CHUNK_SQL = """\
INSERT INTO document_chunks (document_id, chunk_order, content, embedding, created_at)
VALUES (?, ?, ?, ?, ?);
"""

_UPSERT_RECORD_SQL = """\
INSERT INTO processing_records
    (document_id, user_id, filename, file_type, chunk_count, status, error,
     metadata, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(document_id)
DO UPDATE SET chunk_count = excluded.chunk_count,
              status      = excluded.status,
              error       = excluded.error,
              metadata    = excluded.metadata,
              updated_at  = excluded.updated_at;
"""

_SELECT_RECORD_COLUMNS = (
    "SELECT document_id, user_id, filename, file_type, chunk_count, status, error, "
    "metadata, created_at, updated_at FROM processing_records"
)


class SQLiteDocumentStore(IChunkStore, IRecordStore):
    """SQLite persistence for document chunks and processing records.

    Parameters
    ----------
    db_path:
        Location of the database file; parent directories are created by
        :meth:`initialize`.
    dimension:
        Width every stored embedding must have.
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH, dimension: int = 1024) -> None:
        self._db_path = Path(db_path)
        self._dimension = dimension

    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("document_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # IChunkStore
    # ------------------------------------------------------------------

    async def insert_chunks(self, document_id: str, chunks: list[ChunkInput]) -> int:
        """Insert *chunks* in a single transaction, ordered by ``order``.

        Either every chunk is written or none is.
        """
        if not chunks:
            return 0

        ordered = sorted(chunks, key=lambda c: c.order)
        for chunk in ordered:
            if len(chunk.embedding) != self._dimension:
                raise StorageError(
                    message=(
                        f"Chunk {chunk.order} embedding has {len(chunk.embedding)} "
                        f"dimensions, store expects {self._dimension}"
                    ),
                    provider_name=_PROVIDER_NAME,
                )

        now = _now_iso()
        rows = [
            (document_id, c.order, c.content, json.dumps(c.embedding), now) for c in ordered
        ]
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.executemany(_INSERT_CHUNK_SQL, rows)
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(
                message=f"Failed to store chunks for {document_id}: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

        logger.info("chunks_stored", document_id=document_id, count=len(rows))
        return len(rows)

    async def get_chunks(self, document_id: str) -> list[DocumentChunk]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT document_id, chunk_order, content, embedding, created_at "
                "FROM document_chunks WHERE document_id = ? ORDER BY chunk_order",
                (document_id,),
            )
            rows = await cursor.fetchall()
        return [
            DocumentChunk(
                document_id=r["document_id"],
                order=r["chunk_order"],
                content=r["content"],
                embedding=json.loads(r["embedding"]),
                created_at=datetime.fromisoformat(r["created_at"]),
            )
            for r in rows
        ]

    async def delete_chunks(self, document_id: str) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "DELETE FROM document_chunks WHERE document_id = ?", (document_id,)
            )
            await db.commit()
            removed = cursor.rowcount
        logger.info("chunks_deleted", document_id=document_id, count=removed)
        return removed

    def get_dimension(self) -> int:
        return self._dimension

    # ------------------------------------------------------------------
    # IRecordStore
    # ------------------------------------------------------------------

    async def save_record(self, record: ProcessingRecord) -> ProcessingRecord:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    _UPSERT_RECORD_SQL,
                    (
                        record.document_id,
                        record.user_id,
                        record.filename,
                        record.file_type.value,
                        record.chunk_count,
                        record.status.value,
                        record.error,
                        json.dumps(record.metadata),
                        record.created_at.isoformat(),
                        record.updated_at.isoformat(),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(
                message=f"Failed to save processing record {record.document_id}: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

        logger.info(
            "processing_record_saved",
            document_id=record.document_id,
            status=record.status.value,
            chunk_count=record.chunk_count,
        )
        return record

    async def get_record(self, document_id: str) -> ProcessingRecord | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"{_SELECT_RECORD_COLUMNS} WHERE document_id = ?", (document_id,)
            )
            row = await cursor.fetchone()
        return _row_to_record(row) if row is not None else None

    async def list_recent_records(self, user_id: str, limit: int = 10) -> list[ProcessingRecord]:
        """Return the user's records, newest first."""
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"{_SELECT_RECORD_COLUMNS} WHERE user_id = ? "
                "ORDER BY created_at DESC LIMIT ?",
                (user_id, max(limit, 0)),
            )
            rows = await cursor.fetchall()
        return [_row_to_record(r) for r in rows]

    async def delete_document(self, document_id: str, user_id: str) -> bool:
        """Delete chunks and record together, only if *user_id* owns the document."""
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT 1 FROM processing_records WHERE document_id = ? AND user_id = ?",
                (document_id, user_id),
            )
            owned = await cursor.fetchone() is not None
            if not owned:
                logger.info(
                    "document_delete_refused",
                    document_id=document_id,
                    user_id=user_id,
                )
                return False

            await db.execute("DELETE FROM document_chunks WHERE document_id = ?", (document_id,))
            await db.execute(
                "DELETE FROM processing_records WHERE document_id = ? AND user_id = ?",
                (document_id, user_id),
            )
            await db.commit()

        logger.info("document_deleted", document_id=document_id, user_id=user_id)
        return True

    async def get_stats(self, user_id: str | None = None) -> ProcessingStats:
        """Return record counts grouped by terminal status."""
        query = (
            "SELECT COUNT(*) AS total, "
            "SUM(CASE WHEN status = ? THEN 1 ELSE 0 END) AS completed, "
            "SUM(CASE WHEN status = ? THEN 1 ELSE 0 END) AS failed "
            "FROM processing_records"
        )
        params: tuple = (ProcessingStatus.COMPLETED.value, ProcessingStatus.FAILED.value)
        if user_id is not None:
            query += " WHERE user_id = ?"
            params = (*params, user_id)

        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            row = await cursor.fetchone()

        return ProcessingStats(
            total=row["total"] or 0,
            completed=row["completed"] or 0,
            failed=row["failed"] or 0,
        )

    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
        return "sqlite_documents"


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()  # noqa: UP017


def _row_to_record(row: aiosqlite.Row) -> ProcessingRecord:
    return ProcessingRecord(
        document_id=row["document_id"],
        user_id=row["user_id"],
        filename=row["filename"],
        file_type=FileType(row["file_type"]),
        chunk_count=row["chunk_count"],
        status=ProcessingStatus(row["status"]),
        error=row["error"],
        metadata=json.loads(row["metadata"] or "{}"),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )
