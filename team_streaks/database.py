"""SQLite-backed RecordStore.

Each public method is async and wraps a synchronous inner function via
asyncio.run_in_executor(None, _sync). A new connection is created per call
(WAL mode, 30s busy timeout, Row factory). Optimistic concurrency uses an
integer ``version`` column exposed to callers as the record's change tag.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from typing import Any, Callable, TypeVar

from .errors import ConflictError, NotFoundError, TransientIOError
from .records import ChangeNotifier, Record

T = TypeVar("T")


class SqliteRecordStore(ChangeNotifier):
    """SQLite persistence implementing the RecordStore contract."""

    def __init__(self, db_path: str, logger: logging.Logger) -> None:
        super().__init__(logger)
        self._db_path = db_path
        self._logger = logger

    def _get_connection(self) -> sqlite3.Connection:
        """Create a new SQLite connection with standard settings."""
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=30000")
        conn.row_factory = sqlite3.Row
        return conn

    async def _run(self, func: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, func)
        except sqlite3.Error as e:
            self._logger.error("SQLite operation failed: %s", e)
            raise TransientIOError(str(e)) from e

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> Record:
        return Record(
            record_type=row["record_type"],
            record_id=row["record_id"],
            fields=json.loads(row["fields"]),
            change_tag=str(row["version"]),
        )

    # ══════════════════════════════════════════════════════════
    #  Initialization
    # ══════════════════════════════════════════════════════════

    async def initialize(self) -> None:
        """Create tables and indexes. Idempotent."""
        await self._run(self._create_tables)

    def _create_tables(self) -> None:
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    record_id TEXT PRIMARY KEY,
                    record_type TEXT NOT NULL,
                    fields TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 1,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_records_type ON records(record_type)"
            )
            conn.commit()
        finally:
            conn.close()

    # ══════════════════════════════════════════════════════════
    #  Reads
    # ══════════════════════════════════════════════════════════

    async def fetch(self, record_id: str) -> Record:
        """Return the record or raise NotFoundError."""

        def _sync() -> Record | None:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT * FROM records WHERE record_id = ?", (record_id,),
                ).fetchone()
                return self._row_to_record(row) if row else None
            finally:
                conn.close()

        record = await self._run(_sync)
        if record is None:
            raise NotFoundError(record_id)
        return record

    async def query(
        self, record_type: str, field: str | None = None, value: Any = None,
    ) -> list[Record]:
        """All records of *record_type*, optionally filtered on one field."""

        def _sync() -> list[Record]:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    "SELECT * FROM records WHERE record_type = ? ORDER BY record_id",
                    (record_type,),
                ).fetchall()
                return [self._row_to_record(r) for r in rows]
            finally:
                conn.close()

        records = await self._run(_sync)
        if field is None:
            return records
        return [r for r in records if r.fields.get(field) == value]

    # ══════════════════════════════════════════════════════════
    #  Writes
    # ══════════════════════════════════════════════════════════

    async def save(self, record: Record, conditional: bool = False) -> Record:
        """Upsert *record*. Conditional saves compare the stored version first."""
        payload = json.dumps(record.fields, sort_keys=True)

        def _sync() -> Record:
            conn = self._get_connection()
            try:
                if conditional and record.change_tag is None:
                    try:
                        conn.execute(
                            "INSERT INTO records (record_id, record_type, fields, version) "
                            "VALUES (?, ?, ?, 1)",
                            (record.record_id, record.record_type, payload),
                        )
                    except sqlite3.IntegrityError:
                        conn.rollback()
                        raise ConflictError(record.record_id, None, self._current_tag(conn, record.record_id))
                elif conditional:
                    cursor = conn.execute(
                        "UPDATE records SET fields = ?, record_type = ?, version = version + 1, "
                        "updated_at = CURRENT_TIMESTAMP WHERE record_id = ? AND version = ?",
                        (payload, record.record_type, record.record_id, int(record.change_tag)),
                    )
                    if cursor.rowcount == 0:
                        conn.rollback()
                        actual = self._current_tag(conn, record.record_id)
                        if actual is None:
                            raise NotFoundError(record.record_id)
                        raise ConflictError(record.record_id, record.change_tag, actual)
                else:
                    conn.execute(
                        "INSERT INTO records (record_id, record_type, fields, version) "
                        "VALUES (?, ?, ?, 1) "
                        "ON CONFLICT(record_id) DO UPDATE SET fields = excluded.fields, "
                        "record_type = excluded.record_type, version = records.version + 1, "
                        "updated_at = CURRENT_TIMESTAMP",
                        (record.record_id, record.record_type, payload),
                    )
                conn.commit()
                row = conn.execute(
                    "SELECT * FROM records WHERE record_id = ?", (record.record_id,),
                ).fetchone()
                return self._row_to_record(row)
            finally:
                conn.close()

        stored = await self._run(_sync)
        self._notify(stored.record_type, stored.record_id)
        return stored

    async def delete(self, record_id: str) -> None:
        """Delete a record. Raises NotFoundError when nothing was removed."""

        def _sync() -> str | None:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT record_type FROM records WHERE record_id = ?", (record_id,),
                ).fetchone()
                if row is None:
                    return None
                conn.execute("DELETE FROM records WHERE record_id = ?", (record_id,))
                conn.commit()
                return row["record_type"]
            finally:
                conn.close()

        record_type = await self._run(_sync)
        if record_type is None:
            raise NotFoundError(record_id)
        self._notify(record_type, record_id)

    async def count(self, record_type: str | None = None) -> int:
        """Number of stored records, optionally of one type."""

        def _sync() -> int:
            conn = self._get_connection()
            try:
                if record_type is None:
                    row = conn.execute("SELECT COUNT(*) AS n FROM records").fetchone()
                else:
                    row = conn.execute(
                        "SELECT COUNT(*) AS n FROM records WHERE record_type = ?",
                        (record_type,),
                    ).fetchone()
                return row["n"]
            finally:
                conn.close()

        return await self._run(_sync)

    @staticmethod
    def _current_tag(conn: sqlite3.Connection, record_id: str) -> str | None:
        row = conn.execute(
            "SELECT version FROM records WHERE record_id = ?", (record_id,),
        ).fetchone()
        return str(row["version"]) if row else None
