"""Embedded SQLite store used when the remote database cannot be reached.

Both collections live in one table; records are stored as JSON with a few
equality-indexed columns copied out of them. SQLite calls are blocking, so
every public coroutine hands its work to a worker thread and a lock keeps one
statement sequence on the shared connection at a time.
"""
import asyncio
import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from attendance_hub.errors import DuplicateKeyError, NotFoundError, StorageError

logger = logging.getLogger(__name__)

STUDENTS = "students"
ATTENDANCE = "attendance"

# Secondary equality indexes per collection
INDEXES = {
    STUDENTS: ("year", "division", "roll_number"),
    ATTENDANCE: ("date", "year", "division", "student_id"),
}
INDEX_COLUMNS = ("year", "division", "roll_number", "date", "student_id")

DEFAULT_NAMESPACE = "default"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    namespace   TEXT NOT NULL,
    collection  TEXT NOT NULL,
    id          TEXT NOT NULL,
    year        TEXT,
    division    TEXT,
    roll_number TEXT,
    date        TEXT,
    student_id  TEXT,
    data        TEXT NOT NULL,
    PRIMARY KEY (namespace, collection, id)
);
CREATE INDEX IF NOT EXISTS ix_records_year ON records (namespace, collection, year);
CREATE INDEX IF NOT EXISTS ix_records_division ON records (namespace, collection, division);
CREATE INDEX IF NOT EXISTS ix_records_roll_number ON records (namespace, collection, roll_number);
CREATE INDEX IF NOT EXISTS ix_records_date ON records (namespace, collection, date);
CREATE INDEX IF NOT EXISTS ix_records_student_id ON records (namespace, collection, student_id);
"""


class _Engine:
    """One SQLite connection shared by every namespace view."""

    def __init__(self, path: str):
        self.path = path
        self.lock = threading.Lock()
        self.conn: Optional[sqlite3.Connection] = None
        self.open_error: Optional[str] = None
        try:
            if path != ":memory:":
                Path(path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(path, check_same_thread=False)
            conn.executescript(_SCHEMA)
            conn.commit()
            self.conn = conn
        except (sqlite3.Error, OSError) as e:
            self.open_error = str(e)
            logger.error(f"Local store at {path} could not be opened: {e}")

    def close(self) -> None:
        with self.lock:
            if self.conn is not None:
                self.conn.close()
                self.conn = None


class LocalStore:
    """Durable per-user record store independent of network state."""

    def __init__(self, path: str = ":memory:", namespace: str = DEFAULT_NAMESPACE, _engine: Optional[_Engine] = None):
        self._engine = _engine or _Engine(path)
        self.namespace = namespace

    def for_user(self, user_id: str) -> "LocalStore":
        """View of the same database scoped to one user's records."""
        return LocalStore(namespace=user_id, _engine=self._engine)

    def is_supported(self) -> bool:
        return self._engine.conn is not None

    def close(self) -> None:
        self._engine.close()

    # ---- public coroutine API -------------------------------------------

    async def get_all(self, collection: str) -> list[dict]:
        return await asyncio.to_thread(self._get_all, collection)

    async def replace_all(self, collection: str, records: list[dict]) -> None:
        await asyncio.to_thread(self._replace_all, collection, records)

    async def add(self, collection: str, record: dict) -> dict:
        return await asyncio.to_thread(self._add, collection, record)

    async def update(self, collection: str, key: str, patch: dict) -> dict:
        return await asyncio.to_thread(self._update, collection, key, patch)

    async def delete(self, collection: str, key: str) -> None:
        await asyncio.to_thread(self._delete, collection, key)

    async def query_by_index(self, collection: str, field: str, value: Any) -> list[dict]:
        return await asyncio.to_thread(self._query_by_index, collection, field, value)

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear)

    async def info(self) -> dict:
        """Counts for diagnostics; never raises."""
        try:
            students = await self.get_all(STUDENTS)
            attendance = await self.get_all(ATTENDANCE)
        except StorageError as e:
            return {
                "supported": self.is_supported(),
                "studentsCount": 0,
                "attendanceCount": 0,
                "lastUpdated": None,
                "error": e.message,
            }
        return {
            "supported": self.is_supported(),
            "studentsCount": len(students),
            "attendanceCount": len(attendance),
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        }

    # ---- blocking implementations ---------------------------------------

    def _connection(self) -> sqlite3.Connection:
        conn = self._engine.conn
        if conn is None:
            raise StorageError(f"Local database is unavailable: {self._engine.open_error or 'closed'}")
        return conn

    def _row_values(self, collection: str, record: dict) -> tuple:
        if not record.get("id"):
            raise ValueError("record has no id")
        indexed = INDEXES.get(collection, ())
        columns = tuple(
            str(record[c]) if c in indexed and record.get(c) is not None else None
            for c in INDEX_COLUMNS
        )
        return (self.namespace, collection, str(record["id"]), *columns, json.dumps(record))

    def _insert(self, conn: sqlite3.Connection, collection: str, record: dict) -> None:
        conn.execute(
            "INSERT INTO records (namespace, collection, id, year, division, roll_number, date, student_id, data)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            self._row_values(collection, record),
        )

    def _get_all(self, collection: str) -> list[dict]:
        with self._engine.lock:
            try:
                rows = self._connection().execute(
                    "SELECT data FROM records WHERE namespace = ? AND collection = ?",
                    (self.namespace, collection),
                ).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to read local {collection}: {e}") from e
        return [json.loads(row[0]) for row in rows]

    def _replace_all(self, collection: str, records: list[dict]) -> None:
        with self._engine.lock:
            conn = self._connection()
            try:
                conn.execute(
                    "DELETE FROM records WHERE namespace = ? AND collection = ?",
                    (self.namespace, collection),
                )
                for record in records:
                    try:
                        self._insert(conn, collection, record)
                    except (sqlite3.IntegrityError, ValueError, TypeError) as e:
                        # one bad record must not abort the whole mirror
                        logger.warning(f"Skipped {collection} record {record.get('id')!r} while mirroring: {e}")
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageError(f"Failed to replace local {collection}: {e}") from e

    def _add(self, collection: str, record: dict) -> dict:
        with self._engine.lock:
            conn = self._connection()
            try:
                self._insert(conn, collection, record)
                conn.commit()
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise DuplicateKeyError(f"A local {collection} record with id {record.get('id')!r} already exists") from e
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageError(f"Failed to add local {collection} record: {e}") from e
        return record

    def _update(self, collection: str, key: str, patch: dict) -> dict:
        with self._engine.lock:
            conn = self._connection()
            try:
                row = conn.execute(
                    "SELECT data FROM records WHERE namespace = ? AND collection = ? AND id = ?",
                    (self.namespace, collection, key),
                ).fetchone()
                if row is None:
                    raise NotFoundError(f"No local {collection} record with id {key!r}")
                merged = {**json.loads(row[0]), **patch, "id": key}
                values = self._row_values(collection, merged)
                conn.execute(
                    "UPDATE records SET year = ?, division = ?, roll_number = ?, date = ?, student_id = ?, data = ?"
                    " WHERE namespace = ? AND collection = ? AND id = ?",
                    (*values[3:], self.namespace, collection, key),
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageError(f"Failed to update local {collection} record: {e}") from e
        return merged

    def _delete(self, collection: str, key: str) -> None:
        with self._engine.lock:
            conn = self._connection()
            try:
                conn.execute(
                    "DELETE FROM records WHERE namespace = ? AND collection = ? AND id = ?",
                    (self.namespace, collection, key),
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageError(f"Failed to delete local {collection} record: {e}") from e

    def _query_by_index(self, collection: str, field: str, value: Any) -> list[dict]:
        if field not in INDEXES.get(collection, ()):
            raise ValueError(f"{field!r} is not an indexed field of {collection}")
        with self._engine.lock:
            try:
                rows = self._connection().execute(
                    f"SELECT data FROM records WHERE namespace = ? AND collection = ? AND {field} = ?",
                    (self.namespace, collection, str(value)),
                ).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to query local {collection}: {e}") from e
        return [json.loads(row[0]) for row in rows]

    def _clear(self) -> None:
        with self._engine.lock:
            conn = self._connection()
            try:
                conn.execute("DELETE FROM records WHERE namespace = ?", (self.namespace,))
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageError(f"Failed to clear local database: {e}") from e
