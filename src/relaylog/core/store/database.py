"""
SQLite-backed LocalStore.

One connection per store, opened lazily on first use, shared across threads
and serialized by a re-entrant lock.  Every write is its own transaction, so
a crash leaves either the whole row or nothing.

Usage::

    store = SQLiteStore(Path("~/.relaylog/relaylog.db").expanduser())
    row = store.append(signed_record)
    for pending in store.list_unsynced():
        ...
    store.mark_synced(row.record.transaction_id, seq=row.seq)
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Iterator
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from relaylog.core.constants import DEFAULT_PAGE_SIZE
from relaylog.core.exceptions import PersistenceError
from relaylog.core.record import EventRecord, utc_now_iso
from relaylog.core.store.base import LocalStore, StoredRecord
from relaylog.core.store.migrations import get_user_version, run_migrations

logger = logging.getLogger(__name__)

_COLUMNS = "seq, record, created_at, synced_at, attempts, last_error"


class SQLiteStore(LocalStore):
    def __init__(self, path: Path | str, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.path = Path(path)
        self.page_size = page_size
        self._db: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Open the database and apply pending migrations (idempotent)."""
        with self._lock:
            if self._db is not None:
                return
            conn: sqlite3.Connection | None = None
            try:
                self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.path), check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode=WAL")
                # The store is the durability guarantee: fsync on every commit
                conn.execute("PRAGMA synchronous=FULL")
                run_migrations(conn)
            except (OSError, sqlite3.Error, RuntimeError) as exc:
                if conn is not None:
                    conn.close()
                raise PersistenceError(f"Cannot open store at {self.path}: {exc}") from exc
            self._db = conn
            logger.debug("Store opened: %s", self.path)

    def close(self) -> None:
        with self._lock:
            if self._db is not None:
                self._db.close()
                self._db = None

    def _conn(self) -> sqlite3.Connection:
        if self._db is None:
            self.connect()
        assert self._db is not None
        return self._db

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, record: EventRecord) -> StoredRecord:
        if record.signature is None or record.timestamp is None:
            raise ValueError("only signed, timestamped records can be stored")
        created_at = utc_now_iso()
        wire = json.dumps(record.to_wire(), sort_keys=True)
        with self._lock:
            conn = self._conn()
            try:
                with conn:
                    cur = conn.execute(
                        """
                        INSERT INTO events
                            (transaction_id, event_name, signature, record, created_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (
                            record.transaction_id,
                            record.event_name,
                            record.signature,
                            wire,
                            created_at,
                        ),
                    )
            except sqlite3.Error as exc:
                raise PersistenceError(
                    f"Cannot persist record {record.transaction_id!r}: {exc}"
                ) from exc
        return StoredRecord(seq=int(cur.lastrowid), record=record, created_at=created_at)

    def mark_synced(self, transaction_id: str, seq: int | None = None) -> int:
        sql = "UPDATE events SET synced_at = ? WHERE transaction_id = ? AND synced_at IS NULL"
        params: tuple[object, ...] = (utc_now_iso(), transaction_id)
        if seq is not None:
            sql += " AND seq = ?"
            params += (seq,)
        return self._write(sql, params)

    def record_failure(self, seq: int, error: str) -> None:
        self._write(
            "UPDATE events SET attempts = attempts + 1, last_error = ? WHERE seq = ?",
            (error, seq),
        )

    def purge_synced(self) -> int:
        return self._write("DELETE FROM events WHERE synced_at IS NOT NULL", ())

    def clear(self) -> int:
        return self._write("DELETE FROM events", ())

    def _write(self, sql: str, params: tuple[object, ...]) -> int:
        with self._lock:
            conn = self._conn()
            try:
                with conn:
                    cur = conn.execute(sql, params)
            except sqlite3.Error as exc:
                raise PersistenceError(f"Store write failed: {exc}") from exc
            return cur.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_unsynced(self, up_to_seq: int | None = None) -> Iterator[StoredRecord]:
        # Keyset pagination: each page is a fresh query, so rows marked synced
        # or appended while the caller iterates are handled without a cursor.
        last_seq = 0
        while True:
            sql = f"SELECT {_COLUMNS} FROM events WHERE synced_at IS NULL AND seq > ?"
            params: tuple[object, ...] = (last_seq,)
            if up_to_seq is not None:
                sql += " AND seq <= ?"
                params += (up_to_seq,)
            sql += " ORDER BY seq LIMIT ?"
            params += (self.page_size,)

            rows = self._fetch(sql, params)
            if not rows:
                return
            for row in rows:
                yield self._to_stored(row)
            last_seq = rows[-1]["seq"]

    def list_all(self, limit: int | None = None) -> list[StoredRecord]:
        if limit is None:
            rows = self._fetch(f"SELECT {_COLUMNS} FROM events ORDER BY seq", ())
        else:
            rows = self._fetch(
                f"SELECT {_COLUMNS} FROM events ORDER BY seq DESC LIMIT ?", (int(limit),)
            )
            rows.reverse()
        return [self._to_stored(r) for r in rows]

    def get(self, transaction_id: str) -> StoredRecord | None:
        rows = self._fetch(
            f"SELECT {_COLUMNS} FROM events WHERE transaction_id = ? ORDER BY seq DESC LIMIT 1",
            (transaction_id,),
        )
        return self._to_stored(rows[0]) if rows else None

    def count_unsynced(self) -> int:
        rows = self._fetch("SELECT count(*) AS n FROM events WHERE synced_at IS NULL", ())
        return int(rows[0]["n"])

    def count(self) -> int:
        rows = self._fetch("SELECT count(*) AS n FROM events", ())
        return int(rows[0]["n"])

    def schema_version(self) -> int:
        """Return the schema version recorded in the database."""
        with self._lock:
            try:
                return get_user_version(self._conn())
            except sqlite3.Error as exc:
                raise PersistenceError(f"Store read failed: {exc}") from exc

    def high_water_mark(self) -> int:
        rows = self._fetch("SELECT coalesce(max(seq), 0) AS hw FROM events", ())
        return int(rows[0]["hw"])

    def _fetch(self, sql: str, params: tuple[object, ...]) -> list[sqlite3.Row]:
        with self._lock:
            conn = self._conn()
            try:
                return conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise PersistenceError(f"Store read failed: {exc}") from exc

    @staticmethod
    def _to_stored(row: sqlite3.Row) -> StoredRecord:
        try:
            record = EventRecord.from_wire(json.loads(row["record"]))
        except (json.JSONDecodeError, PydanticValidationError) as exc:
            raise PersistenceError(f"Stored row seq={row['seq']} is unreadable: {exc}") from exc
        return StoredRecord(
            seq=row["seq"],
            record=record,
            created_at=row["created_at"],
            synced_at=row["synced_at"],
            attempts=row["attempts"],
            last_error=row["last_error"],
        )
