"""Unit tests for relaylog.core.store.migrations - schema migration system."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

import pytest

from relaylog.core.exceptions import PersistenceError
from relaylog.core.store.database import SQLiteStore
from relaylog.core.store.migrations import (
    LATEST_SCHEMA_VERSION,
    get_user_version,
    run_migrations,
)

# ---------------------------------------------------------------------------
# Helpers to simulate old database schemas
# ---------------------------------------------------------------------------

# Schema v1: events table without delivery bookkeeping columns.
_SCHEMA_V1 = """
CREATE TABLE events (
    seq             INTEGER PRIMARY KEY AUTOINCREMENT,
    transaction_id  TEXT NOT NULL,
    event_name      TEXT NOT NULL,
    signature       TEXT NOT NULL,
    record          TEXT NOT NULL,
    created_at      TEXT NOT NULL,
    synced_at       TEXT
);
PRAGMA user_version = 1;
"""

_V1_RECORD = {
    "eventName": "boot",
    "transactionId": "TX-old",
    "timestamp": "2024-01-01T00:00:00.000Z",
    "metrics": {},
    "remote": True,
    "signature": "FP-0123456789abcdef-1704067200000",
}


def _columns(conn: sqlite3.Connection) -> set[str]:
    return {row[1] for row in conn.execute("PRAGMA table_info(events)").fetchall()}


def _make_v1(path: Path) -> None:
    conn = sqlite3.connect(str(path))
    conn.executescript(_SCHEMA_V1)
    conn.execute(
        "INSERT INTO events (transaction_id, event_name, signature, record, created_at) "
        "VALUES (?, ?, ?, ?, ?)",
        (
            "TX-old",
            "boot",
            _V1_RECORD["signature"],
            json.dumps(_V1_RECORD),
            "2024-01-01T00:00:00.000Z",
        ),
    )
    conn.commit()
    conn.close()


# ---------------------------------------------------------------------------
# Fresh install
# ---------------------------------------------------------------------------


class TestFreshInstall:
    def test_fresh_database_reaches_latest(self, tmp_path: Path) -> None:
        conn = sqlite3.connect(str(tmp_path / "fresh.db"))
        start = run_migrations(conn)
        assert start == 0
        assert get_user_version(conn) == LATEST_SCHEMA_VERSION
        assert {"seq", "record", "synced_at", "attempts", "last_error"} <= _columns(conn)
        conn.close()

    def test_store_connect_migrates(self, tmp_path: Path) -> None:
        store = SQLiteStore(tmp_path / "fresh.db")
        store.connect()
        assert store.schema_version() == LATEST_SCHEMA_VERSION
        store.close()

    def test_schema_version_opens_lazily(self, tmp_path: Path) -> None:
        store = SQLiteStore(tmp_path / "lazy.db")
        try:
            assert store.schema_version() == LATEST_SCHEMA_VERSION
        finally:
            store.close()

    def test_rerun_is_noop(self, tmp_path: Path) -> None:
        conn = sqlite3.connect(str(tmp_path / "fresh.db"))
        run_migrations(conn)
        assert run_migrations(conn) == LATEST_SCHEMA_VERSION
        assert get_user_version(conn) == LATEST_SCHEMA_VERSION
        conn.close()


# ---------------------------------------------------------------------------
# Upgrades
# ---------------------------------------------------------------------------


class TestUpgrade:
    def test_v1_gains_bookkeeping_columns(self, tmp_path: Path) -> None:
        path = tmp_path / "v1.db"
        _make_v1(path)
        conn = sqlite3.connect(str(path))
        assert run_migrations(conn) == 1
        assert {"attempts", "last_error"} <= _columns(conn)
        conn.close()

    def test_v1_rows_survive_upgrade(self, tmp_path: Path) -> None:
        path = tmp_path / "v1.db"
        _make_v1(path)
        store = SQLiteStore(path)
        rows = list(store.list_unsynced())
        assert [r.record.transaction_id for r in rows] == ["TX-old"]
        assert rows[0].attempts == 0
        assert rows[0].last_error is None
        store.close()

    def test_v1_store_reports_latest_version(self, tmp_path: Path) -> None:
        path = tmp_path / "v1.db"
        _make_v1(path)
        store = SQLiteStore(path)
        try:
            assert store.schema_version() == LATEST_SCHEMA_VERSION
        finally:
            store.close()

    def test_partial_v2_columns_tolerated(self, tmp_path: Path) -> None:
        path = tmp_path / "partial.db"
        _make_v1(path)
        conn = sqlite3.connect(str(path))
        conn.execute("ALTER TABLE events ADD COLUMN attempts INTEGER NOT NULL DEFAULT 0")
        conn.commit()
        run_migrations(conn)
        assert get_user_version(conn) == LATEST_SCHEMA_VERSION
        assert "last_error" in _columns(conn)
        conn.close()


# ---------------------------------------------------------------------------
# Refusals
# ---------------------------------------------------------------------------


class TestRefusals:
    def test_newer_schema_refused(self, tmp_path: Path) -> None:
        conn = sqlite3.connect(str(tmp_path / "future.db"))
        conn.execute(f"PRAGMA user_version = {LATEST_SCHEMA_VERSION + 1}")
        with pytest.raises(RuntimeError, match="newer"):
            run_migrations(conn)
        conn.close()

    def test_store_wraps_newer_schema(self, tmp_path: Path) -> None:
        path = tmp_path / "future.db"
        conn = sqlite3.connect(str(path))
        conn.execute(f"PRAGMA user_version = {LATEST_SCHEMA_VERSION + 1}")
        conn.close()
        store = SQLiteStore(path)
        with pytest.raises(PersistenceError, match="newer"):
            store.connect()
