"""
Schema migrations for the relaylog SQLite store.

The schema version lives in ``PRAGMA user_version``.  Each step upgrades
from version N to N+1 inside its own transaction and is written to be
re-runnable against a partially created database.

    v0 -> v1  events table and indexes
    v1 -> v2  delivery bookkeeping columns (attempts, last_error)
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable

logger = logging.getLogger(__name__)

LATEST_SCHEMA_VERSION = 2

_MIGRATIONS: dict[int, Callable[[sqlite3.Connection], None]] = {}


def _register(from_ver: int) -> Callable[..., Callable[[sqlite3.Connection], None]]:
    def decorator(
        fn: Callable[[sqlite3.Connection], None],
    ) -> Callable[[sqlite3.Connection], None]:
        _MIGRATIONS[from_ver] = fn
        return fn

    return decorator


def get_user_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("PRAGMA user_version").fetchone()
    return int(row[0]) if row else 0


def _set_user_version(conn: sqlite3.Connection, version: int) -> None:
    # PRAGMA does not accept bound parameters
    conn.execute(f"PRAGMA user_version = {int(version)}")


def _column_names(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}


@_register(0)
def _migrate_v0_to_v1(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS events (
            seq             INTEGER PRIMARY KEY AUTOINCREMENT,
            transaction_id  TEXT NOT NULL,
            event_name      TEXT NOT NULL,
            signature       TEXT NOT NULL,
            record          TEXT NOT NULL,
            created_at      TEXT NOT NULL,
            synced_at       TEXT
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_events_pending ON events(synced_at, seq)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_events_transaction ON events(transaction_id)"
    )


@_register(1)
def _migrate_v1_to_v2(conn: sqlite3.Connection) -> None:
    cols = _column_names(conn, "events")
    if "attempts" not in cols:
        conn.execute("ALTER TABLE events ADD COLUMN attempts INTEGER NOT NULL DEFAULT 0")
    if "last_error" not in cols:
        conn.execute("ALTER TABLE events ADD COLUMN last_error TEXT")


def run_migrations(
    conn: sqlite3.Connection, target_version: int = LATEST_SCHEMA_VERSION
) -> int:
    """
    Bring the database up to *target_version*.

    Returns the version the database was at before migrating.
    Raises ``RuntimeError`` if a step is missing or the database is newer
    than this build understands.
    """
    start = get_user_version(conn)
    if start > target_version:
        raise RuntimeError(
            f"Database schema v{start} is newer than supported v{target_version}"
        )

    current = start
    while current < target_version:
        step = _MIGRATIONS.get(current)
        if step is None:
            raise RuntimeError(f"No migration path from schema v{current} to v{current + 1}")
        conn.execute("BEGIN")
        try:
            step(conn)
            _set_user_version(conn, current + 1)
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        logger.info("Store schema migrated v%d -> v%d", current, current + 1)
        current += 1

    return start
