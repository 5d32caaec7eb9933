"""
relaylog.core.store - local persistence for event records.

Modules:
    base        LocalStore interface and the StoredRecord row view
    database    SQLite implementation (WAL mode, one serialized connection)
    migrations  PRAGMA user_version schema migrations
"""

from relaylog.core.store.base import LocalStore, StoredRecord
from relaylog.core.store.database import SQLiteStore

__all__ = ["LocalStore", "SQLiteStore", "StoredRecord"]
