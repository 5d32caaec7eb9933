"""
LocalStore - the durable queue behind the event log.

Contract:
  - ``append`` is atomic; concurrent appends never corrupt the store
  - Rows leave the pending set only through ``mark_synced``
  - Insertion order (``seq``) is preserved by every listing
  - Storage failures raise :class:`PersistenceError`
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass

from relaylog.core.record import EventRecord


@dataclass(frozen=True)
class StoredRecord:
    """A persisted record plus its delivery bookkeeping."""

    seq: int
    record: EventRecord
    created_at: str
    synced_at: str | None = None
    attempts: int = 0
    last_error: str | None = None

    @property
    def synced(self) -> bool:
        return self.synced_at is not None


class LocalStore(ABC):
    """Interface for the local, durable record store."""

    @abstractmethod
    def append(self, record: EventRecord) -> StoredRecord:
        """Persist a signed record and return its row."""
        ...

    @abstractmethod
    def list_unsynced(self, up_to_seq: int | None = None) -> Iterator[StoredRecord]:
        """Lazily yield pending rows in insertion order.

        When *up_to_seq* is given, rows appended after that sequence number
        are not yielded.
        """
        ...

    @abstractmethod
    def mark_synced(self, transaction_id: str, seq: int | None = None) -> int:
        """Mark pending rows for *transaction_id* as transmitted.

        With *seq*, only that row is marked.  Returns the number of rows changed.
        """
        ...

    @abstractmethod
    def record_failure(self, seq: int, error: str) -> None:
        """Note a failed transmission attempt on a pending row."""
        ...

    @abstractmethod
    def list_all(self, limit: int | None = None) -> list[StoredRecord]:
        """Return stored rows, synced or not, oldest first (last *limit* rows)."""
        ...

    @abstractmethod
    def get(self, transaction_id: str) -> StoredRecord | None:
        """Return the most recent row for *transaction_id*, if any."""
        ...

    @abstractmethod
    def count_unsynced(self) -> int: ...

    @abstractmethod
    def high_water_mark(self) -> int:
        """Return the highest ``seq`` assigned so far (0 when empty)."""
        ...

    @abstractmethod
    def purge_synced(self) -> int:
        """Delete transmitted rows.  Returns the number deleted."""
        ...

    @abstractmethod
    def clear(self) -> int:
        """Delete every row, pending included.  Returns the number deleted."""
        ...

    @abstractmethod
    def close(self) -> None: ...
