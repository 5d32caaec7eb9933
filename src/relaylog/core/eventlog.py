"""
EventLog - store-then-forward journal of fingerprinted event records.

Every ``append`` is written to the local store before any network activity.
If the connectivity signal reports online, the record is then sent to the
sink straight away; otherwise (or if sending fails) it stays queued until
``drain_queue`` flushes the backlog, oldest first.

The local store is the source of truth.  Sink delivery is best-effort and
may repeat a record; it never loses one.

Usage::

    connectivity = ManualConnectivity(online=False)
    log = EventLog(SQLiteStore(db_path), JsonlSink(spool), connectivity)

    result = await log.append({"eventName": "boot", "transactionId": "TX-1"})
    assert result.status == "queued"

    connectivity.set_online(True)   # schedules a background drain
    await log.drain_queue()         # or drain explicitly
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticSerializationError

from relaylog.core.connectivity import ConnectivitySignal, ManualConnectivity
from relaylog.core.constants import DEFAULT_SEND_TIMEOUT_SECONDS, DEFAULT_TX_PREFIX
from relaylog.core.exceptions import PersistenceError, TransmissionError
from relaylog.core.record import EventRecord, new_transaction_id, parse_record, utc_iso_from_epoch
from relaylog.core.signature import compute_signature, verify_signature
from relaylog.core.store.base import LocalStore, StoredRecord
from relaylog.sinks.base import DisabledSink, TransmissionSink

logger = logging.getLogger(__name__)


class DrainPolicy(StrEnum):
    """What a drain pass does after a failed transmission."""

    STOP = "stop"  # end the pass; later rows wait for the next drain
    SKIP = "skip"  # leave the failed row queued and carry on


@dataclass(frozen=True)
class AppendResult:
    status: str  # "transmitted" | "queued"
    transaction_id: str
    signature: str


@dataclass(frozen=True)
class DrainResult:
    synced: int
    remaining: int
    failed: int = 0


class EventLog:
    """
    Append-only, offline-tolerant event journal.

    All collaborators are injected; an EventLog holds no global state.
    """

    def __init__(
        self,
        store: LocalStore,
        sink: TransmissionSink | None = None,
        connectivity: ConnectivitySignal | None = None,
        *,
        send_timeout: float = DEFAULT_SEND_TIMEOUT_SECONDS,
        drain_policy: DrainPolicy | str = DrainPolicy.STOP,
        default_metrics: Mapping[str, Any] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if send_timeout <= 0:
            raise ValueError("send_timeout must be positive")
        self._store = store
        self._sink = sink or DisabledSink()
        self._connectivity = connectivity or ManualConnectivity(online=True)
        self._send_timeout = send_timeout
        self._drain_policy = DrainPolicy(drain_policy)
        self._default_metrics = dict(default_metrics or {})
        self._clock = clock

        self._drain_lock = asyncio.Lock()
        self._in_flight: set[int] = set()
        self._background: set[asyncio.Task[None]] = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._unsubscribe = self._connectivity.subscribe(self._on_connectivity_change)

    @property
    def connectivity(self) -> ConnectivitySignal:
        return self._connectivity

    # ------------------------------------------------------------------
    # Append
    # ------------------------------------------------------------------

    async def append(self, record: EventRecord | Mapping[str, Any]) -> AppendResult:
        """
        Stamp, fingerprint, persist and (when online) transmit one record.

        Raises:
            ValidationError: the record is missing required fields or is
                otherwise malformed.  Nothing is persisted.
            PersistenceError: the local store could not be written.

        Transmission failures are logged and never raised; the record stays
        queued for the next drain.
        """
        self._remember_loop()
        signed = self._sign(parse_record(record))
        stored = self._store.append(signed)
        logger.debug("Persisted %s (seq=%d)", signed.transaction_id, stored.seq)

        status = "queued"
        if not self._sink.enabled:
            logger.debug("No sink configured: %s queued", signed.transaction_id)
        elif self._connectivity.is_online():
            if await self._deliver(stored):
                status = "transmitted"
        else:
            logger.debug("Offline: %s queued", signed.transaction_id)

        assert signed.signature is not None
        return AppendResult(
            status=status, transaction_id=signed.transaction_id, signature=signed.signature
        )

    def _sign(self, draft: EventRecord) -> EventRecord:
        now = self._clock()
        metrics = {**self._default_metrics, **draft.metrics}
        unsigned = draft.model_copy(
            update={"timestamp": draft.timestamp or utc_iso_from_epoch(now), "metrics": metrics}
        )
        signed_at_ms = int(now * 1000)
        signature = compute_signature(unsigned.content(), signed_at_ms)
        return unsigned.model_copy(update={"signature": signature})

    # ------------------------------------------------------------------
    # Drain
    # ------------------------------------------------------------------

    async def drain_queue(self) -> DrainResult:
        """
        Transmit queued records in insertion order.

        Only rows persisted before the pass starts are considered; rows
        appended meanwhile wait for the next pass.  Passes never overlap.
        While offline nothing is sent.
        """
        self._remember_loop()
        async with self._drain_lock:
            if not self._sink.enabled or not self._connectivity.is_online():
                remaining = self._store.count_unsynced()
                reason = "no sink configured" if not self._sink.enabled else "offline"
                logger.info("Drain skipped: %s (%d pending)", reason, remaining)
                return DrainResult(synced=0, remaining=remaining)

            high_water = self._store.high_water_mark()
            synced = failed = 0
            for stored in self._store.list_unsynced(up_to_seq=high_water):
                if stored.seq in self._in_flight:
                    continue
                if not self._connectivity.is_online():
                    logger.info("Drain interrupted: connectivity lost")
                    break
                if await self._deliver(stored):
                    synced += 1
                    continue
                failed += 1
                if self._drain_policy is DrainPolicy.STOP:
                    break

            remaining = self._store.count_unsynced()

        logger.info("Drain finished: synced=%d failed=%d remaining=%d", synced, failed, remaining)
        return DrainResult(synced=synced, remaining=remaining, failed=failed)

    # ------------------------------------------------------------------
    # Transmission
    # ------------------------------------------------------------------

    async def _deliver(self, stored: StoredRecord) -> bool:
        """Send one stored row and update its bookkeeping.  Never raises TransmissionError."""
        txid = stored.record.transaction_id
        try:
            await self._transmit(stored)
        except TransmissionError as exc:
            kind = "rejected" if exc.permanent else "failed"
            logger.warning("Transmission of %s %s, left queued: %s", txid, kind, exc)
            try:
                self._store.record_failure(stored.seq, str(exc))
            except PersistenceError as perr:
                logger.error("Cannot record failure for %s: %s", txid, perr)
            return False

        try:
            self._store.mark_synced(txid, seq=stored.seq)
        except PersistenceError as exc:
            # Still pending locally; the next drain resends it.
            logger.error("Transmitted %s but could not mark it synced: %s", txid, exc)
            return False
        logger.debug("Transmitted %s via %s sink", txid, self._sink.name)
        return True

    async def _transmit(self, stored: StoredRecord) -> None:
        self._in_flight.add(stored.seq)
        try:
            result = await asyncio.wait_for(
                self._sink.send(stored.record), timeout=self._send_timeout
            )
        except TimeoutError as exc:
            raise TransmissionError(f"send timed out after {self._send_timeout}s") from exc
        except Exception as exc:  # noqa: BLE001
            raise TransmissionError(f"{self._sink.name} sink error: {exc}") from exc
        finally:
            self._in_flight.discard(stored.seq)

        if not result.accepted:
            raise TransmissionError(
                result.detail or "sink did not accept the record", permanent=result.permanent
            )

    # ------------------------------------------------------------------
    # Verification and queries
    # ------------------------------------------------------------------

    @staticmethod
    def verify(record: EventRecord | Mapping[str, Any], signature: str) -> bool:
        """
        Recompute *record*'s fingerprint at the time embedded in *signature*.

        Returns False (never raises) for malformed signatures or records.
        A match shows the content is unchanged since signing; it does not
        authenticate the writer.
        """
        try:
            rec = record if isinstance(record, EventRecord) else EventRecord.model_validate(
                dict(record)
            )
            content = rec.content()
        except (PydanticValidationError, PydanticSerializationError, TypeError, ValueError):
            return False
        return verify_signature(content, signature)

    def list_pending(self) -> Iterator[EventRecord]:
        """Lazily yield records not yet transmitted, oldest first (fresh read per call)."""
        return (stored.record for stored in self._store.list_unsynced())

    def pending_count(self) -> int:
        return self._store.count_unsynced()

    def history(self, limit: int | None = None) -> list[StoredRecord]:
        """All stored rows, transmitted or not, oldest first."""
        return self._store.list_all(limit=limit)

    def lookup(self, transaction_id: str) -> StoredRecord | None:
        return self._store.get(transaction_id)

    def purge_synced(self) -> int:
        """Delete rows already transmitted.  Pending rows are untouched."""
        removed = self._store.purge_synced()
        logger.info("Purged %d transmitted record(s)", removed)
        return removed

    def clear(self) -> int:
        """Delete every stored row, pending included.  Operator action only."""
        removed = self._store.clear()
        logger.warning("Cleared event log: %d record(s) deleted", removed)
        return removed

    def new_transaction_id(self, prefix: str = DEFAULT_TX_PREFIX) -> str:
        return new_transaction_id(prefix, clock=self._clock)

    # ------------------------------------------------------------------
    # Connectivity-triggered drains
    # ------------------------------------------------------------------

    def _remember_loop(self) -> None:
        self._loop = asyncio.get_running_loop()

    def _on_connectivity_change(self, online: bool) -> None:
        if not online:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Called from a thread without a loop: hand over to the log's loop.
            if self._loop is None or self._loop.is_closed():
                logger.info("Back online; no event loop yet, drain on next call")
                return
            self._loop.call_soon_threadsafe(self._schedule_drain)
            return
        self._schedule_drain()

    def _schedule_drain(self) -> None:
        task = asyncio.get_running_loop().create_task(
            self._background_drain(), name="relaylog_drain"
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _background_drain(self) -> None:
        try:
            await self.drain_queue()
        except PersistenceError as exc:
            logger.error("Background drain failed: %s", exc)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait for background drains scheduled by connectivity changes."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self) -> None:
        self._unsubscribe()
        await self.wait_idle()
        await self._sink.close()
        self._store.close()

    async def __aenter__(self) -> EventLog:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
