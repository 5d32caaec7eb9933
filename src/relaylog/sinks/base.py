"""
Transmission sink interface.

A sink receives COPIES of records that are already durable in the local
store.  The store is the source of truth; delivery is best-effort and may be
retried any number of times, so sinks should tolerate duplicates (the
transaction id is the natural idempotency key).

Contract:
  - ``send`` reports the outcome through :class:`SendResult`
  - An exception escaping ``send`` counts as a transient failure
  - ``permanent=True`` means the sink rejected this record and a retry
    would fail the same way
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass

from relaylog.core.record import EventRecord


@dataclass(frozen=True)
class SendResult:
    accepted: bool
    permanent: bool = False
    detail: str = ""

    @classmethod
    def ok(cls, detail: str = "") -> SendResult:
        return cls(accepted=True, detail=detail)

    @classmethod
    def transient(cls, detail: str) -> SendResult:
        return cls(accepted=False, detail=detail)

    @classmethod
    def rejected(cls, detail: str) -> SendResult:
        return cls(accepted=False, permanent=True, detail=detail)


class TransmissionSink(ABC):
    """Interface for delivering records to a remote destination."""

    name = "sink"
    enabled = True  # False: EventLog never calls send and keeps records queued

    def __init__(self, remote_latency: float = 0.0) -> None:
        self.remote_latency = remote_latency

    @abstractmethod
    async def send(self, record: EventRecord) -> SendResult: ...

    async def close(self) -> None:
        """Release any resources held by the sink."""

    async def _link_delay(self, record: EventRecord) -> None:
        """Simulate the long-haul link for records flagged ``remote``."""
        if record.remote and self.remote_latency > 0:
            await asyncio.sleep(self.remote_latency)


class DisabledSink(TransmissionSink):
    """Sink used when no destination is configured.  Everything stays queued."""

    name = "disabled"
    enabled = False

    async def send(self, record: EventRecord) -> SendResult:
        return SendResult.transient("no sink configured")
