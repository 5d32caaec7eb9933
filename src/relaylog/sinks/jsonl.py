"""
JSON Lines spool sink.

Appends each delivered record, in wire format, as one line of a spool file
(typically on a mounted share or a directory picked up by a shipper).
Lines are never rewritten; the file grows monotonically.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from pathlib import Path

from relaylog.core.record import EventRecord
from relaylog.sinks.base import SendResult, TransmissionSink

logger = logging.getLogger(__name__)


class JsonlSink(TransmissionSink):
    name = "jsonl"

    def __init__(self, path: Path | str, remote_latency: float = 0.0) -> None:
        super().__init__(remote_latency=remote_latency)
        self.path = Path(path)
        self._lock = threading.Lock()

    async def send(self, record: EventRecord) -> SendResult:
        await self._link_delay(record)
        line = json.dumps(record.to_wire(), sort_keys=True)
        try:
            await asyncio.to_thread(self._write_line, line)
        except OSError as exc:
            logger.warning("JsonlSink: cannot write to %s: %s", self.path, exc)
            return SendResult.transient(f"spool write failed: {exc}")
        return SendResult.ok(str(self.path))

    def _write_line(self, line: str) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
