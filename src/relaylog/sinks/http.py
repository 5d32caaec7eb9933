"""
HTTP sink - POSTs each record as JSON to a collector endpoint.

Status mapping:
    2xx                 accepted
    408, 429, 5xx       transient (retried on the next drain)
    other 4xx           permanent rejection (record stays queued, flagged)
    network / timeout   transient

Each request carries an ``Idempotency-Key`` header built from the
transaction id and signature so that the collector can drop duplicates
produced by retries.
"""

from __future__ import annotations

import logging

import httpx

from relaylog.core.record import EventRecord
from relaylog.sinks.base import SendResult, TransmissionSink

logger = logging.getLogger(__name__)

_RETRYABLE_4XX = {408, 429}


class HttpSink(TransmissionSink):
    name = "http"

    def __init__(
        self,
        endpoint: str,
        api_token: str = "",
        timeout: float = 10.0,
        remote_latency: float = 0.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("HttpSink requires an endpoint URL")
        super().__init__(remote_latency=remote_latency)
        self.endpoint = endpoint
        self._api_token = api_token
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def send(self, record: EventRecord) -> SendResult:
        await self._link_delay(record)

        headers = {"Idempotency-Key": f"{record.transaction_id}:{record.signature}"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"

        try:
            resp = await self._get_client().post(
                self.endpoint, json=record.to_wire(), headers=headers
            )
        except httpx.TimeoutException as exc:
            return SendResult.transient(f"request timed out: {exc}")
        except httpx.HTTPError as exc:
            return SendResult.transient(f"could not reach {self.endpoint}: {exc}")

        status = resp.status_code
        if 200 <= status < 300:
            return SendResult.ok(f"HTTP {status}")
        if 400 <= status < 500 and status not in _RETRYABLE_4XX:
            logger.warning(
                "HttpSink: %s rejected %s with HTTP %d",
                self.endpoint,
                record.transaction_id,
                status,
            )
            return SendResult.rejected(f"HTTP {status}: {resp.text[:200]}")
        return SendResult.transient(f"HTTP {status}")

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
