"""
relaylog.sinks - where records go once the link is up.

Modules:
    base    TransmissionSink interface, SendResult, DisabledSink
    jsonl   JSON Lines spool file sink
    http    HTTP POST sink (httpx)

``build_sink(config)`` turns the ``[sink]`` config section into an instance.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from relaylog.sinks.base import DisabledSink, SendResult, TransmissionSink

if TYPE_CHECKING:
    from relaylog.core.config import SinkConfig

__all__ = ["DisabledSink", "SendResult", "TransmissionSink", "build_sink"]


def build_sink(config: SinkConfig) -> TransmissionSink:
    """Instantiate the sink named by ``config.kind``."""
    latency = config.remote_latency_ms / 1000.0

    if config.kind == "jsonl":
        from relaylog.sinks.jsonl import JsonlSink

        return JsonlSink(config.spool_path, remote_latency=latency)

    if config.kind == "http":
        from relaylog.sinks.http import HttpSink

        token = config.api_token.get_secret_value() if config.api_token else ""
        return HttpSink(
            config.endpoint,
            api_token=token,
            timeout=config.timeout_seconds,
            remote_latency=latency,
        )

    return DisabledSink()
