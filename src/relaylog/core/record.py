"""
Event record model - the unit of the relaylog journal.

A record is created by the caller without a signature; the event log fills
in ``timestamp`` (when absent) and ``signature`` before persisting it.

Wire format (one JSON object per record)::

    {
      "eventName": "sync.completed",
      "transactionId": "TX-1718035200000-042137",
      "timestamp": "2024-06-10T16:00:00.000Z",
      "metrics": {"items": 12},
      "remote": true,
      "signature": "FP-3f9a0c1d2b4e5f60-1718035200123"
    }
"""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticSerializationError

from relaylog.core.constants import DEFAULT_TX_PREFIX
from relaylog.core.exceptions import ValidationError


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return _iso(datetime.now(UTC))


def utc_iso_from_epoch(seconds: float) -> str:
    """ISO-8601 UTC string for a Unix timestamp, same shape as :func:`utc_now_iso`."""
    return _iso(datetime.fromtimestamp(seconds, UTC))


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_transaction_id(
    prefix: str = DEFAULT_TX_PREFIX,
    clock: Callable[[], float] = time.time,
) -> str:
    """Return ``PREFIX-<epoch ms>-<6 random digits>``."""
    millis = int(clock() * 1000)
    return f"{prefix}-{millis}-{secrets.randbelow(1_000_000):06d}"


class EventRecord(BaseModel):
    """One logged event. Immutable once built."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    event_name: str = Field(alias="eventName")
    transaction_id: str = Field(alias="transactionId")
    timestamp: str | None = None
    metrics: dict[str, Any] = Field(default_factory=dict)
    remote: bool = True
    signature: str | None = None

    @field_validator("event_name", "transaction_id")
    @classmethod
    def reject_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("timestamp", mode="before")
    @classmethod
    def normalise_timestamp(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return _iso(v)
        if isinstance(v, str):
            if not v.strip():
                return None
            try:
                parsed = datetime.fromisoformat(v.strip())
            except ValueError:
                raise ValueError(f"not an ISO-8601 timestamp: {v!r}") from None
            return _iso(parsed)
        return v

    @field_validator("metrics", mode="before")
    @classmethod
    def default_metrics(cls, v: Any) -> Any:
        return {} if v is None else v

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON-compatible wire dict (camelCase keys)."""
        return self.model_dump(mode="json", by_alias=True)

    def content(self) -> dict[str, Any]:
        """The signed portion of the record: the wire dict without ``signature``."""
        data = self.to_wire()
        data.pop("signature", None)
        return data

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> EventRecord:
        """Rebuild a stored record (signature included) from its wire dict."""
        return cls.model_validate(dict(data))


def parse_record(data: EventRecord | Mapping[str, Any]) -> EventRecord:
    """
    Validate caller input for ``EventLog.append``.

    Accepts an :class:`EventRecord` or a mapping keyed by wire or Python
    field names.  The caller never supplies a signature.

    Raises:
        ValidationError: on missing/blank ``eventName`` or ``transactionId``,
            a caller-supplied signature, unknown fields, or metrics that
            cannot be serialized to JSON.
    """
    if isinstance(data, EventRecord):
        record = data
    elif isinstance(data, Mapping):
        try:
            record = EventRecord.model_validate(dict(data))
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid event record: {_describe(exc)}") from exc
    else:
        raise ValidationError(
            f"Event record must be a mapping or EventRecord (got {type(data).__name__})"
        )

    if record.signature is not None:
        raise ValidationError("signature is assigned by the log and must not be supplied")

    try:
        record.to_wire()
    except PydanticSerializationError as exc:
        raise ValidationError(f"metrics are not JSON-serializable: {exc}") from exc

    return record


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "record"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)
