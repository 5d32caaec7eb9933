"""relaylog append | pending | history | drain | verify | txid | purge."""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from itertools import islice
from typing import Any, TypeVar

from rich.console import Console
from rich.table import Table

from relaylog.core.config import RelayLogConfig, load_config
from relaylog.core.connectivity import ManualConnectivity
from relaylog.core.constants import ExitCode
from relaylog.core.eventlog import EventLog
from relaylog.core.exceptions import ConfigError, PersistenceError, ValidationError
from relaylog.core.log_setup import configure_logging
from relaylog.core.record import EventRecord
from relaylog.core.store.base import StoredRecord
from relaylog.core.store.database import SQLiteStore
from relaylog.sinks import build_sink

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def _bootstrap(console: Console) -> RelayLogConfig:
    try:
        config = load_config(missing_ok=True)
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        sys.exit(ExitCode.CONFIG_ERROR)
    configure_logging(config.logging.level, config.logging.format)
    return config


def _open_log(config: RelayLogConfig, offline: bool = False) -> EventLog:
    online = config.connectivity.initial == "online" and not offline
    return EventLog(
        SQLiteStore(config.db_path, page_size=config.store.page_size),
        build_sink(config.sink),
        ManualConnectivity(online=online),
        send_timeout=config.sink.timeout_seconds,
        drain_policy=config.drain.policy,
        default_metrics=config.records.default_metrics,
    )


def _run(
    config: RelayLogConfig,
    console: Console,
    action: Callable[[EventLog], Awaitable[T]],
    offline: bool = False,
) -> T:
    async def _main() -> T:
        async with _open_log(config, offline=offline) as log:
            return await action(log)

    try:
        return asyncio.run(_main())
    except ValidationError as exc:
        console.print(f"[red]Invalid record:[/red] {exc}")
        sys.exit(ExitCode.VALIDATION_ERROR)
    except PersistenceError as exc:
        console.print(f"[red]Storage error:[/red] {exc}")
        sys.exit(ExitCode.STORAGE_ERROR)


def _parse_metric(raw: str) -> tuple[str, Any]:
    """Parse ``key=value``; the value is read as JSON when it parses, else as text."""
    key, sep, value = raw.partition("=")
    if not sep or not key.strip():
        raise ValueError(f"metric must look like key=value (got {raw!r})")
    try:
        return key.strip(), json.loads(value)
    except json.JSONDecodeError:
        return key.strip(), value


def _row_dict(row: StoredRecord) -> dict[str, Any]:
    return {
        "seq": row.seq,
        **row.record.to_wire(),
        "synced_at": row.synced_at,
        "attempts": row.attempts,
        "last_error": row.last_error,
    }


def _print_rows(rows: list[StoredRecord], title: str, console: Console) -> None:
    if not rows:
        console.print(f"[dim]{title}: none[/dim]")
        return
    table = Table(title=title)
    table.add_column("seq", justify="right")
    table.add_column("transaction")
    table.add_column("event")
    table.add_column("timestamp")
    table.add_column("status")
    table.add_column("attempts", justify="right")
    for row in rows:
        status = "[green]sent[/green]" if row.synced else "[yellow]queued[/yellow]"
        table.add_row(
            str(row.seq),
            row.record.transaction_id,
            row.record.event_name,
            row.record.timestamp or "",
            status,
            str(row.attempts),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_append(
    event_name: str,
    tx_id: str,
    metrics: tuple[str, ...],
    local: bool,
    timestamp: str,
    offline: bool,
    as_json: bool,
    console: Console,
) -> None:
    config = _bootstrap(console)
    try:
        parsed = dict(_parse_metric(m) for m in metrics)
    except ValueError as exc:
        console.print(f"[red]Invalid record:[/red] {exc}")
        sys.exit(ExitCode.VALIDATION_ERROR)

    async def _append(log: EventLog) -> Any:
        record: dict[str, Any] = {
            "eventName": event_name,
            "transactionId": tx_id or log.new_transaction_id(),
            "metrics": parsed,
            "remote": not local,
        }
        if timestamp:
            record["timestamp"] = timestamp
        return await log.append(record)

    result = _run(config, console, _append, offline=offline)

    if as_json:
        print(
            json.dumps(
                {
                    "status": result.status,
                    "transactionId": result.transaction_id,
                    "signature": result.signature,
                },
                indent=2,
            )
        )
        return
    colour = "green" if result.status == "transmitted" else "yellow"
    console.print(f"[{colour}]{result.status}[/{colour}] {result.transaction_id}")
    console.print(f"  signature: {result.signature}")


def cmd_pending(limit: int, as_json: bool, console: Console) -> None:
    config = _bootstrap(console)

    async def _pending(log: EventLog) -> list[EventRecord]:
        return list(islice(log.list_pending(), limit or None))

    records = _run(config, console, _pending)
    if as_json:
        print(json.dumps([r.to_wire() for r in records], indent=2))
        return
    if not records:
        console.print("[dim]Pending records: none[/dim]")
        return
    table = Table(title=f"Pending records ({len(records)})")
    table.add_column("transaction")
    table.add_column("event")
    table.add_column("timestamp")
    table.add_column("remote")
    for r in records:
        table.add_row(
            r.transaction_id, r.event_name, r.timestamp or "", "yes" if r.remote else "no"
        )
    console.print(table)


def cmd_history(limit: int, as_json: bool, console: Console) -> None:
    config = _bootstrap(console)

    async def _history(log: EventLog) -> list[StoredRecord]:
        return log.history(limit=limit or None)

    rows = _run(config, console, _history)
    if as_json:
        print(json.dumps([_row_dict(r) for r in rows], indent=2))
    else:
        _print_rows(rows, "Event log", console)


def cmd_drain(as_json: bool, console: Console) -> None:
    config = _bootstrap(console)

    async def _drain(log: EventLog) -> Any:
        return await log.drain_queue()

    result = _run(config, console, _drain)
    if as_json:
        print(
            json.dumps(
                {"synced": result.synced, "remaining": result.remaining, "failed": result.failed},
                indent=2,
            )
        )
        return
    console.print(
        f"Synced [green]{result.synced}[/green], "
        f"failed [red]{result.failed}[/red], "
        f"remaining [yellow]{result.remaining}[/yellow]"
    )


def cmd_verify(tx_id: str, signature: str, as_json: bool, console: Console) -> None:
    config = _bootstrap(console)

    async def _lookup(log: EventLog) -> StoredRecord | None:
        return log.lookup(tx_id)

    row = _run(config, console, _lookup)
    if row is None:
        console.print(f"[red]No record with transaction id {tx_id!r}[/red]")
        sys.exit(ExitCode.ERROR)

    sig = signature or row.record.signature or ""
    ok = EventLog.verify(row.record, sig)

    if as_json:
        print(json.dumps({"transactionId": tx_id, "signature": sig, "valid": ok}, indent=2))
    elif ok:
        console.print(f"[green]valid[/green] {tx_id} {sig}")
    else:
        console.print(f"[red]MISMATCH[/red] {tx_id} {sig}")
    if not ok:
        sys.exit(ExitCode.VERIFY_FAILED)


def cmd_purge(purge_all: bool, console: Console) -> None:
    config = _bootstrap(console)

    async def _purge(log: EventLog) -> int:
        return log.clear() if purge_all else log.purge_synced()

    removed = _run(config, console, _purge)
    what = "record(s)" if purge_all else "transmitted record(s)"
    console.print(f"Removed {removed} {what}.")
