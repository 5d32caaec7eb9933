"""
relaylog CLI entry point.

Commands:
  relaylog append <event>      - record an event (transmits if online)
  relaylog pending             - list records not yet transmitted
  relaylog history             - list every stored record
  relaylog drain               - transmit the queued backlog, oldest first
  relaylog verify <tx-id>      - recompute a stored record's signature
  relaylog txid                - generate a transaction id
  relaylog purge [--all]       - delete transmitted (or all) records
  relaylog config init|show|validate
  relaylog db info
  relaylog version
"""

from __future__ import annotations

import click
from rich.console import Console

from relaylog import __version__
from relaylog.cli._config_cmd import config_group
from relaylog.cli._db import db_group

console = Console()


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="relaylog %(version)s")
def cli() -> None:
    """relaylog - store-then-forward event journal."""


cli.add_command(config_group)
cli.add_command(db_group)


# ---------------------------------------------------------------------------
# append
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("event_name")
@click.option("--tx-id", default="", help="Transaction id (generated when omitted)")
@click.option(
    "--metric", "-m", "metrics", multiple=True, help="key=value metric (value parsed as JSON)"
)
@click.option("--local", is_flag=True, default=False, help="Local-only record (no link delay)")
@click.option("--timestamp", default="", help="ISO-8601 timestamp (default: now)")
@click.option("--offline", is_flag=True, default=False, help="Queue without transmitting")
@click.option("--json", "as_json", is_flag=True, default=False)
def append(
    event_name: str,
    tx_id: str,
    metrics: tuple[str, ...],
    local: bool,
    timestamp: str,
    offline: bool,
    as_json: bool,
) -> None:
    """Record an event in the journal."""
    from relaylog.cli._log_cmd import cmd_append

    cmd_append(
        event_name=event_name,
        tx_id=tx_id,
        metrics=metrics,
        local=local,
        timestamp=timestamp,
        offline=offline,
        as_json=as_json,
        console=console,
    )


# ---------------------------------------------------------------------------
# pending / history
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--limit", default=0, help="Show at most N records (0 = all)")
@click.option("--json", "as_json", is_flag=True, default=False)
def pending(limit: int, as_json: bool) -> None:
    """List records waiting to be transmitted."""
    from relaylog.cli._log_cmd import cmd_pending

    cmd_pending(limit=limit, as_json=as_json, console=console)


@cli.command()
@click.option("--limit", default=50, help="Show the last N records (0 = all)")
@click.option("--json", "as_json", is_flag=True, default=False)
def history(limit: int, as_json: bool) -> None:
    """List stored records, transmitted or not."""
    from relaylog.cli._log_cmd import cmd_history

    cmd_history(limit=limit, as_json=as_json, console=console)


# ---------------------------------------------------------------------------
# drain / verify
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False)
def drain(as_json: bool) -> None:
    """Transmit queued records in the order they were logged."""
    from relaylog.cli._log_cmd import cmd_drain

    cmd_drain(as_json=as_json, console=console)


@cli.command()
@click.argument("tx_id")
@click.option("--signature", default="", help="Signature to check (default: the stored one)")
@click.option("--json", "as_json", is_flag=True, default=False)
def verify(tx_id: str, signature: str, as_json: bool) -> None:
    """Recompute a stored record's signature and compare."""
    from relaylog.cli._log_cmd import cmd_verify

    cmd_verify(tx_id=tx_id, signature=signature, as_json=as_json, console=console)


# ---------------------------------------------------------------------------
# txid / purge
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--prefix", default="TX", help="Transaction id prefix")
def txid(prefix: str) -> None:
    """Print a fresh transaction id."""
    from relaylog.core.record import new_transaction_id

    click.echo(new_transaction_id(prefix))


@cli.command()
@click.option(
    "--all", "purge_all", is_flag=True, default=False, help="Also delete untransmitted records"
)
@click.option("--yes", is_flag=True, default=False, help="Skip the confirmation prompt")
def purge(purge_all: bool, yes: bool) -> None:
    """Delete transmitted records from the local store."""
    from relaylog.cli._log_cmd import cmd_purge

    if purge_all and not yes:
        click.confirm("Delete ALL records, including ones never transmitted?", abort=True)
    cmd_purge(purge_all=purge_all, console=console)


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False)
def version(as_json: bool) -> None:
    """Show version information."""
    import platform
    import sys as _sys

    from relaylog.core.store.migrations import LATEST_SCHEMA_VERSION

    if as_json:
        import json

        click.echo(
            json.dumps(
                {
                    "relaylog": __version__,
                    "python": _sys.version.split()[0],
                    "platform": _sys.platform,
                    "arch": platform.machine(),
                    "schema_version": LATEST_SCHEMA_VERSION,
                },
                indent=2,
            )
        )
    else:
        console.print(f"relaylog {__version__}")
        console.print(f"Python {_sys.version.split()[0]}")
        console.print(f"Platform: {_sys.platform} {platform.machine()}")
        console.print(f"Store schema: v{LATEST_SCHEMA_VERSION}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
