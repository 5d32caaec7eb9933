"""Database inspection CLI commands."""

from __future__ import annotations

import click
from rich.console import Console

console = Console()


@click.group("db")
def db_group() -> None:
    """Local store inspection."""


@db_group.command("info")
@click.option("--json", "as_json", is_flag=True, default=False)
def db_info(as_json: bool) -> None:
    """Show store path, schema version, and record counts."""
    from relaylog.core.config import load_config

    db_path = load_config(missing_ok=True).db_path

    if not db_path.exists():
        if as_json:
            import json as _json

            click.echo(_json.dumps({"exists": False, "path": str(db_path)}))
        else:
            console.print(f"Store does not exist yet: {db_path}")
            console.print("It will be created by the first [cyan]relaylog append[/cyan].")
        return

    from relaylog.core.store.database import SQLiteStore
    from relaylog.core.store.migrations import LATEST_SCHEMA_VERSION

    store = SQLiteStore(db_path)
    try:
        version = store.schema_version()
        total = store.count()
        pending = store.count_unsynced()
    finally:
        store.close()

    size_kb = db_path.stat().st_size / 1024

    if as_json:
        import json as _json

        click.echo(
            _json.dumps(
                {
                    "exists": True,
                    "path": str(db_path),
                    "schema_version": version,
                    "latest_version": LATEST_SCHEMA_VERSION,
                    "size_kb": round(size_kb, 1),
                    "records": total,
                    "pending": pending,
                    "transmitted": total - pending,
                },
                indent=2,
            )
        )
    else:
        console.print(f"[bold]Store[/bold]: {db_path}")
        console.print(f"Schema version: {version} (latest: {LATEST_SCHEMA_VERSION})")
        console.print(f"Size: {size_kb:.1f} KB")
        console.print(f"\nRecords: {total}")
        console.print(f"  pending      {pending}")
        console.print(f"  transmitted  {total - pending}")
