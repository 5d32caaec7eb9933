"""CLI commands: relaylog config init | show | validate."""

from __future__ import annotations

import json
import sys

import click
from rich.console import Console
from rich.markup import escape

from relaylog.core.constants import ExitCode
from relaylog.core.exceptions import ConfigError

console = Console()


@click.group("config")
def config_group() -> None:
    """View and validate relaylog configuration."""


@config_group.command("show")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
@click.option("--redact/--no-redact", default=True, help="Redact secrets (default: redact)")
def config_show(as_json, redact):
    """Display the effective configuration (file + environment + defaults)."""
    from relaylog.core.config import _config_file_path, load_config

    cfg_path = _config_file_path()
    try:
        cfg = load_config(cfg_path, missing_ok=True)
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        sys.exit(ExitCode.CONFIG_ERROR)

    data = _config_to_dict(cfg, redact=redact)
    data["_config_path"] = str(cfg_path) if cfg_path.exists() else f"{cfg_path} (defaults)"

    if as_json:
        click.echo(json.dumps(data, indent=2))
    else:
        _print_config_rich(data, console)


@config_group.command("init")
@click.option(
    "--sink", "sink_kind", type=click.Choice(["disabled", "jsonl", "http"]), default="disabled"
)
@click.option("--spool-path", default="", help="JSONL spool file (sink=jsonl)")
@click.option("--endpoint", default="", help="Collector URL (sink=http)")
@click.option("--db-path", default="", help="Local store path (default: ~/.relaylog/relaylog.db)")
@click.option("--drain-policy", type=click.Choice(["stop", "skip"]), default="stop")
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing config file")
def config_init(sink_kind, spool_path, endpoint, db_path, drain_policy, force):
    """Write a new config file (RELAYLOG_CONFIG or ~/.relaylog/config.toml)."""
    from relaylog.core.config import RelayLogConfig, _config_file_path, save_config

    cfg_path = _config_file_path()
    if cfg_path.exists() and not force:
        console.print(f"[red]Config already exists:[/red] {cfg_path} (use --force to overwrite)")
        sys.exit(ExitCode.CONFIG_ERROR)

    data = {
        "store": {"path": db_path},
        "sink": {"kind": sink_kind, "path": spool_path, "endpoint": endpoint},
        "drain": {"policy": drain_policy},
    }
    try:
        RelayLogConfig.model_validate(data)
        save_config(data, cfg_path)
    except (ConfigError, ValueError) as exc:
        console.print(f"[red]Config not written:[/red] {exc}")
        sys.exit(ExitCode.CONFIG_ERROR)
    console.print(f"[green]Config written:[/green] {cfg_path}")


@config_group.command("validate")
def config_validate():
    """Validate the config file against the schema."""
    from relaylog.core.config import _config_file_path, load_config

    cfg_path = _config_file_path()
    if not cfg_path.exists():
        console.print(f"[red]Config not found:[/red] {cfg_path}")
        sys.exit(ExitCode.CONFIG_ERROR)

    try:
        load_config(cfg_path)
        console.print(f"[green]Config is valid:[/green] {cfg_path}")
    except ConfigError as exc:
        console.print(f"[red]Config validation failed:[/red] {exc}")
        sys.exit(ExitCode.CONFIG_ERROR)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config_to_dict(cfg, redact=True):
    """Serialize RelayLogConfig to a plain dict with optional redaction."""
    data = cfg.model_dump(mode="json")
    token = cfg.sink.api_token.get_secret_value() if cfg.sink.api_token else ""
    data["sink"]["api_token"] = (_mask(token) if redact else token) if token else ""
    data["store"]["effective_path"] = str(cfg.db_path)
    return data


def _mask(value):
    """Mask a secret value, showing first 4 and last 4 chars."""
    if len(value) <= 12:
        return "***"
    return value[:4] + "***" + value[-4:]


def _print_config_rich(data, console):
    """Print config dict in a human-friendly format."""
    path = data.pop("_config_path", "unknown")
    console.print(f"[bold]relaylog configuration[/bold]  ({path})\n")

    for section, values in data.items():
        if isinstance(values, dict):
            console.print(f"  [cyan]{escape(f'[{section}]')}[/cyan]")
            for k, v in values.items():
                console.print(f"    {k} = {escape(repr(v))}")
        else:
            console.print(f"  {section} = {escape(repr(values))}")
    console.print()
