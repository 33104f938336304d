"""CLI — Audit log commands."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from jade_guard.cli.commands._control import load_settings, send

app = typer.Typer(help="Inspect the persisted audit log.")
console = Console()

_ACTION_STYLE = {"allowed": "green", "blocked": "red", "detected": "yellow"}


@app.callback()
def logs_callback() -> None:
    pass


@app.command("show")
def show_logs(
    limit: int = typer.Option(20, "--limit", "-n", min=0, help="Maximum number of events."),
    origin: str | None = typer.Option(None, "--origin", help="Only show this origin."),
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Path to config.yaml.")
    ] = None,
    db: Annotated[
        Path | None, typer.Option("--db", help="SQLite storage file (overrides config).")
    ] = None,
    json_output: bool = typer.Option(False, "--json"),
    log_level: Annotated[
        str | None, typer.Option("--log-level", help="Log level (default: from config).")
    ] = None,
) -> None:
    """Show the most recent audit events, newest first."""
    settings = load_settings(config, db, log_level)
    response = send(settings, {"type": "GET_LOGS", "limit": limit, "origin": origin})
    if not response.get("success"):
        console.print(f"[red]Error: {response.get('error')}[/red]")
        raise typer.Exit(1)

    events = response.get("logs", [])

    if json_output:
        console.print(Syntax(json.dumps(events, indent=2), "json"))
        return

    table = Table(title="Audit log")
    table.add_column("Time")
    table.add_column("Origin", style="cyan")
    table.add_column("API")
    table.add_column("Action")
    table.add_column("Reason")
    for event in events:  # type: ignore[union-attr]
        timestamp = event.get("timestamp")
        when = datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S") if timestamp else ""
        action = event["action"]
        style = _ACTION_STYLE.get(action, "white")
        table.add_row(
            when,
            event["origin"],
            event["capability"],
            f"[{style}]{action}[/{style}]",
            event.get("reason") or "",
        )
    console.print(table)
    if not events:
        console.print("No events recorded.")
