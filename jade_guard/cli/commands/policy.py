"""CLI — Policy management commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from jade_guard.cli.commands._control import load_settings, send
from jade_guard.policy.models import CapabilityFlag, Policy

app = typer.Typer(help="Inspect and edit per-origin capability policies.")
console = Console()

ConfigOption = Annotated[
    Path | None, typer.Option("--config", "-c", help="Path to config.yaml.")
]
DbOption = Annotated[
    Path | None, typer.Option("--db", help="SQLite storage file (overrides config).")
]
LogLevelOption = Annotated[
    str | None, typer.Option("--log-level", help="Log level (default: from config).")
]


@app.callback()
def policy_callback() -> None:
    pass


def _flag(name: str) -> CapabilityFlag:
    try:
        return CapabilityFlag(name)
    except ValueError:
        valid = ", ".join(f.value for f in CapabilityFlag)
        console.print(f"[red]Unknown capability '{name}'. Valid: {valid}[/red]")
        raise typer.Exit(1)


def _fail_on_error(response: dict[str, object]) -> None:
    if not response.get("success"):
        console.print(f"[red]Error: {response.get('error')}[/red]")
        raise typer.Exit(1)


def _print_policy(origin: str, document: dict[str, object], json_output: bool) -> None:
    if json_output:
        console.print(Syntax(json.dumps(document, indent=2), "json"))
        return
    policy = Policy.model_validate(document)
    table = Table(title=f"Policy: {origin}")
    table.add_column("Capability", style="cyan")
    table.add_column("Allowed")
    for flag in CapabilityFlag:
        allowed = policy.capabilities.get(flag, False)
        table.add_row(flag.value, "[green]yes[/green]" if allowed else "[red]no[/red]")
    console.print(table)
    console.print(f"Whitelisted: {policy.whitelisted}")
    console.print(f"Risk score: {policy.risk_score}")


@app.command("get")
def get_policy(
    origin: str = typer.Argument(help="Origin or URL."),
    config: ConfigOption = None,
    db: DbOption = None,
    json_output: bool = typer.Option(False, "--json"),
    log_level: LogLevelOption = None,
) -> None:
    """Show the effective policy for an origin."""
    settings = load_settings(config, db, log_level)
    response = send(settings, {"type": "GET_POLICY", "origin": origin})
    _fail_on_error(response)
    _print_policy(str(response["origin"]), response["policy"], json_output)  # type: ignore[arg-type]


@app.command("set")
def set_policy(
    origin: str = typer.Argument(help="Origin or URL."),
    allow: list[str] = typer.Option([], "--allow", "-a", help="Capability flag to enable."),
    deny: list[str] = typer.Option([], "--deny", "-d", help="Capability flag to disable."),
    whitelist: bool | None = typer.Option(None, "--whitelist/--no-whitelist"),
    config: ConfigOption = None,
    db: DbOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Change capability flags for an origin, starting from its current policy."""
    settings = load_settings(config, db, log_level)
    current = send(settings, {"type": "GET_POLICY", "origin": origin})
    _fail_on_error(current)

    policy = Policy.model_validate(current["policy"])
    capabilities = dict(policy.capabilities)
    for name in allow:
        capabilities[_flag(name)] = True
    for name in deny:
        capabilities[_flag(name)] = False
    update: dict[str, object] = {"capabilities": capabilities}
    if whitelist is not None:
        update["whitelisted"] = whitelist
    policy = policy.model_copy(update=update)

    response = send(
        settings,
        {"type": "SAVE_POLICY", "origin": origin, "policy": policy.to_document()},
    )
    _fail_on_error(response)
    console.print(f"[green]Policy saved for {current['origin']}.[/green]")


@app.command("reset")
def reset_policy(
    origin: str = typer.Argument(help="Origin or URL."),
    config: ConfigOption = None,
    db: DbOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Reset an origin to the all-disabled default policy."""
    settings = load_settings(config, db, log_level)
    response = send(settings, {"type": "RESET_POLICY", "origin": origin})
    _fail_on_error(response)
    console.print(f"[green]Policy reset for {origin}.[/green]")


@app.command("list")
def list_policies(
    config: ConfigOption = None,
    db: DbOption = None,
    json_output: bool = typer.Option(False, "--json"),
    log_level: LogLevelOption = None,
) -> None:
    """List every stored policy with its current risk score."""
    settings = load_settings(config, db, log_level)
    response = send(settings, {"type": "GET_ALL_DOMAINS"})
    _fail_on_error(response)
    domains = response.get("domains", [])

    if json_output:
        console.print(Syntax(json.dumps(domains, indent=2), "json"))
        return

    table = Table(title="Policies")
    table.add_column("Origin", style="cyan")
    table.add_column("Enabled")
    table.add_column("Whitelisted")
    table.add_column("Risk", justify="right")
    for entry in domains:  # type: ignore[union-attr]
        policy = Policy.model_validate(entry["policy"])
        enabled = [flag.value for flag, on in policy.capabilities.items() if on]
        table.add_row(
            entry["origin"],
            ", ".join(enabled) or "-",
            "yes" if policy.whitelisted else "no",
            str(entry["riskScore"]),
        )
    console.print(table)
