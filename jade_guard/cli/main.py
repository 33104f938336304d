"""JADE Guard CLI — Entry point.

Usage:
    jade-guard policy get <origin>
    jade-guard policy set <origin> --allow allowNetwork --deny allowStorage
    jade-guard policy reset <origin>
    jade-guard policy list
    jade-guard logs show --limit 20
"""

from __future__ import annotations

import typer
from rich.console import Console

from jade_guard.cli.commands import logs, policy

app = typer.Typer(
    name="jade-guard",
    help="JADE Guard — per-origin capability policies and audit log.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

console = Console()

app.add_typer(policy.app, name="policy")
app.add_typer(logs.app, name="logs")


@app.callback()
def main_callback() -> None:
    pass


if __name__ == "__main__":
    app()
