"""
Sage CLI - Configuration commands.

Reads the effective configuration (defaults, user file, repository store,
SAGE_* environment) and edits the repository store at
<git-dir>/sage/config.json.
"""

import json
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from sagegit.cli.context import repository_session
from sagegit.cli.errors import ExitCode, print_error
from sagegit.core.config import LocalConfigStore, clear_cache, parse_value
from sagegit.core.config.store import lookup

console = Console()
app = typer.Typer(
    name="config",
    help="Show and change sage configuration",
    no_args_is_help=True,
)


def _flatten(data: dict[str, Any], prefix: str = "") -> list[tuple[str, Any]]:
    rows: list[tuple[str, Any]] = []
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            rows.extend(_flatten(value, f"{dotted}."))
        else:
            rows.append((dotted, value))
    return rows


@app.command("get")
def get(
    key: str = typer.Argument(..., help="Dotted key, e.g. sync.strategy"),
) -> None:
    """
    Print the effective value of a configuration key.

    Examples:
        sage config get sync.strategy
        sage config get hooks
    """
    with repository_session(lock=False) as session:
        effective = session.config.model_dump(mode="json")

    try:
        value = lookup(effective, key)
    except KeyError:
        print_error(f"Unknown configuration key: {key}", solution="sage config list")
        raise typer.Exit(ExitCode.USER_ERROR)

    print(json.dumps(value) if not isinstance(value, str) else value)


@app.command("set")
def set_value(
    key: str = typer.Argument(..., help="Dotted key, e.g. sync.strategy"),
    value: str = typer.Argument(..., help="Value (JSON literals like true or 30 are parsed)"),
) -> None:
    """
    Set a key in this repository's configuration.

    Examples:
        sage config set sync.strategy rebase
        sage config set undo.cascade false
        sage config set hooks.enabled_hooks '["pre-push"]'
    """
    with repository_session() as session:
        LocalConfigStore.for_control_dir(session.control_dir).set(key, parse_value(value))
    clear_cache()
    console.print(f"[green]✓[/green] {key} = {escape(value)}")


@app.command("unset")
def unset(
    key: str = typer.Argument(..., help="Dotted key to remove from the repository config"),
) -> None:
    """
    Remove a key from this repository's configuration.

    Example:
        sage config unset sync.strategy
    """
    with repository_session() as session:
        removed = LocalConfigStore.for_control_dir(session.control_dir).unset(key)
    clear_cache()
    if removed:
        console.print(f"[green]✓[/green] Removed {key}")
    else:
        console.print(f"[blue]{key} is not set in this repository[/blue]")


@app.command("list")
def list_config(
    local: bool = typer.Option(
        False,
        "--local",
        help="Only show values set in this repository",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON",
    ),
) -> None:
    """
    Show the configuration.

    Examples:
        sage config list
        sage config list --local
    """
    with repository_session(lock=False) as session:
        if local:
            data = LocalConfigStore.for_control_dir(session.control_dir).read()
        else:
            data = session.config.model_dump(mode="json")

    if json_output:
        print(json.dumps(data, indent=2))
        return

    rows = _flatten(data)
    if not rows:
        console.print("[dim]No repository configuration set[/dim]")
        return

    table = Table(title="Local configuration" if local else "Effective configuration")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for dotted, value in rows:
        table.add_row(dotted, escape(json.dumps(value)))
    console.print(table)
