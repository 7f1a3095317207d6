"""
Sage CLI - History commands.

Browse the operation log: every recorded action, its command group, and
whether it is still active, undone or superseded.
"""

import json
from datetime import datetime

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from sagegit.cli.context import repository_session
from sagegit.core.history import (
    HistoryFilter,
    OperationCategory,
    OperationRecord,
    OperationStatus,
)

console = Console()
app = typer.Typer(
    name="history",
    help="Browse recorded operations",
    no_args_is_help=True,
)

_STATUS_STYLE = {
    OperationStatus.ACTIVE: "green",
    OperationStatus.UNDONE: "dim",
    OperationStatus.SUPERSEDED: "yellow",
}


def _format_status(status: OperationStatus) -> str:
    color = _STATUS_STYLE[status]
    return f"[{color}]{status.value}[/{color}]"


@app.command("list")
def list_operations(
    category: OperationCategory | None = typer.Option(
        None,
        "--category",
        "-c",
        help="Only show operations of this category",
    ),
    group: str | None = typer.Option(
        None,
        "--group",
        "-g",
        help="Only show operations from this command group",
    ),
    status: OperationStatus | None = typer.Option(
        None,
        "--status",
        "-s",
        help="Only show operations with this status",
    ),
    since: datetime | None = typer.Option(
        None,
        "--since",
        help="Only show operations recorded at or after this time (UTC if no offset)",
    ),
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Maximum number of operations to show (0 for all)",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON",
    ),
) -> None:
    """
    List recorded operations, newest first.

    Examples:
        sage history list
        sage history list --category sync-step
        sage history list --status active --limit 5
        sage history list --json
    """
    criteria = HistoryFilter(category=category, group=group, status=status, since=since)
    with repository_session(lock=False) as session:
        records = list(session.log.query(criteria, limit=limit or None))

    if json_output:
        print(json.dumps([r.model_dump(mode="json") for r in records], indent=2))
        return

    if not records:
        console.print("[dim]No operations recorded[/dim]")
        return

    table = Table(title="Operation history")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("When", no_wrap=True)
    table.add_column("Category")
    table.add_column("Group", style="dim", no_wrap=True)
    table.add_column("Status")
    table.add_column("Description")

    for record in records:
        table.add_row(
            record.short_id,
            record.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S"),
            record.category.value,
            record.group,
            _format_status(record.status),
            escape(record.description),
        )
    console.print(table)


def _render_record(record: OperationRecord) -> None:
    console.print(f"\n[bold]{escape(record.description)}[/bold] ({record.id})")
    console.print()

    table = Table(show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Category", record.category.value)
    table.add_row("Status", _format_status(record.status))
    table.add_row("Group", record.group)
    table.add_row("Recorded", record.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z"))
    if record.branch:
        table.add_row("Branch", record.branch)

    for key, value in record.forward_data.model_dump(exclude={"category"}).items():
        table.add_row(f"forward.{key}", escape(str(value)))
    for key, value in record.reverse_plan.model_dump(exclude={"category"}).items():
        table.add_row(f"reverse.{key}", escape(str(value)))
    console.print(table)


@app.command("show")
def show_operation(
    operation_id: str = typer.Argument(..., help="Operation id or a unique prefix/suffix"),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON",
    ),
) -> None:
    """
    Show one recorded operation with its forward data and reverse plan.

    Examples:
        sage history show 9c41e2a0
        sage history show 9c41e2a0 --json
    """
    with repository_session(lock=False) as session:
        record = session.log.resolve(operation_id)

    if json_output:
        print(record.model_dump_json(indent=2))
        return

    _render_record(record)
