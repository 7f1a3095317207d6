"""
Sage CLI - Undo command.

Reverses the latest Active operation, a specific one by id, or the latest
one matching a filter. Dependent operations from the same command are
undone first; pushes are only reverted with --allow-remote.
"""

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from sagegit.cli.context import repository_session
from sagegit.cli.errors import ExitCode, print_error
from sagegit.core.history import HistoryFilter, OperationCategory
from sagegit.core.undo import UndoEngine, UndoPlan

console = Console()


def _render_plan(plan: UndoPlan) -> None:
    table = Table(title=f"Undo plan for {plan.target_id}")
    table.add_column("Operation", style="cyan", no_wrap=True)
    table.add_column("Category")
    table.add_column("Reverse actions")
    table.add_column("Blocked by", style="red")

    for step in plan.steps:
        table.add_row(
            step.operation_id,
            step.category.value + (" (remote)" if step.remote else ""),
            escape("\n".join(step.actions)),
            escape("\n".join(step.blockers)) or "[green]ready[/green]",
        )
    console.print(table)

    if plan.blocking_dependents:
        console.print(
            "[red]Later commands depend on this operation:[/red] "
            + ", ".join(plan.blocking_dependents)
        )
    elif plan.cascade_ids:
        console.print(
            f"[dim]{len(plan.cascade_ids)} dependent operation(s) from the same command "
            "will be undone first[/dim]"
        )
    if plan.restored_stash_ids:
        console.print(
            "[dim]Stashed changes already restored by the sync stay in the working tree[/dim]"
        )
    if plan.requires_remote:
        console.print(
            "[yellow]This rewrites a remote branch; pass --allow-remote to run it[/yellow]"
        )


def undo(
    operation_id: str | None = typer.Argument(
        None,
        help="Operation id or a unique prefix/suffix (default: latest active operation)",
    ),
    preview: bool = typer.Option(
        False,
        "--preview",
        help="Show what would be undone without changing anything",
    ),
    category: OperationCategory | None = typer.Option(
        None,
        "--category",
        "-c",
        help="Undo the latest active operation of this category",
    ),
    group: str | None = typer.Option(
        None,
        "--group",
        "-g",
        help="Undo the latest active operation from this command group",
    ),
    whole: bool = typer.Option(
        False,
        "--whole",
        help="Undo every active operation of the target's command",
    ),
    no_cascade: bool = typer.Option(
        False,
        "--no-cascade",
        help="Refuse instead of undoing dependent operations first",
    ),
    allow_remote: bool = typer.Option(
        False,
        "--allow-remote",
        help="Allow reverting pushes (only if the remote branch has not moved)",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output the plan or result as JSON",
    ),
) -> None:
    """
    Undo an operation recorded by sage.

    Examples:
        sage undo                       # Undo the latest operation
        sage undo --preview             # Show what that would do
        sage undo 9c41e2a0              # Undo a specific operation
        sage undo --category sync-step  # Undo the latest sync step
        sage undo 9c41e2a0 --whole      # Undo the whole command it came from
        sage undo --allow-remote        # Also revert a push
    """
    if operation_id and (category or group):
        print_error(
            "Cannot use an operation id with --category or --group",
            solution="sage undo <id>  # or sage undo --category <category>",
        )
        raise typer.Exit(ExitCode.USER_ERROR)

    criteria = HistoryFilter(category=category, group=group) if (category or group) else None

    with repository_session(lock=not preview) as session:
        engine = UndoEngine(session.log, session.repo, cascade_default=session.config.undo.cascade)

        if preview:
            plan = engine.preview(operation_id, criteria=criteria, whole_group=whole)
            if json_output:
                print(plan.model_dump_json(indent=2))
            else:
                _render_plan(plan)
            return

        result = engine.undo(
            operation_id,
            criteria=criteria,
            cascade=False if no_cascade else None,
            allow_remote=allow_remote,
            whole_group=whole,
        )

    if json_output:
        print(result.model_dump_json(indent=2))
        return

    console.print(f"[green]✓[/green] {result.summary()}")
    for step in result.steps:
        for action in step.actions:
            console.print(f"  [dim]{escape(action)}[/dim]")
    if result.undo_record_id:
        console.print(f"[dim]Recorded as {result.undo_record_id}[/dim]")
