"""
Sage CLI - Sync command.

Brings the current branch up to date with its upstream, stashing and
restoring local changes around the integration.
"""

import typer
from rich.console import Console

from sagegit.cli.context import repository_session
from sagegit.cli.errors import ExitCode, print_error
from sagegit.core.sync import SyncEngine, SyncOutcomeKind

console = Console()

_KIND_STYLE = {
    SyncOutcomeKind.UP_TO_DATE: ("✓", "green"),
    SyncOutcomeKind.FAST_FORWARDED: ("↓", "green"),
    SyncOutcomeKind.INTEGRATED_CLEAN: ("✓", "green"),
    SyncOutcomeKind.INTEGRATED_WITH_STASH_RESTORED: ("✓", "green"),
    SyncOutcomeKind.CONFLICTED: ("⚠", "yellow"),
    SyncOutcomeKind.ABORTED: ("✗", "red"),
}


def sync(
    base: bool = typer.Option(
        False,
        "--base",
        help="Integrate <remote>/<default branch> instead of the tracked upstream",
    ),
    strategy: str | None = typer.Option(
        None,
        "--strategy",
        "-s",
        help="How to integrate diverged history: merge or rebase (default from config)",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output the outcome as JSON",
    ),
) -> None:
    """
    Sync the current branch with its upstream.

    Local changes are stashed first and restored afterwards. Each completed
    step is recorded and can be undone on its own with `sage undo`.

    Examples:
        sage sync                   # Integrate the tracked upstream
        sage sync --base            # Integrate origin/main into a feature branch
        sage sync --strategy rebase # Rebase instead of merging
    """
    if strategy is not None and strategy not in ("merge", "rebase"):
        print_error(
            f"Invalid strategy: {strategy}",
            solution="sage sync --strategy merge  # or rebase",
        )
        raise typer.Exit(ExitCode.USER_ERROR)

    with repository_session() as session:
        outcome = SyncEngine(session.repo, session.log, session.config).sync(
            base=base, strategy=strategy
        )

    if json_output:
        print(outcome.model_dump_json(indent=2))
    else:
        icon, color = _KIND_STYLE[outcome.kind]
        console.print(f"[{color}]{icon}[/{color}] {outcome.summary()}")

        for path in outcome.conflicts:
            console.print(f"  [yellow]conflict:[/yellow] {path}")
        for path in outcome.stash_conflicts:
            console.print(f"  [yellow]stash conflict:[/yellow] {path}")

        if outcome.record_ids:
            console.print(
                f"[dim]Recorded {len(outcome.record_ids)} step(s) in group {outcome.group}[/dim]"
            )

        if outcome.kind == SyncOutcomeKind.CONFLICTED:
            console.print(
                "\n[dim]→ Resolve the conflicts and commit, or run "
                "[bold]sage undo[/bold] to abort the integration[/dim]"
            )
            if outcome.stash_sha:
                console.print(
                    f"[dim]→ Your local changes are in stash {outcome.stash_sha[:8]}[/dim]"
                )
        elif outcome.stash_conflicts:
            console.print(
                "\n[dim]→ Resolve the listed files; the stash entry was kept "
                "and nothing was discarded[/dim]"
            )

    if outcome.kind == SyncOutcomeKind.ABORTED:
        raise typer.Exit(ExitCode.GENERAL_ERROR)
    if outcome.needs_attention:
        raise typer.Exit(ExitCode.CONFLICTED)
