"""
Sage CLI - Recorded workflow commands.

start, commit, stash and push each make one change to the repository and
append one operation record, so `sage undo` can reverse them later.
"""

import typer
from rich.console import Console

from sagegit.cli.context import repository_session
from sagegit.core.actions import WorkflowActions
from sagegit.core.errors import NoChangesError
from sagegit.core.history import new_group_id

console = Console()


def start(
    name: str = typer.Argument(..., help="Name of the branch to create"),
    parent: str | None = typer.Option(
        None,
        "--parent",
        "-p",
        help="Branch to start from (default: the configured default branch)",
    ),
) -> None:
    """
    Create a branch and check it out.

    The remote copy of the parent is used when it exists.

    Examples:
        sage start feature/login
        sage start hotfix --parent release-2.1
    """
    with repository_session() as session:
        actions = WorkflowActions(session.repo, session.log, session.config, session.plugins)
        result = actions.start(name, parent)

    console.print(
        f"[green]✓[/green] Created [bold]{result.branch}[/bold] from {result.start_point} "
        f"at {result.sha[:8]}"
    )
    console.print(f"[dim]Operation {result.operation_id}[/dim]")


def commit(
    message: str = typer.Argument(..., help="Commit message"),
    empty: bool = typer.Option(
        False,
        "--empty",
        help="Allow a commit with no changes",
    ),
    push: bool = typer.Option(
        False,
        "--push",
        help="Push the branch after committing",
    ),
) -> None:
    """
    Commit changes, staging everything when nothing is staged.

    Examples:
        sage commit "Fix parser crash"
        sage commit "Release 1.2" --push
        sage commit "Trigger CI" --empty
    """
    with repository_session() as session:
        actions = WorkflowActions(session.repo, session.log, session.config, session.plugins)
        group = new_group_id()
        try:
            result = actions.commit(message, allow_empty=empty, group=group)
        except NoChangesError as e:
            console.print(f"[blue]{e.message}[/blue]")
            return

        staged_note = " (staged all changes)" if result.auto_staged else ""
        console.print(f"[green]✓[/green] Committed {result.sha[:8]}{staged_note}")
        console.print(f"[dim]Operation {result.operation_id}[/dim]")

        if push:
            pushed = actions.push(group=group)
            console.print(f"[green]✓[/green] Pushed {pushed.branch} to {pushed.remote}")


def stash(
    message: str | None = typer.Option(
        None,
        "--message",
        "-m",
        help="Stash message",
    ),
    tracked_only: bool = typer.Option(
        False,
        "--tracked-only",
        help="Leave untracked files in the working tree",
    ),
) -> None:
    """
    Move local changes into a stash entry.

    Examples:
        sage stash
        sage stash -m "half-done refactor"
    """
    with repository_session() as session:
        actions = WorkflowActions(session.repo, session.log, session.config, session.plugins)
        try:
            result = actions.stash(message, include_untracked=not tracked_only)
        except NoChangesError as e:
            console.print(f"[blue]{e.message}[/blue]")
            return

    console.print(
        f"[green]✓[/green] Stashed {len(result.paths)} path(s) as {result.stash_sha[:8]}"
    )
    console.print(f"[dim]Operation {result.operation_id}[/dim]")


def push(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite the remote branch if it has not moved (--force-with-lease)",
    ),
    remote: str | None = typer.Option(
        None,
        "--remote",
        help="Remote to push to (default: the upstream's remote or the configured remote)",
    ),
) -> None:
    """
    Push the current branch, setting its upstream when missing.

    Pre-push hooks run first and may reject the push.

    Examples:
        sage push
        sage push --force
    """
    with repository_session() as session:
        actions = WorkflowActions(session.repo, session.log, session.config, session.plugins)
        try:
            result = actions.push(force=force, remote=remote)
        except NoChangesError as e:
            console.print(f"[blue]{e.message}[/blue]")
            return

    created = " (new remote branch)" if result.remote_sha_before is None else ""
    console.print(
        f"[green]✓[/green] Pushed {result.branch} to {result.remote} at {result.sha[:8]}{created}"
    )
    console.print(f"[dim]Operation {result.operation_id}[/dim]")
