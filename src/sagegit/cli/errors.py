"""
Standardized error handling and exit codes for the sage CLI.

Every failure is reported the same way: what went wrong, why, and the
next safe thing to do. handle_sage_error maps each SageError subclass to
that message and an exit code.
"""

from enum import IntEnum

from rich.console import Console
from rich.markup import escape

from sagegit.core.errors import (
    AlreadyUndoneError,
    BranchExistsError,
    CascadeInterruptedError,
    ConfigError,
    DependentOperationsExistError,
    DetachedHeadError,
    GitError,
    HookRejectedError,
    NoChangesError,
    NotARepositoryError,
    NotUndoableError,
    OperationNotFoundError,
    PersistenceError,
    RepositoryBusyError,
    SageError,
    UndoPreconditionFailedError,
    UnsafeRemoteUndoError,
)

console = Console(stderr=True)


class ExitCode(IntEnum):
    """Standard exit codes for sage CLI operations."""

    SUCCESS = 0
    """Operation completed successfully."""

    GENERAL_ERROR = 1
    """Generic error, including failed git commands."""

    USER_ERROR = 2
    """Refused or invalid request (actionable by user)."""

    CONFLICTED = 3
    """Stopped with conflicts the user has to resolve."""

    BUSY = 75
    """Another sage command holds the repository lock (EX_TEMPFAIL)."""

    SIGINT = 130
    """Terminated by SIGINT (Ctrl+C) - Unix standard."""


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
    doc_url: str | None = None,
) -> None:
    """
    Print a standardized error message with actionable guidance.

    Args:
        problem: Brief description of what went wrong
        reason: Optional explanation of why it happened
        solution: Optional command or action to fix it
        doc_url: Optional documentation URL for more help

    Example:
        >>> print_error(
        ...     "Operation not found: 1a2b",
        ...     reason="No record id starts or ends with that fragment",
        ...     solution="sage history list",
        ... )
    """
    console.print(f"[red]Error:[/red] {escape(problem)}")

    if reason:
        console.print(f"[dim]{escape(reason)}[/dim]")

    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {escape(solution)}")

    if doc_url:
        console.print(f"[dim]Docs: {doc_url}[/dim]")


def _solution_for_remote_undo(error: SageError) -> str | None:
    if error.context.get("superseded"):
        return "sage history list --status superseded  # the push can no longer be undone safely"
    return f"sage undo {error.context.get('target_id') or '<id>'} --allow-remote"


def _solution_for_dependents(error: SageError) -> str | None:
    dependents = getattr(error, "dependents", [])
    if not dependents:
        return None
    return f"sage undo {dependents[0]}  # undo the newest dependent first"


def _solution_for_cascade(error: SageError) -> str | None:
    failed_id = getattr(error, "failed_id", None)
    return f"sage undo {failed_id} --preview  # see what is blocking the rest"


# Checked most-specific first by walking the exception's MRO
_GUIDANCE: dict[type[SageError], tuple[ExitCode, object]] = {
    NotARepositoryError: (ExitCode.USER_ERROR, "cd into a git work tree  # or git init"),
    RepositoryBusyError: (ExitCode.BUSY, "wait for the other sage command to finish"),
    OperationNotFoundError: (ExitCode.USER_ERROR, "sage history list"),
    AlreadyUndoneError: (ExitCode.USER_ERROR, "sage history list --status active"),
    NotUndoableError: (ExitCode.USER_ERROR, None),
    UnsafeRemoteUndoError: (ExitCode.USER_ERROR, _solution_for_remote_undo),
    UndoPreconditionFailedError: (
        ExitCode.USER_ERROR,
        "sage history list  # the record was marked superseded",
    ),
    DependentOperationsExistError: (ExitCode.USER_ERROR, _solution_for_dependents),
    CascadeInterruptedError: (ExitCode.GENERAL_ERROR, _solution_for_cascade),
    PersistenceError: (ExitCode.GENERAL_ERROR, "check permissions on .git/sage"),
    DetachedHeadError: (ExitCode.USER_ERROR, "git checkout <branch>"),
    BranchExistsError: (ExitCode.USER_ERROR, "git checkout <branch>  # or pick another name"),
    HookRejectedError: (ExitCode.USER_ERROR, "fix what the hook reported and push again"),
    NoChangesError: (ExitCode.USER_ERROR, None),
    ConfigError: (ExitCode.USER_ERROR, "sage config list"),
    GitError: (ExitCode.GENERAL_ERROR, "sage --debug <command>  # to see the git commands run"),
}


def handle_sage_error(error: SageError) -> ExitCode:
    """
    Print a SageError with guidance and return the exit code for it.

    Example:
        >>> except SageError as e:
        ...     raise typer.Exit(handle_sage_error(e))
    """
    exit_code, solution = ExitCode.GENERAL_ERROR, None
    for cls in type(error).__mro__:
        if cls in _GUIDANCE:
            exit_code, solution = _GUIDANCE[cls]
            break
    if callable(solution):
        solution = solution(error)

    # Undo errors already carry their reason in the message; git failures do not
    reason = getattr(error, "stderr", None)
    print_error(error.message, reason=reason or None, solution=solution)
    return exit_code


__all__ = [
    "ExitCode",
    "console",
    "handle_sage_error",
    "print_error",
]
