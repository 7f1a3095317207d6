"""
Exception hierarchy for sage.

Every failure the engines can raise derives from SageError, which carries a
human-readable message plus keyword context (operation id, step, paths) that
the command layer uses to tell the user what to try next.

Exception Hierarchy:
    SageError (base)
    ├── PersistenceError (history or config store unreadable/unwritable)
    ├── OperationNotFoundError (no record with that id or prefix)
    ├── AlreadyUndoneError (record is already Undone)
    ├── NotUndoableError (undo records, root commits)
    ├── UndoPreconditionFailedError (repository no longer matches the record)
    │   └── UnsafeRemoteUndoError (reverting a push is not safe or not allowed)
    ├── DependentOperationsExistError (later records depend on the target)
    ├── CascadeInterruptedError (a cascade stopped after partial progress)
    ├── RepositoryBusyError (another sage command holds the lock)
    ├── GitError (a git command failed)
    ├── NotARepositoryError (not inside a git work tree)
    ├── DetachedHeadError (command needs a checked-out branch)
    ├── BranchExistsError (start on an existing branch name)
    ├── HookRejectedError (pre-push hook refused)
    ├── NoChangesError (nothing to commit, stash or push)
    └── ConfigError (invalid configuration key or value)

Example:
    >>> from sagegit.core.errors import AlreadyUndoneError
    >>> try:
    ...     raise AlreadyUndoneError("018f3c2a9d4e1000")
    ... except AlreadyUndoneError as e:
    ...     print(e.operation_id)
    018f3c2a9d4e1000
"""

from __future__ import annotations


class SageError(Exception):
    """
    Base exception for all sage errors.

    Attributes:
        message: Human-readable error message
        context: Additional context (operation_id, step, ...)
    """

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message

    def add_context(self, **context: object) -> SageError:
        """Attach context without overwriting keys that are already set."""
        for key, value in context.items():
            self.context.setdefault(key, value)
        return self


class PersistenceError(SageError):
    """
    The history or configuration store could not be read or written.

    When raised after a repository mutation, the repository is ahead of the
    recorded history and the mutation stands.
    """


class OperationNotFoundError(SageError):
    """No operation record matches the requested id."""

    def __init__(self, operation_id: str, reason: str | None = None, **context: object) -> None:
        message = f"Operation not found: {operation_id}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, operation_id=operation_id, **context)
        self.operation_id = operation_id


class AlreadyUndoneError(SageError):
    """The operation has already been undone."""

    def __init__(self, operation_id: str, **context: object) -> None:
        super().__init__(
            f"Operation {operation_id} has already been undone",
            operation_id=operation_id,
            **context,
        )
        self.operation_id = operation_id


class NotUndoableError(SageError):
    """The operation cannot be reversed at all (e.g. an undo record)."""

    def __init__(self, operation_id: str, reason: str, **context: object) -> None:
        super().__init__(
            f"Operation {operation_id} cannot be undone: {reason}",
            operation_id=operation_id,
            **context,
        )
        self.operation_id = operation_id
        self.reason = reason


class UndoPreconditionFailedError(SageError):
    """
    The repository no longer matches what the record expects.

    The record is marked Superseded before this is raised, so a stale
    record is never replayed against a repository it no longer describes.
    """

    def __init__(self, operation_id: str, reason: str, **context: object) -> None:
        super().__init__(
            f"Cannot undo operation {operation_id}: {reason}",
            operation_id=operation_id,
            **context,
        )
        self.operation_id = operation_id
        self.reason = reason


class UnsafeRemoteUndoError(UndoPreconditionFailedError):
    """Reverting a push would rewrite a remote branch others may have built on."""


class DependentOperationsExistError(SageError):
    """Later Active operations depend on the target."""

    def __init__(self, operation_id: str, dependents: list[str], **context: object) -> None:
        super().__init__(
            f"Operation {operation_id} has dependent operations: {', '.join(dependents)}",
            operation_id=operation_id,
            **context,
        )
        self.operation_id = operation_id
        self.dependents = list(dependents)


class CascadeInterruptedError(SageError):
    """A cascade failed after some records were already undone."""

    def __init__(
        self,
        operation_id: str,
        undone: list[str],
        failed_id: str,
        reason: str,
        **context: object,
    ) -> None:
        super().__init__(
            f"Undo of {operation_id} stopped at {failed_id} after undoing "
            f"{', '.join(undone)}: {reason}",
            operation_id=operation_id,
            **context,
        )
        self.operation_id = operation_id
        self.undone = list(undone)
        self.failed_id = failed_id
        self.reason = reason


class RepositoryBusyError(SageError):
    """Another sage command holds the repository lock."""

    def __init__(self, lock_path: str, holder_pid: int | None = None) -> None:
        message = "Another sage command is running in this repository"
        if holder_pid:
            message = f"{message} (pid {holder_pid})"
        super().__init__(message, lock_path=lock_path, holder_pid=holder_pid)
        self.lock_path = lock_path
        self.holder_pid = holder_pid


class GitError(SageError):
    """Exception raised when a git operation fails."""

    def __init__(self, message: str, command: list[str] | None = None, stderr: str = ""):
        super().__init__(message, command=command)
        self.command = command
        self.stderr = stderr


class NotARepositoryError(SageError):
    """The working directory is not inside a git work tree."""


class DetachedHeadError(SageError):
    """The command needs a checked-out branch but HEAD is detached."""


class BranchExistsError(SageError):
    """A branch with the requested name already exists."""

    def __init__(self, branch: str) -> None:
        super().__init__(f"Branch already exists: {branch}", branch=branch)
        self.branch = branch


class HookRejectedError(SageError):
    """A pre-push hook refused the push; nothing was pushed or recorded."""

    def __init__(self, hook: str, branch: str, reason: str | None = None) -> None:
        message = f"Hook '{hook}' rejected push of {branch}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, hook=hook, branch=branch)
        self.hook = hook
        self.branch = branch
        self.reason = reason


class NoChangesError(SageError):
    """There is nothing to commit, stash or push."""


class ConfigError(SageError):
    """A configuration key or value is invalid."""
