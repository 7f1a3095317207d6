"""
Repository adapter protocol.

Defines the interface the sync engine, undo engine and workflow actions use
to read and mutate a repository. Everything above this protocol is pure
orchestration, so engines can be exercised against an in-memory fake
instead of a live repository.
"""

from pathlib import Path
from typing import Protocol, runtime_checkable

from sagegit.core.git.models import (
    IntegrationResult,
    ResetMode,
    StashEntry,
    StashPopResult,
    WorkingTreeStatus,
)


@runtime_checkable
class RepositoryAdapter(Protocol):
    """
    Protocol for primitive repository operations.

    Mutating calls raise GitError on failure and must leave the repository
    unchanged when they do, except where noted (merge, rebase and stash pop
    report conflicts instead of raising).
    """

    @property
    def work_dir(self) -> Path:
        """Root of the work tree."""
        ...

    def git_dir(self) -> Path:
        """Absolute path of the repository's control directory (.git)."""
        ...

    # Reads

    def status(self) -> WorkingTreeStatus:
        ...

    def current_branch(self) -> str | None:
        """Checked-out branch name, or None when HEAD is detached."""
        ...

    def current_ref(self) -> str | None:
        """Sha of HEAD, or None for an unborn branch."""
        ...

    def branch_sha(self, branch: str) -> str | None:
        """Sha a local branch points at, or None if it does not exist."""
        ...

    def remote_ref(self, remote: str, branch: str) -> str | None:
        """Sha of the remote-tracking ref refs/remotes/<remote>/<branch>."""
        ...

    def ls_remote(self, remote: str, branch: str) -> str | None:
        """Sha the remote currently serves for a branch (network read)."""
        ...

    def upstream_of(self, branch: str) -> tuple[str, str] | None:
        """(remote, branch) a local branch tracks, or None."""
        ...

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        ...

    def stash_list(self) -> list[StashEntry]:
        ...

    def stash_paths(self, stash_sha: str) -> list[str]:
        """Paths a stash entry would touch when applied."""
        ...

    # Mutations

    def branch_create(self, name: str, start_point: str) -> str:
        """Create a branch and return the sha it points at."""
        ...

    def branch_delete(self, name: str, *, force: bool = False) -> None:
        ...

    def checkout(self, ref: str) -> None:
        ...

    def stage_all(self) -> None:
        ...

    def commit(self, message: str, *, allow_empty: bool = False) -> str:
        """Create a commit from the index and return its sha."""
        ...

    def reset_to(self, ref: str, mode: ResetMode) -> None:
        ...

    def stash_push(self, message: str, *, include_untracked: bool = True) -> str | None:
        """Stash local changes; returns the stash sha or None if nothing was stashed."""
        ...

    def stash_pop(self, stash_sha: str) -> StashPopResult:
        ...

    def fetch(self, remote: str) -> None:
        ...

    def merge(self, ref: str, *, ff_only: bool = False) -> IntegrationResult:
        ...

    def rebase(self, onto: str) -> IntegrationResult:
        ...

    def abort_integration(self) -> None:
        """Abort the merge or rebase that is currently stopped on conflicts."""
        ...

    def push(
        self,
        remote: str,
        branch: str,
        *,
        force: bool = False,
        set_upstream: bool = False,
    ) -> None:
        """Push a local branch; force always means --force-with-lease."""
        ...

    def push_ref(self, remote: str, branch: str, sha: str, *, expected_sha: str) -> None:
        """Move a remote branch to sha, only if it is still at expected_sha."""
        ...

    def delete_remote_branch(self, remote: str, branch: str, *, expected_sha: str) -> None:
        """Delete a remote branch, only if it is still at expected_sha."""
        ...
