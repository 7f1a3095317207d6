"""
Result models returned by the repository adapter.

Each adapter call that mutates the repository returns enough identifying
data (commit sha, stash sha, conflicting paths) for the caller to build an
operation record describing what happened.
"""

from enum import Enum

from pydantic import BaseModel, Field


class ResetMode(str, Enum):
    """How `git reset` treats the index and working tree."""

    SOFT = "soft"
    MIXED = "mixed"
    KEEP = "keep"


class WorkingTreeStatus(BaseModel):
    """
    Snapshot of the working tree, index and HEAD.

    Example:
        >>> status = WorkingTreeStatus(branch="main", head="a1b2c3", unstaged=["app.py"])
        >>> status.dirty
        True
    """

    branch: str | None = Field(default=None, description="Checked-out branch (None if detached)")
    head: str | None = Field(default=None, description="HEAD commit sha (None if unborn)")
    staged: list[str] = Field(default_factory=list, description="Paths with staged changes")
    unstaged: list[str] = Field(default_factory=list, description="Paths with unstaged changes")
    untracked: list[str] = Field(default_factory=list, description="Untracked paths")
    conflicted: list[str] = Field(default_factory=list, description="Unmerged paths")
    merge_in_progress: bool = Field(default=False, description="MERGE_HEAD exists")
    rebase_in_progress: bool = Field(default=False, description="A rebase is stopped")

    @property
    def dirty(self) -> bool:
        """True if anything would be lost by a hard reset or picked up by a stash."""
        return bool(self.staged or self.unstaged or self.untracked or self.conflicted)

    @property
    def in_progress(self) -> bool:
        return self.merge_in_progress or self.rebase_in_progress

    def changed_paths(self, include_untracked: bool = True) -> list[str]:
        """All changed paths, sorted and de-duplicated."""
        paths = set(self.staged) | set(self.unstaged) | set(self.conflicted)
        if include_untracked:
            paths |= set(self.untracked)
        return sorted(paths)


class IntegrationResult(BaseModel):
    """Result of a merge or rebase."""

    head: str = Field(description="HEAD after the integration attempt")
    conflicts: list[str] = Field(default_factory=list, description="Paths left unmerged")

    @property
    def clean(self) -> bool:
        return not self.conflicts


class StashEntry(BaseModel):
    """One entry of `git stash list`."""

    index: int = Field(description="Position in the stash stack (stash@{index})")
    sha: str = Field(description="Stash commit sha")
    message: str = Field(default="", description="Stash subject line")

    @property
    def ref(self) -> str:
        return f"stash@{{{self.index}}}"


class StashPopResult(BaseModel):
    """Result of popping a specific stash entry."""

    stash_sha: str
    applied: bool = Field(description="True if the entry was applied and dropped")
    conflicts: list[str] = Field(
        default_factory=list,
        description="Paths that conflicted; the stash entry is kept when non-empty",
    )
