"""
Data models for the sync engine.

A SyncOutcome is computed once per `sage sync` invocation from the sequence
of sub-step results. It is not persisted; the sub-steps themselves live in
the operation log as individually undoable records.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class SyncOutcomeKind(str, Enum):
    """Single summarized result of a sync."""

    UP_TO_DATE = "up_to_date"
    FAST_FORWARDED = "fast_forwarded"
    INTEGRATED_CLEAN = "integrated_clean"
    INTEGRATED_WITH_STASH_RESTORED = "integrated_with_stash_restored"
    CONFLICTED = "conflicted"
    ABORTED = "aborted"


class SyncState(str, Enum):
    """
    States of the per-invocation sync state machine.

    START -> STATUS_CHECKED -> {CLEAN | STASHED} -> FETCHED -> INTEGRATED
          -> {STASH_RESTORED | DONE}; terminal states DONE, CONFLICTED, ABORTED.
    """

    START = "start"
    STATUS_CHECKED = "status_checked"
    CLEAN = "clean"
    STASHED = "stashed"
    FETCHED = "fetched"
    INTEGRATED = "integrated"
    CONFLICTED = "conflicted"
    STASH_RESTORED = "stash_restored"
    DONE = "done"
    ABORTED = "aborted"


class SyncOutcome(BaseModel):
    """
    Result of one sync invocation.

    Example:
        >>> outcome = engine.sync()
        >>> outcome.kind
        <SyncOutcomeKind.FAST_FORWARDED: 'fast_forwarded'>
        >>> outcome.summary()
        'main fast-forwarded to origin/main'
    """

    kind: SyncOutcomeKind
    state: SyncState = Field(description="Last state the state machine reached")
    branch: str | None = Field(default=None, description="Branch that was synced")
    upstream: str | None = Field(default=None, description="Ref integrated, e.g. origin/main")
    group: str = Field(description="Correlation id of the records this sync produced")
    record_ids: list[str] = Field(
        default_factory=list, description="Operation records appended, in order"
    )
    conflicts: list[str] = Field(
        default_factory=list, description="Paths left conflicted by the integration"
    )
    stash_conflicts: list[str] = Field(
        default_factory=list, description="Paths that conflicted when restoring the stash"
    )
    stash_sha: str | None = Field(default=None, description="Stash created for local changes")
    stash_restored: bool = Field(default=False, description="Local changes were popped back")
    reason: str | None = Field(default=None, description="Why the sync aborted")
    failed_step: str | None = Field(default=None, description="Step that aborted the sync")
    partial: bool = Field(
        default=False,
        description="Some steps completed and were recorded before the sync stopped",
    )
    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)

    @property
    def success(self) -> bool:
        """True when the branch is up to date and no user action is needed."""
        return (
            self.kind not in (SyncOutcomeKind.CONFLICTED, SyncOutcomeKind.ABORTED)
            and not self.stash_conflicts
        )

    @property
    def needs_attention(self) -> list[str]:
        """Paths the user has to resolve by hand."""
        return sorted(set(self.conflicts) | set(self.stash_conflicts))

    def summary(self) -> str:
        """Generate a human-readable summary of the outcome."""
        branch = self.branch or "HEAD"
        upstream = self.upstream or "upstream"

        if self.kind == SyncOutcomeKind.ABORTED:
            text = f"sync of {branch} aborted"
            if self.failed_step:
                text += f" during {self.failed_step}"
            if self.reason:
                text += f": {self.reason}"
            return text

        if self.kind == SyncOutcomeKind.CONFLICTED:
            return (
                f"{branch} has conflicts with {upstream} in {len(self.conflicts)} file(s); "
                "local changes stay stashed"
            )

        messages = {
            SyncOutcomeKind.UP_TO_DATE: f"{branch} is up to date with {upstream}",
            SyncOutcomeKind.FAST_FORWARDED: f"{branch} fast-forwarded to {upstream}",
            SyncOutcomeKind.INTEGRATED_CLEAN: f"{branch} integrated {upstream} cleanly",
            SyncOutcomeKind.INTEGRATED_WITH_STASH_RESTORED: (
                f"{branch} integrated {upstream} and restored local changes"
            ),
        }
        text = messages[self.kind]
        if self.stash_conflicts:
            text += (
                f"; restoring local changes conflicted in {len(self.stash_conflicts)} "
                "file(s) and the stash was kept"
            )
        return text
