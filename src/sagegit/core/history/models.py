"""
Operation record models.

An OperationRecord describes one completed repository mutation. Its
forward_data and reverse_plan are tagged variants keyed by category, each
carrying exactly the fields needed to describe and reverse that kind of
operation. Records are immutable once appended; only status changes.

Example:
    >>> record = OperationRecord.build(
    ...     group=new_group_id(),
    ...     description="Commit 'Fix typo' on main",
    ...     forward=CommitForward(branch="main", message="Fix typo", commit_sha="b2c3"),
    ...     reverse=CommitReverse(parent_sha="a1b2", auto_staged=True),
    ... )
    >>> record.category
    <OperationCategory.COMMIT: 'commit'>
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class OperationCategory(str, Enum):
    """Kind of recorded operation."""

    BRANCH_CREATE = "branch-create"
    COMMIT = "commit"
    STASH = "stash"
    PUSH = "push"
    SYNC_STEP = "sync-step"
    UNDO = "undo"


class OperationStatus(str, Enum):
    """Lifecycle status of a record."""

    ACTIVE = "active"
    UNDONE = "undone"
    SUPERSEDED = "superseded"


class IntegrationStrategy(str, Enum):
    """How a sync step brought the branch up to date."""

    FAST_FORWARD = "fast-forward"
    MERGE = "merge"
    REBASE = "rebase"


def new_group_id() -> str:
    """Correlation id shared by every record one user command produces."""
    return uuid.uuid4().hex[:12]


# ==============================================================================
# Forward data: what the operation did
# ==============================================================================


class BranchCreateForward(BaseModel):
    category: Literal["branch-create"] = "branch-create"
    branch: str = Field(description="Name of the created branch")
    start_point: str = Field(description="Ref the branch was created from")


class CommitForward(BaseModel):
    category: Literal["commit"] = "commit"
    branch: str | None = Field(description="Branch the commit was made on")
    message: str
    commit_sha: str


class StashForward(BaseModel):
    category: Literal["stash"] = "stash"
    branch: str | None = Field(description="Branch checked out when stashing")
    message: str
    stash_sha: str = Field(description="Stash commit; identifies the entry across pushes/pops")
    include_untracked: bool = True


class PushForward(BaseModel):
    category: Literal["push"] = "push"
    remote: str
    branch: str
    pushed_sha: str = Field(description="Sha the remote branch was moved to")
    forced: bool = False


class SyncStepForward(BaseModel):
    category: Literal["sync-step"] = "sync-step"
    branch: str
    upstream: str = Field(description="Ref integrated into the branch, e.g. origin/main")
    strategy: IntegrationStrategy
    post_ref: str = Field(description="HEAD right after the integration step")
    conflicts: list[str] = Field(
        default_factory=list, description="Paths left unmerged by the integration"
    )


class UndoForward(BaseModel):
    category: Literal["undo"] = "undo"
    target_ids: list[str] = Field(description="Records undone, in execution order")
    actions: list[str] = Field(default_factory=list, description="Reverse actions performed")


ForwardData = Annotated[
    Union[
        BranchCreateForward,
        CommitForward,
        StashForward,
        PushForward,
        SyncStepForward,
        UndoForward,
    ],
    Field(discriminator="category"),
]


# ==============================================================================
# Reverse plans: state captured at execution time to compute the inverse
# ==============================================================================


class BranchCreateReverse(BaseModel):
    category: Literal["branch-create"] = "branch-create"
    prior_branch: str | None = Field(description="Branch checked out before (None if detached)")
    prior_head: str | None = Field(description="HEAD sha before the branch was created")
    created_sha: str = Field(description="Sha the new branch pointed at when created")


class CommitReverse(BaseModel):
    category: Literal["commit"] = "commit"
    parent_sha: str | None = Field(description="HEAD before the commit (None for a root commit)")
    auto_staged: bool = Field(
        default=False, description="True if sage staged everything because nothing was staged"
    )


class StashReverse(BaseModel):
    category: Literal["stash"] = "stash"
    head_sha: str | None = Field(description="HEAD when the stash was created")
    paths: list[str] = Field(default_factory=list, description="Paths moved into the stash")


class PushReverse(BaseModel):
    category: Literal["push"] = "push"
    remote_sha_before: str | None = Field(
        description="Remote branch sha before the push (None if the branch was new)"
    )
    set_upstream: bool = False


class SyncStepReverse(BaseModel):
    category: Literal["sync-step"] = "sync-step"
    pre_ref: str = Field(description="HEAD before integration")


class UndoReverse(BaseModel):
    category: Literal["undo"] = "undo"


ReversePlan = Annotated[
    Union[
        BranchCreateReverse,
        CommitReverse,
        StashReverse,
        PushReverse,
        SyncStepReverse,
        UndoReverse,
    ],
    Field(discriminator="category"),
]


class OperationRecord(BaseModel):
    """
    Persisted description of one completed repository mutation.

    The id is assigned by the OperationLog on append; ids sort in creation
    order, so the highest-id Active record is the default undo target.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default="", description="Monotonic 16-hex-digit id (assigned on append)")
    category: OperationCategory
    group: str = Field(description="Correlation id of the command that produced this record")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), description="Creation time (UTC)"
    )
    description: str
    forward_data: ForwardData
    reverse_plan: ReversePlan
    status: OperationStatus = OperationStatus.ACTIVE

    @model_validator(mode="after")
    def _check_variants(self) -> "OperationRecord":
        expected = self.category.value
        if self.forward_data.category != expected or self.reverse_plan.category != expected:
            raise ValueError(
                f"forward_data/reverse_plan variants do not match category '{expected}'"
            )
        return self

    @classmethod
    def build(
        cls,
        *,
        group: str,
        description: str,
        forward: Any,
        reverse: Any,
    ) -> "OperationRecord":
        """Create a record whose category is taken from the forward variant."""
        return cls(
            category=OperationCategory(forward.category),
            group=group,
            description=description,
            forward_data=forward,
            reverse_plan=reverse,
        )

    @property
    def branch(self) -> str | None:
        """Local branch the operation acted on, if any."""
        return getattr(self.forward_data, "branch", None)

    @property
    def short_id(self) -> str:
        return self.id[-8:]

    @property
    def is_active(self) -> bool:
        return self.status == OperationStatus.ACTIVE


class HistoryFilter(BaseModel):
    """
    Criteria for OperationLog.query; unset fields match everything.

    Example:
        >>> HistoryFilter(category=OperationCategory.COMMIT).matches(record)
        True
    """

    category: OperationCategory | None = None
    group: str | None = None
    since: datetime | None = None
    status: OperationStatus | None = None

    def matches(self, record: OperationRecord) -> bool:
        if self.category is not None and record.category != self.category:
            return False
        if self.group is not None and record.group != self.group:
            return False
        if self.status is not None and record.status != self.status:
            return False
        if self.since is not None:
            since = self.since
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            if record.timestamp < since:
                return False
        return True
