"""
Recorded workflow actions (start, commit, stash, push).
"""

from sagegit.core.actions.service import (
    CommitResult,
    PushResult,
    StartResult,
    StashResult,
    WorkflowActions,
)

__all__ = [
    "CommitResult",
    "PushResult",
    "StartResult",
    "StashResult",
    "WorkflowActions",
]
