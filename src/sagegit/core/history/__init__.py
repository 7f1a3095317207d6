"""
Operation history: records of every mutating action sage performs.

Example:
    >>> from sagegit.core.history import OperationLog, HistoryFilter, OperationCategory
    >>> log = OperationLog.for_control_dir(Path(".git/sage"))
    >>> for record in log.query(HistoryFilter(category=OperationCategory.SYNC_STEP)):
    ...     print(record.id, record.description)
"""

from sagegit.core.history.models import (
    BranchCreateForward,
    BranchCreateReverse,
    CommitForward,
    CommitReverse,
    HistoryFilter,
    IntegrationStrategy,
    OperationCategory,
    OperationRecord,
    OperationStatus,
    PushForward,
    PushReverse,
    StashForward,
    StashReverse,
    SyncStepForward,
    SyncStepReverse,
    UndoForward,
    UndoReverse,
    new_group_id,
)
from sagegit.core.history.store import HISTORY_FILENAME, OperationLog

__all__ = [
    "HISTORY_FILENAME",
    "BranchCreateForward",
    "BranchCreateReverse",
    "CommitForward",
    "CommitReverse",
    "HistoryFilter",
    "IntegrationStrategy",
    "OperationCategory",
    "OperationLog",
    "OperationRecord",
    "OperationStatus",
    "PushForward",
    "PushReverse",
    "StashForward",
    "StashReverse",
    "SyncStepForward",
    "SyncStepReverse",
    "UndoForward",
    "UndoReverse",
    "new_group_id",
]
