"""
Branch synchronization.

The sync engine stashes local changes, fetches, fast-forwards or integrates
the upstream, and restores the stash, recording each completed step in the
operation log so it can be undone individually.

Example:
    >>> from sagegit.core.sync import SyncEngine, SyncOutcomeKind
    >>> outcome = SyncEngine(repo, log, config).sync()
    >>> if outcome.kind == SyncOutcomeKind.CONFLICTED:
    ...     print("Resolve:", ", ".join(outcome.conflicts))
"""

from sagegit.core.sync.engine import SyncEngine
from sagegit.core.sync.models import SyncOutcome, SyncOutcomeKind, SyncState

__all__ = [
    "SyncEngine",
    "SyncOutcome",
    "SyncOutcomeKind",
    "SyncState",
]
