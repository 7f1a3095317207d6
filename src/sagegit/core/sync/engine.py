"""
Branch synchronization engine.

Brings the checked-out branch up to date with its upstream as a sequence
of primitive steps, each recorded individually so any completed step can
be undone on its own:

1. Read the working tree. If dirty, stash it (``stash`` record).
2. Fetch the upstream's remote.
3. Compare local and upstream. Already contained: nothing to integrate.
   Local is an ancestor: fast-forward (``sync-step`` record). Diverged:
   merge or rebase per configuration (``sync-step`` record carrying the
   pre-integration ref).
4. On conflicts, stop in CONFLICTED and leave the stash in place.
5. Otherwise pop the stash; a conflicting pop keeps the stash and reports
   the paths that need attention.

A record is appended only after its step succeeded. A failing step aborts
the rest and the outcome names it; records already written stay Active.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sagegit.core.config.models import SageConfig
from sagegit.core.errors import GitError, PersistenceError
from sagegit.core.git.adapter import RepositoryAdapter
from sagegit.core.history.models import (
    IntegrationStrategy,
    OperationRecord,
    StashForward,
    StashReverse,
    SyncStepForward,
    SyncStepReverse,
    new_group_id,
)
from sagegit.core.history.store import OperationLog
from sagegit.core.sync.models import SyncOutcome, SyncOutcomeKind, SyncState

logger = logging.getLogger(__name__)


class _SyncRun:
    """Mutable bookkeeping for one sync invocation."""

    def __init__(self, group: str) -> None:
        self.group = group
        self.state = SyncState.START
        self.step = "status"
        self.branch: str | None = None
        self.upstream: str | None = None
        self.record_ids: list[str] = []
        self.stash_sha: str | None = None
        self.started_at = datetime.now(timezone.utc)

    def outcome(self, kind: SyncOutcomeKind, **fields: object) -> SyncOutcome:
        return SyncOutcome(
            kind=kind,
            state=fields.pop("state", self.state),
            branch=self.branch,
            upstream=self.upstream,
            group=self.group,
            record_ids=list(self.record_ids),
            stash_sha=self.stash_sha,
            started_at=self.started_at,
            completed_at=datetime.now(timezone.utc),
            **fields,
        )

    def aborted(self, reason: str) -> SyncOutcome:
        logger.warning("Sync aborted during %s: %s", self.step, reason)
        return self.outcome(
            SyncOutcomeKind.ABORTED,
            state=SyncState.ABORTED,
            reason=reason,
            failed_step=self.step,
            partial=bool(self.record_ids),
        )


class SyncEngine:
    """
    Orchestrates `sage sync` for the checked-out branch.

    Example:
        >>> engine = SyncEngine(repo, log, config)
        >>> outcome = engine.sync()
        >>> print(outcome.summary())
        main fast-forwarded to origin/main
    """

    def __init__(
        self,
        repo: RepositoryAdapter,
        log: OperationLog,
        config: SageConfig | None = None,
    ) -> None:
        self.repo = repo
        self.log = log
        self.config = config or SageConfig()

    def resolve_upstream(self, branch: str, base: bool = False) -> tuple[str, str]:
        """
        (remote, branch) to integrate: the branch's tracking branch, or
        <remote>/<default_branch> when base is requested or nothing is tracked.
        """
        if not base:
            tracking = self.repo.upstream_of(branch)
            if tracking is not None:
                return tracking
        return self.config.remote, self.config.default_branch

    def _record(self, run: _SyncRun, record: OperationRecord) -> str:
        try:
            operation_id = self.log.append(record)
        except PersistenceError as e:
            # The repository step already happened; say which one went unrecorded
            e.add_context(step=run.step, group=run.group, recorded=list(run.record_ids))
            raise
        run.record_ids.append(operation_id)
        return operation_id

    def sync(
        self,
        *,
        base: bool = False,
        strategy: str | None = None,
        group: str | None = None,
    ) -> SyncOutcome:
        """
        Run one sync and return its single summarized outcome.

        Args:
            base: Integrate <remote>/<default_branch> instead of the upstream
            strategy: 'merge' or 'rebase' for diverged branches (default from config)
            group: Correlation id to record under (a new one by default)

        Raises:
            PersistenceError: A step succeeded but could not be recorded
        """
        run = _SyncRun(group or new_group_id())
        try:
            return self._run(run, base, strategy or self.config.sync.strategy)
        except KeyboardInterrupt:
            return run.aborted("interrupted")
        except GitError as e:
            return run.aborted(e.stderr or str(e))

    def _run(self, run: _SyncRun, base: bool, strategy: str) -> SyncOutcome:
        status = self.repo.status()
        run.state = SyncState.STATUS_CHECKED

        if status.branch is None:
            return run.aborted("HEAD is detached; check out a branch to sync")
        run.branch = status.branch
        if status.in_progress or status.conflicted:
            return run.aborted("a merge or rebase is already in progress")

        remote, remote_branch = self.resolve_upstream(status.branch, base)
        run.upstream = f"{remote}/{remote_branch}"

        # Step 1: set local changes aside
        include_untracked = self.config.sync.include_untracked
        if status.dirty and (status.changed_paths(include_untracked=False) or include_untracked):
            run.step = "stash"
            stash_sha = self.repo.stash_push(
                self.config.sync.stash_message, include_untracked=include_untracked
            )
            if stash_sha is not None:
                run.stash_sha = stash_sha
                self._record(
                    run,
                    OperationRecord.build(
                        group=run.group,
                        description=f"Stash local changes on {status.branch} before sync",
                        forward=StashForward(
                            branch=status.branch,
                            message=self.config.sync.stash_message,
                            stash_sha=stash_sha,
                            include_untracked=include_untracked,
                        ),
                        reverse=StashReverse(
                            head_sha=status.head,
                            paths=status.changed_paths(include_untracked=include_untracked),
                        ),
                    ),
                )
        run.state = SyncState.STASHED if run.stash_sha else SyncState.CLEAN

        # Step 2: fetch
        run.step = "fetch"
        self.repo.fetch(remote)
        run.state = SyncState.FETCHED

        remote_sha = self.repo.remote_ref(remote, remote_branch)
        if remote_sha is None:
            return run.aborted(f"{run.upstream} does not exist on the remote")

        # Step 3: integrate
        run.step = "compare"
        local_sha = self.repo.current_ref()
        if local_sha is None:
            return run.aborted(f"{status.branch} has no commits yet")
        if local_sha == remote_sha or self.repo.is_ancestor(remote_sha, local_sha):
            kind = SyncOutcomeKind.UP_TO_DATE
            result_strategy = None
        elif self.repo.is_ancestor(local_sha, remote_sha):
            kind = SyncOutcomeKind.FAST_FORWARDED
            result_strategy = IntegrationStrategy.FAST_FORWARD
        else:
            kind = SyncOutcomeKind.INTEGRATED_CLEAN
            result_strategy = IntegrationStrategy(strategy)

        if result_strategy is not None:
            run.step = result_strategy.value
            if result_strategy == IntegrationStrategy.REBASE:
                result = self.repo.rebase(run.upstream)
            else:
                result = self.repo.merge(
                    run.upstream, ff_only=result_strategy == IntegrationStrategy.FAST_FORWARD
                )

            self._record(
                run,
                OperationRecord.build(
                    group=run.group,
                    description=self._describe_step(run, result_strategy, result.conflicts),
                    forward=SyncStepForward(
                        branch=status.branch,
                        upstream=run.upstream,
                        strategy=result_strategy,
                        post_ref=result.head,
                        conflicts=result.conflicts,
                    ),
                    reverse=SyncStepReverse(pre_ref=local_sha),
                ),
            )

            # Step 4: conflicts stop the sync with local changes still stashed
            if result.conflicts:
                run.state = SyncState.CONFLICTED
                logger.warning(
                    "Sync of %s stopped on conflicts in %d file(s)",
                    status.branch,
                    len(result.conflicts),
                )
                return run.outcome(SyncOutcomeKind.CONFLICTED, conflicts=result.conflicts)
        run.state = SyncState.INTEGRATED

        # Step 5: restore local changes
        if run.stash_sha is None:
            run.state = SyncState.DONE
            return run.outcome(kind)

        run.step = "stash-pop"
        popped = self.repo.stash_pop(run.stash_sha)
        if not popped.applied:
            run.state = SyncState.CONFLICTED
            if kind == SyncOutcomeKind.INTEGRATED_CLEAN:
                kind = SyncOutcomeKind.INTEGRATED_WITH_STASH_RESTORED
            return run.outcome(kind, stash_conflicts=popped.conflicts, partial=True)

        run.state = SyncState.STASH_RESTORED
        if kind == SyncOutcomeKind.INTEGRATED_CLEAN:
            kind = SyncOutcomeKind.INTEGRATED_WITH_STASH_RESTORED
        logger.info("Restored stash %s on %s", run.stash_sha[:12], run.branch)
        run.state = SyncState.DONE
        return run.outcome(kind, stash_restored=True)

    @staticmethod
    def _describe_step(
        run: _SyncRun,
        strategy: IntegrationStrategy,
        conflicts: list[str],
    ) -> str:
        if strategy == IntegrationStrategy.REBASE:
            text = f"Rebase {run.branch} onto {run.upstream}"
        elif strategy == IntegrationStrategy.MERGE:
            text = f"Merge {run.upstream} into {run.branch}"
        else:
            text = f"Fast-forward {run.branch} to {run.upstream}"
        if conflicts:
            text += f" (conflicts in {len(conflicts)} file(s))"
        return text
