"""
Undo engine: reverse recorded operations safely and selectively.

Given a target record (explicit id, or the latest Active one), the engine:

1. Rejects records that are Undone, Superseded, or themselves undo records.
2. Collects later Active records that depend on the target. Dependents from
   other commands (groups) refuse the undo; same-group dependents cascade,
   newest first, when cascading is enabled.
3. Checks the preconditions of every record in the cascade against a
   simulation of the repository as it will be after the preceding
   reversals. Nothing executes unless every check passes; the first record
   whose check fails is marked Superseded.
4. Executes the reversals through the repository adapter, marking each
   record Undone as it completes, and appends one undo record.

Dependency rule (later Active record R depends on target T):
    branch-create of B  -> any R on branch B
    commit / sync-step  -> R is a commit, sync-step or push on the same branch
    push                -> R is a push of the same branch to the same remote
    stash               -> nothing depends on a stash
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sagegit.core.errors import (
    AlreadyUndoneError,
    CascadeInterruptedError,
    DependentOperationsExistError,
    GitError,
    NotUndoableError,
    OperationNotFoundError,
    SageError,
    UndoPreconditionFailedError,
    UnsafeRemoteUndoError,
)
from sagegit.core.git.adapter import RepositoryAdapter
from sagegit.core.git.models import ResetMode
from sagegit.core.history.models import (
    HistoryFilter,
    IntegrationStrategy,
    OperationCategory,
    OperationRecord,
    OperationStatus,
    UndoForward,
    UndoReverse,
    new_group_id,
)
from sagegit.core.history.store import OperationLog
from sagegit.core.undo.models import UndoPlan, UndoResult, UndoStep

logger = logging.getLogger(__name__)


def _short(sha: str | None) -> str:
    return sha[:12] if sha else "(none)"


def depends_on(later: OperationRecord, earlier: OperationRecord) -> bool:
    """True if reversing `earlier` would orphan or invalidate `later`."""
    if later.category == OperationCategory.UNDO or earlier.branch is None:
        return False

    if earlier.category == OperationCategory.BRANCH_CREATE:
        return later.branch == earlier.branch

    if earlier.category == OperationCategory.PUSH:
        return (
            later.category == OperationCategory.PUSH
            and later.branch == earlier.branch
            and getattr(later.forward_data, "remote", None) == earlier.forward_data.remote
        )

    if earlier.category in (OperationCategory.COMMIT, OperationCategory.SYNC_STEP):
        return (
            later.category
            in (OperationCategory.COMMIT, OperationCategory.SYNC_STEP, OperationCategory.PUSH)
            and later.branch == earlier.branch
        )

    return False


class _PlanState:
    """
    Repository state as it will be once the steps planned so far have run.

    Seeded from read-only adapter calls; planners update it instead of the
    repository so a cascade is checked as a whole before anything executes.
    """

    def __init__(self, repo: RepositoryAdapter) -> None:
        self.repo = repo
        status = repo.status()
        self.branch = status.branch
        self.head = status.head
        self.in_progress = status.in_progress
        self.dirty = set(status.changed_paths())
        self.stashes = {entry.sha for entry in repo.stash_list()}
        self._tips: dict[str, str | None] = {}
        self._remote_tips: dict[tuple[str, str], str | None] = {}

    def tip(self, branch: str) -> str | None:
        if branch not in self._tips:
            self._tips[branch] = self.repo.branch_sha(branch)
        return self._tips[branch]

    def set_tip(self, branch: str, sha: str | None) -> None:
        self._tips[branch] = sha
        if branch == self.branch:
            self.head = sha

    def remote_tip(self, remote: str, branch: str) -> str | None:
        key = (remote, branch)
        if key not in self._remote_tips:
            self._remote_tips[key] = self.repo.ls_remote(remote, branch)
        return self._remote_tips[key]

    def set_remote_tip(self, remote: str, branch: str, sha: str | None) -> None:
        self._remote_tips[(remote, branch)] = sha


class UndoEngine:
    """
    Computes, previews and executes reversals of recorded operations.

    Example:
        >>> engine = UndoEngine(log, repo)
        >>> plan = engine.preview()          # latest Active record, no mutation
        >>> if plan.executable:
        ...     result = engine.undo()
        ...     print(result.summary())
    """

    def __init__(
        self,
        log: OperationLog,
        repo: RepositoryAdapter,
        *,
        cascade_default: bool = True,
    ) -> None:
        self.log = log
        self.repo = repo
        self.cascade_default = cascade_default

    # ------------------------------------------------------------------
    # Target resolution and dependency collection
    # ------------------------------------------------------------------

    def _resolve_target(
        self,
        operation_id: str | None,
        criteria: HistoryFilter | None,
    ) -> OperationRecord:
        if operation_id:
            record = self.log.resolve(operation_id)
        else:
            record = self.log.latest_active(criteria)
            if record is None:
                raise OperationNotFoundError("latest", reason="no active operations to undo")

        if record.category == OperationCategory.UNDO:
            raise NotUndoableError(record.id, "undo operations cannot themselves be undone")
        if record.status == OperationStatus.UNDONE:
            raise AlreadyUndoneError(record.id)
        if record.status == OperationStatus.SUPERSEDED:
            raise UndoPreconditionFailedError(
                record.id,
                "it was superseded by later changes to the repository",
                superseded=True,
            )
        return record

    def dependents_of(self, record: OperationRecord) -> list[OperationRecord]:
        """
        Later Active records that depend on `record`, directly or through
        another dependent. Returned newest first.
        """
        later: list[OperationRecord] = []
        for other in self.log.query(HistoryFilter(status=OperationStatus.ACTIVE)):
            if other.id <= record.id:
                break
            later.append(other)

        chain = [record]
        dependents: list[OperationRecord] = []
        for other in reversed(later):
            if any(depends_on(other, member) for member in chain):
                chain.append(other)
                dependents.append(other)
        return sorted(dependents, key=lambda r: r.id, reverse=True)

    def _restored_stashes(self, members: list[OperationRecord]) -> list[OperationRecord]:
        """Stash records of a sync whose entry that sync already popped back."""
        clean_sync = any(
            r.category == OperationCategory.SYNC_STEP and not r.forward_data.conflicts
            for r in members
        )
        if not clean_sync:
            return []
        present = {entry.sha for entry in self.repo.stash_list()}
        return [
            r
            for r in members
            if r.category == OperationCategory.STASH and r.forward_data.stash_sha not in present
        ]

    def _collect(
        self,
        target: OperationRecord,
        whole_group: bool,
    ) -> tuple[list[OperationRecord], list[str], list[str], list[str]]:
        """
        Return (records newest first, cascade ids, foreign dependent ids,
        restored stash ids).

        Restored stashes only arise in whole-group mode: their changes are
        already back in the working tree, so they are left out of the plan.
        """
        candidates: dict[str, OperationRecord] = {target.id: target}
        restored_ids: list[str] = []
        if whole_group:
            members = [
                r
                for r in self.log.query(
                    HistoryFilter(group=target.group, status=OperationStatus.ACTIVE)
                )
                if r.category != OperationCategory.UNDO
            ]
            restored_ids = [
                r.id for r in self._restored_stashes(members) if r.id != target.id
            ]
            for member in members:
                if member.id not in restored_ids:
                    candidates[member.id] = member
        for member in list(candidates.values()):
            for dependent in self.dependents_of(member):
                candidates.setdefault(dependent.id, dependent)

        ordered = sorted(candidates.values(), key=lambda r: r.id, reverse=True)
        cascade_ids = [r.id for r in ordered if r.id != target.id and r.group == target.group]
        foreign_ids = [r.id for r in ordered if r.group != target.group]
        return ordered, cascade_ids, foreign_ids, restored_ids

    # ------------------------------------------------------------------
    # Planners: read-only precondition checks per category
    # ------------------------------------------------------------------

    def _new_step(self, record: OperationRecord) -> UndoStep:
        return UndoStep(
            operation_id=record.id,
            category=record.category,
            description=record.description,
        )

    def _plan_branch_create(self, record: OperationRecord, state: _PlanState) -> UndoStep:
        fwd, rev = record.forward_data, record.reverse_plan
        step = self._new_step(record)

        tip = state.tip(fwd.branch)
        if tip is None:
            step.blockers.append(f"branch {fwd.branch} no longer exists")
        elif tip != rev.created_sha:
            step.blockers.append(
                f"branch {fwd.branch} moved from {_short(rev.created_sha)} to {_short(tip)}"
            )

        on_branch = state.branch == fwd.branch
        if on_branch:
            return_to = rev.prior_branch or rev.prior_head
            if return_to is None:
                step.blockers.append("there is no prior HEAD to return to")
            else:
                step.actions.append(f"git checkout {return_to}")
        step.actions.append(f"git branch -D {fwd.branch}")

        if step.ready:
            if on_branch:
                state.branch = rev.prior_branch
                state.head = state.tip(rev.prior_branch) if rev.prior_branch else rev.prior_head
            state.set_tip(fwd.branch, None)
        return step

    def _plan_commit(self, record: OperationRecord, state: _PlanState) -> UndoStep:
        fwd, rev = record.forward_data, record.reverse_plan
        step = self._new_step(record)

        if rev.parent_sha is None:
            raise NotUndoableError(record.id, "a root commit has no parent to reset to")

        if state.in_progress:
            step.blockers.append("a merge or rebase is in progress")
        if state.branch != fwd.branch:
            step.blockers.append(
                f"the commit was made on {fwd.branch or 'a detached HEAD'}, "
                f"but {state.branch or 'a detached HEAD'} is checked out"
            )
        elif state.head != fwd.commit_sha:
            step.blockers.append(
                f"HEAD is at {_short(state.head)}, not at the recorded commit "
                f"{_short(fwd.commit_sha)}"
            )

        mode = ResetMode.MIXED if rev.auto_staged else ResetMode.SOFT
        step.actions.append(f"git reset --{mode.value} {_short(rev.parent_sha)}")

        if step.ready:
            if fwd.branch:
                state.set_tip(fwd.branch, rev.parent_sha)
            else:
                state.head = rev.parent_sha
        return step

    def _plan_stash(self, record: OperationRecord, state: _PlanState) -> UndoStep:
        fwd, rev = record.forward_data, record.reverse_plan
        step = self._new_step(record)

        if fwd.stash_sha not in state.stashes:
            step.blockers.append(
                f"stash entry {_short(fwd.stash_sha)} is no longer in the stash list"
            )
        if state.in_progress:
            step.blockers.append("a merge or rebase is in progress")
        overlap = sorted(set(rev.paths) & state.dirty)
        if overlap:
            step.blockers.append(f"local changes overlap the stash: {', '.join(overlap)}")

        step.actions.append(f"git stash pop {_short(fwd.stash_sha)}")

        if step.ready:
            state.stashes.discard(fwd.stash_sha)
            state.dirty.update(rev.paths)
        return step

    def _plan_push(self, record: OperationRecord, state: _PlanState) -> UndoStep:
        fwd, rev = record.forward_data, record.reverse_plan
        step = self._new_step(record)
        step.remote = True

        current = state.remote_tip(fwd.remote, fwd.branch)
        if current != fwd.pushed_sha:
            where = _short(current) if current else "deleted"
            step.blockers.append(
                f"{fwd.remote}/{fwd.branch} is now {where}, not the pushed "
                f"{_short(fwd.pushed_sha)}; others may have built on it"
            )

        if rev.remote_sha_before:
            step.actions.append(
                f"git push --force-with-lease={fwd.branch}:{_short(fwd.pushed_sha)} "
                f"{fwd.remote} {_short(rev.remote_sha_before)}:{fwd.branch}"
            )
        else:
            step.actions.append(
                f"git push --force-with-lease={fwd.branch}:{_short(fwd.pushed_sha)} "
                f"{fwd.remote} --delete {fwd.branch}"
            )

        if step.ready:
            state.set_remote_tip(fwd.remote, fwd.branch, rev.remote_sha_before)
        return step

    def _plan_sync_step(self, record: OperationRecord, state: _PlanState) -> UndoStep:
        fwd, rev = record.forward_data, record.reverse_plan
        step = self._new_step(record)

        if fwd.conflicts:
            if state.in_progress:
                verb = "rebase" if fwd.strategy == IntegrationStrategy.REBASE else "merge"
                step.actions.append(f"git {verb} --abort")
                state.in_progress = False
                state.branch = fwd.branch
                state.set_tip(fwd.branch, rev.pre_ref)
                state.dirty.difference_update(fwd.conflicts)
            elif state.branch == fwd.branch and state.head == rev.pre_ref:
                step.blockers.append("the conflicted integration was already aborted")
            else:
                step.blockers.append(
                    "the conflicted integration was resolved or continued outside sage"
                )
            return step

        if state.in_progress:
            step.blockers.append("a merge or rebase is in progress")
        if state.branch != fwd.branch:
            step.blockers.append(
                f"the sync ran on {fwd.branch}, but {state.branch or 'a detached HEAD'} "
                "is checked out"
            )
        elif state.head != fwd.post_ref:
            step.blockers.append(
                f"{fwd.branch} moved since the sync: HEAD is {_short(state.head)}, "
                f"expected {_short(fwd.post_ref)}"
            )

        step.actions.append(f"git reset --keep {_short(rev.pre_ref)}")

        if step.ready:
            state.set_tip(fwd.branch, rev.pre_ref)
        return step

    _PLANNERS: dict[
        OperationCategory, Callable[[UndoEngine, OperationRecord, _PlanState], UndoStep]
    ] = {
        OperationCategory.BRANCH_CREATE: _plan_branch_create,
        OperationCategory.COMMIT: _plan_commit,
        OperationCategory.STASH: _plan_stash,
        OperationCategory.PUSH: _plan_push,
        OperationCategory.SYNC_STEP: _plan_sync_step,
    }

    # ------------------------------------------------------------------
    # Reversers: the adapter calls that undo each category
    # ------------------------------------------------------------------

    def _reverse_branch_create(self, record: OperationRecord) -> None:
        fwd, rev = record.forward_data, record.reverse_plan
        if self.repo.current_branch() == fwd.branch:
            self.repo.checkout(rev.prior_branch or rev.prior_head)
        self.repo.branch_delete(fwd.branch, force=True)

    def _reverse_commit(self, record: OperationRecord) -> None:
        rev = record.reverse_plan
        mode = ResetMode.MIXED if rev.auto_staged else ResetMode.SOFT
        self.repo.reset_to(rev.parent_sha, mode)

    def _reverse_stash(self, record: OperationRecord) -> None:
        fwd = record.forward_data
        result = self.repo.stash_pop(fwd.stash_sha)
        if not result.applied:
            raise GitError(
                f"Restoring stash {_short(fwd.stash_sha)} conflicted in "
                f"{', '.join(result.conflicts)}; the stash entry was kept",
                command=["git", "stash", "pop"],
            )

    def _reverse_push(self, record: OperationRecord) -> None:
        fwd, rev = record.forward_data, record.reverse_plan
        if rev.remote_sha_before:
            self.repo.push_ref(
                fwd.remote, fwd.branch, rev.remote_sha_before, expected_sha=fwd.pushed_sha
            )
        else:
            self.repo.delete_remote_branch(fwd.remote, fwd.branch, expected_sha=fwd.pushed_sha)

    def _reverse_sync_step(self, record: OperationRecord) -> None:
        fwd, rev = record.forward_data, record.reverse_plan
        if fwd.conflicts and self.repo.status().in_progress:
            self.repo.abort_integration()
        else:
            self.repo.reset_to(rev.pre_ref, ResetMode.KEEP)

    _REVERSERS: dict[OperationCategory, Callable[[UndoEngine, OperationRecord], None]] = {
        OperationCategory.BRANCH_CREATE: _reverse_branch_create,
        OperationCategory.COMMIT: _reverse_commit,
        OperationCategory.STASH: _reverse_stash,
        OperationCategory.PUSH: _reverse_push,
        OperationCategory.SYNC_STEP: _reverse_sync_step,
    }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def _plan(
        self,
        target: OperationRecord,
        records: list[OperationRecord],
        cascade_ids: list[str],
        foreign_ids: list[str],
        restored_ids: list[str],
    ) -> UndoPlan:
        state = _PlanState(self.repo)
        steps = [self._PLANNERS[record.category](self, record, state) for record in records]
        return UndoPlan(
            target_id=target.id,
            steps=steps,
            cascade_ids=cascade_ids,
            blocking_dependents=foreign_ids,
            restored_stash_ids=restored_ids,
        )

    def preview(
        self,
        operation_id: str | None = None,
        *,
        criteria: HistoryFilter | None = None,
        whole_group: bool = False,
    ) -> UndoPlan:
        """
        Describe what undoing a record would do, without changing anything.

        Repeated calls never change record status or repository state; the
        only repository access is read-only (status, refs, ls-remote).

        Raises:
            OperationNotFoundError, AlreadyUndoneError, NotUndoableError,
            UndoPreconditionFailedError: when the target itself is ineligible
        """
        target = self._resolve_target(operation_id, criteria)
        records, cascade_ids, foreign_ids, restored_ids = self._collect(target, whole_group)
        return self._plan(target, records, cascade_ids, foreign_ids, restored_ids)

    def undo(
        self,
        operation_id: str | None = None,
        *,
        criteria: HistoryFilter | None = None,
        cascade: bool | None = None,
        allow_remote: bool = False,
        whole_group: bool = False,
    ) -> UndoResult:
        """
        Reverse a record (default: the latest Active one) and its dependents.

        Args:
            operation_id: Full id or unique fragment; None for the latest
            criteria: Narrows the latest-Active lookup (category, group)
            cascade: Undo same-group dependents first (default from config)
            allow_remote: Permit reverting pushes (lease-protected)
            whole_group: Undo every Active record of the target's command

        Raises:
            DependentOperationsExistError: Dependents from other commands, or
                same-group dependents with cascading disabled
            UnsafeRemoteUndoError: A push is involved and is not allowed or
                the remote moved since
            UndoPreconditionFailedError: A record no longer matches the
                repository (that record is marked Superseded)
            CascadeInterruptedError: A reversal failed after others succeeded
        """
        if cascade is None:
            cascade = self.cascade_default

        target = self._resolve_target(operation_id, criteria)
        records, cascade_ids, foreign_ids, restored_ids = self._collect(target, whole_group)

        if foreign_ids:
            raise DependentOperationsExistError(target.id, foreign_ids)
        if cascade_ids and not (cascade or whole_group):
            raise DependentOperationsExistError(target.id, cascade_ids)

        remote_ids = [r.id for r in records if r.category == OperationCategory.PUSH]
        if remote_ids and not allow_remote:
            raise UnsafeRemoteUndoError(
                remote_ids[0],
                "reverting a push rewrites a branch other people can see; "
                "it is only done when explicitly allowed",
                target_id=target.id,
                operation_ids=remote_ids,
            )

        plan = self._plan(target, records, cascade_ids, foreign_ids, restored_ids)
        blocked = next((step for step in plan.steps if not step.ready), None)
        if blocked is not None:
            self.log.mark(blocked.operation_id, OperationStatus.SUPERSEDED)
            logger.warning(
                "Operation %s superseded: %s", blocked.operation_id, "; ".join(blocked.blockers)
            )
            error_cls = UnsafeRemoteUndoError if blocked.remote else UndoPreconditionFailedError
            raise error_cls(
                blocked.operation_id,
                "; ".join(blocked.blockers),
                target_id=target.id,
                superseded=True,
            )

        result = self._execute(target, records, plan)
        for stash_id in restored_ids:
            self.log.mark(stash_id, OperationStatus.SUPERSEDED)
            logger.info("Stash %s was already restored by its sync", stash_id)
        return result

    def _execute(
        self,
        target: OperationRecord,
        records: list[OperationRecord],
        plan: UndoPlan,
    ) -> UndoResult:
        undone: list[str] = []
        for record in records:
            try:
                self._REVERSERS[record.category](self, record)
            except SageError as e:
                if undone:
                    undo_id = self._record_undo(target, undone, plan)
                    raise CascadeInterruptedError(
                        target.id,
                        undone,
                        record.id,
                        str(e),
                        undo_record_id=undo_id,
                    ) from e
                e.add_context(operation_id=record.id, step="undo")
                raise
            self.log.mark(record.id, OperationStatus.UNDONE)
            undone.append(record.id)
            logger.info("Undid %s operation %s", record.category.value, record.id)

        undo_id = self._record_undo(target, undone, plan)
        executed = [step for step in plan.steps if step.operation_id in undone]
        return UndoResult(
            target_id=target.id,
            undone_ids=undone,
            undo_record_id=undo_id,
            steps=executed,
        )

    def _record_undo(self, target: OperationRecord, undone: list[str], plan: UndoPlan) -> str:
        actions = [
            action
            for step in plan.steps
            if step.operation_id in undone
            for action in step.actions
        ]
        description = f"Undo {target.category.value} {target.id}"
        if len(undone) > 1:
            description += f" and {len(undone) - 1} dependent operation(s)"
        record = OperationRecord.build(
            group=new_group_id(),
            description=description,
            forward=UndoForward(target_ids=undone, actions=actions),
            reverse=UndoReverse(),
        )
        return self.log.append(record)
