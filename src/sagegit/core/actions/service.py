"""
Recorded workflow actions: start, commit, stash and push.

Each action performs one mutating repository call and appends one
operation record describing how to reverse it. The record is written only
after the call succeeded, so a failed action leaves no trace in history.

Push consults the plugin host before touching the remote; a rejection
raises HookRejectedError and nothing is pushed or recorded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sagegit.core.config.models import SageConfig
from sagegit.core.errors import (
    BranchExistsError,
    DetachedHeadError,
    HookRejectedError,
    NoChangesError,
)
from sagegit.core.git.adapter import RepositoryAdapter
from sagegit.core.history.models import (
    BranchCreateForward,
    BranchCreateReverse,
    CommitForward,
    CommitReverse,
    OperationRecord,
    PushForward,
    PushReverse,
    StashForward,
    StashReverse,
    new_group_id,
)
from sagegit.core.history.store import OperationLog
from sagegit.core.hooks.host import NullPluginHost, PluginHost

logger = logging.getLogger(__name__)


@dataclass
class StartResult:
    """Result of `sage start`.

    Attributes:
        branch: The new branch, now checked out
        start_point: Ref the branch was created from
        sha: Commit the branch points at
        operation_id: Id of the branch-create record
    """
    branch: str
    start_point: str
    sha: str
    operation_id: str


@dataclass
class CommitResult:
    """Result of `sage commit`."""
    sha: str
    operation_id: str
    branch: str | None
    auto_staged: bool = False


@dataclass
class StashResult:
    """Result of `sage stash`."""
    stash_sha: str
    operation_id: str
    paths: list[str] = field(default_factory=list)


@dataclass
class PushResult:
    """Result of `sage push`.

    Attributes:
        remote: Remote that was pushed to
        branch: Branch that was pushed
        sha: Commit the remote branch now points at
        remote_sha_before: Remote branch before the push (None if it was created)
        set_upstream: Whether the push configured upstream tracking
        operation_id: Id of the push record
    """
    remote: str
    branch: str
    sha: str
    remote_sha_before: str | None
    set_upstream: bool
    operation_id: str


class WorkflowActions:
    """
    Recorded single-step workflow commands.

    Example:
        >>> actions = WorkflowActions(repo, log, config, plugins)
        >>> result = actions.commit("Fix parser")
        >>> actions.push(group=None)
    """

    def __init__(
        self,
        repo: RepositoryAdapter,
        log: OperationLog,
        config: SageConfig | None = None,
        plugins: PluginHost | None = None,
    ) -> None:
        self.repo = repo
        self.log = log
        self.config = config or SageConfig()
        self.plugins = plugins or NullPluginHost()

    def start(
        self,
        name: str,
        parent: str | None = None,
        *,
        group: str | None = None,
    ) -> StartResult:
        """
        Create a branch from its parent and check it out.

        The remote copy of the parent is preferred when it exists so new
        work starts from the latest fetched state.

        Raises:
            BranchExistsError: If the branch already exists
            GitError: If the parent does not exist or checkout fails
        """
        if self.repo.branch_sha(name) is not None:
            raise BranchExistsError(name)

        status = self.repo.status()
        parent = parent or self.config.default_branch
        remote = self.config.remote
        if self.repo.remote_ref(remote, parent) is not None:
            start_point = f"{remote}/{parent}"
        else:
            start_point = parent

        sha = self.repo.branch_create(name, start_point)
        operation_id = self.log.append(
            OperationRecord.build(
                group=group or new_group_id(),
                description=f"Create branch {name} from {start_point}",
                forward=BranchCreateForward(branch=name, start_point=start_point),
                reverse=BranchCreateReverse(
                    prior_branch=status.branch,
                    prior_head=status.head,
                    created_sha=sha,
                ),
            )
        )
        self.repo.checkout(name)
        return StartResult(branch=name, start_point=start_point, sha=sha, operation_id=operation_id)

    def commit(
        self,
        message: str,
        *,
        allow_empty: bool = False,
        group: str | None = None,
    ) -> CommitResult:
        """
        Commit staged changes, staging everything first when nothing is staged.

        Raises:
            NoChangesError: If there is nothing to commit and allow_empty is off
        """
        status = self.repo.status()
        auto_staged = False
        if not status.staged:
            if status.unstaged or status.untracked:
                self.repo.stage_all()
                auto_staged = True
            elif not allow_empty:
                raise NoChangesError("Nothing to commit, working tree clean")

        sha = self.repo.commit(message, allow_empty=allow_empty)
        operation_id = self.log.append(
            OperationRecord.build(
                group=group or new_group_id(),
                description=f"Commit {sha[:8]}: {message.splitlines()[0] if message else ''}",
                forward=CommitForward(branch=status.branch, message=message, commit_sha=sha),
                reverse=CommitReverse(parent_sha=status.head, auto_staged=auto_staged),
            )
        )

        self.plugins.post_commit(sha, operation_id, status.branch, message)
        return CommitResult(
            sha=sha, operation_id=operation_id, branch=status.branch, auto_staged=auto_staged
        )

    def stash(
        self,
        message: str | None = None,
        *,
        include_untracked: bool = True,
        group: str | None = None,
    ) -> StashResult:
        """
        Move local changes into a new stash entry.

        Raises:
            NoChangesError: If there is nothing to stash
        """
        status = self.repo.status()
        paths = status.changed_paths(include_untracked=include_untracked)
        if not paths:
            raise NoChangesError("No local changes to stash")

        message = message or f"sage: stash on {status.branch or 'detached HEAD'}"
        stash_sha = self.repo.stash_push(message, include_untracked=include_untracked)
        if stash_sha is None:
            raise NoChangesError("No local changes to stash")

        operation_id = self.log.append(
            OperationRecord.build(
                group=group or new_group_id(),
                description=f"Stash {len(paths)} changed path(s): {message}",
                forward=StashForward(
                    branch=status.branch,
                    message=message,
                    stash_sha=stash_sha,
                    include_untracked=include_untracked,
                ),
                reverse=StashReverse(head_sha=status.head, paths=paths),
            )
        )
        return StashResult(stash_sha=stash_sha, operation_id=operation_id, paths=paths)

    def push(
        self,
        *,
        force: bool = False,
        remote: str | None = None,
        group: str | None = None,
    ) -> PushResult:
        """
        Push the checked-out branch.

        The pre-push gate runs first. Upstream tracking is set when the
        branch has none. force only ever means --force-with-lease.

        Raises:
            DetachedHeadError: If no branch is checked out
            HookRejectedError: If a pre-push hook rejected the push
            NoChangesError: If the remote branch is already at the local commit
            GitError: If the push itself fails (nothing is recorded)
        """
        branch = self.repo.current_branch()
        if branch is None:
            raise DetachedHeadError("HEAD is detached; check out a branch to push")
        sha = self.repo.current_ref()
        if sha is None:
            raise NoChangesError(f"{branch} has no commits to push")

        upstream = self.repo.upstream_of(branch)
        remote = remote or (upstream[0] if upstream else self.config.remote)
        set_upstream = upstream is None

        decision = self.plugins.pre_push(branch, remote, sha, forced=force)
        if not decision.allowed:
            logger.warning("Push of %s rejected by hook %s", branch, decision.hook)
            raise HookRejectedError(decision.hook or "pre-push", branch, decision.reason)

        before = self.repo.ls_remote(remote, branch)
        if before == sha:
            raise NoChangesError(f"{remote}/{branch} is already at {sha[:8]}")

        self.repo.push(remote, branch, force=force, set_upstream=set_upstream)
        operation_id = self.log.append(
            OperationRecord.build(
                group=group or new_group_id(),
                description=f"Push {branch} to {remote} ({sha[:8]})"
                + (" with lease" if force else ""),
                forward=PushForward(remote=remote, branch=branch, pushed_sha=sha, forced=force),
                reverse=PushReverse(remote_sha_before=before, set_upstream=set_upstream),
            )
        )
        return PushResult(
            remote=remote,
            branch=branch,
            sha=sha,
            remote_sha_before=before,
            set_upstream=set_upstream,
            operation_id=operation_id,
        )
