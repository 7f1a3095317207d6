"""
Plugin host seam for workflow actions.

Workflow actions talk to plugins through the PluginHost protocol: a
pre-push gate that can stop a push before anything happens, and a
post-commit notification. HookPluginHost implements it with lifecycle
hook scripts; NullPluginHost lets everything through.
"""

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from sagegit.core.config.models import HooksConfig
from sagegit.core.hooks.executor import HookExecutor
from sagegit.core.hooks.models import GateDecision, PostCommitContext, PrePushContext

logger = logging.getLogger(__name__)


@runtime_checkable
class PluginHost(Protocol):
    """Extension points consulted by workflow actions."""

    def pre_push(self, branch: str, remote: str, sha: str, *, forced: bool = False) -> GateDecision:
        """Decide whether a push may proceed. Called before any push work."""
        ...

    def post_commit(
        self,
        commit_sha: str,
        operation_id: str,
        branch: str | None,
        message: str,
    ) -> None:
        """Notify plugins that a commit was made and recorded."""
        ...


class NullPluginHost:
    """Plugin host with no plugins."""

    def pre_push(self, branch: str, remote: str, sha: str, *, forced: bool = False) -> GateDecision:
        return GateDecision.allow()

    def post_commit(
        self,
        commit_sha: str,
        operation_id: str,
        branch: str | None,
        message: str,
    ) -> None:
        return None


class HookPluginHost:
    """
    Plugin host backed by lifecycle hook scripts.

    A failing pre-push script rejects the push; its stderr becomes the
    rejection reason. Failing post-commit scripts are logged and ignored
    since the commit already exists.
    """

    def __init__(self, control_dir: Path, work_dir: Path, config: HooksConfig | None = None):
        self.work_dir = work_dir
        self.executor = HookExecutor(control_dir, work_dir, config)

    def pre_push(self, branch: str, remote: str, sha: str, *, forced: bool = False) -> GateDecision:
        context = PrePushContext(
            branch=branch,
            remote=remote,
            sha=sha,
            forced=forced,
            repo_dir=str(self.work_dir),
        )
        for result in self.executor.run("pre-push", context, stop_on_failure=True):
            if result.failed:
                return GateDecision(allowed=False, hook=result.script, reason=result.error_message)
        return GateDecision.allow()

    def post_commit(
        self,
        commit_sha: str,
        operation_id: str,
        branch: str | None,
        message: str,
    ) -> None:
        context = PostCommitContext(
            commit_sha=commit_sha,
            operation_id=operation_id,
            branch=branch,
            message=message,
            repo_dir=str(self.work_dir),
        )
        for result in self.executor.run("post-commit", context):
            if result.failed:
                logger.warning(
                    "post-commit hook %s failed: %s", result.script, result.error_message
                )
