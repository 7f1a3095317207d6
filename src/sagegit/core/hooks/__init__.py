"""
Lifecycle hooks for sage.

Hook scripts placed in <git-dir>/sage/hooks/<hook-name>/ or
~/.config/sage/hooks/<hook-name>/ run around workflow actions:

- pre-push: may reject a push before it happens
- post-commit: notified after a commit is recorded

Example:
    >>> from sagegit.core.hooks import HookPluginHost
    >>> host = HookPluginHost(control_dir, work_dir, config.hooks)
    >>> decision = host.pre_push("feature", "origin", sha)
    >>> decision.allowed
    True
"""

from sagegit.core.hooks.discovery import discover_hooks, get_default_global_hooks_dir
from sagegit.core.hooks.executor import HookExecutor
from sagegit.core.hooks.host import HookPluginHost, NullPluginHost, PluginHost
from sagegit.core.hooks.models import (
    GateDecision,
    HookResult,
    PostCommitContext,
    PrePushContext,
)

__all__ = [
    "GateDecision",
    "HookExecutor",
    "HookPluginHost",
    "HookResult",
    "NullPluginHost",
    "PluginHost",
    "PostCommitContext",
    "PrePushContext",
    "discover_hooks",
    "get_default_global_hooks_dir",
]
