"""
Repository adapter layer.

The RepositoryAdapter protocol is the only way the engines touch a
repository; ShellGitAdapter implements it on top of the git CLI.

Example:
    >>> from sagegit.core.git import ShellGitAdapter
    >>> repo = ShellGitAdapter(Path("."))
    >>> repo.current_branch()
    'main'
"""

from sagegit.core.errors import GitError
from sagegit.core.git.adapter import RepositoryAdapter
from sagegit.core.git.models import (
    IntegrationResult,
    ResetMode,
    StashEntry,
    StashPopResult,
    WorkingTreeStatus,
)
from sagegit.core.git.shell import ShellGitAdapter

__all__ = [
    "GitError",
    "IntegrationResult",
    "RepositoryAdapter",
    "ResetMode",
    "ShellGitAdapter",
    "StashEntry",
    "StashPopResult",
    "WorkingTreeStatus",
]
