"""
Repository discovery utilities for sage.

Finds the root of the git work tree the user is in and the sage control
directory that lives inside its git directory.
"""

from pathlib import Path

from sagegit.core.errors import NotARepositoryError

# A directory (normal clone) or file (worktree, submodule) marks the work tree root
REPO_ROOT_MARKER = ".git"

CONTROL_DIRNAME = "sage"


def find_repo_root(start: Path | None = None) -> Path | None:
    """
    Find the work tree root by searching upward for a .git entry.

    Args:
        start: Directory to start searching from. Defaults to current working directory.

    Returns:
        Path to the work tree root, or None if not inside a repository.

    Example:
        >>> find_repo_root(Path("/project/src/module"))
        PosixPath('/project')
    """
    if start is None:
        start = Path.cwd()

    current = start.resolve()
    for candidate in (current, *current.parents):
        if (candidate / REPO_ROOT_MARKER).exists():
            return candidate
    return None


def get_repo_root(start: Path | None = None) -> Path:
    """
    Get the work tree root, raising an error if not found.

    Raises:
        NotARepositoryError: If no enclosing git work tree exists.
    """
    root = find_repo_root(start)
    if root is None:
        start_dir = start.resolve() if start else Path.cwd()
        raise NotARepositoryError(
            f"Not a git repository (or any parent up to /): {start_dir}",
            start=str(start_dir),
        )
    return root


def control_dir_for(git_dir: Path) -> Path:
    """The sage control directory for a repository: <git-dir>/sage."""
    return git_dir / CONTROL_DIRNAME
