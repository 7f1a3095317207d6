"""
Hook discovery for lifecycle hooks.

Hook scripts are discovered in:
- Global: ~/.config/sage/hooks/{hook_name}/
- Repository: <git-dir>/sage/hooks/{hook_name}/

Discovery rules:
- Only executable regular files are returned
- Hidden files (starting with .) are ignored
- Scripts are sorted by filename; global hooks run before repository hooks

Example directory structure:
    .git/sage/hooks/
        pre-push/
            01-run-tests.sh
        post-commit/
            notify.py
"""

import os
from pathlib import Path

from sagegit.core.config.loader import get_xdg_config_home
from sagegit.core.config.models import HooksConfig


def discover_hooks(
    hook_name: str,
    control_dir: Path,
    hook_config: HooksConfig | None = None,
) -> list[Path]:
    """
    Discover executable hook scripts for a given lifecycle hook.

    Args:
        hook_name: Lifecycle hook name (pre-push, post-commit)
        control_dir: The repository's sage control directory (<git-dir>/sage)
        hook_config: Optional hook configuration (uses defaults if not provided)

    Returns:
        Paths of executable hook scripts, global ones first, each source
        sorted by filename.

    Example:
        >>> for script in discover_hooks("pre-push", Path(".git/sage")):
        ...     print(script)
        /home/user/.config/sage/hooks/pre-push/01-lint.sh
        /home/user/project/.git/sage/hooks/pre-push/02-tests.sh
    """
    if not hook_name:
        raise ValueError("hook_name is required and cannot be empty")

    config = hook_config or HooksConfig()

    global_hooks_path = config.get_global_hooks_path() or get_default_global_hooks_dir()

    scripts = _discover_in_directory(global_hooks_path / hook_name)
    scripts.extend(_discover_in_directory(config.get_repo_hooks_path(control_dir) / hook_name))
    return scripts


def _discover_in_directory(hook_dir: Path) -> list[Path]:
    """Executable, non-hidden files in one hook directory, sorted by name."""
    if not hook_dir.is_dir():
        return []

    return [
        entry
        for entry in sorted(hook_dir.iterdir())
        if not entry.name.startswith(".") and entry.is_file() and os.access(entry, os.X_OK)
    ]


def get_default_global_hooks_dir() -> Path:
    """
    Get the default global hooks directory path.

    Returns:
        Path to ~/.config/sage/hooks (or the XDG equivalent)
    """
    return get_xdg_config_home() / "sage" / "hooks"
