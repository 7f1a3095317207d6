"""
Configuration data models for sage.

These models define the structure of ~/.config/sage/config.json and the
per-repository store at <git-dir>/sage/config.json, with validation and
type safety via Pydantic.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class SyncConfig(BaseModel):
    """
    How `sage sync` integrates upstream changes.
    """
    strategy: str = Field(
        default="merge",
        pattern="^(merge|rebase)$",
        description="Integration used when local and upstream have diverged: 'merge' or 'rebase'"
    )
    include_untracked: bool = Field(
        default=True,
        description="Stash untracked files along with tracked changes"
    )
    stash_message: str = Field(
        default="sage: auto-stash before sync",
        description="Message for the stash created before integrating"
    )


class UndoConfig(BaseModel):
    """Undo behavior."""
    cascade: bool = Field(
        default=True,
        description="Undo dependent operations from the same command first"
    )


class GitConfig(BaseModel):
    """Settings for the git subprocess adapter."""
    timeout_seconds: int = Field(
        default=120,
        ge=1,
        le=3600,
        description="Kill a git command after this many seconds"
    )


class HooksConfig(BaseModel):
    """
    Lifecycle hooks configuration.

    Hook scripts live in <git-dir>/sage/<hooks_dir>/<hook-name>/ and in the
    global hooks directory (~/.config/sage/hooks/<hook-name>/).
    """
    enabled: bool = Field(
        default=True,
        description="Enable/disable all hooks"
    )
    hooks_dir: str = Field(
        default="hooks",
        description="Repository hooks directory, relative to <git-dir>/sage"
    )
    global_hooks_dir: str | None = Field(
        default=None,
        description="Global hooks directory (defaults to ~/.config/sage/hooks)"
    )
    timeout_seconds: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Timeout for a single hook script"
    )
    enabled_hooks: list[str] = Field(
        default_factory=lambda: ["pre-push", "post-commit"],
        description="List of enabled hook names"
    )

    def is_hook_enabled(self, hook_name: str) -> bool:
        return self.enabled and hook_name in self.enabled_hooks

    def get_repo_hooks_path(self, control_dir: Path) -> Path:
        """Absolute path of the repository hooks directory."""
        return control_dir / self.hooks_dir

    def get_global_hooks_path(self) -> Path | None:
        if self.global_hooks_dir:
            return Path(self.global_hooks_dir).expanduser()
        return None


class SageConfig(BaseModel):
    """
    Top-level sage configuration.

    Loaded from defaults, user config, the repository's local store, and
    SAGE_* environment variables.

    Example:
        >>> config = SageConfig(default_branch="trunk", sync=SyncConfig(strategy="rebase"))
        >>> config.sync.strategy
        'rebase'
    """
    default_branch: str = Field(
        default="main",
        min_length=1,
        description="Base branch new branches start from and `sync --base` integrates"
    )
    remote: str = Field(
        default="origin",
        min_length=1,
        description="Remote used when a branch has no upstream"
    )
    sync: SyncConfig = Field(
        default_factory=SyncConfig,
        description="Sync behavior"
    )
    undo: UndoConfig = Field(
        default_factory=UndoConfig,
        description="Undo behavior"
    )
    git: GitConfig = Field(
        default_factory=GitConfig,
        description="Git adapter settings"
    )
    hooks: HooksConfig = Field(
        default_factory=HooksConfig,
        description="Lifecycle hooks"
    )

    model_config = ConfigDict(
        extra="allow",  # Allow extra fields for forward compatibility
        validate_assignment=True,
    )
