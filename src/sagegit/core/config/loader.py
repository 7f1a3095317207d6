"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < repository config < env vars

The repository layer is the local configuration store kept next to the
operation history in <git-dir>/sage/config.json.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from .models import SageConfig

logger = logging.getLogger(__name__)

LOCAL_CONFIG_FILENAME = "config.json"

# Cache to avoid reloading config multiple times per command
_config_cache: tuple[Path | None, SageConfig] | None = None


def get_xdg_config_home() -> Path:
    """
    Get XDG config home directory.

    Returns:
        Path to config directory (defaults to ~/.config)
    """
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_user_config_path() -> Path:
    """
    Get path to user configuration file.

    Returns:
        Path to ~/.config/sage/config.json (or XDG equivalent)
    """
    return get_xdg_config_home() / "sage" / "config.json"


def get_local_config_path(control_dir: Path) -> Path:
    """Path of the repository's local configuration store."""
    return control_dir / LOCAL_CONFIG_FILENAME


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence over values in `base`. Nested dicts
    are merged, not replaced.

    Example:
        >>> base = {"a": 1, "b": {"x": 10, "y": 20}}
        >>> override = {"b": {"y": 30, "z": 40}, "c": 3}
        >>> deep_merge(base, override)
        {"a": 1, "b": {"x": 10, "y": 30, "z": 40}, "c": 3}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Load a JSON file, returning None if it doesn't exist or is invalid.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON as dict, or None if file doesn't exist or can't be parsed
    """
    if not path.exists():
        return None

    try:
        with path.open() as f:
            data = json.load(f)
            if isinstance(data, dict):
                return data
            return None
    except (json.JSONDecodeError, OSError) as e:
        # Config system stays usable with a broken file; the defaults apply
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None


def _parse_bool(value: str) -> bool:
    return value.lower() not in ("false", "0", "no", "off", "")


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Env vars have the highest precedence and override all config files.

    Supported env vars:
        SAGE_DEFAULT_BRANCH - overrides default_branch
        SAGE_REMOTE - overrides remote
        SAGE_SYNC_STRATEGY - overrides sync.strategy
        SAGE_UNDO_CASCADE - overrides undo.cascade
        SAGE_GIT_TIMEOUT - overrides git.timeout_seconds
    """
    result = config_dict.copy()

    if branch := os.environ.get("SAGE_DEFAULT_BRANCH"):
        result["default_branch"] = branch

    if remote := os.environ.get("SAGE_REMOTE"):
        result["remote"] = remote

    if strategy := os.environ.get("SAGE_SYNC_STRATEGY"):
        if strategy in ("merge", "rebase"):
            result["sync"] = {**result.get("sync", {}), "strategy": strategy}
        else:
            logger.warning("Invalid SAGE_SYNC_STRATEGY value '%s', ignoring", strategy)

    if cascade := os.environ.get("SAGE_UNDO_CASCADE"):
        result["undo"] = {**result.get("undo", {}), "cascade": _parse_bool(cascade)}

    if timeout_str := os.environ.get("SAGE_GIT_TIMEOUT"):
        try:
            timeout = int(timeout_str)
            if timeout < 1:
                logger.warning("SAGE_GIT_TIMEOUT must be >= 1, got %d, ignoring", timeout)
            else:
                result["git"] = {**result.get("git", {}), "timeout_seconds": timeout}
        except ValueError:
            logger.warning("Invalid SAGE_GIT_TIMEOUT value '%s', ignoring", timeout_str)

    return result


def get_default_config() -> dict[str, Any]:
    """Hardcoded default configuration."""
    return {
        "default_branch": "main",
        "remote": "origin",
        "sync": {"strategy": "merge", "include_untracked": True},
        "undo": {"cascade": True},
    }


def load_config(control_dir: Path | None = None, use_cache: bool = True) -> SageConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Environment variables (SAGE_*)
        2. Repository config (<git-dir>/sage/config.json)
        3. User config (~/.config/sage/config.json)
        4. Hardcoded defaults

    Args:
        control_dir: The repository's sage control directory; None skips
            the repository layer
        use_cache: If True, return the cached config for the same control_dir

    Raises:
        ValidationError: If the merged config fails Pydantic validation

    Example:
        >>> config = load_config(Path(".git/sage"))
        >>> config.sync.strategy
        'merge'
    """
    global _config_cache

    if use_cache and _config_cache is not None and _config_cache[0] == control_dir:
        return _config_cache[1]

    merged = get_default_config()

    if user_config := load_json_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)

    if control_dir is not None:
        if local_config := load_json_file(get_local_config_path(control_dir)):
            merged = deep_merge(merged, local_config)

    merged = apply_env_overrides(merged)

    config = SageConfig(**merged)
    _config_cache = (control_dir, config)
    return config


def clear_cache() -> None:
    """
    Clear the cached configuration.

    Useful for testing or after `sage config set` changes the local store.
    """
    global _config_cache
    _config_cache = None
