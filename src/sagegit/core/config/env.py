"""
.env support for SAGE_* settings.

Only keys starting with SAGE_ are taken from .env files. A work tree's .env
belongs to the project under version control and usually holds that
project's own settings, which sage must not export into hook environments.

Sources, lowest precedence first:
    ~/.config/sage/.env  <  <repo>/.env  <  <repo>/.env.local  <  shell

A key already exported in the shell is never overridden.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

from dotenv import dotenv_values

from .loader import get_xdg_config_home

logger = logging.getLogger(__name__)

ENV_PREFIX = "SAGE_"


def _read_sage_env(path: Path) -> dict[str, str]:
    if not path.is_file():
        return {}
    return {
        key: value
        for key, value in dotenv_values(path).items()
        if key and value is not None and key.startswith(ENV_PREFIX)
    }


def env_files(repo_root: Path | None) -> list[Path]:
    """The .env files consulted for a repository, lowest precedence first."""
    files = [get_xdg_config_home() / "sage" / ".env"]
    if repo_root is not None:
        files += [repo_root / ".env", repo_root / ".env.local"]
    return files


def load_layered_env(
    repo_root: Path | None = None,
    *,
    files: Iterable[Path] | None = None,
) -> dict[str, Path]:
    """
    Export SAGE_* keys from .env files into os.environ.

    Args:
        repo_root: Work tree whose .env files apply (None: user file only)
        files: Explicit files, lowest precedence first (overrides repo_root)

    Returns:
        Keys that were set, mapped to the file each value came from
    """
    merged: dict[str, tuple[str, Path]] = {}
    for path in env_files(repo_root) if files is None else files:
        path = Path(path)
        for key, value in _read_sage_env(path).items():
            merged[key] = (value, path)

    applied: dict[str, Path] = {}
    for key, (value, source) in merged.items():
        if key in os.environ:
            continue
        os.environ[key] = value
        applied[key] = source
        logger.debug("Loaded %s from %s", key, source)
    return applied
