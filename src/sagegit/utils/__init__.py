"""Utility modules for sage."""

from .project import control_dir_for, find_repo_root, get_repo_root

__all__ = [
    "control_dir_for",
    "find_repo_root",
    "get_repo_root",
]
