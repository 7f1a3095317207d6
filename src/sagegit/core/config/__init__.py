"""
Configuration models and loading.

This module provides Pydantic models for sage configuration with multi-layer
merging: defaults < user < repository < env vars.
"""

from .loader import (
    clear_cache,
    get_local_config_path,
    get_user_config_path,
    get_xdg_config_home,
    load_config,
)
from .models import (
    GitConfig,
    HooksConfig,
    SageConfig,
    SyncConfig,
    UndoConfig,
)
from .store import LocalConfigStore, parse_value

__all__ = [
    # Models
    "GitConfig",
    "HooksConfig",
    "SageConfig",
    "SyncConfig",
    "UndoConfig",
    # Loader functions
    "clear_cache",
    "get_local_config_path",
    "get_user_config_path",
    "get_xdg_config_home",
    "load_config",
    # Local store
    "LocalConfigStore",
    "parse_value",
]
