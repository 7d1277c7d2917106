"""
Configuration models and loading.

Pydantic models for dex configuration with multi-layer merging:
defaults < user < project < env vars.
"""

from .env import load_layered_env
from .loader import (
    SyncConfigError,
    clear_cache,
    get_project_config_path,
    get_user_config_path,
    get_xdg_config_home,
    load_config,
)
from .models import DexConfig, GitHubSyncConfig, ShortcutSyncConfig, SyncConfig

__all__ = [
    # Models
    "DexConfig",
    "GitHubSyncConfig",
    "ShortcutSyncConfig",
    "SyncConfig",
    # Loader functions
    "SyncConfigError",
    "clear_cache",
    "get_project_config_path",
    "get_user_config_path",
    "get_xdg_config_home",
    "load_config",
    "load_layered_env",
]
