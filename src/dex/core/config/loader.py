"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < env vars
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

from .models import DexConfig

logger = logging.getLogger(__name__)

# Global cache to avoid reloading config multiple times per process
_config_cache: DexConfig | None = None


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
    """Path to ~/.config/dex/config.json (or XDG equivalent)."""
    return get_xdg_config_home() / "dex" / "config.json"


def get_project_config_path(cwd: Path | None = None) -> Path:
    """
    Get path to project configuration file.

    Args:
        cwd: Project directory (defaults to current directory)

    Returns:
        Path to .dex.json in the project root
    """
    if cwd is None:
        cwd = Path.cwd()
    return cwd / ".dex.json"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence; nested dicts are merged, not replaced.

    Example:
        >>> deep_merge({"a": 1, "b": {"x": 10}}, {"b": {"y": 20}})
        {'a': 1, 'b': {'x': 10, 'y': 20}}
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
    Load a JSON object file.

    Returns:
        Parsed JSON as dict, or None if the file is missing or invalid
    """
    if not path.exists():
        return None

    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        # Config should never stop a sync; fall back to the other layers
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None

    if isinstance(data, dict):
        return data
    logger.warning("Ignoring config at %s: expected a JSON object", path)
    return None


def _set_path(config: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    node = config
    for key in path[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[path[-1]] = value


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Supported env vars:
        DEX_STORAGE_PATH - overrides storage_path
        DEX_GITHUB_REPO - overrides sync.github.repo
        DEX_SYNC_LABEL - overrides sync.github.label_prefix and sync.shortcut.label

    Args:
        config_dict: Configuration dictionary to override

    Returns:
        A new dictionary with the overrides applied
    """
    result = copy.deepcopy(config_dict)

    if storage_path := os.environ.get("DEX_STORAGE_PATH"):
        result["storage_path"] = storage_path

    if repo := os.environ.get("DEX_GITHUB_REPO"):
        _set_path(result, ("sync", "github", "repo"), repo)

    if label := os.environ.get("DEX_SYNC_LABEL"):
        _set_path(result, ("sync", "github", "label_prefix"), label)
        _set_path(result, ("sync", "shortcut", "label"), label)

    return result


def get_default_config() -> dict[str, Any]:
    """Hardcoded default configuration."""
    return {
        "storage_path": ".dex",
        "sync": {
            "github": {"enabled": False, "token_env": "GITHUB_TOKEN", "label_prefix": "dex"},
            "shortcut": {"enabled": False, "token_env": "SHORTCUT_API_TOKEN", "label": "dex"},
        },
    }


def load_config(project_dir: Path | None = None, use_cache: bool = True) -> DexConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Environment variables (DEX_*)
        2. Project config (.dex.json)
        3. User config (~/.config/dex/config.json)
        4. Hardcoded defaults

    Args:
        project_dir: Project directory to load .dex.json from (defaults to cwd)
        use_cache: If True, return cached config from previous load

    Returns:
        Validated DexConfig instance

    Raises:
        ValidationError: If the merged config fails Pydantic validation

    Example:
        >>> config = load_config()
        >>> config.sync.github.token_env
        'GITHUB_TOKEN'
    """
    global _config_cache

    if use_cache and _config_cache is not None:
        return _config_cache

    merged = get_default_config()

    if user_config := load_json_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)

    if project_config := load_json_file(get_project_config_path(project_dir)):
        merged = deep_merge(merged, project_config)

    merged = apply_env_overrides(merged)

    config = DexConfig(**merged)
    _config_cache = config
    return config


def clear_cache() -> None:
    """
    Clear the cached configuration.

    Useful for testing or when config files change during execution.
    """
    global _config_cache
    _config_cache = None


class SyncConfigError(Exception):
    """Raised when a sync integration is requested but not configured."""

    def __init__(self, integration: str, message: str) -> None:
        super().__init__(message)
        self.integration = integration
