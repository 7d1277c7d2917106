"""
Load integration tokens from ``.env`` files.

``GITHUB_TOKEN`` and ``SHORTCUT_API_TOKEN`` are secrets, so they live in
``.env`` files instead of ``.dex.json``. The files sit beside the two
config layers: the project's next to ``.dex.json``, the user's next to
``$XDG_CONFIG_HOME/dex/config.json``.

Files are read most specific first with ``load_dotenv(override=False)``,
so the first file defining a variable wins and a variable exported in the
shell is never replaced:

  shell > project .env.local > project .env > user .env
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

from dotenv import load_dotenv

from .loader import get_project_config_path, get_user_config_path

logger = logging.getLogger(__name__)


def project_env_files(project_dir: Path | None = None) -> list[Path]:
    """Project ``.env`` files beside ``.dex.json``, most specific first."""
    root = get_project_config_path(project_dir).parent
    return [root / ".env.local", root / ".env"]


def user_env_files() -> list[Path]:
    return [get_user_config_path().parent / ".env"]


def load_layered_env(
    *,
    project_dir: Path | None = None,
    user_env_paths: Iterable[Path] | None = None,
    project_env_paths: Iterable[Path] | None = None,
) -> list[str]:
    """
    Export variables from the project and user ``.env`` files.

    Args:
        project_dir: Project root (defaults to cwd)
        user_env_paths: User files, most specific first
        project_env_paths: Project files, most specific first

    Returns:
        Names of the variables that were exported, sorted
    """
    if project_env_paths is None:
        project_env_paths = project_env_files(project_dir)
    if user_env_paths is None:
        user_env_paths = user_env_files()

    before = set(os.environ)
    for path in [*project_env_paths, *user_env_paths]:
        if Path(path).is_file():
            logger.debug("Loading environment from %s", path)
            load_dotenv(path, override=False)
    return sorted(set(os.environ) - before)
