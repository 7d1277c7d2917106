"""
Construction of GitHubSyncService from configuration.

Two flavors: ``create_github_sync_service`` returns None (with a warning)
when GitHub sync is disabled or unconfigured, for automatic sync after
local edits. ``create_github_sync_service_or_raise`` raises a descriptive
SyncConfigError, for an explicit ``dex sync --github``.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

import httpx

from dex.core.config import GitHubSyncConfig, SyncConfigError
from dex.core.github.client import GitHubClient, get_remote_url
from dex.core.github.models import RepoInfo
from dex.core.github.sync import GitHubSyncService
from dex.core.sync.completion import CommitVerifier, CompletionGate, GitCommitVerifier

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_ENV = "GITHUB_TOKEN"


def get_github_token(token_env: str = DEFAULT_TOKEN_ENV) -> str | None:
    """
    Find a GitHub token.

    Checks the *token_env* environment variable, then ``gh auth token``.
    """
    if token := os.environ.get(token_env):
        return token
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            check=False,
        )
    except (OSError, FileNotFoundError):
        return None
    if result.returncode == 0:
        return result.stdout.strip() or None
    return None


def resolve_repo(config: GitHubSyncConfig, project_dir: Path | None = None) -> RepoInfo | None:
    """Repository from config, else from the ``origin`` remote."""
    if config.repo:
        return RepoInfo.parse(config.repo)
    remote_url = get_remote_url(project_dir)
    if not remote_url:
        return None
    return RepoInfo.from_remote_url(remote_url)


def _build(
    config: GitHubSyncConfig,
    token: str,
    repo: RepoInfo,
    project_dir: Path | None,
    verifier: CommitVerifier | None,
    transport: httpx.AsyncBaseTransport | None,
) -> GitHubSyncService:
    client = GitHubClient(repo, token, transport=transport)
    gate = CompletionGate(verifier or GitCommitVerifier(project_dir))
    return GitHubSyncService(client, gate, label_prefix=config.label_prefix)


def create_github_sync_service(
    config: GitHubSyncConfig | None,
    project_dir: Path | None = None,
    verifier: CommitVerifier | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> GitHubSyncService | None:
    """
    Create a GitHubSyncService for automatic sync, if enabled.

    Returns:
        The service, or None if sync is disabled, no token is found or the
        repository cannot be determined
    """
    if config is None or not config.enabled:
        return None

    token = get_github_token(config.token_env)
    if not token:
        logger.warning(
            "GitHub sync enabled but no token found (checked %s and gh auth). Sync disabled.",
            config.token_env,
        )
        return None

    repo = resolve_repo(config, project_dir)
    if repo is None:
        logger.warning(
            "GitHub sync enabled but no GitHub repository found (set sync.github.repo). "
            "Sync disabled."
        )
        return None

    return _build(config, token, repo, project_dir, verifier, transport)


def create_github_sync_service_or_raise(
    config: GitHubSyncConfig | None = None,
    project_dir: Path | None = None,
    verifier: CommitVerifier | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> GitHubSyncService:
    """
    Create a GitHubSyncService for an explicit sync request.

    Raises:
        SyncConfigError: If no token is found or the repository is unknown
    """
    config = config or GitHubSyncConfig()

    token = get_github_token(config.token_env)
    if not token:
        raise SyncConfigError(
            "github",
            f"GitHub token not found.\n"
            f"Set the {config.token_env} environment variable or run `gh auth login`.",
        )

    repo = resolve_repo(config, project_dir)
    if repo is None:
        raise SyncConfigError(
            "github",
            "Could not determine the GitHub repository.\n"
            "Add an 'origin' remote pointing at GitHub or set sync.github.repo in .dex.json.",
        )

    return _build(config, token, repo, project_dir, verifier, transport)
