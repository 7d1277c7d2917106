"""
Construction of ShortcutSyncService from configuration.

``create_shortcut_sync_service`` returns None (with a warning) when
Shortcut sync is disabled or unconfigured; ``create_shortcut_sync_service_or_raise``
raises a descriptive SyncConfigError for an explicit ``dex sync --shortcut``.
Both are async because the workspace slug may have to be fetched.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import httpx

from dex.core.config import ShortcutSyncConfig, SyncConfigError
from dex.core.shortcut.client import ShortcutClient, ShortcutClientError
from dex.core.shortcut.sync import ShortcutSyncService
from dex.core.sync.completion import CommitVerifier, CompletionGate, GitCommitVerifier

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_ENV = "SHORTCUT_API_TOKEN"


def get_shortcut_token(token_env: str = DEFAULT_TOKEN_ENV) -> str | None:
    """Shortcut API token from the *token_env* environment variable."""
    return os.environ.get(token_env) or None


def _build(
    config: ShortcutSyncConfig,
    client: ShortcutClient,
    workspace: str,
    team: str,
    project_dir: Path | None,
    verifier: CommitVerifier | None,
) -> ShortcutSyncService:
    gate = CompletionGate(verifier or GitCommitVerifier(project_dir))
    return ShortcutSyncService(
        client,
        gate,
        workspace=workspace,
        team=team,
        workflow=config.workflow,
        label=config.label,
    )


async def create_shortcut_sync_service(
    config: ShortcutSyncConfig | None,
    project_dir: Path | None = None,
    verifier: CommitVerifier | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ShortcutSyncService | None:
    """
    Create a ShortcutSyncService for automatic sync, if enabled.

    Returns:
        The service, or None if sync is disabled, no token or team is
        configured, or the workspace cannot be fetched
    """
    if config is None or not config.enabled:
        return None

    token = get_shortcut_token(config.token_env)
    if not token:
        logger.warning(
            "Shortcut sync enabled but no token found (checked %s). Sync disabled.",
            config.token_env,
        )
        return None

    if not config.team:
        logger.warning("Shortcut sync enabled but no team specified in config. Sync disabled.")
        return None

    client = ShortcutClient(token, transport=transport)
    workspace = config.workspace
    if not workspace:
        try:
            workspace = await client.get_workspace_slug()
        except ShortcutClientError as e:
            logger.warning("Failed to fetch Shortcut workspace: %s. Sync disabled.", e)
            await client.aclose()
            return None

    return _build(config, client, workspace, config.team, project_dir, verifier)


async def create_shortcut_sync_service_or_raise(
    config: ShortcutSyncConfig | None = None,
    project_dir: Path | None = None,
    verifier: CommitVerifier | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ShortcutSyncService:
    """
    Create a ShortcutSyncService for an explicit sync request.

    Raises:
        SyncConfigError: If no token or team is configured, or the
            workspace cannot be fetched
    """
    config = config or ShortcutSyncConfig()

    token = get_shortcut_token(config.token_env)
    if not token:
        raise SyncConfigError(
            "shortcut",
            f"Shortcut API token not found.\nSet the {config.token_env} environment variable.",
        )

    if not config.team:
        raise SyncConfigError(
            "shortcut",
            "Shortcut team not configured.\nAdd 'team' to the sync.shortcut section of .dex.json.",
        )

    client = ShortcutClient(token, transport=transport)
    workspace = config.workspace
    if not workspace:
        try:
            workspace = await client.get_workspace_slug()
        except ShortcutClientError as e:
            await client.aclose()
            raise SyncConfigError(
                "shortcut", f"Could not determine the Shortcut workspace: {e}"
            ) from e

    return _build(config, client, workspace, config.team, project_dir, verifier)
