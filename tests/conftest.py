"""
Pytest configuration and shared fixtures.

Builds sync services over the in-memory fakes from ``helpers``.
"""

import pytest
from helpers import FakeGitHubClient, FakeShortcutClient, FakeVerifier

from dex.core.config import clear_cache
from dex.core.github.sync import GitHubSyncService
from dex.core.shortcut.sync import ShortcutSyncService
from dex.core.sync.completion import CompletionGate
from dex.core.tasks.models import Task, TaskStore

# ==============================================================================
# Environment Isolation
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep user config, .env files and the config cache out of every test."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for var in ("DEX_STORAGE_PATH", "DEX_GITHUB_REPO", "DEX_SYNC_LABEL"):
        monkeypatch.delenv(var, raising=False)
    clear_cache()
    yield
    clear_cache()


# ==============================================================================
# Commit Verification
# ==============================================================================


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def gate(verifier) -> CompletionGate:
    return CompletionGate(verifier)


# ==============================================================================
# GitHub
# ==============================================================================


@pytest.fixture
def github_client() -> FakeGitHubClient:
    return FakeGitHubClient()


@pytest.fixture
def github_service(github_client, gate) -> GitHubSyncService:
    return GitHubSyncService(github_client, gate)


# ==============================================================================
# Shortcut
# ==============================================================================


@pytest.fixture
def shortcut_client() -> FakeShortcutClient:
    return FakeShortcutClient()


@pytest.fixture
def shortcut_service(shortcut_client, gate) -> ShortcutSyncService:
    return ShortcutSyncService(shortcut_client, gate, workspace="acme", team="platform")


@pytest.fixture
def store_of():
    """Factory building a TaskStore snapshot from tasks."""

    def _store(*tasks: Task) -> TaskStore:
        return TaskStore(tasks=list(tasks))

    return _store
