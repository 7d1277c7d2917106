"""
GitHub integration for dex.

Mirrors top-level tasks onto GitHub issues, embedding each task's
subtree in the issue body.
"""

from dex.core.github.client import GitHubClient, GitHubClientError, get_remote_url
from dex.core.github.factory import (
    create_github_sync_service,
    create_github_sync_service_or_raise,
    get_github_token,
    resolve_repo,
)
from dex.core.github.models import GitHubIssue, RepoInfo
from dex.core.github.sync import GitHubSyncService, get_issue_number

__all__ = [
    "GitHubClient",
    "GitHubClientError",
    "GitHubIssue",
    "GitHubSyncService",
    "RepoInfo",
    "create_github_sync_service",
    "create_github_sync_service_or_raise",
    "get_github_token",
    "get_issue_number",
    "get_remote_url",
    "resolve_repo",
]
