"""
Async GitHub REST client for dex.

Thin wrapper over the issues endpoints of the GitHub REST API (v3) using
``httpx.AsyncClient``. Only what the sync engine needs: list by label,
get, create, update and comment.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from types import TracebackType
from typing import Any

import httpx

from dex.core.github.models import GitHubIssue, RepoInfo

logger = logging.getLogger(__name__)


class GitHubClientError(Exception):
    """Error from GitHub API operations."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GitHubClient:
    """
    Client for the GitHub issues API.

    Use as an async context manager so the underlying connection pool is
    closed when the sync run ends.

    Example:
        >>> async with GitHubClient(RepoInfo(owner="me", repo="proj"), token) as client:
        ...     issue = await client.get_issue(123)
        ...     print(issue.title)
    """

    API_URL = "https://api.github.com"
    PER_PAGE = 100

    def __init__(
        self,
        repo: RepoInfo,
        token: str,
        base_url: str = API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize GitHubClient.

        Args:
            repo: Repository the issues live in
            token: Personal access token
            base_url: API root (GitHub Enterprise installs differ)
            timeout: Request timeout in seconds
            transport: Optional transport override (tests use httpx.MockTransport)
        """
        self.repo = repo
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {token}",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def _issues_path(self) -> str:
        return f"/repos/{self.repo.owner}/{self.repo.repo}/issues"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request and map failures to GitHubClientError.

        Raises:
            GitHubClientError: On transport errors or non-2xx responses
        """
        logger.debug("GitHub %s %s", method, url)
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise GitHubClientError(f"GitHub request failed: {e}") from e

        if response.status_code >= 400:
            try:
                data = response.json()
            except ValueError:
                data = None
            detail = data.get("message", "") if isinstance(data, dict) else response.text
            raise GitHubClientError(
                f"GitHub API error {response.status_code} on {method} {url}: {detail}",
                status_code=response.status_code,
            )
        return response

    async def list_issues(self, label: str, state: str = "all") -> list[GitHubIssue]:
        """
        List every issue carrying *label*, following ``Link: rel="next"``.

        Args:
            label: Label name to filter by
            state: ``open``, ``closed`` or ``all``

        Returns:
            Issues (and pull requests, flagged) across all pages
        """
        issues: list[GitHubIssue] = []
        url: str | None = self._issues_path
        params: dict[str, Any] | None = {
            "labels": label,
            "state": state,
            "per_page": self.PER_PAGE,
        }

        while url:
            response = await self._request("GET", url, params=params)
            issues.extend(GitHubIssue.from_api(item) for item in response.json())
            url = response.links.get("next", {}).get("url")
            # The next link already carries the query string
            params = None

        return issues

    async def get_issue(self, issue_number: int) -> GitHubIssue:
        """
        Fetch one issue.

        Raises:
            GitHubClientError: If the issue is not found or the API fails
        """
        response = await self._request("GET", f"{self._issues_path}/{issue_number}")
        return GitHubIssue.from_api(response.json())

    async def create_issue(self, title: str, body: str, labels: list[str]) -> GitHubIssue:
        """Create an issue and return it."""
        response = await self._request(
            "POST", self._issues_path, json={"title": title, "body": body, "labels": labels}
        )
        return GitHubIssue.from_api(response.json())

    async def update_issue(
        self,
        issue_number: int,
        *,
        title: str | None = None,
        body: str | None = None,
        labels: list[str] | None = None,
        state: str | None = None,
    ) -> GitHubIssue:
        """
        Update an issue. Fields left as None are not sent.

        Args:
            issue_number: Issue to update
            title: New title
            body: New body
            labels: Full replacement label list
            state: ``open`` or ``closed``
        """
        payload: dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if body is not None:
            payload["body"] = body
        if labels is not None:
            payload["labels"] = labels
        if state is not None:
            payload["state"] = state

        response = await self._request(
            "PATCH", f"{self._issues_path}/{issue_number}", json=payload
        )
        return GitHubIssue.from_api(response.json())

    async def create_comment(self, issue_number: int, body: str) -> None:
        """Add a comment to an issue."""
        await self._request(
            "POST", f"{self._issues_path}/{issue_number}/comments", json={"body": body}
        )


def get_remote_url(project_dir: Path | None = None, remote: str = "origin") -> str | None:
    """
    Get the URL of a git remote.

    Returns:
        Remote URL or None when not a git repository or the remote is missing
    """
    try:
        result = subprocess.run(
            ["git", "remote", "get-url", remote],
            cwd=project_dir or Path.cwd(),
            capture_output=True,
            text=True,
            check=False,
        )
    except (OSError, FileNotFoundError):
        return None
    if result.returncode == 0:
        return result.stdout.strip() or None
    return None
