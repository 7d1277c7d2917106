"""
GitHub data models for dex.

Defines Pydantic models for GitHub repository info and issues.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, Field, computed_field

from dex.core.sync.models import RemoteItem


class RepoInfo(BaseModel):
    """
    GitHub repository information.

    Parsed from a git remote URL (SSH or HTTPS) or an ``owner/repo`` string.

    Example:
        >>> RepoInfo.from_remote_url("git@github.com:user/repo.git")
        RepoInfo(owner='user', repo='repo')
        >>> RepoInfo.parse("user/repo")
        RepoInfo(owner='user', repo='repo')
    """

    owner: str = Field(..., description="Repository owner (user or organization)")
    repo: str = Field(..., description="Repository name")

    @computed_field
    @property
    def full_name(self) -> str:
        """Full repository name (owner/repo)."""
        return f"{self.owner}/{self.repo}"

    @computed_field
    @property
    def url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}"

    def issue_url(self, issue_number: int) -> str:
        """Get URL for a specific issue."""
        return f"{self.url}/issues/{issue_number}"

    @classmethod
    def from_remote_url(cls, remote_url: str) -> RepoInfo | None:
        """
        Parse repository info from a git remote URL.

        Handles formats:
        - git@github.com:user/repo.git
        - ssh://git@github.com/user/repo.git
        - https://github.com/user/repo.git
        - https://github.com/user/repo

        Returns:
            RepoInfo or None if not a GitHub URL
        """
        if not remote_url:
            return None

        ssh_match = re.match(r"git@github\.com:([^/]+)/([^/]+?)(?:\.git)?$", remote_url)
        if ssh_match:
            return cls(owner=ssh_match.group(1), repo=ssh_match.group(2))

        url_match = re.match(
            r"(?:https?|ssh)://(?:[^@/]+@)?github\.com/([^/]+)/([^/]+?)(?:\.git)?/?$",
            remote_url,
        )
        if url_match:
            return cls(owner=url_match.group(1), repo=url_match.group(2))

        return None

    @classmethod
    def parse(cls, value: str) -> RepoInfo | None:
        """Parse ``owner/repo`` or any remote URL form accepted by from_remote_url."""
        match = re.fullmatch(r"([\w.-]+)/([\w.-]+)", value.strip())
        if match:
            return cls(owner=match.group(1), repo=match.group(2))
        return cls.from_remote_url(value.strip())


class GitHubIssue(BaseModel):
    """
    A GitHub issue as returned by the REST API.

    Pull requests come back from the issues endpoint too; they are flagged
    with ``is_pull_request``.
    """

    number: int = Field(..., description="Issue number")
    title: str = Field(default="", description="Issue title")
    body: str = Field(default="", description="Issue body (markdown)")
    state: str = Field(default="open", description="Issue state (open/closed)")
    labels: list[str] = Field(default_factory=list, description="Label names")
    url: str = Field(default="", description="HTML URL for the issue")
    is_pull_request: bool = Field(default=False)

    @property
    def is_open(self) -> bool:
        return self.state == "open"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> GitHubIssue:
        """
        Create a GitHubIssue from a REST API issue object.

        Args:
            data: JSON object from ``GET /repos/{owner}/{repo}/issues/{number}``
        """
        labels: list[str] = []
        for label in data.get("labels") or []:
            if isinstance(label, dict):
                name = label.get("name")
                if isinstance(name, str) and name:
                    labels.append(name)
            elif isinstance(label, str) and label:
                labels.append(label)

        number = data.get("number", 0)
        return cls(
            number=int(number) if isinstance(number, (int, float)) else 0,
            title=str(data.get("title") or ""),
            body=str(data.get("body") or ""),
            state=str(data.get("state") or "open"),
            labels=labels,
            url=str(data.get("html_url") or ""),
            is_pull_request=bool(data.get("pull_request")),
        )

    def to_remote_item(self, label_prefix: str) -> RemoteItem:
        """View of this issue for the sync engine."""
        return RemoteItem(
            id=self.number,
            title=self.title,
            body=self.body,
            is_open=self.is_open,
            labels=[label for label in self.labels if label.startswith(label_prefix)],
            all_labels=list(self.labels),
            url=self.url,
            is_pull_request=self.is_pull_request,
        )
