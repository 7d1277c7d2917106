"""
Tests for the GitHub REST client and repository parsing.

HTTP is served by ``httpx.MockTransport``; nothing leaves the process.
"""

import json
import subprocess
from unittest.mock import patch

import httpx
import pytest

from dex.core.github.client import GitHubClient, GitHubClientError, get_remote_url
from dex.core.github.models import GitHubIssue, RepoInfo

REPO = RepoInfo(owner="acme", repo="widgets")


def issue_json(number: int, **fields) -> dict:
    data = {
        "number": number,
        "title": f"Issue {number}",
        "body": "",
        "state": "open",
        "labels": [{"name": "dex"}],
        "html_url": f"https://github.com/acme/widgets/issues/{number}",
    }
    data.update(fields)
    return data


def make_client(handler) -> GitHubClient:
    return GitHubClient(REPO, "ghp_test", transport=httpx.MockTransport(handler))


class TestRepoInfo:
    """Tests for RepoInfo parsing."""

    @pytest.mark.parametrize(
        "url",
        [
            "git@github.com:acme/widgets.git",
            "git@github.com:acme/widgets",
            "ssh://git@github.com/acme/widgets.git",
            "https://github.com/acme/widgets.git",
            "https://github.com/acme/widgets",
            "https://github.com/acme/widgets/",
        ],
    )
    def test_from_remote_url(self, url):
        """Test every supported remote URL form."""
        assert RepoInfo.from_remote_url(url) == REPO

    def test_non_github_remote(self):
        """Test other hosts are not recognised."""
        assert RepoInfo.from_remote_url("git@gitlab.com:acme/widgets.git") is None
        assert RepoInfo.from_remote_url("") is None

    def test_parse_owner_repo(self):
        """Test the owner/repo shorthand."""
        assert RepoInfo.parse(" acme/widgets ") == REPO
        assert RepoInfo.parse("not a repo") is None

    def test_urls(self):
        """Test derived names and URLs."""
        assert REPO.full_name == "acme/widgets"
        assert REPO.issue_url(3) == "https://github.com/acme/widgets/issues/3"


class TestGitHubIssue:
    """Tests for GitHubIssue.from_api."""

    def test_from_api(self):
        """Test labels are flattened and pull requests flagged."""
        issue = GitHubIssue.from_api(
            issue_json(5, labels=[{"name": "bug"}, "dex"], pull_request={"url": "x"}, body=None)
        )
        assert issue.labels == ["bug", "dex"]
        assert issue.is_pull_request is True
        assert issue.body == ""

    def test_to_remote_item(self):
        """Test only prefixed labels count as owned."""
        item = GitHubIssue.from_api(
            issue_json(5, state="closed", labels=[{"name": "bug"}, {"name": "dex:pending"}])
        ).to_remote_item("dex")
        assert item.is_open is False
        assert item.labels == ["dex:pending"]
        assert item.all_labels == ["bug", "dex:pending"]


class TestGitHubClient:
    """Tests for GitHubClient requests."""

    @pytest.mark.asyncio
    async def test_list_issues_follows_next_link(self):
        """Test pagination follows Link rel=next until it runs out."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            if request.url.params.get("page") == "2":
                return httpx.Response(200, json=[issue_json(2)])
            return httpx.Response(
                200,
                json=[issue_json(1)],
                headers={
                    "Link": '<https://api.github.com/repos/acme/widgets/issues?page=2>; rel="next"'
                },
            )

        async with make_client(handler) as client:
            issues = await client.list_issues("dex")

        assert [issue.number for issue in issues] == [1, 2]
        assert seen[0].params["labels"] == "dex"
        assert seen[0].params["state"] == "all"
        assert seen[0].params["per_page"] == "100"
        assert "labels" not in seen[1].params

    @pytest.mark.asyncio
    async def test_sends_auth_headers(self):
        """Test the token and API version headers are sent."""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured.update(request.headers)
            return httpx.Response(200, json=issue_json(1))

        async with make_client(handler) as client:
            await client.get_issue(1)

        assert captured["authorization"] == "Bearer ghp_test"
        assert captured["x-github-api-version"] == "2022-11-28"

    @pytest.mark.asyncio
    async def test_update_omits_unset_fields(self):
        """Test only the fields given are sent in the PATCH body."""
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "PATCH"
            assert request.url.path == "/repos/acme/widgets/issues/4"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=issue_json(4, state="closed"))

        async with make_client(handler) as client:
            issue = await client.update_issue(4, state="closed")

        assert bodies == [{"state": "closed"}]
        assert issue.state == "closed"

    @pytest.mark.asyncio
    async def test_create_issue_and_comment(self):
        """Test create and comment post to the right endpoints."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append((request.method, request.url.path, json.loads(request.content)))
            if request.url.path.endswith("/comments"):
                return httpx.Response(201, json={"id": 1})
            return httpx.Response(201, json=issue_json(9))

        async with make_client(handler) as client:
            issue = await client.create_issue("Title", "Body", ["dex"])
            await client.create_comment(9, "Nice")

        assert issue.number == 9
        assert requests == [
            ("POST", "/repos/acme/widgets/issues", {"title": "Title", "body": "Body", "labels": ["dex"]}),
            ("POST", "/repos/acme/widgets/issues/9/comments", {"body": "Nice"}),
        ]

    @pytest.mark.asyncio
    async def test_error_status(self):
        """Test API errors carry the status code and message."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "Not Found"})

        async with make_client(handler) as client:
            with pytest.raises(GitHubClientError) as exc_info:
                await client.get_issue(1)

        assert exc_info.value.status_code == 404
        assert "Not Found" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Test connection failures are wrapped."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        async with make_client(handler) as client:
            with pytest.raises(GitHubClientError, match="GitHub request failed") as exc_info:
                await client.get_issue(1)

        assert exc_info.value.status_code is None


class TestGetRemoteUrl:
    """Tests for reading the git remote."""

    def test_returns_url(self, tmp_path):
        """Test the remote URL is returned stripped."""
        with patch("dex.core.github.client.subprocess.run") as run:
            run.return_value = subprocess.CompletedProcess(
                [], 0, "git@github.com:acme/widgets.git\n", ""
            )
            assert get_remote_url(tmp_path) == "git@github.com:acme/widgets.git"

    def test_not_a_repository(self, tmp_path):
        """Test a failing git command yields None."""
        with patch("dex.core.github.client.subprocess.run") as run:
            run.return_value = subprocess.CompletedProcess([], 128, "", "fatal")
            assert get_remote_url(tmp_path) is None
