"""
GitHub Issues sync service.

Top-level tasks become GitHub issues; every descendant is embedded in the
issue body as a ``<details>`` block. Issues close only once the work is
verified on the remote default branch.
"""

from __future__ import annotations

import logging

from dex.core.github.client import GitHubClient
from dex.core.github.models import RepoInfo
from dex.core.sync.body import extract_task_id
from dex.core.sync.completion import CompletionGate
from dex.core.sync.models import RemoteItem
from dex.core.sync.orchestrator import STATE_CLOSED, RemoteSyncService
from dex.core.tasks.models import GitHubMetadata, Task
from dex.core.tasks.tree import HierarchicalTask, TaskTree

logger = logging.getLogger(__name__)


def get_issue_number(task: Task) -> int | None:
    """
    Issue number recorded on a task.

    Reads ``metadata.github.issue_number`` and falls back to the legacy
    top-level ``github_issue_number`` key.
    """
    if task.metadata is None:
        return None
    if task.metadata.github is not None:
        return task.metadata.github.issue_number
    legacy = (task.metadata.model_extra or {}).get("github_issue_number")
    if isinstance(legacy, int):
        return legacy
    return None


class GitHubSyncService(RemoteSyncService):
    """
    One-way sync of tasks to GitHub Issues.

    Behavior:
        - Top-level task -> issue, titled by the task name
        - Descendants -> embedded in the issue body, shown completed only
          once their own work is verified pushed
        - Issue closed when the completion gate allows it, never reopened
        - Result posted as a comment when an issue is closed

    Example:
        >>> async with GitHubClient(repo, token) as client:
        ...     service = GitHubSyncService(client, CompletionGate(GitCommitVerifier()))
        ...     results = await service.sync_all(store.snapshot())
    """

    id = "github"
    display_name = "GitHub"

    def __init__(
        self, client: GitHubClient, gate: CompletionGate, label_prefix: str = "dex"
    ) -> None:
        super().__init__(gate, label_prefix)
        self.client = client

    @property
    def repo(self) -> RepoInfo:
        return self.client.repo

    def get_remote_id(self, task: Task) -> int | None:
        return get_issue_number(task)

    def get_remote_url(self, task: Task) -> str | None:
        if task.metadata and task.metadata.github and task.metadata.github.issue_url:
            return task.metadata.github.issue_url
        number = self.get_remote_id(task)
        return self.repo.issue_url(number) if number else None

    def recorded_closed(self, task: Task) -> bool:
        github = task.metadata.github if task.metadata else None
        return github is not None and github.state == STATE_CLOSED

    def build_metadata(
        self, task: Task, remote_id: int, url: str | None, closed: bool
    ) -> GitHubMetadata:
        return GitHubMetadata(
            issue_number=remote_id,
            issue_url=url or self.repo.issue_url(remote_id),
            repo=self.repo.full_name,
            state="closed" if closed else "open",
        )

    def body_descendants(self, task: Task, tree: TaskTree) -> list[HierarchicalTask]:
        # A subtask shows as completed only once its work is verified pushed
        return [
            HierarchicalTask(
                task=item.task.model_copy(
                    update={"completed": self.gate.should_close(item.task, tree)}
                ),
                depth=item.depth,
                parent_id=item.parent_id,
            )
            for item in tree.descendants(task.id)
        ]

    async def list_remote_items(self) -> list[RemoteItem]:
        issues = await self.client.list_issues(self.label_prefix, state="all")
        return [issue.to_remote_item(self.label_prefix) for issue in issues]

    async def find_remote_id(self, task_id: str) -> int | None:
        for item in await self.list_remote_items():
            if item.is_pull_request:
                continue
            if extract_task_id(item.body) == task_id:
                return item.id
        return None

    async def fetch_remote_item(self, remote_id: int) -> RemoteItem:
        issue = await self.client.get_issue(remote_id)
        return issue.to_remote_item(self.label_prefix)

    async def _post_result(self, task: Task, issue_number: int) -> None:
        if task.result:
            await self.client.create_comment(issue_number, f"## Result\n\n{task.result}")

    async def create_remote(
        self,
        task: Task,
        title: str,
        body: str,
        labels: list[str],
        should_close: bool,
        parent_remote_id: int | None,
    ) -> tuple[int, str]:
        issue = await self.client.create_issue(title, body, labels)
        if should_close:
            # The create endpoint has no state field
            await self.client.update_issue(issue.number, state=STATE_CLOSED)
            await self._post_result(task, issue.number)
        logger.info("Created GitHub issue #%d for task %s", issue.number, task.id)
        return issue.number, issue.url or self.repo.issue_url(issue.number)

    async def update_remote(
        self,
        task: Task,
        remote_id: int,
        title: str,
        body: str,
        labels: list[str],
        state: str | None,
        current: RemoteItem,
    ) -> None:
        await self.client.update_issue(
            remote_id, title=title, body=body, labels=labels, state=state
        )
        if state == STATE_CLOSED and current.is_open:
            await self._post_result(task, remote_id)
        logger.info("Updated GitHub issue #%d for task %s", remote_id, task.id)

    async def aclose(self) -> None:
        await self.client.aclose()
