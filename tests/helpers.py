"""
Shared test helpers.

Sample task builders, an in-memory commit verifier and in-memory fake
GitHub and Shortcut clients that record every call the sync engine makes.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from dex.core.github.client import GitHubClientError
from dex.core.github.models import GitHubIssue, RepoInfo
from dex.core.shortcut.client import ShortcutClientError
from dex.core.shortcut.models import (
    ShortcutGroup,
    ShortcutLabel,
    ShortcutStory,
    StoryLink,
    Workflow,
    WorkflowState,
)
from dex.core.tasks.models import CommitMetadata, Task, TaskMetadata

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
PUSHED_SHA = "a" * 40
UNPUSHED_SHA = "b" * 40


def make_task(task_id: str, name: str | None = None, **fields: Any) -> Task:
    """Build a Task with stable timestamps; ``sha`` adds a commit reference."""
    sha = fields.pop("sha", None)
    fields.setdefault("created_at", T0)
    fields.setdefault("updated_at", T0)
    if sha is not None:
        metadata = fields.pop("metadata", None) or TaskMetadata()
        metadata.commit = CommitMetadata(sha=sha, message="Finish work")
        fields["metadata"] = metadata
    return Task(id=task_id, name=name or f"Task {task_id}", **fields)


def later(minutes: int = 5) -> datetime:
    return T0 + timedelta(minutes=minutes)


# ==============================================================================
# Commit Verification
# ==============================================================================


class FakeVerifier:
    """Commit verifier answering from a fixed set of pushed SHAs."""

    def __init__(self, pushed: set[str] | None = None) -> None:
        self.pushed = set(pushed or {PUSHED_SHA})
        self.calls: list[str] = []

    def is_commit_on_default_branch(self, sha: str) -> bool:
        self.calls.append(sha)
        return sha in self.pushed


# ==============================================================================
# Fake GitHub
# ==============================================================================


class FakeGitHubClient:
    """In-memory stand-in for GitHubClient."""

    def __init__(self, repo: RepoInfo | None = None) -> None:
        self.repo = repo or RepoInfo(owner="acme", repo="widgets")
        self.issues: dict[int, GitHubIssue] = {}
        self.comments: dict[int, list[str]] = {}
        self.calls: list[tuple[str, Any]] = []
        self.list_failures = 0
        self.fail_get: set[int] = set()
        self.closed = False
        self._next = 1

    def add_issue(
        self,
        title: str,
        body: str,
        labels: list[str] | None = None,
        state: str = "open",
        is_pull_request: bool = False,
    ) -> GitHubIssue:
        number = self._next
        self._next += 1
        issue = GitHubIssue(
            number=number,
            title=title,
            body=body,
            state=state,
            labels=list(labels or []),
            url=self.repo.issue_url(number),
            is_pull_request=is_pull_request,
        )
        self.issues[number] = issue
        return issue

    def reset_calls(self) -> None:
        self.calls.clear()

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def list_issues(self, label: str, state: str = "all") -> list[GitHubIssue]:
        self.calls.append(("list_issues", label))
        if self.list_failures > 0:
            self.list_failures -= 1
            raise GitHubClientError("rate limited", status_code=403)
        return [issue for issue in self.issues.values() if label in issue.labels]

    async def get_issue(self, issue_number: int) -> GitHubIssue:
        self.calls.append(("get_issue", issue_number))
        if issue_number in self.fail_get or issue_number not in self.issues:
            raise GitHubClientError("Not Found", status_code=404)
        return self.issues[issue_number]

    async def create_issue(self, title: str, body: str, labels: list[str]) -> GitHubIssue:
        self.calls.append(("create_issue", {"title": title, "body": body, "labels": labels}))
        return self.add_issue(title, body, labels)

    async def update_issue(self, issue_number: int, **fields: Any) -> GitHubIssue:
        payload = {key: value for key, value in fields.items() if value is not None}
        self.calls.append(("update_issue", {"number": issue_number, **payload}))
        issue = self.issues[issue_number]
        self.issues[issue_number] = issue.model_copy(update=payload)
        return self.issues[issue_number]

    async def create_comment(self, issue_number: int, body: str) -> None:
        self.calls.append(("create_comment", issue_number))
        self.comments.setdefault(issue_number, []).append(body)

    async def aclose(self) -> None:
        self.closed = True


# ==============================================================================
# Fake Shortcut
# ==============================================================================

TEAM_ID = "12345678-1234-1234-1234-123456789abc"
WORKFLOW = Workflow(
    id=500,
    name="Engineering",
    states=[
        WorkflowState(id=501, name="Backlog", type="unstarted"),
        WorkflowState(id=502, name="In Progress", type="started"),
        WorkflowState(id=503, name="Done", type="done"),
    ],
)


class FakeShortcutClient:
    """In-memory stand-in for ShortcutClient."""

    def __init__(self) -> None:
        self.stories: dict[int, ShortcutStory] = {}
        self.labels: list[ShortcutLabel] = []
        self.groups = [
            ShortcutGroup(id=TEAM_ID, name="Platform", mention_name="platform", workflow_ids=[500])
        ]
        self.workflows = {WORKFLOW.id: WORKFLOW}
        self.calls: list[tuple[str, Any]] = []
        self.fail_links = False
        self.closed = False
        self._next = 1000

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def payloads(self, name: str) -> list[Any]:
        return [payload for call, payload in self.calls if call == name]

    def _store(self, story_id: int, payload: dict[str, Any], base: ShortcutStory | None) -> ShortcutStory:
        data = base.model_dump() if base is not None else {"id": story_id}
        for key in ("name", "description", "group_id", "parent_story_id", "workflow_state_id"):
            if key in payload:
                data[key] = payload[key]
        if "labels" in payload:
            data["labels"] = [{"name": label["name"]} for label in payload["labels"]]
        state_id = data.get("workflow_state_id")
        data["completed"] = any(s.id == state_id and s.type == "done" for s in WORKFLOW.states)
        data["app_url"] = f"https://app.shortcut.com/acme/story/{story_id}"
        story = ShortcutStory.model_validate(data)
        self.stories[story_id] = story
        return story

    async def search_stories(self, query: str) -> list[ShortcutStory]:
        self.calls.append(("search_stories", query))
        return list(self.stories.values())

    async def get_story(self, story_id: int) -> ShortcutStory:
        self.calls.append(("get_story", story_id))
        if story_id not in self.stories:
            raise ShortcutClientError("Not Found", status_code=404)
        return self.stories[story_id]

    async def create_story(self, payload: dict[str, Any]) -> ShortcutStory:
        self.calls.append(("create_story", payload))
        story_id = self._next
        self._next += 1
        return self._store(story_id, payload, None)

    async def update_story(self, story_id: int, payload: dict[str, Any]) -> ShortcutStory:
        self.calls.append(("update_story", {"id": story_id, **payload}))
        return self._store(story_id, payload, self.stories[story_id])

    async def get_workflow(self, workflow_id: int) -> Workflow:
        self.calls.append(("get_workflow", workflow_id))
        return self.workflows[workflow_id]

    async def get_group(self, group_id: str) -> ShortcutGroup:
        self.calls.append(("get_group", group_id))
        for group in self.groups:
            if group.id == group_id:
                return group
        raise ShortcutClientError("Not Found", status_code=404)

    async def find_group(self, name: str) -> ShortcutGroup | None:
        self.calls.append(("find_group", name))
        for group in self.groups:
            if name in (group.mention_name, group.name):
                return group
        return None

    async def ensure_label(self, name: str) -> ShortcutLabel:
        self.calls.append(("ensure_label", name))
        for label in self.labels:
            if label.name == name:
                return label
        label = ShortcutLabel(id=len(self.labels) + 1, name=name)
        self.labels.append(label)
        return label

    async def create_story_link(
        self, subject_id: int, object_id: int, verb: str = "blocks"
    ) -> StoryLink:
        self.calls.append(("create_story_link", (subject_id, object_id)))
        if self.fail_links:
            raise ShortcutClientError("link rejected", status_code=422)
        link = StoryLink(id=len(self.calls), subject_id=subject_id, object_id=object_id, verb=verb)
        story = self.stories[object_id]
        self.stories[object_id] = story.model_copy(
            update={"story_links": [*story.story_links, link]}
        )
        return link

    async def aclose(self) -> None:
        self.closed = True
