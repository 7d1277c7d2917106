"""
Shortcut stories sync service.

Top-level tasks become feature stories; each subtask becomes a chore
sub-story linked to its parent's story, recursively. ``blocked_by``
relations are mirrored as "blocks" story links.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from dex.core.shortcut.client import ShortcutClient, ShortcutClientError
from dex.core.shortcut.models import Workflow, WorkflowStateType
from dex.core.sync.body import extract_task_id
from dex.core.sync.completion import CompletionGate
from dex.core.sync.models import RemoteItem
from dex.core.sync.orchestrator import STATE_CLOSED, RemoteSyncService
from dex.core.tasks.models import ShortcutMetadata, Task
from dex.core.tasks.tree import TaskTree

logger = logging.getLogger(__name__)

_TEAM_UUID = re.compile(r"^[0-9a-f-]{36}$", re.IGNORECASE)


def get_story_id(task: Task) -> int | None:
    """Story ID recorded on a task, if synced before."""
    if task.metadata is None or task.metadata.shortcut is None:
        return None
    return task.metadata.shortcut.story_id


def build_story_url(workspace: str, story_id: int) -> str:
    return f"https://app.shortcut.com/{workspace}/story/{story_id}"


class ShortcutSyncService(RemoteSyncService):
    """
    One-way sync of tasks to Shortcut stories.

    Behavior:
        - Top-level task -> feature story owned by the configured team
        - Subtask -> chore sub-story of its parent's story
        - Blockers -> "blocks" story links, created once
        - Closable task -> story moved to the workflow's first "done" state,
          never moved back out of it

    Example:
        >>> async with ShortcutClient(token) as client:
        ...     service = ShortcutSyncService(client, gate, "acme", team="platform")
        ...     results = await service.sync_all(store.snapshot())
    """

    id = "shortcut"
    display_name = "Shortcut"

    def __init__(
        self,
        client: ShortcutClient,
        gate: CompletionGate,
        workspace: str,
        team: str,
        workflow: int | None = None,
        label: str = "dex",
    ) -> None:
        super().__init__(gate, label_prefix=label)
        self.client = client
        self.workspace = workspace
        self.team = team
        self.workflow_id = workflow

        self._team_id: str | None = None
        self._workflows: dict[int, Workflow] = {}
        # Stories created during this service's lifetime, by task ID
        self._created: dict[str, int] = {}

    @property
    def label(self) -> str:
        return self.label_prefix

    # ------------------------------------------------------------------
    # Team and workflow resolution
    # ------------------------------------------------------------------

    async def resolve_team_id(self) -> str:
        """
        Group UUID of the configured team.

        Raises:
            ShortcutClientError: If no group matches the mention name
        """
        if self._team_id is not None:
            return self._team_id
        if _TEAM_UUID.match(self.team):
            self._team_id = self.team
            return self._team_id

        group = await self.client.find_group(self.team)
        if group is None:
            raise ShortcutClientError(f"Team not found: {self.team}")
        self._team_id = group.id
        return self._team_id

    async def get_workflow(self) -> Workflow:
        """
        Workflow for new and updated stories.

        The configured workflow, or else the team's first one. Cached per
        service instance.
        """
        if self.workflow_id is None:
            group = await self.client.get_group(await self.resolve_team_id())
            if not group.workflow_ids:
                raise ShortcutClientError(f"Team {self.team} has no workflows")
            self.workflow_id = group.workflow_ids[0]

        workflow = self._workflows.get(self.workflow_id)
        if workflow is None:
            workflow = await self.client.get_workflow(self.workflow_id)
            self._workflows[self.workflow_id] = workflow
        return workflow

    def state_type(self, task: Task, closed: bool) -> WorkflowStateType:
        if closed:
            return "done"
        if task.is_in_progress:
            return "started"
        return "unstarted"

    async def workflow_state_id(self, state_type: WorkflowStateType) -> int:
        """
        First state of *state_type* in the workflow.

        Falls back to the first unstarted state for workflows without a
        started column.
        """
        workflow = await self.get_workflow()
        state = workflow.state_of_type(state_type) or workflow.state_of_type("unstarted")
        if state is None:
            raise ShortcutClientError(
                f"No {state_type} state found in workflow {workflow.id}"
            )
        return state.id

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def get_remote_id(self, task: Task) -> int | None:
        return get_story_id(task)

    def get_remote_url(self, task: Task) -> str | None:
        if task.metadata and task.metadata.shortcut and task.metadata.shortcut.story_url:
            return task.metadata.shortcut.story_url
        story_id = self.get_remote_id(task)
        return build_story_url(self.workspace, story_id) if story_id else None

    def recorded_closed(self, task: Task) -> bool:
        shortcut = task.metadata.shortcut if task.metadata else None
        return shortcut is not None and shortcut.state == "done"

    def build_metadata(
        self, task: Task, remote_id: int, url: str | None, closed: bool
    ) -> ShortcutMetadata:
        return ShortcutMetadata(
            story_id=remote_id,
            story_url=url or build_story_url(self.workspace, remote_id),
            workspace=self.workspace,
            state=self.state_type(task, closed),
        )

    def materializes_descendants(self) -> bool:
        return True

    async def prepare_batch(self) -> None:
        await self.client.ensure_label(self.label)

    async def list_remote_items(self) -> list[RemoteItem]:
        stories = await self.client.search_stories(f'label:"{self.label}"')
        return [story.to_remote_item(self.label) for story in stories]

    async def find_remote_id(self, task_id: str) -> int | None:
        stories = await self.client.search_stories(
            f'label:"{self.label}" description:"dex:task:id:{task_id}"'
        )
        for story in stories:
            if extract_task_id(story.description) == task_id:
                return story.id
        return None

    async def fetch_remote_item(self, remote_id: int) -> RemoteItem:
        story = await self.client.get_story(remote_id)
        return story.to_remote_item(self.label)

    async def create_remote(
        self,
        task: Task,
        title: str,
        body: str,
        labels: list[str],
        should_close: bool,
        parent_remote_id: int | None,
    ) -> tuple[int, str]:
        payload: dict[str, Any] = {
            "name": title,
            "description": body,
            "story_type": "chore" if parent_remote_id is not None else "feature",
            "workflow_state_id": await self.workflow_state_id(
                self.state_type(task, should_close)
            ),
            "labels": [{"name": name} for name in labels],
            "group_id": await self.resolve_team_id(),
        }
        if parent_remote_id is not None:
            payload["parent_story_id"] = parent_remote_id

        story = await self.client.create_story(payload)
        self._created[task.id] = story.id
        logger.info("Created Shortcut story %d for task %s", story.id, task.id)
        return story.id, story.app_url or build_story_url(self.workspace, story.id)

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
        payload: dict[str, Any] = {
            "name": title,
            "description": body,
            "labels": [{"name": name} for name in labels],
        }
        # None leaves a done story where it is
        if state is not None:
            payload["workflow_state_id"] = await self.workflow_state_id(
                self.state_type(task, state == STATE_CLOSED)
            )

        await self.client.update_story(remote_id, payload)
        logger.info("Updated Shortcut story %d for task %s", remote_id, task.id)

    async def after_push(self, task: Task, remote_id: int, tree: TaskTree) -> None:
        await self.sync_blockers(task, remote_id, tree)

    async def sync_blockers(self, task: Task, story_id: int, tree: TaskTree) -> None:
        """
        Link each synced blocker's story as blocking *story_id*.

        Blockers without a story yet are skipped; they are linked on a
        later sync. Link failures are logged and never fail the sync.
        """
        blocker_story_ids = []
        for blocker_id in task.blocked_by:
            blocker = tree.get(blocker_id)
            if blocker is None:
                continue
            blocker_story_id = get_story_id(blocker) or self._created.get(blocker_id)
            if blocker_story_id is not None:
                blocker_story_ids.append(blocker_story_id)
        if not blocker_story_ids:
            return

        story = await self.client.get_story(story_id)
        existing = story.blocker_ids()
        for blocker_story_id in blocker_story_ids:
            if blocker_story_id in existing:
                continue
            try:
                await self.client.create_story_link(blocker_story_id, story_id)
            except ShortcutClientError as e:
                logger.warning(
                    "Failed to create blocker link from story %d to %d: %s",
                    blocker_story_id,
                    story_id,
                    e,
                )

    async def aclose(self) -> None:
        await self.client.aclose()
