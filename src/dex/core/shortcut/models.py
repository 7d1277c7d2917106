"""
Shortcut data models for dex.

Pydantic views of the Shortcut REST API objects the sync engine reads:
stories, story links, workflows, groups (teams) and labels.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from dex.core.sync.models import RemoteItem

WorkflowStateType = Literal["unstarted", "started", "done"]


class StoryLink(BaseModel):
    """A typed relation between two stories (``subject verb object``)."""

    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    subject_id: int
    object_id: int
    verb: str = Field(..., description="blocks, duplicates or relates to")


class ShortcutLabel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    name: str


class ShortcutStory(BaseModel):
    """
    A Shortcut story.

    Search results and full story objects share these fields; search
    results may omit ``story_links``.
    """

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""
    description: str = ""
    completed: bool = False
    started: bool = False
    app_url: str = ""
    workflow_state_id: int | None = None
    group_id: str | None = None
    parent_story_id: int | None = None
    labels: list[ShortcutLabel] = Field(default_factory=list)
    story_links: list[StoryLink] = Field(default_factory=list)

    @property
    def label_names(self) -> list[str]:
        return [label.name for label in self.labels]

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ShortcutStory:
        """Create a story from an API object, tolerating null fields."""
        cleaned = {key: value for key, value in data.items() if value is not None}
        return cls.model_validate(cleaned)

    def blocker_ids(self) -> set[int]:
        """IDs of stories already linked as blocking this one."""
        return {
            link.subject_id
            for link in self.story_links
            if link.verb == "blocks" and link.object_id == self.id
        }

    def to_remote_item(self, label: str) -> RemoteItem:
        """View of this story for the sync engine."""
        names = self.label_names
        return RemoteItem(
            id=self.id,
            title=self.name,
            body=self.description,
            is_open=not self.completed,
            labels=[name for name in names if name.startswith(label)],
            all_labels=names,
            url=self.app_url,
        )


class WorkflowState(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""
    type: str = Field(..., description="unstarted, started or done")


class Workflow(BaseModel):
    """A workflow and its ordered states."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""
    states: list[WorkflowState] = Field(default_factory=list)

    def state_of_type(self, state_type: str) -> WorkflowState | None:
        """First state of the given type, in workflow order."""
        for state in self.states:
            if state.type == state_type:
                return state
        return None


class ShortcutGroup(BaseModel):
    """A Shortcut group, shown as a team in the app."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    mention_name: str = ""
    workflow_ids: list[int] = Field(default_factory=list)
