"""
Task data models for dex.

Defines the core Task model and the metadata blocks that remote
integrations attach to it. These are the records held by the local
task store and consumed by the sync engine.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


def as_utc(value: datetime) -> datetime:
    """Return an aware datetime, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CommitMetadata(BaseModel):
    """Commit that completed a task."""

    sha: str = Field(..., description="Full commit SHA")
    message: str | None = Field(default=None, description="Commit message")
    branch: str | None = Field(default=None, description="Branch the commit was made on")
    url: str | None = Field(default=None, description="Web URL of the commit")
    timestamp: str | None = Field(default=None, description="Commit timestamp (ISO 8601)")


class GitHubMetadata(BaseModel):
    """GitHub issue a task is mirrored to."""

    issue_number: int = Field(..., description="Issue number")
    issue_url: str = Field(default="", description="HTML URL of the issue")
    repo: str = Field(default="", description="Repository in owner/repo form")
    state: Literal["open", "closed"] | None = Field(
        default=None, description="Issue state recorded at the last sync"
    )


class ShortcutMetadata(BaseModel):
    """Shortcut story a task is mirrored to."""

    story_id: int = Field(..., description="Story ID")
    story_url: str = Field(default="", description="App URL of the story")
    workspace: str = Field(default="", description="Workspace slug")
    state: Literal["unstarted", "started", "done"] | None = Field(
        default=None, description="Workflow state type recorded at the last sync"
    )


class TaskMetadata(BaseModel):
    """
    Open metadata map of a task.

    Holds at most one block per remote integration. A block is written only
    by that integration's sync result; everything else treats it as opaque.
    Unknown keys (other integrations, legacy fields) are preserved.
    """

    model_config = ConfigDict(extra="allow")

    commit: CommitMetadata | None = None
    github: GitHubMetadata | None = None
    shortcut: ShortcutMetadata | None = None


class Task(BaseModel):
    """
    A task in the local dex store.

    Tasks form a forest through ``parent_id``. ``blocked_by`` and ``blocks``
    are symmetric inverses of each other.

    Example:
        >>> task = Task(id="abc123", name="Ship the parser", priority=2)
        >>> task.is_in_progress
        False
    """

    id: str = Field(..., min_length=1, description="Unique, immutable task identifier")
    parent_id: str | None = Field(default=None, description="Parent task ID")
    name: str = Field(..., description="Short task name")
    description: str = Field(default="", description="Free-text description (markdown)")
    priority: int = Field(default=1, ge=0, description="Priority (lower is more urgent)")
    completed: bool = Field(default=False, description="Whether the task is done")
    result: str | None = Field(default=None, description="Outcome, set when completed")

    created_at: datetime | None = Field(default=None)
    updated_at: datetime | None = Field(default=None)
    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)

    blocked_by: list[str] = Field(
        default_factory=list,
        description="IDs of tasks that must finish before this one",
        alias="blockedBy",
    )
    blocks: list[str] = Field(default_factory=list, description="IDs of tasks this one blocks")

    metadata: TaskMetadata | None = Field(default=None)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def is_in_progress(self) -> bool:
        """A task is in progress once started and until completed."""
        return self.started_at is not None and not self.completed

    @property
    def commit_sha(self) -> str | None:
        """SHA of the commit recorded for this task, if any."""
        if self.metadata and self.metadata.commit:
            return self.metadata.commit.sha or None
        return None


class TaskStore(BaseModel):
    """A snapshot of every task in the local store."""

    tasks: list[Task] = Field(default_factory=list)

    def get(self, task_id: str) -> Task | None:
        """Find a task by ID."""
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def roots(self) -> list[Task]:
        """Tasks without a parent, in store order."""
        return [task for task in self.tasks if not task.parent_id]
