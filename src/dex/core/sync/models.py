"""
Data models for the sync engine.

Defines Pydantic models for cached remote items, parsed remote bodies,
progress reports and per-task sync results.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dex.core.tasks.models import CommitMetadata, Task


class SyncPhase(str, Enum):
    """Phase reported for a task while it is being synced."""

    CHECKING = "checking"
    CREATING = "creating"
    UPDATING = "updating"
    SKIPPED = "skipped"


class SyncProgress(BaseModel):
    """Progress report for one top-level task."""

    current: int = Field(description="1-based index of the task in the batch")
    total: int = Field(description="Number of tasks in the batch")
    task: Task
    phase: SyncPhase


ProgressCallback = Callable[[SyncProgress], None]


class RemoteItem(BaseModel):
    """
    A remote issue or story as seen by the sync engine.

    Lives only for one sync run (cache entry or direct fetch); never
    persisted.
    """

    id: int = Field(description="Issue number or story ID")
    title: str = Field(default="")
    body: str = Field(default="")
    is_open: bool = Field(default=True, description="False once closed/done")
    labels: list[str] = Field(
        default_factory=list, description="Only the labels carrying the sync prefix"
    )
    all_labels: list[str] = Field(
        default_factory=list, description="Every label, preserved verbatim on update"
    )
    url: str = Field(default="")
    is_pull_request: bool = Field(
        default=False, description="Pull/merge requests are never tracked items"
    )

    @property
    def state(self) -> str:
        return "open" if self.is_open else "closed"

    def foreign_labels(self, prefix: str) -> list[str]:
        """Labels not owned by the sync engine, in their original order."""
        return [label for label in self.all_labels if not label.startswith(prefix)]


class ParsedTaskMetadata(BaseModel):
    """
    Task fields decoded from marker lines.

    Fields absent from the markers keep their defaults: priority 1,
    not completed, timestamps unset, empty relation lists.
    """

    id: str | None = None
    parent_id: str | None = None
    name: str = ""
    description: str = ""
    priority: int = 1
    completed: bool = False
    result: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    blocked_by: list[str] = Field(default_factory=list)
    blocks: list[str] = Field(default_factory=list)
    commit: CommitMetadata | None = None


class ParsedDescendant(BaseModel):
    """A descendant block recovered from a remote body."""

    task: ParsedTaskMetadata
    depth: int = Field(ge=1)
    parent_id: str | None = None


class ParsedDocument(BaseModel):
    """A remote body split back into its parts."""

    root: ParsedTaskMetadata | None = None
    free_text: str = ""
    descendants: list[ParsedDescendant] = Field(default_factory=list)


class SyncResult(BaseModel):
    """
    Result of syncing one task to one remote service.

    ``metadata`` is the integration's own block (GitHub or Shortcut) to be
    stored on the task. ``local_updates`` is set instead of a push when the
    remote copy was newer; the caller applies it to the local store.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    task_id: str
    metadata: Any = None
    created: bool = False
    skipped: bool = False
    not_closing_reason: str | None = Field(
        default=None, description="Why a completed task's remote item stays open"
    )
    local_updates: dict[str, Any] | None = None
    pulled_from_remote: bool = False
    subtask_results: list[SyncResult] = Field(default_factory=list)

    def walk(self) -> Iterator[SyncResult]:
        """Yield this result and every nested subtask result, depth first."""
        yield self
        for child in self.subtask_results:
            yield from child.walk()
