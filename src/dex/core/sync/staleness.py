"""
Staleness reconciliation: pull instead of push when the remote is newer.

If a remote body's root markers carry an ``updated_at`` strictly later than
the local task's, the remote copy was written by a more recent sync (for
example from another machine). The engine then proposes a patch for the
local store instead of overwriting the remote.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from dex.core.sync.body import parse_document
from dex.core.sync.models import ParsedTaskMetadata, SyncResult
from dex.core.tasks.models import Task, TaskMetadata, as_utc
from dex.core.tasks.tree import TaskTree

logger = logging.getLogger(__name__)


@dataclass
class StalePull:
    """Local patches proposed for a root task and its stale descendants."""

    local_updates: dict[str, Any]
    subtask_results: list[SyncResult] = field(default_factory=list)


def is_remote_newer(remote: datetime | None, local: datetime | None) -> bool:
    """Strictly-later comparison; unknown timestamps never count as newer."""
    if remote is None or local is None:
        return False
    return as_utc(remote) > as_utc(local)


def build_local_patch(remote: ParsedTaskMetadata, local: Task) -> dict[str, Any] | None:
    """
    Patch that brings *local* up to date with *remote*.

    Returns:
        None when the remote copy is not newer. Otherwise a patch that always
        carries ``updated_at``, adds the completion fields when the remote is
        completed and the local task is not, and adds the commit reference
        when only the remote has one.
    """
    if not is_remote_newer(remote.updated_at, local.updated_at):
        return None

    patch: dict[str, Any] = {"updated_at": remote.updated_at}

    if remote.completed and not local.completed:
        patch["completed"] = True
        patch["completed_at"] = remote.completed_at
        patch["result"] = remote.result
        patch["started_at"] = remote.started_at

    # Only the commit block; other integration blocks stay untouched
    if remote.commit is not None and not local.commit_sha:
        patch["metadata"] = TaskMetadata(commit=remote.commit)

    return patch


def reconcile_descendants(body: str, tree: TaskTree) -> list[SyncResult]:
    """One pulled result per embedded descendant newer than its local copy."""
    results: list[SyncResult] = []
    for item in parse_document(body).descendants:
        remote = item.task
        local = tree.get(remote.id) if remote.id else None
        if local is None:
            continue
        patch = build_local_patch(remote, local)
        if patch is None:
            continue
        logger.debug("Subtask %s is stale locally, pulling from remote", local.id)
        results.append(
            SyncResult(
                task_id=local.id,
                skipped=True,
                local_updates=patch,
                pulled_from_remote=True,
            )
        )
    return results


def check_staleness(body: str | None, task: Task, tree: TaskTree) -> StalePull | None:
    """
    Compare a remote body against the local root task.

    Args:
        body: Remote body (may be empty)
        task: Local task that owns the remote item
        tree: Snapshot used to find local copies of embedded descendants

    Returns:
        A StalePull when the remote root is strictly newer, else None
    """
    if not body:
        return None
    document = parse_document(body)
    if document.root is None:
        return None

    patch = build_local_patch(document.root, task)
    if patch is None:
        return None

    logger.debug("Task %s is stale locally, pulling from remote", task.id)
    return StalePull(local_updates=patch, subtask_results=reconcile_descendants(body, tree))
