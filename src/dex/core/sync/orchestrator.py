"""
Shared sync state machine for remote integrations.

Every remote service runs the same per-task algorithm:

1. locate: metadata pointer, then cache lookup, then ID search
2. create when nothing was found
3. staleness check: pull instead of push when the remote is newer
4. fast path: skip tasks already recorded closed by this service
5. change detection against the cached or freshly fetched item
6. skip when unchanged, update otherwise

Subclasses supply the remote-specific hooks (search, fetch, create,
update, metadata block). Closing is part of create/update and never
reopens an item that is already closed remotely.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from dex.core.sync.body import render_document
from dex.core.sync.cache import RemoteCache
from dex.core.sync.changes import needs_update
from dex.core.sync.completion import CompletionGate
from dex.core.sync.models import (
    ProgressCallback,
    RemoteItem,
    SyncPhase,
    SyncProgress,
    SyncResult,
)
from dex.core.sync.staleness import StalePull, check_staleness
from dex.core.tasks.models import Task, TaskStore
from dex.core.tasks.tree import HierarchicalTask, TaskTree

logger = logging.getLogger(__name__)

STATE_OPEN = "open"
STATE_CLOSED = "closed"


@dataclass
class _RunContext:
    """State shared by every task in one sync invocation."""

    tree: TaskTree
    cache: RemoteCache | None = None
    skip_unchanged: bool = True
    on_progress: ProgressCallback | None = None
    current: int = 1
    total: int = 1

    @property
    def cache_is_complete(self) -> bool:
        """A warmed cache already holds every labeled item, so a miss is final."""
        return self.cache is not None and not self.cache.failed

    def report(self, task: Task, phase: SyncPhase) -> None:
        if self.on_progress is not None:
            self.on_progress(
                SyncProgress(current=self.current, total=self.total, task=task, phase=phase)
            )


class RemoteSyncService(ABC):
    """
    One-way mirror of local tasks onto a remote tracker.

    The local store stays authoritative: remote items are created and
    updated, never deleted, and remote changes are only ever proposed back
    as ``SyncResult.local_updates`` for the caller to apply.
    """

    id: str = ""
    display_name: str = ""

    def __init__(self, gate: CompletionGate, label_prefix: str = "dex") -> None:
        self.gate = gate
        self.label_prefix = label_prefix

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def get_remote_id(self, task: Task) -> int | None:
        """Remote item ID recorded on the task, if synced before."""

    @abstractmethod
    def get_remote_url(self, task: Task) -> str | None:
        """Web URL of the task's remote item, if synced before."""

    @abstractmethod
    def recorded_closed(self, task: Task) -> bool:
        """Whether this service last recorded the task's item as closed."""

    @abstractmethod
    async def list_remote_items(self) -> list[RemoteItem]:
        """Every remote item carrying the sync label, open and closed."""

    @abstractmethod
    async def find_remote_id(self, task_id: str) -> int | None:
        """Search the remote for an item embedding *task_id*."""

    @abstractmethod
    async def fetch_remote_item(self, remote_id: int) -> RemoteItem:
        """Fetch one remote item by ID."""

    @abstractmethod
    async def create_remote(
        self,
        task: Task,
        title: str,
        body: str,
        labels: list[str],
        should_close: bool,
        parent_remote_id: int | None,
    ) -> tuple[int, str]:
        """
        Create the remote item, already closed when *should_close*.

        Returns:
            (remote ID, web URL)
        """

    @abstractmethod
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
        """
        Overwrite the remote item.

        *state* is ``"closed"``, ``"open"`` or None; None means the state
        must be left out of the request entirely.
        """

    @abstractmethod
    def build_metadata(self, task: Task, remote_id: int, url: str | None, closed: bool) -> Any:
        """The metadata block this service stores on the task."""

    def body_descendants(self, task: Task, tree: TaskTree) -> list[HierarchicalTask]:
        """Descendants embedded in the task's remote body. None by default."""
        return []

    def materializes_descendants(self) -> bool:
        """Whether children are synced as separate linked remote items."""
        return False

    async def prepare_batch(self) -> None:
        """Run once before a batch sync."""

    async def after_push(self, task: Task, remote_id: int, tree: TaskTree) -> None:
        """Run after every create or update of *task*'s remote item."""

    async def aclose(self) -> None:
        """Release the remote client."""

    async def __aenter__(self) -> RemoteSyncService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def build_labels(self, task: Task, should_close: bool) -> list[str]:
        """
        Sync-owned labels for a task.

        Example:
            >>> service.build_labels(task, should_close=False)
            ['dex', 'dex:priority-1', 'dex:pending']
        """
        if should_close:
            status = "completed"
        elif task.is_in_progress:
            status = "in-progress"
        else:
            status = "pending"
        prefix = self.label_prefix
        return [prefix, f"{prefix}:priority-{task.priority}", f"{prefix}:{status}"]

    def render_body(self, task: Task, tree: TaskTree) -> str:
        return render_document(task, self.body_descendants(task, tree))

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def _locate(self, task: Task, ctx: _RunContext) -> tuple[int | None, RemoteItem | None]:
        remote_id = self.get_remote_id(task)
        cached = ctx.cache.get(task.id) if ctx.cache is not None else None

        if remote_id is None and cached is not None:
            remote_id = cached.id
        if remote_id is None and not ctx.cache_is_complete:
            remote_id = await self.find_remote_id(task.id)

        if cached is not None and cached.id != remote_id:
            cached = None
        logger.debug("Located task %s at %s (cached: %s)", task.id, remote_id, cached is not None)
        return remote_id, cached

    def _pulled(
        self, task: Task, remote_id: int, item: RemoteItem, pull: StalePull
    ) -> SyncResult:
        return SyncResult(
            task_id=task.id,
            metadata=self.build_metadata(
                task, remote_id, item.url or self.get_remote_url(task), not item.is_open
            ),
            skipped=True,
            local_updates=pull.local_updates,
            pulled_from_remote=True,
            subtask_results=pull.subtask_results,
        )

    async def _sync_node(
        self,
        task: Task,
        ctx: _RunContext,
        parent_remote_id: int | None = None,
    ) -> SyncResult:
        tree = ctx.tree
        title = task.name
        await self.gate.verify_commits([task, *(item.task for item in tree.descendants(task.id))])
        body = self.render_body(task, tree)
        should_close = self.gate.should_close(task, tree)
        reason = self.gate.explain_not_closing(task, tree)
        labels = self.build_labels(task, should_close)

        remote_id, item = await self._locate(task, ctx)

        if remote_id is None:
            ctx.report(task, SyncPhase.CREATING)
            remote_id, url = await self.create_remote(
                task, title, body, labels, should_close, parent_remote_id
            )
            logger.debug("Created remote item %s for task %s", remote_id, task.id)
            await self.after_push(task, remote_id, tree)
            return SyncResult(
                task_id=task.id,
                metadata=self.build_metadata(task, remote_id, url, should_close),
                created=True,
                not_closing_reason=reason,
                subtask_results=await self._sync_children(task, remote_id, ctx),
            )

        if item is not None:
            pull = check_staleness(item.body, task, tree)
            if pull is not None:
                ctx.report(task, SyncPhase.SKIPPED)
                return self._pulled(task, remote_id, item, pull)

        if ctx.skip_unchanged and should_close and self.recorded_closed(task):
            logger.debug("Fast path: task %s already recorded closed", task.id)
            ctx.report(task, SyncPhase.SKIPPED)
            return SyncResult(
                task_id=task.id,
                metadata=self.build_metadata(task, remote_id, self.get_remote_url(task), True),
                skipped=True,
            )

        if item is None:
            item = await self.fetch_remote_item(remote_id)
            pull = check_staleness(item.body, task, tree)
            if pull is not None:
                ctx.report(task, SyncPhase.SKIPPED)
                return self._pulled(task, remote_id, item, pull)

        url = item.url or self.get_remote_url(task)

        if ctx.skip_unchanged and not needs_update(item, title, body, labels, not should_close):
            logger.debug("Task %s unchanged on remote", task.id)
            ctx.report(task, SyncPhase.SKIPPED)
            return SyncResult(
                task_id=task.id,
                metadata=self.build_metadata(task, remote_id, url, should_close),
                skipped=True,
                not_closing_reason=reason,
                subtask_results=await self._sync_children(task, remote_id, ctx),
            )

        if should_close:
            state: str | None = STATE_CLOSED
        elif item.is_open:
            state = STATE_OPEN
        else:
            # Closed remotely and not closable locally: leave it closed
            state = None

        ctx.report(task, SyncPhase.UPDATING)
        await self.update_remote(
            task,
            remote_id,
            title,
            body,
            item.foreign_labels(self.label_prefix) + labels,
            state,
            item,
        )
        logger.debug("Updated remote item %s for task %s (state: %s)", remote_id, task.id, state)
        await self.after_push(task, remote_id, tree)

        closed = should_close or not item.is_open
        return SyncResult(
            task_id=task.id,
            metadata=self.build_metadata(task, remote_id, url, closed),
            not_closing_reason=reason,
            subtask_results=await self._sync_children(task, remote_id, ctx),
        )

    async def _sync_children(
        self, task: Task, remote_id: int, ctx: _RunContext
    ) -> list[SyncResult]:
        if not self.materializes_descendants():
            return []
        results = []
        for child in ctx.tree.children(task.id):
            # Children report no progress of their own
            child_ctx = _RunContext(
                tree=ctx.tree, cache=ctx.cache, skip_unchanged=ctx.skip_unchanged
            )
            results.append(await self._sync_node(child, child_ctx, parent_remote_id=remote_id))
        return results

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def sync_task(
        self,
        task: Task,
        store: TaskStore,
        on_progress: ProgressCallback | None = None,
    ) -> SyncResult | None:
        """
        Sync one task. A subtask syncs the remote item of its root.

        Returns:
            The root's result, or None if the task is orphaned
        """
        tree = TaskTree(store.tasks)
        root = tree.root_of(task)
        if root is None:
            logger.debug("Task %s is orphaned, nothing to sync", task.id)
            return None

        ctx = _RunContext(tree=tree, on_progress=on_progress)
        ctx.report(root, SyncPhase.CHECKING)
        return await self._sync_node(root, ctx)

    async def sync_all(
        self,
        store: TaskStore,
        on_progress: ProgressCallback | None = None,
        skip_unchanged: bool = True,
    ) -> list[SyncResult]:
        """
        Sync every top-level task, sequentially, in store order.

        The remote cache is warmed once before the loop. The first remote
        error aborts the batch; results gathered so far are discarded with it.

        Args:
            store: Snapshot of the local store
            on_progress: Called with a SyncProgress around every remote call
            skip_unchanged: When False, push every task even if unchanged

        Returns:
            One result per top-level task
        """
        await self.prepare_batch()
        cache = await RemoteCache().warm(self.list_remote_items)

        tree = TaskTree(store.tasks)
        roots = store.roots()
        results: list[SyncResult] = []
        for index, root in enumerate(roots, start=1):
            ctx = _RunContext(
                tree=tree,
                cache=cache,
                skip_unchanged=skip_unchanged,
                on_progress=on_progress,
                current=index,
                total=len(roots),
            )
            ctx.report(root, SyncPhase.CHECKING)
            results.append(await self._sync_node(root, ctx))
        return results
