"""
Per-run cache of remote items carrying the sync label.

One bulk fetch at the start of a batch sync, indexed by the task ID
embedded in each item's body. The cache is an optimization only: when it
is empty or a lookup misses, the orchestrator falls back to the API.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable

from dex.core.sync.body import extract_task_id
from dex.core.sync.models import RemoteItem

logger = logging.getLogger(__name__)

RemoteItemSource = Callable[[], Awaitable[list[RemoteItem]]]


class RemoteCache:
    """
    Remote items indexed by local task ID.

    Example:
        >>> cache = RemoteCache()
        >>> await cache.warm(service.list_remote_items)
        >>> cache.get("abc123")
        RemoteItem(id=42, ...)
    """

    def __init__(self, items: Iterable[RemoteItem] = ()) -> None:
        self._items: dict[str, RemoteItem] = {}
        self.failed = False
        self.load(items)

    def load(self, items: Iterable[RemoteItem]) -> None:
        """
        Index *items* by the task ID found in their bodies.

        Pull requests and items without an ID marker are skipped. When two
        items carry the same ID, the first one wins.
        """
        for item in items:
            if item.is_pull_request:
                continue
            task_id = extract_task_id(item.body)
            if task_id and task_id not in self._items:
                self._items[task_id] = item

    async def warm(self, source: RemoteItemSource) -> RemoteCache:
        """
        Fill the cache from *source*, failing soft.

        Any exception from the fetch leaves the cache empty and is logged;
        the sync continues on the per-task fallback path.
        """
        try:
            items = await source()
        except Exception as e:
            logger.warning("Failed to fetch remote items for cache, continuing without: %s", e)
            self.failed = True
            return self
        self.load(items)
        logger.debug("Cached %d remote items", len(self._items))
        return self

    def get(self, task_id: str) -> RemoteItem | None:
        """Cached remote item for *task_id*, if any."""
        return self._items.get(task_id)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._items

    def __len__(self) -> int:
        return len(self._items)
