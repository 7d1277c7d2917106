"""
Registry of configured remote sync services.

Callers dispatch only through the ``SyncService`` protocol, never by
checking which concrete integration they hold.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Protocol, runtime_checkable

from dex.core.sync.models import ProgressCallback, SyncResult
from dex.core.tasks.models import Task, TaskStore


@runtime_checkable
class SyncService(Protocol):
    """Capability set every remote integration provides."""

    id: str
    display_name: str

    async def sync_task(
        self, task: Task, store: TaskStore, on_progress: ProgressCallback | None = None
    ) -> SyncResult | None: ...

    async def sync_all(
        self,
        store: TaskStore,
        on_progress: ProgressCallback | None = None,
        skip_unchanged: bool = True,
    ) -> list[SyncResult]: ...

    def get_remote_id(self, task: Task) -> int | None: ...

    def get_remote_url(self, task: Task) -> str | None: ...

    async def aclose(self) -> None: ...


class SyncRegistry:
    """
    Sync services keyed by integration ID.

    Example:
        >>> registry = SyncRegistry()
        >>> registry.register(github_service)
        >>> [s.display_name for s in registry]
        ['GitHub']
    """

    def __init__(self) -> None:
        self._services: dict[str, SyncService] = {}

    def register(self, service: SyncService) -> None:
        """Register *service*, replacing any service with the same ID."""
        self._services[service.id] = service

    def get(self, integration_id: str) -> SyncService | None:
        return self._services.get(integration_id)

    def get_all(self) -> list[SyncService]:
        """Registered services in registration order."""
        return list(self._services.values())

    def has_services(self) -> bool:
        return bool(self._services)

    def __iter__(self) -> Iterator[SyncService]:
        return iter(self.get_all())

    def __len__(self) -> int:
        return len(self._services)
