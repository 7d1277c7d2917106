"""
Parent/child tree over a task snapshot.

Provides a pure query object built from a flat task list. Immutable after
construction. Used by the sync engine to walk a root task's descendants
and by the completion gate to decide whether a parent can close.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import Task


@dataclass(frozen=True)
class HierarchicalTask:
    """A task positioned inside the tree of the root being synced.

    ``depth`` counts ancestor edges from that root (its children are at
    depth 1). ``parent_id`` is the local ID of the immediate parent, or
    ``None`` for the root itself.
    """

    task: Task
    depth: int
    parent_id: str | None


class TaskTree:
    """Immutable parent/child index built from a snapshot of tasks.

    Tasks are kept in an arena keyed by ID and an adjacency map from parent
    ID to children (in snapshot order), so every walk is linear in the size
    of the subtree.

    Example::

        tree = TaskTree(store.tasks)
        for item in tree.descendants("abc123"):
            print("  " * item.depth, item.task.name)
    """

    __slots__ = ("_tasks", "_children")

    def __init__(self, tasks: list[Task]) -> None:
        self._tasks: dict[str, Task] = {t.id: t for t in tasks}
        self._children: dict[str, list[str]] = {}

        for task in tasks:
            if task.parent_id:
                self._children.setdefault(task.parent_id, []).append(task.id)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def get(self, task_id: str) -> Task | None:
        """Look up a task by ID."""
        return self._tasks.get(task_id)

    def children(self, task_id: str) -> list[Task]:
        """Immediate children of *task_id*."""
        return [self._tasks[cid] for cid in self._children.get(task_id, [])]

    def descendants(self, task_id: str) -> list[HierarchicalTask]:
        """All descendants of *task_id* in pre-order.

        Iterative DFS with an explicit stack; a visited set guards against
        parent cycles in corrupted data.
        """
        result: list[HierarchicalTask] = []
        visited: set[str] = {task_id}
        stack: list[tuple[str, int, str]] = [
            (cid, 1, task_id) for cid in reversed(self._children.get(task_id, []))
        ]

        while stack:
            current, depth, parent = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            result.append(HierarchicalTask(self._tasks[current], depth, parent))
            for cid in reversed(self._children.get(current, [])):
                stack.append((cid, depth + 1, current))

        return result

    def has_descendants(self, task_id: str) -> bool:
        """Whether *task_id* has at least one child."""
        return bool(self._children.get(task_id))

    def root_of(self, task: Task) -> Task | None:
        """Walk up the parent chain to the top-level task.

        Returns ``None`` when the chain reaches a missing parent (the task
        is orphaned) or loops back on itself.
        """
        current = task
        seen: set[str] = {task.id}
        while current.parent_id:
            parent = self._tasks.get(current.parent_id)
            if parent is None or parent.id in seen:
                return None
            seen.add(parent.id)
            current = parent
        return current
