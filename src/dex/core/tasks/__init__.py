"""
Task models, tree queries and the local JSONL store.
"""

from .models import (
    CommitMetadata,
    GitHubMetadata,
    ShortcutMetadata,
    Task,
    TaskMetadata,
    TaskStore,
)
from .store import JsonlTaskStore, TaskNotFoundError, TasksFileCorruptedError
from .tree import HierarchicalTask, TaskTree

__all__ = [
    # Models
    "CommitMetadata",
    "GitHubMetadata",
    "ShortcutMetadata",
    "Task",
    "TaskMetadata",
    "TaskStore",
    # Tree
    "HierarchicalTask",
    "TaskTree",
    # Store
    "JsonlTaskStore",
    "TaskNotFoundError",
    "TasksFileCorruptedError",
]
