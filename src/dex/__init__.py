"""
dex - local task tracker with remote issue sync

Keeps tasks in a local JSONL store and mirrors them one-way onto GitHub
Issues or Shortcut stories.
"""

__version__ = "0.4.0"

# Re-export core models for convenience
from dex.core.config.models import DexConfig
from dex.core.tasks.models import Task, TaskStore

__all__ = ["DexConfig", "Task", "TaskStore", "__version__"]
