"""
Shortcut integration for dex.

Mirrors tasks onto Shortcut stories, with subtasks as linked sub-stories.
"""

from dex.core.shortcut.client import ShortcutClient, ShortcutClientError
from dex.core.shortcut.factory import (
    create_shortcut_sync_service,
    create_shortcut_sync_service_or_raise,
    get_shortcut_token,
)
from dex.core.shortcut.models import (
    ShortcutGroup,
    ShortcutLabel,
    ShortcutStory,
    StoryLink,
    Workflow,
    WorkflowState,
)
from dex.core.shortcut.sync import ShortcutSyncService, build_story_url, get_story_id

__all__ = [
    "ShortcutClient",
    "ShortcutClientError",
    "ShortcutGroup",
    "ShortcutLabel",
    "ShortcutStory",
    "ShortcutSyncService",
    "StoryLink",
    "Workflow",
    "WorkflowState",
    "build_story_url",
    "create_shortcut_sync_service",
    "create_shortcut_sync_service_or_raise",
    "get_shortcut_token",
    "get_story_id",
]
