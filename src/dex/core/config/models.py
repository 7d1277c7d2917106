"""
Configuration data models for dex.

These models define the structure of .dex.json and
~/.config/dex/config.json files, with validation via Pydantic.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GitHubSyncConfig(BaseModel):
    """
    Mirroring of top-level tasks onto GitHub Issues.

    The repository is inferred from the ``origin`` remote unless set.
    """
    enabled: bool = Field(
        default=False,
        description="Sync automatically after local changes"
    )
    token_env: str = Field(
        default="GITHUB_TOKEN",
        description="Environment variable holding the API token"
    )
    label_prefix: str = Field(
        default="dex",
        min_length=1,
        description="Prefix of every label dex owns on synced issues"
    )
    repo: Optional[str] = Field(
        default=None,
        description="Repository as owner/repo (defaults to the origin remote)"
    )


class ShortcutSyncConfig(BaseModel):
    """
    Mirroring of tasks onto Shortcut stories.

    Subtasks become linked sub-stories of their parent's story.
    """
    enabled: bool = Field(
        default=False,
        description="Sync automatically after local changes"
    )
    token_env: str = Field(
        default="SHORTCUT_API_TOKEN",
        description="Environment variable holding the API token"
    )
    workspace: Optional[str] = Field(
        default=None,
        description="Workspace slug (fetched from the API when unset)"
    )
    team: Optional[str] = Field(
        default=None,
        description="Team UUID or mention name that owns new stories"
    )
    workflow: Optional[int] = Field(
        default=None,
        ge=1,
        description="Workflow ID (defaults to the team's first workflow)"
    )
    label: str = Field(
        default="dex",
        min_length=1,
        description="Label applied to every synced story"
    )


class SyncConfig(BaseModel):
    """Remote sync integrations."""
    github: GitHubSyncConfig = Field(default_factory=GitHubSyncConfig)
    shortcut: ShortcutSyncConfig = Field(default_factory=ShortcutSyncConfig)


class DexConfig(BaseModel):
    """
    Top-level dex configuration.

    Loaded from defaults, user config, project config, and env vars.

    Example:
        >>> config = DexConfig(sync={"github": {"enabled": True}})
        >>> config.sync.github.label_prefix
        'dex'
    """
    storage_path: str = Field(
        default=".dex",
        min_length=1,
        description="Directory holding tasks.jsonl, relative to the project"
    )
    sync: SyncConfig = Field(
        default_factory=SyncConfig,
        description="Remote sync integrations"
    )

    model_config = ConfigDict(
        extra="allow",  # Allow extra fields for forward compatibility
        validate_assignment=True,
    )

    @field_validator("sync", mode="before")
    @classmethod
    def validate_sync(cls, v: Union[None, dict, SyncConfig]) -> Union[dict, SyncConfig]:
        """Treat an explicit null sync section as empty."""
        if v is None:
            return {}
        return v
