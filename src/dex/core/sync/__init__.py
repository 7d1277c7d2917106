"""
One-way sync engine mirroring local tasks onto remote trackers.

The engine embeds a whole task tree in a remote item's body, detects
whether the remote actually needs to change before calling the API,
never reopens a closed item, and pulls instead of pushing when the
remote copy is newer.

Example:
    >>> from dex.core.sync import SyncRegistry
    >>> registry = SyncRegistry()
    >>> registry.register(github_service)
    >>> for service in registry:
    ...     results = await service.sync_all(store.snapshot())
"""

from dex.core.sync.body import (
    extract_task_id,
    parse_document,
    parse_root_metadata,
    render_document,
    render_metadata_block,
    render_task_block,
)
from dex.core.sync.cache import RemoteCache
from dex.core.sync.changes import needs_update
from dex.core.sync.completion import CommitVerifier, CompletionGate, GitCommitVerifier
from dex.core.sync.markers import decode_value, encode_value
from dex.core.sync.models import (
    ParsedDescendant,
    ParsedDocument,
    ParsedTaskMetadata,
    ProgressCallback,
    RemoteItem,
    SyncPhase,
    SyncProgress,
    SyncResult,
)
from dex.core.sync.orchestrator import RemoteSyncService
from dex.core.sync.registry import SyncRegistry, SyncService
from dex.core.sync.staleness import StalePull, build_local_patch, check_staleness

__all__ = [
    # Codecs
    "encode_value",
    "decode_value",
    "render_metadata_block",
    "render_task_block",
    "render_document",
    "parse_document",
    "parse_root_metadata",
    "extract_task_id",
    # Models
    "ParsedDescendant",
    "ParsedDocument",
    "ParsedTaskMetadata",
    "ProgressCallback",
    "RemoteItem",
    "SyncPhase",
    "SyncProgress",
    "SyncResult",
    # Engine
    "RemoteCache",
    "needs_update",
    "CommitVerifier",
    "CompletionGate",
    "GitCommitVerifier",
    "StalePull",
    "build_local_patch",
    "check_staleness",
    "RemoteSyncService",
    "SyncRegistry",
    "SyncService",
]
