"""
Change detection between an expected rendering and a remote item.
"""

from __future__ import annotations

from dex.core.sync.models import RemoteItem


def needs_update(
    actual: RemoteItem,
    expected_title: str,
    expected_body: str,
    expected_labels: list[str],
    expected_open: bool,
) -> bool:
    """
    Whether the remote item differs from what a push would write.

    Compares the title exactly, the body after trimming, the open/closed
    state, and the sync-prefixed labels as an unordered set. Labels without
    the sync prefix are not compared.

    Args:
        actual: Remote item from the cache or a direct fetch
        expected_title: Title a push would set
        expected_body: Body a push would set
        expected_labels: Sync-prefixed labels a push would set
        expected_open: Whether a push would leave the item open

    Returns:
        True if an update call is needed
    """
    if actual.title != expected_title:
        return True
    if actual.body.strip() != expected_body.strip():
        return True
    if actual.is_open != expected_open:
        return True
    return sorted(set(actual.labels)) != sorted(set(expected_labels))
