"""
Async Shortcut REST client for dex.

Thin wrapper over the Shortcut API v3 using ``httpx.AsyncClient`` with
``Shortcut-Token`` authentication.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

import httpx

from dex.core.shortcut.models import (
    ShortcutGroup,
    ShortcutLabel,
    ShortcutStory,
    StoryLink,
    Workflow,
)

logger = logging.getLogger(__name__)


class ShortcutClientError(Exception):
    """Error from Shortcut API operations."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ShortcutClient:
    """
    Client for the Shortcut stories API.

    Example:
        >>> async with ShortcutClient(token) as client:
        ...     stories = await client.search_stories('label:"dex"')
    """

    API_URL = "https://api.app.shortcut.com/api/v3"
    PAGE_SIZE = 25

    def __init__(
        self,
        token: str,
        base_url: str = API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json", "Shortcut-Token": token},
        )

    async def __aenter__(self) -> ShortcutClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        """
        Send a request and return the decoded JSON body.

        Raises:
            ShortcutClientError: On transport errors or non-2xx responses
        """
        logger.debug("Shortcut %s %s", method, url)
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ShortcutClientError(f"Shortcut request failed: {e}") from e

        if response.status_code >= 400:
            raise ShortcutClientError(
                f"Shortcut API error {response.status_code} on {method} {url}: "
                f"{response.text[:200]}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        return response.json()

    async def search_stories(self, query: str) -> list[ShortcutStory]:
        """
        Search stories, following the ``next`` cursor through every page.

        Args:
            query: Shortcut search syntax, e.g. ``label:"dex"``
        """
        stories: list[ShortcutStory] = []
        url = "/search/stories"
        params: dict[str, Any] | None = {"query": query, "page_size": self.PAGE_SIZE}

        while url:
            data = await self._request("GET", url, params=params) or {}
            stories.extend(ShortcutStory.from_api(item) for item in data.get("data") or [])
            next_page = data.get("next")
            if not next_page:
                break
            # The cursor is a host-relative path with its own query string
            url = str(httpx.URL(self.base_url).join(next_page))
            params = None

        return stories

    async def get_story(self, story_id: int) -> ShortcutStory:
        return ShortcutStory.from_api(await self._request("GET", f"/stories/{story_id}"))

    async def create_story(self, payload: dict[str, Any]) -> ShortcutStory:
        """
        Create a story.

        Args:
            payload: CreateStoryParams; include ``parent_story_id`` for a sub-task
        """
        return ShortcutStory.from_api(await self._request("POST", "/stories", json=payload))

    async def update_story(self, story_id: int, payload: dict[str, Any]) -> ShortcutStory:
        data = await self._request("PUT", f"/stories/{story_id}", json=payload)
        return ShortcutStory.from_api(data)

    async def get_workflow(self, workflow_id: int) -> Workflow:
        return Workflow.model_validate(await self._request("GET", f"/workflows/{workflow_id}"))

    async def get_group(self, group_id: str) -> ShortcutGroup:
        return ShortcutGroup.model_validate(await self._request("GET", f"/groups/{group_id}"))

    async def list_groups(self) -> list[ShortcutGroup]:
        data = await self._request("GET", "/groups") or []
        return [ShortcutGroup.model_validate(item) for item in data]

    async def find_group(self, name: str) -> ShortcutGroup | None:
        """Find a group by mention name or display name."""
        for group in await self.list_groups():
            if name in (group.mention_name, group.name):
                return group
        return None

    async def list_labels(self) -> list[ShortcutLabel]:
        data = await self._request("GET", "/labels") or []
        return [ShortcutLabel.model_validate(item) for item in data]

    async def create_label(self, name: str) -> ShortcutLabel:
        return ShortcutLabel.model_validate(
            await self._request("POST", "/labels", json={"name": name})
        )

    async def ensure_label(self, name: str) -> ShortcutLabel:
        """Return the label named *name*, creating it if missing."""
        for label in await self.list_labels():
            if label.name == name:
                return label
        logger.info("Creating Shortcut label %r", name)
        return await self.create_label(name)

    async def create_story_link(
        self, subject_id: int, object_id: int, verb: str = "blocks"
    ) -> StoryLink:
        """Create ``subject verb object``, e.g. story 1 blocks story 2."""
        data = await self._request(
            "POST",
            "/story-links",
            json={"subject_id": subject_id, "object_id": object_id, "verb": verb},
        )
        return StoryLink.model_validate(data)

    async def get_current_member(self) -> dict[str, Any]:
        """Token owner's member info, including ``workspace2.url_slug``."""
        return await self._request("GET", "/member") or {}

    async def get_workspace_slug(self) -> str:
        """
        Workspace slug of the token owner.

        Raises:
            ShortcutClientError: If the member info carries no workspace
        """
        member = await self.get_current_member()
        slug = (member.get("workspace2") or {}).get("url_slug")
        if not slug:
            raise ShortcutClientError("Shortcut member info has no workspace slug")
        return str(slug)
