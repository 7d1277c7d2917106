"""
Tests for the Shortcut REST client.
"""

import json

import httpx
import pytest

from dex.core.shortcut.client import ShortcutClient, ShortcutClientError
from dex.core.shortcut.models import ShortcutStory


def make_client(handler) -> ShortcutClient:
    return ShortcutClient("sc_test", transport=httpx.MockTransport(handler))


def story_json(story_id: int, **fields) -> dict:
    data = {"id": story_id, "name": f"Story {story_id}", "description": "", "completed": False}
    data.update(fields)
    return data


class TestShortcutStory:
    """Tests for ShortcutStory parsing."""

    def test_from_api_tolerates_nulls(self):
        """Test null fields fall back to defaults."""
        story = ShortcutStory.from_api(story_json(1, description=None, labels=None, extra="x"))
        assert story.description == ""
        assert story.labels == []

    def test_blocker_ids(self):
        """Test only blocks links pointing at this story count."""
        story = ShortcutStory.from_api(
            story_json(
                2,
                story_links=[
                    {"subject_id": 1, "object_id": 2, "verb": "blocks"},
                    {"subject_id": 2, "object_id": 3, "verb": "blocks"},
                    {"subject_id": 4, "object_id": 2, "verb": "relates to"},
                ],
            )
        )
        assert story.blocker_ids() == {1}

    def test_to_remote_item(self):
        """Test a completed story maps to a closed item."""
        item = ShortcutStory.from_api(
            story_json(3, completed=True, labels=[{"name": "dex"}, {"name": "infra"}])
        ).to_remote_item("dex")
        assert item.is_open is False
        assert item.labels == ["dex"]
        assert item.all_labels == ["dex", "infra"]


class TestShortcutClient:
    """Tests for ShortcutClient requests."""

    @pytest.mark.asyncio
    async def test_search_follows_next_cursor(self):
        """Test search pages through the next cursor."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            if request.url.params.get("next") == "abc":
                return httpx.Response(200, json={"data": [story_json(2)], "next": None})
            return httpx.Response(
                200,
                json={
                    "data": [story_json(1)],
                    "next": "/api/v3/search/stories?query=label&next=abc",
                },
            )

        async with make_client(handler) as client:
            stories = await client.search_stories('label:"dex"')

        assert [story.id for story in stories] == [1, 2]
        assert seen[0].path == "/api/v3/search/stories"
        assert seen[0].params["query"] == 'label:"dex"'
        assert seen[0].params["page_size"] == "25"
        assert str(seen[1]) == "https://api.app.shortcut.com/api/v3/search/stories?query=label&next=abc"

    @pytest.mark.asyncio
    async def test_token_header(self):
        """Test requests authenticate with the Shortcut-Token header."""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured.update(request.headers)
            return httpx.Response(200, json=story_json(1))

        async with make_client(handler) as client:
            await client.get_story(1)

        assert captured["shortcut-token"] == "sc_test"

    @pytest.mark.asyncio
    async def test_update_story_uses_put(self):
        """Test updates are sent as PUT with the payload."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(200, json=story_json(7, name="New"))

        async with make_client(handler) as client:
            story = await client.update_story(7, {"name": "New"})

        assert story.name == "New"
        assert requests == [("PUT", "/api/v3/stories/7", {"name": "New"})]

    @pytest.mark.asyncio
    async def test_ensure_label_creates_missing(self):
        """Test a missing label is created, an existing one reused."""
        posted = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                posted.append(json.loads(request.content))
                return httpx.Response(201, json={"id": 9, "name": "dex"})
            return httpx.Response(200, json=[{"id": 1, "name": "backend"}])

        async with make_client(handler) as client:
            label = await client.ensure_label("dex")
            existing = await client.ensure_label("backend")

        assert label.id == 9
        assert existing.id == 1
        assert posted == [{"name": "dex"}]

    @pytest.mark.asyncio
    async def test_find_group(self):
        """Test groups match by mention name or display name."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json=[{"id": "g-1", "name": "Platform Team", "mention_name": "platform"}],
            )

        async with make_client(handler) as client:
            assert (await client.find_group("platform")).id == "g-1"
            assert (await client.find_group("Platform Team")).id == "g-1"
            assert await client.find_group("mobile") is None

    @pytest.mark.asyncio
    async def test_create_story_link(self):
        """Test links are posted as subject verb object."""
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json={"id": 3, "subject_id": 1, "object_id": 2, "verb": "blocks"})

        async with make_client(handler) as client:
            link = await client.create_story_link(1, 2)

        assert bodies == [{"subject_id": 1, "object_id": 2, "verb": "blocks"}]
        assert link.verb == "blocks"

    @pytest.mark.asyncio
    async def test_workspace_slug(self):
        """Test the workspace slug comes from the member info."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v3/member"
            return httpx.Response(200, json={"workspace2": {"url_slug": "acme"}})

        async with make_client(handler) as client:
            assert await client.get_workspace_slug() == "acme"

    @pytest.mark.asyncio
    async def test_workspace_slug_missing(self):
        """Test member info without a workspace is an error."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": "m-1"})

        async with make_client(handler) as client:
            with pytest.raises(ShortcutClientError, match="no workspace slug"):
                await client.get_workspace_slug()

    @pytest.mark.asyncio
    async def test_error_status(self):
        """Test API errors keep the status code and response text."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="Unauthorized token")

        async with make_client(handler) as client:
            with pytest.raises(ShortcutClientError) as exc_info:
                await client.get_story(1)

        assert exc_info.value.status_code == 401
        assert "Unauthorized token" in str(exc_info.value)
