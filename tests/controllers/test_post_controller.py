"""Tests for marginalia.controllers.post."""

import pytest

from marginalia.controllers.post import PostController, summarize_text
from marginalia.core.repositories import InMemoryReadingListRepository


@pytest.fixture
def reading_list():
    return InMemoryReadingListRepository()


@pytest.fixture
def controller(bus, reading_list):
    return PostController(bus, reading_list)


class TestBookmarks:
    @pytest.mark.asyncio
    async def test_add_bookmark(self, controller, recorder):
        await controller.execute_action("ADD_TO_BOOKMARK", {"post_id": "p1"})
        assert recorder.last("post.bookmark_added").payload == {"post_id": "p1", "bookmarks": ["p1"]}

    @pytest.mark.asyncio
    async def test_add_existing_bookmark(self, controller, recorder):
        await controller.execute_action("ADD_TO_BOOKMARK", {"post_id": "p1"})
        await controller.execute_action("ADD_TO_BOOKMARK", {"post_id": "p1"})
        assert recorder.types == ["post.bookmark_added", "post.bookmark_exists"]

    @pytest.mark.asyncio
    async def test_remove_bookmark(self, controller, recorder):
        await controller.execute_action("ADD_TO_BOOKMARK", {"post_id": "p1"})
        await controller.execute_action("REMOVE_BOOKMARK", {"post_id": "p1"})
        assert recorder.last("post.bookmark_removed").payload["bookmarks"] == []

    @pytest.mark.asyncio
    async def test_remove_missing_bookmark(self, controller, recorder):
        await controller.execute_action("REMOVE_BOOKMARK", {"post_id": "p9"})
        assert recorder.last("post.action_error").payload["error"] == "Bookmark not found: p9"

    @pytest.mark.asyncio
    async def test_post_id_required(self, controller, recorder):
        await controller.execute_action("ADD_TO_BOOKMARK", {})
        assert recorder.last("post.action_error").payload["error"] == "Post ID is required"


class TestReadingHistory:
    @pytest.mark.asyncio
    async def test_history_updated(self, controller, recorder):
        await controller.execute_action("ADD_TO_READING_HISTORY", {"post_id": "p1"})
        await controller.execute_action("ADD_TO_READING_HISTORY", {"post_id": "p2"})
        assert recorder.last("post.reading_history_updated").payload == {"post_id": "p2", "history": ["p2", "p1"]}


class TestSummary:
    def test_summarize_text(self):
        text = "First point. Second point! Third? Fourth."
        assert summarize_text(text, 2) == "First point. Second point!"
        assert summarize_text(text) == "First point. Second point! Third?"

    @pytest.mark.asyncio
    async def test_summary_created(self, controller, recorder):
        await controller.execute_action(
            "CREATE_SUMMARY", {"post_id": "p1", "text": "One. Two. Three.", "max_sentences": 1}
        )
        assert recorder.last("post.summary_created").payload == {"post_id": "p1", "summary": "One."}

    @pytest.mark.asyncio
    async def test_summary_requested_without_text(self, controller, recorder):
        await controller.execute_action("CREATE_SUMMARY", {"post_id": "p1"})
        assert recorder.types == ["post.summary_requested"]

    @pytest.mark.asyncio
    async def test_invalid_sentence_count(self, controller, recorder):
        await controller.execute_action("CREATE_SUMMARY", {"post_id": "p1", "text": "x.", "max_sentences": 0})
        assert recorder.last("post.action_error").payload["error"] == "max_sentences must be a positive integer"
