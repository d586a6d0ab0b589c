"""Post controller: bookmarks, reading history and summaries."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from marginalia.core.errors import NotFoundError, ValidationError
from marginalia.core.events import EventBus
from marginalia.core.repositories import ReadingListRepository

from .base import ActionDefinition, Controller, optional_text, require_text

DEFAULT_SUMMARY_SENTENCES = 3

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


class PostAction(str, Enum):
    ADD_TO_BOOKMARK = "ADD_TO_BOOKMARK"
    REMOVE_BOOKMARK = "REMOVE_BOOKMARK"
    ADD_TO_READING_HISTORY = "ADD_TO_READING_HISTORY"
    CREATE_SUMMARY = "CREATE_SUMMARY"


def summarize_text(text: str, max_sentences: int = DEFAULT_SUMMARY_SENTENCES) -> str:
    """Leading-sentence extract of ``text``."""
    sentences = [s.strip() for s in _SENTENCE_END.split(text.strip()) if s.strip()]
    return " ".join(sentences[:max_sentences])


class PostController(Controller):
    name = "post"
    Action = PostAction
    description = "Post bookmarks, reading history and summaries"
    category = "data"

    def __init__(self, bus: EventBus, reading_list: ReadingListRepository) -> None:
        self._reading_list = reading_list
        super().__init__(bus)

    def define_actions(self) -> list[ActionDefinition]:
        return [
            ActionDefinition(PostAction.ADD_TO_BOOKMARK, self._add_to_bookmark, "Bookmark a post"),
            ActionDefinition(PostAction.REMOVE_BOOKMARK, self._remove_bookmark, "Remove a bookmark"),
            ActionDefinition(
                PostAction.ADD_TO_READING_HISTORY, self._add_to_reading_history, "Record a post as read"
            ),
            ActionDefinition(PostAction.CREATE_SUMMARY, self._create_summary, "Summarize a post"),
        ]

    async def _add_to_bookmark(self, payload: dict[str, Any]) -> None:
        post_id = require_text(payload, "post_id", label="Post ID")
        added = await self._reading_list.add_bookmark(post_id)
        bookmarks = await self._reading_list.list_bookmarks()
        event = "bookmark_added" if added else "bookmark_exists"
        await self.emit(event, {"post_id": post_id, "bookmarks": bookmarks})

    async def _remove_bookmark(self, payload: dict[str, Any]) -> None:
        post_id = require_text(payload, "post_id", label="Post ID")
        if not await self._reading_list.remove_bookmark(post_id):
            raise NotFoundError(f"Bookmark not found: {post_id}", entity_id=post_id)
        bookmarks = await self._reading_list.list_bookmarks()
        await self.emit("bookmark_removed", {"post_id": post_id, "bookmarks": bookmarks})

    async def _add_to_reading_history(self, payload: dict[str, Any]) -> None:
        post_id = require_text(payload, "post_id", label="Post ID")
        history = await self._reading_list.add_to_history(post_id)
        await self.emit("reading_history_updated", {"post_id": post_id, "history": history})

    async def _create_summary(self, payload: dict[str, Any]) -> None:
        post_id = require_text(payload, "post_id", label="Post ID")
        text = optional_text(payload, "text")
        max_sentences = payload.get("max_sentences", DEFAULT_SUMMARY_SENTENCES)
        if not isinstance(max_sentences, int) or max_sentences <= 0:
            raise ValidationError(
                "max_sentences must be a positive integer",
                field="max_sentences",
                value=max_sentences,
                constraint="positive_int",
            )
        if not text:
            # No source text: the display layer owns post content.
            await self.emit("summary_requested", {"post_id": post_id})
            return
        await self.emit(
            "summary_created",
            {"post_id": post_id, "summary": summarize_text(text, max_sentences)},
        )


__all__ = ["PostAction", "PostController", "summarize_text"]
