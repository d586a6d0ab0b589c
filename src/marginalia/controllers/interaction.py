"""Interaction controller: replies, comments, highlights and notes on a post."""

from __future__ import annotations

from enum import Enum
from typing import Any

from marginalia.core.errors import NotFoundError, ValidationError
from marginalia.core.events import EventBus
from marginalia.core.repositories import Interaction, InteractionRepository, InteractionType

from .base import ActionDefinition, Controller, optional_text, require_text

MAX_REPLY_LENGTH = 1000
MAX_COMMENT_LENGTH = 500
MAX_NOTE_LENGTH = 2000

_LABELS = {
    InteractionType.REPLY: "reply",
    InteractionType.COMMENT: "comment",
    InteractionType.MARK: "highlight",
    InteractionType.NOTE: "note",
}


class InteractionAction(str, Enum):
    ADD_REPLY = "ADD_REPLY"
    EDIT_REPLY = "EDIT_REPLY"
    DELETE_REPLY = "DELETE_REPLY"
    ADD_COMMENT = "ADD_COMMENT"
    DELETE_COMMENT = "DELETE_COMMENT"
    ADD_HIGHLIGHT = "ADD_HIGHLIGHT"
    REMOVE_HIGHLIGHT = "REMOVE_HIGHLIGHT"
    ADD_NOTE = "ADD_NOTE"
    CLEAR_POST_INTERACTIONS = "CLEAR_POST_INTERACTIONS"
    GET_INTERACTION_STATS = "GET_INTERACTION_STATS"


class InteractionController(Controller):
    """Validates reader interactions and persists them through a repository.

    Every successful mutation emits the generic ``interaction_*`` event and
    a type-specific one (``reply_added``, ``highlight_removed`` ...).
    """

    name = "interaction"
    Action = InteractionAction
    description = "Reader interactions: replies, comments, highlights, notes"
    category = "interaction"

    def __init__(self, bus: EventBus, repository: InteractionRepository) -> None:
        self._repository = repository
        super().__init__(bus)

    def define_actions(self) -> list[ActionDefinition]:
        A = InteractionAction
        return [
            ActionDefinition(A.ADD_REPLY, self._add_reply, "Add a reply to a post"),
            ActionDefinition(A.EDIT_REPLY, self._edit_reply, "Edit an existing reply"),
            ActionDefinition(A.DELETE_REPLY, self._delete_reply, "Delete a reply"),
            ActionDefinition(A.ADD_COMMENT, self._add_comment, "Comment on a selected passage"),
            ActionDefinition(A.DELETE_COMMENT, self._delete_comment, "Delete a comment"),
            ActionDefinition(A.ADD_HIGHLIGHT, self._add_highlight, "Highlight a selected passage"),
            ActionDefinition(A.REMOVE_HIGHLIGHT, self._remove_highlight, "Remove a highlight"),
            ActionDefinition(A.ADD_NOTE, self._add_note, "Attach a note to a passage"),
            ActionDefinition(
                A.CLEAR_POST_INTERACTIONS, self._clear_post_interactions, "Remove every interaction on a post"
            ),
            ActionDefinition(A.GET_INTERACTION_STATS, self._get_interaction_stats, "Count interactions by type"),
        ]

    # ── Handlers ─────────────────────────────────────────────────

    async def _add_reply(self, payload: dict[str, Any]) -> None:
        post_id = require_text(payload, "post_id", label="Post ID")
        content = require_text(payload, "content", max_length=MAX_REPLY_LENGTH, label="Reply content")
        reply = await self._repository.create(post_id, InteractionType.REPLY, content=content)
        await self._emit_added(reply)

    async def _edit_reply(self, payload: dict[str, Any]) -> None:
        reply_id = require_text(payload, "reply_id", label="Reply ID")
        content = require_text(payload, "content", max_length=MAX_REPLY_LENGTH, label="Reply content")
        await self._get_typed(reply_id, InteractionType.REPLY)
        updated = await self._repository.update(reply_id, content=content)
        await self.emit("interaction_updated", {"interaction": updated.to_dict()})
        await self.emit("reply_updated", {"interaction": updated.to_dict()})

    async def _delete_reply(self, payload: dict[str, Any]) -> None:
        await self._remove(require_text(payload, "reply_id", label="Reply ID"), InteractionType.REPLY)

    async def _add_comment(self, payload: dict[str, Any]) -> None:
        post_id = require_text(payload, "post_id", label="Post ID")
        section_id = require_text(payload, "section_id", label="Section ID")
        content = require_text(payload, "content", max_length=MAX_COMMENT_LENGTH, label="Comment content")
        comment = await self._repository.create(
            post_id,
            InteractionType.COMMENT,
            content=content,
            selected_text=optional_text(payload, "selected_text"),
            section_id=section_id,
        )
        await self._emit_added(comment)

    async def _delete_comment(self, payload: dict[str, Any]) -> None:
        await self._remove(require_text(payload, "comment_id", label="Comment ID"), InteractionType.COMMENT)

    async def _add_highlight(self, payload: dict[str, Any]) -> None:
        post_id = require_text(payload, "post_id", label="Post ID")
        section_id = require_text(payload, "section_id", label="Section ID")
        selected_text = require_text(payload, "selected_text", label="Selected text")
        highlight = await self._repository.create(
            post_id,
            InteractionType.MARK,
            selected_text=selected_text,
            section_id=section_id,
        )
        await self._emit_added(highlight)

    async def _remove_highlight(self, payload: dict[str, Any]) -> None:
        await self._remove(require_text(payload, "highlight_id", label="Highlight ID"), InteractionType.MARK)

    async def _add_note(self, payload: dict[str, Any]) -> None:
        post_id = require_text(payload, "post_id", label="Post ID")
        content = require_text(payload, "content", max_length=MAX_NOTE_LENGTH, label="Note content")
        note = await self._repository.create(
            post_id,
            InteractionType.NOTE,
            content=content,
            selected_text=optional_text(payload, "selected_text"),
            section_id=optional_text(payload, "section_id") or None,
        )
        await self._emit_added(note)

    async def _clear_post_interactions(self, payload: dict[str, Any]) -> None:
        post_id = require_text(payload, "post_id", label="Post ID")
        removed = await self._repository.delete_by_post(post_id)
        await self.emit("post_interactions_cleared", {"post_id": post_id, "removed": removed})

    async def _get_interaction_stats(self, payload: dict[str, Any]) -> None:
        post_id = require_text(payload, "post_id", label="Post ID")
        interactions = await self._repository.list_by_post(post_id)
        counts = {kind: 0 for kind in InteractionType}
        for interaction in interactions:
            counts[interaction.type] += 1
        await self.emit(
            "interaction_stats",
            {
                "post_id": post_id,
                "replies": counts[InteractionType.REPLY],
                "comments": counts[InteractionType.COMMENT],
                "highlights": counts[InteractionType.MARK],
                "notes": counts[InteractionType.NOTE],
                "total": len(interactions),
            },
        )

    # ── Helpers ──────────────────────────────────────────────────

    async def _get_typed(self, interaction_id: str, expected: InteractionType) -> Interaction:
        label = _LABELS[expected]
        interaction = await self._repository.get(interaction_id)
        if interaction is None:
            raise NotFoundError(f"{label.capitalize()} not found: {interaction_id}", entity_id=interaction_id)
        if interaction.type is not expected:
            raise ValidationError(
                f"Interaction is not a {label}",
                field="type",
                value=interaction.type.value,
                constraint=f"type={expected.value}",
            )
        return interaction

    async def _remove(self, interaction_id: str, expected: InteractionType) -> None:
        interaction = await self._get_typed(interaction_id, expected)
        await self._repository.delete(interaction_id)
        payload = {"interaction_id": interaction_id, "post_id": interaction.post_id}
        await self.emit("interaction_removed", payload)
        await self.emit(f"{_LABELS[expected]}_removed", payload)

    async def _emit_added(self, interaction: Interaction) -> None:
        payload = {"interaction": interaction.to_dict()}
        await self.emit("interaction_added", payload)
        await self.emit(f"{_LABELS[interaction.type]}_added", payload)


__all__ = [
    "InteractionAction",
    "InteractionController",
    "MAX_COMMENT_LENGTH",
    "MAX_NOTE_LENGTH",
    "MAX_REPLY_LENGTH",
]
