"""Storage protocols for domain records the controllers act on.

Persistent storage of replies, comments, highlights and bookmarks belongs
to the host application.  Controllers only see these protocols; the
in-memory implementations back the tests, the CLI simulation, and any host
that does not need durability.

Architecture::

    ┌────────────────────────────────────────────────────────────────────┐
    │   InteractionController ──► InteractionRepository (Protocol)       │
    │                                 └── InMemoryInteractionRepository  │
    │                                                                    │
    │   PostController ─────────► ReadingListRepository (Protocol)       │
    │                                 └── InMemoryReadingListRepository  │
    └────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from marginalia.core.errors import NotFoundError
from marginalia.core.timestamps import Clock, now_ms


class InteractionType(str, Enum):
    REPLY = "reply"
    COMMENT = "comment"
    MARK = "mark"
    NOTE = "note"


@dataclass(frozen=True)
class Interaction:
    """A reader's reply, comment, highlight or note on a post."""

    id: str
    post_id: str
    type: InteractionType
    content: str = ""
    selected_text: str = ""
    section_id: str | None = None
    created_at: int = 0
    updated_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "post_id": self.post_id,
            "type": self.type.value,
            "content": self.content,
            "selected_text": self.selected_text,
            "section_id": self.section_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@runtime_checkable
class InteractionRepository(Protocol):
    async def create(
        self,
        post_id: str,
        type: InteractionType,
        content: str = "",
        selected_text: str = "",
        section_id: str | None = None,
    ) -> Interaction: ...

    async def get(self, interaction_id: str) -> Interaction | None: ...

    async def update(self, interaction_id: str, *, content: str) -> Interaction: ...

    async def delete(self, interaction_id: str) -> None: ...

    async def list_by_post(self, post_id: str) -> list[Interaction]: ...

    async def delete_by_post(self, post_id: str) -> int: ...


@runtime_checkable
class ReadingListRepository(Protocol):
    async def add_bookmark(self, post_id: str) -> bool: ...

    async def remove_bookmark(self, post_id: str) -> bool: ...

    async def list_bookmarks(self) -> list[str]: ...

    async def add_to_history(self, post_id: str) -> list[str]: ...

    async def list_history(self) -> list[str]: ...


class InMemoryInteractionRepository:
    """Dict-backed :class:`InteractionRepository`."""

    def __init__(self, *, clock: Clock = now_ms) -> None:
        self._clock = clock
        self._items: dict[str, Interaction] = {}

    async def create(
        self,
        post_id: str,
        type: InteractionType,
        content: str = "",
        selected_text: str = "",
        section_id: str | None = None,
    ) -> Interaction:
        now = self._clock()
        interaction = Interaction(
            id=f"{type.value}-{uuid.uuid4().hex[:12]}",
            post_id=post_id,
            type=type,
            content=content,
            selected_text=selected_text,
            section_id=section_id,
            created_at=now,
            updated_at=now,
        )
        self._items[interaction.id] = interaction
        return interaction

    async def get(self, interaction_id: str) -> Interaction | None:
        return self._items.get(interaction_id)

    async def update(self, interaction_id: str, *, content: str) -> Interaction:
        current = self._items.get(interaction_id)
        if current is None:
            raise NotFoundError(f"Interaction not found: {interaction_id}", entity_id=interaction_id)
        updated = replace(current, content=content, updated_at=self._clock())
        self._items[interaction_id] = updated
        return updated

    async def delete(self, interaction_id: str) -> None:
        if self._items.pop(interaction_id, None) is None:
            raise NotFoundError(f"Interaction not found: {interaction_id}", entity_id=interaction_id)

    async def list_by_post(self, post_id: str) -> list[Interaction]:
        return sorted(
            (i for i in self._items.values() if i.post_id == post_id),
            key=lambda i: i.created_at,
        )

    async def delete_by_post(self, post_id: str) -> int:
        doomed = [i.id for i in self._items.values() if i.post_id == post_id]
        for interaction_id in doomed:
            del self._items[interaction_id]
        return len(doomed)


class InMemoryReadingListRepository:
    """Bookmarks plus a most-recent-first reading history."""

    def __init__(self, *, history_limit: int = 50) -> None:
        self.history_limit = history_limit
        self._bookmarks: list[str] = []
        self._history: list[str] = []

    async def add_bookmark(self, post_id: str) -> bool:
        if post_id in self._bookmarks:
            return False
        self._bookmarks = [*self._bookmarks, post_id]
        return True

    async def remove_bookmark(self, post_id: str) -> bool:
        if post_id not in self._bookmarks:
            return False
        self._bookmarks = [b for b in self._bookmarks if b != post_id]
        return True

    async def list_bookmarks(self) -> list[str]:
        return list(self._bookmarks)

    async def add_to_history(self, post_id: str) -> list[str]:
        history = [post_id, *(p for p in self._history if p != post_id)]
        self._history = history[: self.history_limit]
        return list(self._history)

    async def list_history(self) -> list[str]:
        return list(self._history)


__all__ = [
    "InteractionType",
    "Interaction",
    "InteractionRepository",
    "ReadingListRepository",
    "InMemoryInteractionRepository",
    "InMemoryReadingListRepository",
]
