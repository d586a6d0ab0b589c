"""Suggestion records and queue state snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Priority(str, Enum):
    """Suggestion priority; higher weight is served first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def weight(self) -> int:
        return PRIORITY_WEIGHTS[self]


PRIORITY_WEIGHTS = {
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}


class SuggestionKind(str, Enum):
    ACTION = "action"
    RECOMMENDATION = "recommendation"
    REMINDER = "reminder"


@dataclass(frozen=True, eq=False)
class Suggestion:
    """A candidate suggestion.

    Accepting it executes ``action_type`` on the controller registered as
    ``controller_name`` with ``payload``.

    Attributes:
        id: Unique suggestion id
        action_type: Action to execute on acceptance (e.g. ``ADD_TO_BOOKMARK``)
        controller_name: Registered controller that owns the action
        priority: low / medium / high
        timestamp: Generation time, epoch ms
        payload: Arguments for the action
        expires_at: Epoch ms after which the suggestion is swept, if set
        kind: action / recommendation / reminder
        title: Short label for the display layer
        description: Longer text for the display layer
        metadata: Analysis details (pattern, confidence, trigger reason)
    """

    id: str
    action_type: str
    controller_name: str
    priority: Priority
    timestamp: int
    payload: dict[str, Any] = field(default_factory=dict)
    expires_at: int | None = None
    kind: SuggestionKind = SuggestionKind.ACTION
    title: str = ""
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.priority, Priority):
            object.__setattr__(self, "priority", Priority(self.priority))
        if not isinstance(self.kind, SuggestionKind):
            object.__setattr__(self, "kind", SuggestionKind(self.kind))

    @property
    def key(self) -> tuple[str, str]:
        """Deduplication key."""
        return (self.action_type, self.controller_name)

    def is_expired(self, now: int) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def sort_key(self) -> tuple[int, int]:
        return (-self.priority.weight, -self.timestamp)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "action_type": self.action_type,
            "controller_name": self.controller_name,
            "priority": self.priority.value,
            "timestamp": self.timestamp,
            "payload": dict(self.payload),
            "kind": self.kind.value,
            "title": self.title,
            "description": self.description,
            "metadata": dict(self.metadata),
        }
        if self.expires_at is not None:
            result["expires_at"] = self.expires_at
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Suggestion:
        return cls(
            id=data["id"],
            action_type=data["action_type"],
            controller_name=data["controller_name"],
            priority=Priority(data.get("priority", Priority.MEDIUM)),
            timestamp=int(data["timestamp"]),
            payload=dict(data.get("payload") or {}),
            expires_at=data.get("expires_at"),
            kind=SuggestionKind(data.get("kind", SuggestionKind.ACTION)),
            title=data.get("title", ""),
            description=data.get("description", ""),
            metadata=dict(data.get("metadata") or {}),
        )

    def __repr__(self) -> str:
        return (
            f"Suggestion(id={self.id!r}, action_type={self.action_type!r}, "
            f"controller_name={self.controller_name!r}, priority={self.priority.value})"
        )


def sort_suggestions(suggestions: tuple[Suggestion, ...] | list[Suggestion]) -> tuple[Suggestion, ...]:
    """Priority weight descending, then timestamp descending. Stable."""
    return tuple(sorted(suggestions, key=Suggestion.sort_key))


@dataclass(frozen=True)
class SuggestionStats:
    """The four session counters; the only state that survives restarts."""

    total_generated: int = 0
    total_accepted: int = 0
    total_rejected: int = 0
    total_dismissed: int = 0

    @property
    def acceptance_rate(self) -> float:
        """Accepted / generated as a percentage (0.0 with no generations)."""
        if self.total_generated <= 0:
            return 0.0
        return self.total_accepted / self.total_generated * 100

    def format_acceptance_rate(self) -> str:
        if self.total_generated <= 0:
            return "0%"
        return f"{self.acceptance_rate:.1f}%"

    def to_dict(self) -> dict[str, int]:
        return {
            "total_generated": self.total_generated,
            "total_accepted": self.total_accepted,
            "total_rejected": self.total_rejected,
            "total_dismissed": self.total_dismissed,
        }


@dataclass(frozen=True)
class QueueState:
    """Whole-queue snapshot. Replaced, never edited in place."""

    queue: tuple[Suggestion, ...] = ()
    current_suggestion: Suggestion | None = None
    is_showing: bool = False
    stats: SuggestionStats = field(default_factory=SuggestionStats)


@dataclass(frozen=True)
class QueueStatus:
    """Read-only projection returned by ``get_queue_status``."""

    queue_length: int
    current_suggestion: Suggestion | None
    next_suggestion: Suggestion | None
    is_showing_suggestion: bool
    total_generated: int
    total_accepted: int
    total_rejected: int
    total_dismissed: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "queue_length": self.queue_length,
            "current_suggestion": self.current_suggestion.to_dict() if self.current_suggestion else None,
            "next_suggestion": self.next_suggestion.to_dict() if self.next_suggestion else None,
            "is_showing_suggestion": self.is_showing_suggestion,
            "total_generated": self.total_generated,
            "total_accepted": self.total_accepted,
            "total_rejected": self.total_rejected,
            "total_dismissed": self.total_dismissed,
        }
