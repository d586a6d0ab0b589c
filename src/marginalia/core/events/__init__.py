"""Event system for controller-to-consumer communication.

Why This Package Exists
-----------------------
Controllers never return results to their callers: every observable
effect of an action (entity added, queue optimized, handler failed) is
published as an :class:`Event`.  The display layer and the tests subscribe
to the bus instead of importing controllers directly.

Usage::

    from marginalia.core.events import Event
    from marginalia.core.events.memory import InMemoryEventBus

    bus = InMemoryEventBus()

    async def on_error(event: Event):
        print(event.payload["error"])

    await bus.subscribe("interaction.action_error", on_error)
    await bus.publish(Event(event_type="interaction.action_error",
                            source="interaction",
                            payload={"error": "boom"}))

Event types are ``<controller>.<event>``; subscriptions support ``*`` and
``<prefix>.*`` wildcards.

Modules
-------
memory      InMemoryEventBus -- asyncio, single process
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from marginalia.core.timestamps import utc_now

__all__ = [
    "Event",
    "EventBus",
    "EventHandler",
]


# ── Event Model ──────────────────────────────────────────────────────────


@dataclass
class Event:
    """Event payload published by controllers.

    Attributes:
        event_type: Dot-separated type (e.g., ``interaction.reply_added``)
        source: Origin controller/component
        payload: Event-specific data
        timestamp: When the event occurred (UTC)
        correlation_id: Optional ID linking related events
        event_id: Unique event identifier
    """

    event_type: str
    source: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)
    correlation_id: str | None = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def name(self) -> str:
        """Event name without the controller prefix."""
        return self.event_type.rsplit(".", 1)[-1]

    def matches(self, pattern: str) -> bool:
        """Check if event type matches a pattern (supports wildcards).

        Examples:
            - ``post.*`` matches ``post.bookmark_added``
            - ``*`` matches everything
            - ``post.bookmark_added`` matches exactly
        """
        if pattern == "*":
            return True
        if pattern.endswith(".*"):
            prefix = pattern[:-2]
            return self.event_type.startswith(prefix + ".")
        return self.event_type == pattern


# ── Type Aliases ─────────────────────────────────────────────────────────

EventHandler = Callable[[Event], Awaitable[None]]


# ── EventBus Protocol ────────────────────────────────────────────────────


@runtime_checkable
class EventBus(Protocol):
    """Protocol for event bus implementations."""

    async def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers."""
        ...

    async def subscribe(self, event_type: str, handler: EventHandler) -> str:
        """Subscribe to events matching a pattern.

        Returns:
            Subscription ID for later unsubscription
        """
        ...

    async def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscription."""
        ...

    async def close(self) -> None:
        """Clean up resources."""
        ...
