"""
In-memory event bus for controller events.

Manifesto:
    The pipeline runs in one process on one event loop.  A controller's
    ``execute_action`` returns only after every subscriber has seen every
    event it emitted, so callers can assert on effects immediately.

    - **Validates:** ``event_type`` must be ``<source>.<event>``
    - **Orders:** subscribers run one after another, in subscription order
    - **Remembers:** the last ``history_size`` events, for diagnostics

Tags:
    marginalia-core, events, in-memory, asyncio

Doc-Types:
    api-reference
"""

from __future__ import annotations

import itertools
from collections import deque
from dataclasses import dataclass

from marginalia.core.errors import ValidationError
from marginalia.core.events import Event, EventHandler
from marginalia.core.logging import get_logger

__all__ = ["DEFAULT_HISTORY_SIZE", "InMemoryEventBus", "validate_event_type"]

logger = get_logger(__name__)

DEFAULT_HISTORY_SIZE = 256


def validate_event_type(event: Event) -> None:
    """Reject events not named ``<source>.<event>``.

    Raises:
        ValidationError: If the prefix is missing, the name is empty, or the
            prefix differs from ``event.source``
    """
    controller, dot, name = event.event_type.partition(".")
    if not dot or not controller or not name or "." in name:
        raise ValidationError(
            f"Event type must be '<controller>.<event>': {event.event_type!r}",
            field="event_type",
            value=event.event_type,
        )
    if controller != event.source:
        raise ValidationError(
            f"Event type {event.event_type!r} does not belong to source {event.source!r}",
            field="source",
            value=event.source,
        )


@dataclass(frozen=True)
class _Subscription:
    id: str
    pattern: str
    handler: EventHandler


class InMemoryEventBus:
    """Single-loop event bus with ordered delivery and a bounded history.

    Example::

        bus = InMemoryEventBus()
        await bus.subscribe("post.*", on_post_event)
        await bus.publish(Event(event_type="post.bookmark_added", source="post"))
        bus.history("post.*")[-1].event_type   # "post.bookmark_added"
    """

    def __init__(self, *, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        if history_size < 0:
            raise ValueError(f"history_size must be >= 0, got {history_size}")
        self._subscriptions: dict[str, _Subscription] = {}
        self._history: deque[Event] = deque(maxlen=history_size)
        self._ids = itertools.count(1)
        self._closed = False
        self._published = 0

    async def publish(self, event: Event) -> None:
        """Deliver ``event`` to every matching subscriber, in order.

        A failing handler is logged and the remaining handlers still run.
        Publishing on a closed bus does nothing.
        """
        validate_event_type(event)
        if self._closed:
            return

        self._published += 1
        self._history.append(event)

        for sub in list(self._subscriptions.values()):
            if not event.matches(sub.pattern):
                continue
            try:
                await sub.handler(event)
            except Exception as exc:
                logger.warning(
                    "event_handler_error",
                    subscription_id=sub.id,
                    event_type=event.event_type,
                    error=str(exc),
                )

    async def subscribe(self, event_type: str, handler: EventHandler) -> str:
        """Subscribe to ``event_type`` (exact, ``*`` or ``<controller>.*``).

        Returns:
            Subscription ID
        """
        sub_id = f"sub-{next(self._ids)}"
        self._subscriptions[sub_id] = _Subscription(sub_id, event_type, handler)
        return sub_id

    async def unsubscribe(self, subscription_id: str) -> None:
        self._subscriptions.pop(subscription_id, None)

    async def close(self) -> None:
        """Stop delivering and drop all subscriptions. History is kept."""
        self._closed = True
        self._subscriptions.clear()

    def history(self, pattern: str = "*") -> list[Event]:
        """Recently published events matching ``pattern``, oldest first."""
        return [event for event in self._history if event.matches(pattern)]

    def clear_history(self) -> None:
        self._history.clear()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    @property
    def published_count(self) -> int:
        """Number of events published since construction."""
        return self._published

    @property
    def is_closed(self) -> bool:
        return self._closed
