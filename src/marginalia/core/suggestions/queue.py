"""
Suggestion priority queue.

Candidate suggestions arrive from behavior analysis faster than a reader
can look at them.  The queue keeps them ordered (priority, then recency),
drops near-duplicates at insertion time, sweeps expired entries, and counts
what the reader did with the ones that were shown.

Manifesto:
    Every mutation builds a new :class:`QueueState` and swaps it in.  An
    analysis task suspended halfway through ``generate`` can never observe
    a queue that is sorted but not yet counted, or counted but not sorted.

Invariants:
    - ``state.queue`` is sorted by priority weight desc, then timestamp desc
    - no two queued entries with the same ``(action_type, controller_name)``
      were inserted within :data:`DUPLICATE_CHECK_WINDOW_MS` of each other
    - counters only ever grow

Examples:
    >>> queue = SuggestionQueue(clock=ManualClock(0))
    >>> queue.enqueue(suggestion)
    True
    >>> queue.dequeue() is suggestion
    True
    >>> queue.dequeue() is None
    True

Tags:
    priority-queue, deduplication, expiry, suggestions, marginalia-core

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from marginalia.core.logging import get_logger
from marginalia.core.timestamps import Clock, now_ms

from .models import QueueState, QueueStatus, Suggestion, SuggestionStats, sort_suggestions

logger = get_logger(__name__)

DUPLICATE_CHECK_WINDOW_MS = 60_000


class SuggestionQueue:
    """Process-wide suggestion queue for one application session."""

    def __init__(self, *, clock: Clock = now_ms, stats: SuggestionStats | None = None) -> None:
        self._clock = clock
        self._state = QueueState(stats=stats or SuggestionStats())

    @classmethod
    def from_stats(cls, stats: SuggestionStats, *, clock: Clock = now_ms) -> SuggestionQueue:
        """Restore persisted counters; queue and current suggestion start empty."""
        return cls(clock=clock, stats=stats)

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def stats(self) -> SuggestionStats:
        return self._state.stats

    @property
    def current_suggestion(self) -> Suggestion | None:
        return self._state.current_suggestion

    @property
    def is_showing_suggestion(self) -> bool:
        return self._state.is_showing

    def __len__(self) -> int:
        return len(self._state.queue)

    # ── Queue operations ─────────────────────────────────────────

    def is_duplicate(self, suggestion: Suggestion) -> bool:
        now = self._clock()
        return any(
            existing.key == suggestion.key and now - existing.timestamp < DUPLICATE_CHECK_WINDOW_MS
            for existing in self._state.queue
        )

    def enqueue(self, suggestion: Suggestion) -> bool:
        """Insert and re-sort. Returns False (and counts nothing) for a duplicate."""
        state = self._state
        if self.is_duplicate(suggestion):
            logger.info(
                "suggestion_duplicate_ignored",
                action_type=suggestion.action_type,
                controller_name=suggestion.controller_name,
            )
            return False

        queue = sort_suggestions(state.queue + (suggestion,))
        self._state = replace(
            state,
            queue=queue,
            stats=replace(state.stats, total_generated=state.stats.total_generated + 1),
        )
        logger.info(
            "suggestion_enqueued",
            suggestion_id=suggestion.id,
            action_type=suggestion.action_type,
            priority=suggestion.priority.value,
            queue_length=len(queue),
        )
        return True

    def dequeue(self) -> Suggestion | None:
        """Remove and return the head, or ``None`` when empty."""
        state = self._state
        if not state.queue:
            return None
        head, rest = state.queue[0], state.queue[1:]
        self._state = replace(state, queue=rest)
        logger.info("suggestion_dequeued", suggestion_id=head.id, remaining=len(rest))
        return head

    def peek(self) -> Suggestion | None:
        queue = self._state.queue
        return queue[0] if queue else None

    def clear(self) -> None:
        """Empty the queue and presentation state. Counters are kept."""
        self._state = replace(self._state, queue=(), current_suggestion=None, is_showing=False)
        logger.info("suggestion_queue_cleared")

    # ── Maintenance ──────────────────────────────────────────────

    def remove_expired(self) -> int:
        """Drop entries with ``expires_at <= now``; returns how many."""
        state = self._state
        now = self._clock()
        valid = tuple(s for s in state.queue if not s.is_expired(now))
        removed = len(state.queue) - len(valid)
        if removed:
            self._state = replace(state, queue=valid)
            logger.info("suggestions_expired_removed", count=removed)
        return removed

    def remove_duplicates(self) -> int:
        """Keep only the first entry per key, preserving order; returns how many were dropped."""
        state = self._state
        seen: set[tuple[str, str]] = set()
        unique = []
        for suggestion in state.queue:
            if suggestion.key in seen:
                continue
            seen.add(suggestion.key)
            unique.append(suggestion)
        removed = len(state.queue) - len(unique)
        if removed:
            self._state = replace(state, queue=tuple(unique))
            logger.info("suggestion_duplicates_removed", count=removed)
        return removed

    def reorder_by_priority(self) -> None:
        self._state = replace(self._state, queue=sort_suggestions(self._state.queue))

    # ── Presentation state ───────────────────────────────────────

    def set_current_suggestion(self, suggestion: Suggestion | None) -> None:
        self._state = replace(self._state, current_suggestion=suggestion)
        if suggestion is not None:
            logger.debug(
                "suggestion_current_set",
                suggestion_id=suggestion.id,
                action_type=suggestion.action_type,
            )

    def set_is_showing_suggestion(self, is_showing: bool) -> None:
        self._state = replace(self._state, is_showing=is_showing)

    # ── Statistics ───────────────────────────────────────────────

    def increment_accepted(self) -> None:
        stats = self._state.stats
        self._update_stats(replace(stats, total_accepted=stats.total_accepted + 1))

    def increment_rejected(self) -> None:
        stats = self._state.stats
        self._update_stats(replace(stats, total_rejected=stats.total_rejected + 1))

    def increment_dismissed(self) -> None:
        stats = self._state.stats
        self._update_stats(replace(stats, total_dismissed=stats.total_dismissed + 1))

    def _update_stats(self, stats: SuggestionStats) -> None:
        self._state = replace(self._state, stats=stats)

    # ── Queries ──────────────────────────────────────────────────

    def get_queue_status(self) -> QueueStatus:
        state = self._state
        return QueueStatus(
            queue_length=len(state.queue),
            current_suggestion=state.current_suggestion,
            next_suggestion=state.queue[0] if state.queue else None,
            is_showing_suggestion=state.is_showing,
            total_generated=state.stats.total_generated,
            total_accepted=state.stats.total_accepted,
            total_rejected=state.stats.total_rejected,
            total_dismissed=state.stats.total_dismissed,
        )

    def get_debug_info(self) -> dict[str, Any]:
        state = self._state
        current = state.current_suggestion
        return {
            "queue": [
                {
                    "id": s.id,
                    "action_type": s.action_type,
                    "priority": s.priority.value,
                    "timestamp": s.timestamp,
                    "expires_at": s.expires_at,
                }
                for s in state.queue
            ],
            "current_suggestion": (
                {"id": current.id, "action_type": current.action_type, "priority": current.priority.value}
                if current is not None
                else None
            ),
            "is_showing_suggestion": state.is_showing,
            "stats": {
                **state.stats.to_dict(),
                "acceptance_rate": state.stats.format_acceptance_rate(),
            },
        }


__all__ = ["DUPLICATE_CHECK_WINDOW_MS", "SuggestionQueue"]
