"""
AI suggestion controller: generation, presentation and execution.

Turns behavior analysis into queued :class:`Suggestion` records, shows
them one at a time, and routes an accepted suggestion back through the
controller registry as an ordinary action.

Architecture:
    ::

        GENERATE_SUGGESTIONS ──► build_suggestions() ──► queue.enqueue() ...
                                                        │
        ADD_SUGGESTION ─────────────────────────────────┤
                                                        ▼
        PROCESS_NEXT_SUGGESTION ── remove_expired ── dequeue ── suggestion_shown
                                                        │
        RESPOND_TO_SUGGESTION(accept|reject|dismiss) ◄──┘
                │
                ├─ accept ──► executor.execute_action(controller, action, payload)
                │                └── suggestion_executed {result: success|error}
                ├─ counters incremented, stats persisted
                └─ after next_suggestion_delay_ms ──► PROCESS_NEXT_SUGGESTION

Generation rules (pattern: suggestion, rule-based probability, expiry):
    - scanning: ``post/ADD_TO_BOOKMARK``, 50%, 5 min
    - studying: ``interaction/ADD_NOTE``, 70%, 10 min
    - studying: ``post/CREATE_SUMMARY``, 40%, 15 min
    - reading: ``interaction/ADD_HIGHLIGHT``, 30%, 8 min

    When the analysis came from a language model, its suggested actions
    replace the coin flips.  Low confidence (from the model or from the
    reading pattern) keeps at most one suggestion, even in a short session.
    Otherwise sessions with fewer than :data:`MIN_SESSION_EVENTS` events
    produce nothing.

Tags:
    suggestions, controller, generation, queue, marginalia-core

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any

from marginalia.core.behavior import BehaviorData, PatternType
from marginalia.core.errors import MarginaliaError, NotFoundError, ValidationError, error_message
from marginalia.core.events import EventBus
from marginalia.core.logging import get_logger
from marginalia.core.suggestions import Priority, StatsStore, Suggestion, SuggestionQueue
from marginalia.core.timestamps import Clock, generate_id, now_ms
from marginalia.services.analysis import AnalysisResult

from .base import ActionDefinition, ActionExecutor, Controller, require_text

logger = get_logger(__name__)

MIN_SESSION_EVENTS = 5
LOW_CONFIDENCE = 0.5
HIGH_AI_CONFIDENCE = 0.7
MINUTE_MS = 60_000

# Highlights need text; used when the reader has nothing selected.
PLACEHOLDER_HIGHLIGHT_TEXT = "Highlighted passage"


class SuggestionAction(str, Enum):
    GENERATE_SUGGESTIONS = "GENERATE_SUGGESTIONS"
    ADD_SUGGESTION = "ADD_SUGGESTION"
    PROCESS_NEXT_SUGGESTION = "PROCESS_NEXT_SUGGESTION"
    RESPOND_TO_SUGGESTION = "RESPOND_TO_SUGGESTION"
    CLEAR_QUEUE = "CLEAR_QUEUE"
    GET_QUEUE_STATUS = "GET_QUEUE_STATUS"
    OPTIMIZE_QUEUE = "OPTIMIZE_QUEUE"


class SuggestionResponse(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    DISMISS = "dismiss"


@dataclass(frozen=True)
class SuggestionContext:
    """Where the reader is, plus the analysis that triggered generation."""

    post_id: str = "current"
    section_id: str = "section-1"
    selected_text: str = ""
    analysis: AnalysisResult | None = None

    @classmethod
    def coerce(cls, value: SuggestionContext | dict[str, Any] | None) -> SuggestionContext:
        if value is None:
            return cls()
        if isinstance(value, SuggestionContext):
            return value
        if isinstance(value, dict):
            return cls(
                post_id=value.get("post_id") or "current",
                section_id=value.get("section_id") or "section-1",
                selected_text=value.get("selected_text") or "",
                analysis=value.get("analysis"),
            )
        raise ValidationError("context must be a mapping", field="context", value=value)


def build_suggestions(
    behavior: BehaviorData,
    context: SuggestionContext,
    *,
    rng: random.Random,
    clock: Clock = now_ms,
) -> list[Suggestion]:
    """Derive candidate suggestions from one behavior snapshot."""
    pattern = behavior.user_pattern
    analysis = context.analysis
    insights = analysis.insights if analysis is not None and analysis.is_ai_guided else None
    guided = insights is not None

    def wants(action: str, threshold: float) -> bool:
        if insights is not None:
            return action in insights.suggested_actions
        return rng.random() > threshold

    def make(
        prefix: str,
        action_type: str,
        controller_name: str,
        priority: Priority,
        ttl_minutes: int,
        payload: dict[str, Any],
        title: str,
        description: str,
        trigger: str,
    ) -> Suggestion:
        now = clock()
        return Suggestion(
            id=generate_id(prefix, clock=clock, rng=rng),
            action_type=action_type,
            controller_name=controller_name,
            priority=priority,
            timestamp=now,
            payload=payload,
            expires_at=now + ttl_minutes * MINUTE_MS,
            title=title,
            description=description,
            metadata={
                "user_pattern": pattern.type.value,
                "confidence": pattern.confidence,
                "trigger_reason": f"ai_guided_{prefix}" if guided else trigger,
                "ai_guidance": guided,
            },
        )

    summary_hint = analysis.summary[:50] if analysis is not None else ""
    suggestions: list[Suggestion] = []

    if pattern.type is PatternType.SCANNING:
        if wants("bookmark", 0.5):
            high = insights is not None and insights.confidence_level > HIGH_AI_CONFIDENCE
            suggestions.append(
                make(
                    "bookmark",
                    "ADD_TO_BOOKMARK",
                    "post",
                    Priority.HIGH if high else Priority.MEDIUM,
                    5,
                    {"post_id": context.post_id},
                    "Bookmark this article",
                    f"AI analysis: {summary_hint}..." if guided
                    else "Found something valuable? Bookmark it and come back for a deep read.",
                    "scanning_mode_bookmark_suggestion",
                )
            )

    elif pattern.type is PatternType.STUDYING:
        if wants("note", 0.3):
            note = (
                f"Note suggested by analysis: {analysis.summary}" if guided and analysis is not None
                else "Note suggested from your reading pattern"
            )
            suggestions.append(
                make(
                    "note",
                    "ADD_NOTE",
                    "interaction",
                    Priority.HIGH,
                    10,
                    {
                        "post_id": context.post_id,
                        "section_id": context.section_id,
                        "selected_text": context.selected_text,
                        "content": note,
                    },
                    "Take a note on the key ideas",
                    "You are studying closely; capture the key concepts in a note.",
                    "studying_mode_note_suggestion",
                )
            )
        if wants("summary", 0.6):
            suggestions.append(
                make(
                    "summary",
                    "CREATE_SUMMARY",
                    "post",
                    Priority.MEDIUM,
                    15,
                    {"post_id": context.post_id},
                    "Summarize this article",
                    "Collect the core ideas to help you remember and review them.",
                    "studying_mode_summary_suggestion",
                )
            )

    elif pattern.type is PatternType.READING:
        if wants("highlight", 0.7):
            focused = insights is not None and insights.user_mood == "focused"
            suggestions.append(
                make(
                    "highlight",
                    "ADD_HIGHLIGHT",
                    "interaction",
                    Priority.MEDIUM if focused else Priority.LOW,
                    8,
                    {
                        "post_id": context.post_id,
                        "section_id": context.section_id,
                        "selected_text": context.selected_text or PLACEHOLDER_HIGHLIGHT_TEXT,
                    },
                    "Highlight what matters",
                    "Add the valuable passages to your personal knowledge base.",
                    "reading_mode_highlight_suggestion",
                )
            )

    else:
        logger.debug("suggestion_pattern_without_rules", pattern=pattern.type.value)

    if insights is not None and insights.confidence_level < LOW_CONFIDENCE:
        return suggestions[:1]
    if pattern.confidence < LOW_CONFIDENCE:
        return suggestions[:1]
    if behavior.session.event_count < MIN_SESSION_EVENTS:
        return []
    return suggestions


class AISuggestionController(Controller):
    """Owns the suggestion workflow for one application context."""

    name = "ai_suggestion"
    Action = SuggestionAction
    description = "Suggestion generation, presentation and execution"
    category = "ai"

    def __init__(
        self,
        bus: EventBus,
        queue: SuggestionQueue,
        executor: ActionExecutor,
        *,
        stats_store: StatsStore | None = None,
        rng: random.Random | None = None,
        clock: Clock = now_ms,
        next_suggestion_delay_ms: int = 1_000,
    ) -> None:
        self.queue = queue
        self._executor = executor
        self._stats_store = stats_store
        self._rng = rng or random.Random()
        self._clock = clock
        self.next_suggestion_delay_ms = next_suggestion_delay_ms
        self._pending: set[asyncio.Task[None]] = set()
        super().__init__(bus)

    def define_actions(self) -> list[ActionDefinition]:
        A = SuggestionAction
        return [
            ActionDefinition(A.GENERATE_SUGGESTIONS, self._generate, "Generate suggestions from behavior data"),
            ActionDefinition(A.ADD_SUGGESTION, self._add, "Add a suggestion to the queue"),
            ActionDefinition(A.PROCESS_NEXT_SUGGESTION, self._process_next, "Show the next queued suggestion"),
            ActionDefinition(A.RESPOND_TO_SUGGESTION, self._respond, "Accept, reject or dismiss the current one"),
            ActionDefinition(A.CLEAR_QUEUE, self._clear, "Empty the suggestion queue"),
            ActionDefinition(A.GET_QUEUE_STATUS, self._status, "Report queue status"),
            ActionDefinition(A.OPTIMIZE_QUEUE, self._optimize, "Drop duplicates and expired entries"),
        ]

    # ── Handlers ─────────────────────────────────────────────────

    async def _generate(self, payload: dict[str, Any]) -> None:
        behavior = payload.get("behavior_data")
        if not isinstance(behavior, BehaviorData):
            raise ValidationError("behavior_data is required", field="behavior_data", value=behavior)
        context = SuggestionContext.coerce(payload.get("context"))

        try:
            suggestions = build_suggestions(behavior, context, rng=self._rng, clock=self._clock)
        except Exception as exc:
            await self.emit("suggestion_generation_error", {"error": error_message(exc)})
            raise

        queued = [s for s in suggestions if self.queue.enqueue(s)]
        status = self.queue.get_queue_status()
        logger.info(
            "suggestions_generated",
            pattern=behavior.user_pattern.type.value,
            generated=len(suggestions),
            queued=len(queued),
        )
        await self.emit(
            "suggestions_generated",
            {
                "suggestions": [s.to_dict() for s in suggestions],
                "queued": len(queued),
                "queue_status": status.to_dict(),
            },
        )
        if suggestions and not status.is_showing_suggestion:
            await self._process_next({})

    async def _add(self, payload: dict[str, Any]) -> None:
        raw = payload.get("suggestion")
        if isinstance(raw, Suggestion):
            suggestion = raw
        elif isinstance(raw, dict):
            try:
                suggestion = Suggestion.from_dict(raw)
            except (KeyError, ValueError, TypeError) as exc:
                raise ValidationError(f"Invalid suggestion: {exc}", field="suggestion") from exc
        else:
            raise ValidationError("suggestion is required", field="suggestion", value=raw)

        queued = self.queue.enqueue(suggestion)
        status = self.queue.get_queue_status()
        await self.emit(
            "suggestion_added",
            {"suggestion": suggestion.to_dict(), "queued": queued, "queue_status": status.to_dict()},
        )
        if not status.is_showing_suggestion:
            await self._process_next({})

    async def _process_next(self, payload: dict[str, Any]) -> None:
        if self.queue.is_showing_suggestion:
            logger.debug("suggestion_already_showing")
            return
        self.queue.remove_expired()
        suggestion = self.queue.dequeue()
        if suggestion is None:
            logger.debug("suggestion_queue_empty")
            return
        self.queue.set_is_showing_suggestion(True)
        self.queue.set_current_suggestion(suggestion)
        await self.emit("suggestion_shown", {"suggestion": suggestion.to_dict()})

    async def _respond(self, payload: dict[str, Any]) -> None:
        suggestion_id = require_text(payload, "suggestion_id", label="Suggestion ID")
        raw_response = payload.get("response")
        try:
            response = SuggestionResponse(raw_response)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown response: {raw_response}",
                field="response",
                value=raw_response,
                constraint="accept|reject|dismiss",
            ) from exc

        current = self.queue.current_suggestion
        if current is None or current.id != suggestion_id:
            raise NotFoundError(f"Suggestion is not being shown: {suggestion_id}", entity_id=suggestion_id)

        await self.emit("user_response", {"suggestion_id": suggestion_id, "response": response.value})

        if response is SuggestionResponse.ACCEPT:
            self.queue.increment_accepted()
        elif response is SuggestionResponse.REJECT:
            self.queue.increment_rejected()
        else:
            self.queue.increment_dismissed()
        self._persist_stats()

        self.queue.set_is_showing_suggestion(False)
        self.queue.set_current_suggestion(None)

        try:
            if response is SuggestionResponse.ACCEPT:
                await self._execute_suggestion(current)
        finally:
            self._schedule_next()

    async def _clear(self, payload: dict[str, Any]) -> None:
        self.queue.clear()
        await self.emit("queue_cleared")

    async def _status(self, payload: dict[str, Any]) -> None:
        await self.emit("queue_status", self.queue.get_queue_status().to_dict())

    async def _optimize(self, payload: dict[str, Any]) -> None:
        duplicates = self.queue.remove_duplicates()
        expired = self.queue.remove_expired()
        self.queue.reorder_by_priority()
        await self.emit(
            "queue_optimized",
            {
                "duplicates_removed": duplicates,
                "expired_removed": expired,
                "queue_status": self.queue.get_queue_status().to_dict(),
            },
        )

    # ── Internals ────────────────────────────────────────────────

    async def _execute_suggestion(self, suggestion: Suggestion) -> None:
        try:
            await self._executor.execute_action(
                suggestion.controller_name, suggestion.action_type, dict(suggestion.payload)
            )
        except MarginaliaError as exc:
            logger.warning("suggestion_execution_failed", suggestion_id=suggestion.id, **exc.to_dict())
            await self.emit(
                "suggestion_executed",
                {"suggestion": suggestion.to_dict(), "result": "error", "error": exc.message},
            )
            return
        logger.info(
            "suggestion_executed",
            suggestion_id=suggestion.id,
            controller=suggestion.controller_name,
            action=suggestion.action_type,
        )
        await self.emit("suggestion_executed", {"suggestion": suggestion.to_dict(), "result": "success"})

    def _persist_stats(self) -> None:
        if self._stats_store is None:
            return
        try:
            self._stats_store.save(self.queue.stats)
        except OSError as exc:
            logger.warning("suggestion_stats_save_failed", path=str(self._stats_store.path), error=str(exc))

    def _schedule_next(self) -> None:
        task = asyncio.get_running_loop().create_task(self._process_next_later())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _process_next_later(self) -> None:
        await asyncio.sleep(self.next_suggestion_delay_ms / 1000)
        await self.execute_action(SuggestionAction.PROCESS_NEXT_SUGGESTION)

    async def drain(self) -> None:
        """Wait for delayed follow-up processing scheduled by responses."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def on_destroy(self) -> None:
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        self._pending.clear()
        self._persist_stats()


__all__ = [
    "AISuggestionController",
    "MIN_SESSION_EVENTS",
    "PLACEHOLDER_HIGHLIGHT_TEXT",
    "SuggestionAction",
    "SuggestionContext",
    "SuggestionResponse",
    "build_suggestions",
]
