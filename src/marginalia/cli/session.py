"""
Scripted reading session used by ``marginalia simulate`` and ``marginalia export``.

Builds an :class:`AppContext` on a manual clock, feeds it a burst of
reader events at a pace that produces the requested reading pattern, runs
one behavior analysis and optionally answers the suggestion that gets
shown.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any

from marginalia.app import AppContext
from marginalia.core.diagnostics import export_diagnostics
from marginalia.core.events import Event
from marginalia.core.events.memory import InMemoryEventBus
from marginalia.core.settings import MarginaliaSettings
from marginalia.core.timestamps import ManualClock

PATTERN_INTERVALS_MS = {
    "scanning": 500,
    "reading": 3_000,
    "studying": 8_000,
}

SESSION_START_MS = 1_700_000_000_000


@dataclass
class SessionResult:
    events: list[Event] = field(default_factory=list)
    stats: dict[str, Any] = field(default_factory=dict)
    shown: dict[str, Any] | None = None
    export: str | None = None


async def run_session(
    settings: MarginaliaSettings,
    *,
    pattern: str = "reading",
    event_count: int = 10,
    seed: int | None = None,
    response: str | None = "accept",
    post_id: str = "post-1",
    selected_text: str = "",
    export_format: str | None = None,
) -> SessionResult:
    """Run one scripted session and return what the bus saw."""
    interval = PATTERN_INTERVALS_MS[pattern]
    clock = ManualClock(SESSION_START_MS)
    bus = InMemoryEventBus()
    app = AppContext(
        settings.model_copy(update={"analysis_enabled": False, "next_suggestion_delay_ms": 0}),
        clock=clock,
        rng=random.Random(seed),
        bus=bus,
    )
    result = SessionResult()

    await app.init()
    try:
        app.collector.start_collecting(post_id)
        for i in range(event_count):
            clock.advance(interval)
            app.collector.collect(
                "reader",
                f"post {post_id} scrolled to section {i % 5 + 1}",
                {"section": i % 5 + 1, "scroll_depth": round((i + 1) / event_count, 2)},
                category="navigation",
            )

        await app.registry.execute_action(
            "ai_agent",
            "ANALYZE_BEHAVIOR",
            {"selected_text": selected_text} if selected_text else None,
        )

        current = app.queue.current_suggestion
        if current is not None:
            result.shown = current.to_dict()
            if response:
                await app.registry.execute_action(
                    "ai_suggestion",
                    "RESPOND_TO_SUGGESTION",
                    {"suggestion_id": current.id, "response": response},
                )
                await app.suggestion_controller.drain()

        result.stats = app.queue.get_debug_info()["stats"]
        if export_format is not None:
            result.export = export_diagnostics(app.queue, app.collector, export_format)
    finally:
        await app.teardown()
        result.events = bus.history()
    return result


__all__ = ["PATTERN_INTERVALS_MS", "SessionResult", "run_session"]
