"""
Application context: one explicitly constructed instance of every shared component.

:class:`AppContext` owns the scheduler, the collector and its behavior
sink, the suggestion queue, the event bus and the controller registry for
one application session.  Whatever needs one of them receives the context
(or the component) as an argument; nothing is looked up globally, so tests
can build as many isolated contexts as they like.

Usage::

    from marginalia.app import AppContext

    async with AppContext() as app:
        app.collector.start_collecting("post-42")
        app.collector.collect("reader", "scrolled to section 3")
        await app.registry.execute_action("ai_agent", "ANALYZE_BEHAVIOR")

Lifecycle:
    ``init()``      restore counters, initialize controllers, register and
                    start the ``ai-behavior-analysis`` and
                    ``collector-flush`` tasks
    ``teardown()``  stop timers, wait for in-flight ticks, persist counters,
                    destroy controllers, close the analysis client and the bus
"""

from __future__ import annotations

import random
from typing import Any

from marginalia.controllers import (
    AIAgentController,
    AISuggestionController,
    ControllerRegistry,
    InteractionController,
    PostController,
)
from marginalia.core.behavior import BehaviorStore
from marginalia.core.collector import CollectorConfig, EventCollector
from marginalia.core.events import EventBus
from marginalia.core.events.memory import InMemoryEventBus
from marginalia.core.logging import get_logger
from marginalia.core.repositories import (
    InMemoryInteractionRepository,
    InMemoryReadingListRepository,
    InteractionRepository,
    ReadingListRepository,
)
from marginalia.core.scheduling import TaskScheduler
from marginalia.core.settings import MarginaliaSettings, get_settings
from marginalia.core.suggestions import StatsStore, SuggestionQueue
from marginalia.core.timestamps import Clock, now_ms
from marginalia.services.analysis import AnalysisService, build_analysis_service

logger = get_logger(__name__)

ANALYSIS_TASK_ID = "ai-behavior-analysis"
FLUSH_TASK_ID = "collector-flush"


class AppContext:
    """Explicit container for the suggestion pipeline's shared components."""

    def __init__(
        self,
        settings: MarginaliaSettings | None = None,
        *,
        clock: Clock = now_ms,
        rng: random.Random | None = None,
        bus: EventBus | None = None,
        analysis: AnalysisService | None = None,
        interactions: InteractionRepository | None = None,
        reading_list: ReadingListRepository | None = None,
        stats_store: StatsStore | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.clock = clock
        self.bus = bus or InMemoryEventBus()
        self.scheduler = TaskScheduler()
        self.behavior = BehaviorStore(max_events=self.settings.behavior_max_events, clock=clock)
        self.collector = EventCollector(
            self.behavior,
            CollectorConfig(
                enabled=self.settings.collector_enabled,
                buffer_size=self.settings.collector_buffer_size,
                flush_interval_ms=self.settings.collector_flush_interval_ms,
                log_level_threshold=self.settings.collector_log_level,
            ),
            clock=clock,
        )
        self.stats_store = stats_store or StatsStore(self.settings.stats_path)
        self.queue = SuggestionQueue.from_stats(self.stats_store.load(), clock=clock)
        self.analysis = analysis or build_analysis_service(self.settings)
        self.registry = ControllerRegistry()

        self.interaction_controller = InteractionController(
            self.bus, interactions or InMemoryInteractionRepository(clock=clock)
        )
        self.post_controller = PostController(self.bus, reading_list or InMemoryReadingListRepository())
        self.suggestion_controller = AISuggestionController(
            self.bus,
            self.queue,
            self.registry,
            stats_store=self.stats_store,
            rng=rng,
            clock=clock,
            next_suggestion_delay_ms=self.settings.next_suggestion_delay_ms,
        )
        self.agent_controller = AIAgentController(
            self.bus,
            self.collector,
            self.analysis,
            self.registry,
            self.scheduler,
            default_interval_ms=self.settings.analysis_interval_ms,
        )
        for controller in (
            self.post_controller,
            self.interaction_controller,
            self.suggestion_controller,
            self.agent_controller,
        ):
            self.registry.register(controller)

        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def init(self) -> None:
        """Initialize controllers and start the periodic tasks. Idempotent."""
        if self._initialized:
            logger.warning("app_already_initialized")
            return

        await self.registry.initialize()

        self.scheduler.register(
            ANALYSIS_TASK_ID,
            lambda: self.registry.execute_action("ai_agent", "ANALYZE_BEHAVIOR"),
            self.settings.analysis_interval_ms,
            enabled=self.settings.analysis_enabled,
        )
        self.scheduler.register(
            FLUSH_TASK_ID,
            self.collector.flush,
            self.collector.config.flush_interval_ms,
            enabled=self.collector.config.enabled,
        )
        self.scheduler.start_all()

        self._initialized = True
        logger.info(
            "app_initialized",
            controllers=self.registry.controller_names,
            tasks=self.scheduler.task_ids,
            analysis=type(self.analysis).__name__,
        )

    async def teardown(self) -> None:
        """Stop everything started by :meth:`init` and persist counters."""
        if not self._initialized:
            return

        self.scheduler.stop_all()
        await self.scheduler.drain()
        self.collector.flush()
        self.scheduler.cleanup()

        try:
            self.stats_store.save(self.queue.stats)
        except OSError as exc:
            logger.warning("suggestion_stats_save_failed", path=str(self.stats_store.path), error=str(exc))

        await self.registry.destroy()
        await self.analysis.close()
        await self.bus.close()

        self._initialized = False
        logger.info("app_teardown_complete")

    def health(self) -> dict[str, Any]:
        return {
            "initialized": self._initialized,
            "scheduler": self.scheduler.health(),
            "collection": {
                "is_collecting": self.collector.get_collection_status().is_collecting,
                "event_count": self.collector.get_collection_status().event_count,
                "buffered": self.collector.buffered_count,
            },
            "queue": self.queue.get_queue_status().to_dict(),
            "registry": self.registry.get_registration_status(),
        }

    async def __aenter__(self) -> AppContext:
        await self.init()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.teardown()


__all__ = ["ANALYSIS_TASK_ID", "FLUSH_TASK_ID", "AppContext"]
