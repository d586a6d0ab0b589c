"""AI agent controller: behavior analysis and periodic monitoring."""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol

from marginalia.core.behavior import BehaviorData
from marginalia.core.errors import ValidationError, error_message
from marginalia.core.events import EventBus
from marginalia.core.logging import get_logger
from marginalia.core.scheduling import TaskScheduler
from marginalia.services.analysis import AnalysisService

from .ai_suggestion import SuggestionAction, SuggestionContext
from .base import ActionDefinition, ActionExecutor, Controller, optional_text

logger = get_logger(__name__)

MONITORING_TASK_ID = "ai-behavior-monitoring"
DEFAULT_MONITORING_INTERVAL_MS = 30_000


class AgentAction(str, Enum):
    ANALYZE_BEHAVIOR = "ANALYZE_BEHAVIOR"
    START_BEHAVIOR_MONITORING = "START_BEHAVIOR_MONITORING"
    STOP_BEHAVIOR_MONITORING = "STOP_BEHAVIOR_MONITORING"


class BehaviorSource(Protocol):
    def get_behavior_data(self) -> BehaviorData: ...


class AIAgentController(Controller):
    """Analyzes recent behavior and asks ``ai_suggestion`` for suggestions.

    Monitoring registers its own scheduler task; the application context's
    ``ai-behavior-analysis`` task is independent of it.
    """

    name = "ai_agent"
    Action = AgentAction
    description = "Behavior analysis and monitoring"
    category = "ai"

    def __init__(
        self,
        bus: EventBus,
        behavior: BehaviorSource,
        analysis: AnalysisService,
        executor: ActionExecutor,
        scheduler: TaskScheduler,
        *,
        default_interval_ms: int = DEFAULT_MONITORING_INTERVAL_MS,
    ) -> None:
        self._behavior = behavior
        self._analysis = analysis
        self._executor = executor
        self._scheduler = scheduler
        self.default_interval_ms = default_interval_ms
        self._monitoring_interval_ms: int | None = None
        super().__init__(bus)

    def define_actions(self) -> list[ActionDefinition]:
        return [
            ActionDefinition(AgentAction.ANALYZE_BEHAVIOR, self._analyze, "Analyze behavior and generate suggestions"),
            ActionDefinition(AgentAction.START_BEHAVIOR_MONITORING, self._start_monitoring, "Analyze periodically"),
            ActionDefinition(AgentAction.STOP_BEHAVIOR_MONITORING, self._stop_monitoring, "Stop periodic analysis"),
        ]

    async def _analyze(self, payload: dict[str, Any]) -> None:
        behavior = self._behavior.get_behavior_data()
        if not behavior.recent_events:
            logger.debug("behavior_analysis_empty")
            await self.emit("behavior_analysis_empty", {"message": "No behavior data to analyze yet"})
            return

        custom_prompt = optional_text(payload, "custom_prompt") or None
        try:
            result = await self._analysis.analyze(behavior, custom_prompt=custom_prompt)
            context = SuggestionContext(
                post_id=behavior.subject_id or "current",
                section_id=optional_text(payload, "section_id") or "section-1",
                selected_text=optional_text(payload, "selected_text"),
                analysis=result,
            )
            await self._executor.execute_action(
                "ai_suggestion",
                SuggestionAction.GENERATE_SUGGESTIONS.value,
                {"behavior_data": behavior, "context": context},
            )
        except Exception as exc:
            await self.emit("behavior_analysis_error", {"error": error_message(exc)})
            raise

        await self.emit(
            "behavior_analysis_completed",
            {
                "behavior_data": behavior.to_dict(),
                "analysis": result.summary,
                "source": result.source,
                "ai_insights": result.insights.to_dict() if result.insights else None,
                "has_ai_insights": result.insights is not None,
            },
        )
        logger.info(
            "behavior_analysis_completed",
            event_count=len(behavior.recent_events),
            pattern=behavior.user_pattern.type.value,
            source=result.source,
        )

    async def _start_monitoring(self, payload: dict[str, Any]) -> None:
        interval_ms = payload.get("interval_ms", self.default_interval_ms)
        if not isinstance(interval_ms, int) or isinstance(interval_ms, bool) or interval_ms <= 0:
            raise ValidationError(
                "interval_ms must be a positive integer",
                field="interval_ms",
                value=interval_ms,
                constraint="positive_int",
            )
        if self._scheduler.is_running(MONITORING_TASK_ID):
            logger.debug("behavior_monitoring_already_active", interval_ms=self._monitoring_interval_ms)
            return

        self._scheduler.register(
            MONITORING_TASK_ID,
            lambda: self.execute_action(AgentAction.ANALYZE_BEHAVIOR),
            interval_ms,
        )
        self._scheduler.start(MONITORING_TASK_ID)
        self._monitoring_interval_ms = interval_ms
        await self.emit("behavior_monitoring_started", {"interval_ms": interval_ms})

    async def _stop_monitoring(self, payload: dict[str, Any]) -> None:
        self._scheduler.unregister(MONITORING_TASK_ID)
        self._monitoring_interval_ms = None
        await self.emit("behavior_monitoring_stopped")

    def get_monitoring_status(self) -> dict[str, Any]:
        return {
            "is_monitoring": self._scheduler.is_running(MONITORING_TASK_ID),
            "interval_ms": self._monitoring_interval_ms,
        }

    async def on_destroy(self) -> None:
        self._scheduler.unregister(MONITORING_TASK_ID)
        self._monitoring_interval_ms = None


__all__ = ["AIAgentController", "AgentAction", "BehaviorSource", "MONITORING_TASK_ID"]
