"""
Behavior analysis services.

Turn a :class:`BehaviorData` snapshot into a short analysis text plus,
when a language model produced it, structured insights that steer
suggestion generation.

Architecture:
    ::

        AnalysisService (Protocol)
          ├── RuleBasedAnalysisService   canned text per reading pattern
          └── LLMAnalysisService         OpenAI-compatible chat completions
                 │                        over httpx.AsyncClient
                 └── on AnalysisError ──► fallback (rule-based)

    ``build_analysis_service(settings)`` picks the LLM service only when an
    API key is configured.

Tags:
    analysis, llm, httpx, behavior, marginalia-core

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

import httpx

from marginalia.core.behavior import BehaviorData, PatternType
from marginalia.core.errors import AnalysisError
from marginalia.core.logging import get_logger
from marginalia.core.settings import MarginaliaSettings

logger = get_logger(__name__)

AnalysisSource = Literal["llm", "rule_based"]

DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 800
USER_PROMPT = "Analyze my reading behavior and share your insights."

_ACTION_KEYWORDS = {
    "bookmark": ("bookmark", "save for later", "read later"),
    "note": ("note", "write down", "record"),
    "highlight": ("highlight", "mark", "key point"),
    "summary": ("summary", "summarize", "recap"),
}

_RULE_BASED_ANALYSIS = {
    PatternType.SCANNING: (
        "You are skimming quickly through the content (scanning pattern).",
        [
            "Bookmark articles that catch your interest and come back for a deep read",
            "Look for related articles on the same topic",
            "Slow down and give the content more attention",
        ],
    ),
    PatternType.STUDYING: (
        "You are reading in depth (studying pattern).",
        [
            "Take notes on important passages to help retention",
            "Write a summary of the core ideas",
            "Dig into related topics and references",
        ],
    ),
    PatternType.READING: (
        "You are reading at a steady pace.",
        [
            "Highlight important passages to build your own knowledge base",
            "Search for related articles on the topic",
            "Connect the content to what you already know",
        ],
    ),
}

_DEFAULT_ANALYSIS = (
    "Still analyzing your reading behavior; more data is needed for accurate suggestions.",
    [
        "Keep reading to get more personalized suggestions",
        "Try different ways of reading",
    ],
)


@dataclass(frozen=True)
class AnalysisInsights:
    """Structured hints extracted from an LLM analysis."""

    suggested_actions: tuple[str, ...] = ()
    user_mood: str = "neutral"
    confidence_level: float = 0.7

    def to_dict(self) -> dict[str, Any]:
        return {
            "suggested_actions": list(self.suggested_actions),
            "user_mood": self.user_mood,
            "confidence_level": self.confidence_level,
        }


@dataclass(frozen=True)
class AnalysisResult:
    summary: str
    source: AnalysisSource
    insights: AnalysisInsights | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_ai_guided(self) -> bool:
        return self.source == "llm" and self.insights is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "source": self.source,
            "insights": self.insights.to_dict() if self.insights else None,
        }


@runtime_checkable
class AnalysisService(Protocol):
    async def analyze(self, behavior: BehaviorData, *, custom_prompt: str | None = None) -> AnalysisResult: ...

    async def close(self) -> None: ...


def parse_insights(text: str) -> AnalysisInsights:
    """Keyword scan of a free-text analysis."""
    lowered = text.lower()
    actions = tuple(
        action for action, keywords in _ACTION_KEYWORDS.items() if any(k in lowered for k in keywords)
    )
    if "focus" in lowered or "in depth" in lowered or "in-depth" in lowered:
        return AnalysisInsights(actions, user_mood="focused", confidence_level=0.8)
    if "quick" in lowered or "skim" in lowered or "brows" in lowered:
        return AnalysisInsights(actions, user_mood="scanning", confidence_level=0.6)
    return AnalysisInsights(actions)


def build_behavior_prompt(behavior: BehaviorData, custom_prompt: str | None = None) -> str:
    pattern = behavior.user_pattern
    recent = "; ".join(behavior.recent_events[-5:])
    prompt = (
        "You are a reading assistant that analyzes a reader's behavior and suggests next steps.\n\n"
        "Current behavior data:\n"
        f"- Reading pattern: {pattern.type.value} (confidence: {pattern.confidence})\n"
        f"- Duration: {round(pattern.duration_ms / 1000)} s\n"
        f"- Focus areas: {', '.join(pattern.focus_areas) or 'none'}\n"
        f"- Event count: {behavior.session.event_count}\n"
        f"- Recent events: {recent}\n\n"
        "Based on this data, describe the reader's state and suggest concrete, actionable next steps "
        "(bookmark, take a note, highlight, summarize). Keep the suggestions short and practical."
    )
    if custom_prompt:
        prompt = f"{prompt}\n\nAdditional instructions: {custom_prompt}"
    return prompt


class RuleBasedAnalysisService:
    """Canned analysis per reading pattern; no external calls."""

    async def analyze(self, behavior: BehaviorData, *, custom_prompt: str | None = None) -> AnalysisResult:
        headline, tips = _RULE_BASED_ANALYSIS.get(behavior.user_pattern.type, _DEFAULT_ANALYSIS)
        numbered = "\n".join(f"{i}. {tip}" for i, tip in enumerate(tips, start=1))
        summary = f"{headline}\n\nSuggestions:\n{numbered}"
        logger.debug(
            "rule_based_analysis_completed",
            pattern=behavior.user_pattern.type.value,
            event_count=behavior.session.event_count,
        )
        return AnalysisResult(summary=summary, source="rule_based")

    async def close(self) -> None:
        return None


class LLMAnalysisService:
    """Chat-completions client for an OpenAI-compatible endpoint.

    Any transport, HTTP status or response-shape failure is wrapped in
    :class:`AnalysisError`; ``analyze`` then falls back to ``fallback``.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        model: str,
        timeout: float = 30.0,
        fallback: AnalysisService | None = None,
        client: httpx.AsyncClient | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._fallback = fallback or RuleBasedAnalysisService()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "X-Title": "marginalia",
        }

    async def send_message(self, messages: list[dict[str, str]]) -> str:
        try:
            response = await self._client.post(
                "/chat/completions",
                headers=self._headers,
                json={
                    "model": self.model,
                    "messages": messages,
                    "temperature": self.temperature,
                    "max_tokens": self.max_tokens,
                    "stream": False,
                },
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise AnalysisError(
                f"Chat completion failed: {exc.response.status_code} - {exc.response.text[:200]}",
                cause=exc,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise AnalysisError(f"Chat completion failed: {exc}", cause=exc) from exc

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise AnalysisError("Chat completion returned no content", cause=exc) from exc
        if not isinstance(content, str) or not content.strip():
            raise AnalysisError("Chat completion returned no content")
        return content

    async def analyze(self, behavior: BehaviorData, *, custom_prompt: str | None = None) -> AnalysisResult:
        messages = [
            {"role": "system", "content": build_behavior_prompt(behavior, custom_prompt)},
            {"role": "user", "content": USER_PROMPT},
        ]
        try:
            text = await self.send_message(messages)
        except AnalysisError as exc:
            logger.warning("llm_analysis_failed_falling_back", model=self.model, **exc.to_dict())
            return await self._fallback.analyze(behavior, custom_prompt=custom_prompt)

        insights = parse_insights(text)
        logger.info(
            "llm_analysis_completed",
            model=self.model,
            suggested_actions=list(insights.suggested_actions),
            user_mood=insights.user_mood,
        )
        return AnalysisResult(summary=text, source="llm", insights=insights, metadata={"model": self.model})

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def build_analysis_service(settings: MarginaliaSettings) -> AnalysisService:
    if settings.llm_configured and settings.llm_api_key:
        return LLMAnalysisService(
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            timeout=settings.llm_timeout_seconds,
        )
    return RuleBasedAnalysisService()


__all__ = [
    "AnalysisInsights",
    "AnalysisResult",
    "AnalysisService",
    "AnalysisSource",
    "LLMAnalysisService",
    "RuleBasedAnalysisService",
    "build_analysis_service",
    "build_behavior_prompt",
    "parse_insights",
]
