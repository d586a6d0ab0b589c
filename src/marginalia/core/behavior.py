"""
Behavior sink: the store that receives formatted telemetry.

The Event Collector forwards wire-formatted records here.  The sink keeps
a short rolling window of recent events for the current subject (article or
session) and derives a coarse reading pattern from their rate.

Manifesto:
    The analysis path only needs "what has the reader been doing lately",
    not a full event history.  Keeping the window small and the state
    immutable means the analysis task can read a consistent snapshot at
    any suspension point.

Features:
    - **BehaviorSink protocol:** what the collector depends on
    - **BehaviorStore:** in-process implementation with a rolling window
    - **get_user_pattern():** scanning / reading / studying by event rate
    - **get_behavior_data():** snapshot consumed by behavior analysis

Tags:
    behavior, telemetry, sink, reading-pattern, marginalia-core

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from marginalia.core.logging import get_logger
from marginalia.core.timestamps import Clock, now_ms

logger = get_logger(__name__)

SCANNING_INTERVAL_MS = 1_000
STUDYING_INTERVAL_MS = 5_000

_FOCUS_KEYWORDS = (
    ("post", "content"),
    ("interaction", "interaction"),
    ("navigation", "navigation"),
)


class PatternType(str, Enum):
    """Coarse reading pattern derived from event rate."""

    SCANNING = "scanning"
    READING = "reading"
    STUDYING = "studying"
    SKIMMING = "skimming"


@dataclass(frozen=True)
class UserPattern:
    type: PatternType
    confidence: float
    duration_ms: int
    focus_areas: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "confidence": self.confidence,
            "duration_ms": self.duration_ms,
            "focus_areas": list(self.focus_areas),
        }


@dataclass(frozen=True)
class SessionData:
    session_start: int
    duration_ms: int
    event_count: int


@dataclass(frozen=True)
class BehaviorData:
    """Snapshot handed to behavior analysis."""

    recent_events: tuple[str, ...]
    user_pattern: UserPattern
    session: SessionData
    timestamp: int
    subject_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "recent_events": list(self.recent_events),
            "user_pattern": self.user_pattern.to_dict(),
            "session": asdict(self.session),
            "timestamp": self.timestamp,
            "subject_id": self.subject_id,
        }


@dataclass(frozen=True)
class CollectionStatus:
    """Read-only view of the collection session."""

    is_collecting: bool
    event_count: int
    current_subject_id: str | None


@dataclass(frozen=True)
class BehaviorState:
    is_collecting: bool = False
    current_subject_id: str | None = None
    events: tuple[str, ...] = field(default_factory=tuple)
    session_start: int = 0
    last_event_time: int = 0


@runtime_checkable
class BehaviorSink(Protocol):
    """What the Event Collector needs from a behavior store."""

    def start_collecting(self, subject_id: str) -> None: ...

    def stop_collecting(self) -> None: ...

    def collect_event(self, record: str) -> None: ...

    def get_behavior_data(self) -> BehaviorData: ...

    def get_collection_status(self) -> CollectionStatus: ...


def extract_focus_areas(events: tuple[str, ...] | list[str]) -> tuple[str, ...]:
    """Map event text to the areas of the page the reader touched, in first-seen order."""
    areas: list[str] = []
    for event in events:
        lowered = event.lower()
        for keyword, area in _FOCUS_KEYWORDS:
            if keyword in lowered and area not in areas:
                areas.append(area)
    return tuple(areas)


class BehaviorStore:
    """In-process behavior sink with a rolling window of recent events.

    Every mutation replaces ``state`` with a new frozen snapshot.
    """

    def __init__(self, *, max_events: int = 50, clock: Clock = now_ms) -> None:
        if max_events <= 0:
            raise ValueError("max_events must be positive")
        self.max_events = max_events
        self._clock = clock
        self.state = BehaviorState(session_start=clock())

    def start_collecting(self, subject_id: str) -> None:
        self.state = BehaviorState(
            is_collecting=True,
            current_subject_id=subject_id,
            events=(),
            session_start=self._clock(),
        )
        logger.debug("behavior_collection_started", subject_id=subject_id)

    def stop_collecting(self) -> None:
        subject_id = self.state.current_subject_id
        self.state = replace(self.state, is_collecting=False, current_subject_id=None, events=())
        logger.debug("behavior_collection_stopped", subject_id=subject_id)

    def collect_event(self, record: str) -> None:
        state = self.state
        if not state.is_collecting:
            return
        events = (state.events + (record,))[-self.max_events:]
        self.state = replace(state, events=events, last_event_time=self._clock())

    def get_user_pattern(self) -> UserPattern:
        state = self.state
        duration = self._clock() - state.session_start
        event_count = len(state.events)
        avg_interval = duration / max(event_count, 1)

        pattern, confidence = PatternType.READING, 0.5
        if avg_interval < SCANNING_INTERVAL_MS:
            pattern, confidence = PatternType.SCANNING, 0.8
        elif avg_interval > STUDYING_INTERVAL_MS:
            pattern, confidence = PatternType.STUDYING, 0.7

        return UserPattern(
            type=pattern,
            confidence=confidence,
            duration_ms=duration,
            focus_areas=extract_focus_areas(state.events),
        )

    def get_behavior_data(self) -> BehaviorData:
        state = self.state
        now = self._clock()
        return BehaviorData(
            recent_events=state.events,
            user_pattern=self.get_user_pattern(),
            session=SessionData(
                session_start=state.session_start,
                duration_ms=now - state.session_start,
                event_count=len(state.events),
            ),
            timestamp=now,
            subject_id=state.current_subject_id,
        )

    def get_collection_status(self) -> CollectionStatus:
        state = self.state
        return CollectionStatus(
            is_collecting=state.is_collecting,
            event_count=len(state.events),
            current_subject_id=state.current_subject_id,
        )


__all__ = [
    "PatternType",
    "UserPattern",
    "SessionData",
    "BehaviorData",
    "CollectionStatus",
    "BehaviorState",
    "BehaviorSink",
    "BehaviorStore",
    "extract_focus_areas",
]
