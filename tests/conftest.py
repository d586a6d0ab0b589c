"""
Shared pytest fixtures and configuration for marginalia tests.

This module provides:
- Settings cache isolation and a throwaway counter file per test
- A manual clock and seeded RNG for deterministic suggestion generation
- An event bus plus a recorder that captures every published event
- Behavior snapshot builders for the generation rules

Usage:
    Fixtures are auto-discovered by pytest. Request them as test arguments.

    @pytest.mark.asyncio
    async def test_something(bus, recorder):
        ...
"""

from __future__ import annotations

import random
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Ensure marginalia package is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from marginalia.core.behavior import BehaviorData, PatternType, SessionData, UserPattern
from marginalia.core.events import Event
from marginalia.core.events.memory import InMemoryEventBus
from marginalia.core.settings import MarginaliaSettings, clear_settings_cache
from marginalia.core.timestamps import ManualClock

START_MS = 1_700_000_000_000


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Never read a developer's .env or write to ~/.marginalia."""
    monkeypatch.chdir(tmp_path)
    for name in ("MARGINALIA_LLM_API_KEY", "MARGINALIA_STATS_PATH", "MARGINALIA_ANALYSIS_ENABLED"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MARGINALIA_STATS_PATH", str(tmp_path / "stats.json"))
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings(tmp_path) -> MarginaliaSettings:
    return MarginaliaSettings(
        stats_path=tmp_path / "stats.json",
        analysis_enabled=False,
        next_suggestion_delay_ms=0,
    )


# =============================================================================
# Deterministic time and randomness
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START_MS)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


class AlwaysRandom(random.Random):
    """RNG whose ``random()`` always returns the same value."""

    def __init__(self, value: float) -> None:
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


@pytest.fixture
def lucky_rng() -> AlwaysRandom:
    """Every probabilistic rule fires."""
    return AlwaysRandom(0.99)


@pytest.fixture
def unlucky_rng() -> AlwaysRandom:
    """No probabilistic rule fires."""
    return AlwaysRandom(0.0)


# =============================================================================
# Event bus
# =============================================================================


class EventRecorder:
    """Collects events from a bus for assertions."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    async def __call__(self, event: Event) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [e.event_type for e in self.events]

    def of_type(self, event_type: str) -> list[Event]:
        return [e for e in self.events if e.event_type == event_type]

    def last(self, event_type: str) -> Event:
        matching = self.of_type(event_type)
        assert matching, f"no {event_type} event in {self.types}"
        return matching[-1]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest_asyncio.fixture
async def recorder(bus) -> EventRecorder:
    rec = EventRecorder()
    await bus.subscribe("*", rec)
    return rec


# =============================================================================
# Behavior snapshots
# =============================================================================


def make_behavior(
    pattern: PatternType = PatternType.READING,
    *,
    confidence: float = 0.8,
    event_count: int = 10,
    subject_id: str | None = "post-1",
    timestamp: int = START_MS,
) -> BehaviorData:
    events = tuple(f"{timestamp}|info|reader|navigation|event {i}|" for i in range(event_count))
    return BehaviorData(
        recent_events=events,
        user_pattern=UserPattern(type=pattern, confidence=confidence, duration_ms=60_000),
        session=SessionData(session_start=timestamp - 60_000, duration_ms=60_000, event_count=event_count),
        timestamp=timestamp,
        subject_id=subject_id,
    )


@pytest.fixture
def behavior_factory():
    return make_behavior
