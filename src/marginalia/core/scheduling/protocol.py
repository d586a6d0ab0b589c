"""Task definitions and health records for the scheduler.

┌──────────────────────────────────────────────────────────────────────────────┐
│  TASK MODEL                                                                   │
│                                                                               │
│   register()            start()              stop()/unregister()             │
│   ──────────►  Task  ──────────►  timer  ──────────►  (no timer)             │
│               (stored)          (asyncio.Task)                               │
│                                     │                                         │
│                                     │ every interval_ms                       │
│                                     ▼                                         │
│                           invocation (asyncio.Task)                           │
│                           at most one in flight per task                      │
│                                                                               │
│  Responsibility split:                                                        │
│  - Task: WHAT to run and how often                                           │
│  - TaskScheduler: WHEN it runs, and containing its failures                  │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

TaskCallback = Callable[[], Awaitable[None] | None]


@dataclass(frozen=True)
class Task:
    """A named periodic task.

    Attributes:
        task_id: Unique task name (e.g. ``ai-behavior-analysis``)
        callback: Sync or async callable invoked on each tick
        interval_ms: Fixed period between ticks, in milliseconds
        enabled: Disabled tasks are never started
    """

    task_id: str
    callback: TaskCallback
    interval_ms: int
    enabled: bool = True

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000


@dataclass
class TaskHealth:
    """Structured per-task health."""

    task_id: str
    running: bool
    interval_ms: int
    enabled: bool = True
    tick_count: int = 0
    skipped_count: int = 0
    failure_count: int = 0
    in_flight: bool = False
    last_tick: datetime | None = None
    last_error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "task_id": self.task_id,
            "running": self.running,
            "interval_ms": self.interval_ms,
            "enabled": self.enabled,
            "tick_count": self.tick_count,
            "skipped_count": self.skipped_count,
            "failure_count": self.failure_count,
            "in_flight": self.in_flight,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "last_error": self.last_error,
            **self.extra,
        }
