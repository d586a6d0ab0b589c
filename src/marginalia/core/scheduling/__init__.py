"""
Periodic task scheduling.

Manifesto:
    The suggestion pipeline is driven by time: behavior analysis runs every
    30 seconds, buffered telemetry is flushed every second.  One scheduler
    owns every timer so shutdown can stop them all in one place, and so a
    failing callback is contained instead of silently killing its timer.

Architecture:
    ::

        protocol.py     Task, TaskCallback, TaskHealth
        scheduler.py    TaskScheduler (asyncio, fixed-rate, in-flight guard)

Examples:
    >>> from marginalia.core.scheduling import TaskScheduler
    >>> scheduler = TaskScheduler()
    >>> scheduler.register("collector-flush", collector.flush, interval_ms=1_000)
    >>> scheduler.start("collector-flush")

Tags:
    scheduling, timers, asyncio, marginalia-core

Doc-Types:
    - Package Overview
"""

from .protocol import Task, TaskCallback, TaskHealth
from .scheduler import TaskScheduler

__all__ = ["Task", "TaskCallback", "TaskHealth", "TaskScheduler"]
