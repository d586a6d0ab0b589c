"""Fixed-rate asyncio task scheduler.

This is the process-wide timer owner of the pipeline. It runs on the
application's event loop: one timer task per running task id, and one
invocation task per tick.

┌──────────────────────────────────────────────────────────────────────────────┐
│  TIMER LOOP (per running task)                                                │
│                                                                               │
│   next_at = now + interval                                                    │
│   loop:                                                                       │
│       sleep until next_at                                                     │
│       next_at += interval           ◄── fixed rate, not fixed delay           │
│       previous invocation settled?                                            │
│           yes → spawn invocation    (errors → SchedulerTaskError, logged)     │
│           no  → skip tick, count it                                           │
│                                                                               │
│  stop(task_id) cancels the timer only; an in-flight invocation finishes      │
│  on its own and its effects may land after stop() returns.                   │
└──────────────────────────────────────────────────────────────────────────────┘

Overlap policy: by default a tick is skipped while the previous invocation
of the same task is still running, giving at most one concurrent run per
task. ``allow_overlap=True`` restores plain fixed-rate firing, where slow
async callbacks may pile up.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from datetime import datetime

from marginalia.core.errors import SchedulerTaskError
from marginalia.core.logging import LogContext, get_logger
from marginalia.core.timestamps import utc_now

from .protocol import Task, TaskCallback, TaskHealth

logger = get_logger(__name__)


@dataclass
class _TaskStats:
    tick_count: int = 0
    skipped_count: int = 0
    failure_count: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None


class TaskScheduler:
    """Owns named periodic tasks and their timers.

    Example:
        >>> scheduler = TaskScheduler()
        >>> scheduler.register("ai-behavior-analysis", analyze, interval_ms=30_000)
        >>> scheduler.start_all()      # inside a running event loop
        >>> ...
        >>> scheduler.stop_all()
    """

    name = "asyncio"

    def __init__(self, *, allow_overlap: bool = False) -> None:
        self.allow_overlap = allow_overlap
        self._tasks: dict[str, Task] = {}
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._in_flight: dict[str, asyncio.Task[None]] = {}
        self._stats: dict[str, _TaskStats] = {}

    # ── Registration ─────────────────────────────────────────────

    def register(
        self,
        task_id: str,
        callback: TaskCallback,
        interval_ms: int,
        enabled: bool = True,
    ) -> Task:
        """Store a task definition. Does not start it."""
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")

        if task_id in self._timers:
            self.stop(task_id)

        task = Task(task_id=task_id, callback=callback, interval_ms=interval_ms, enabled=enabled)
        self._tasks[task_id] = task
        self._stats.setdefault(task_id, _TaskStats())
        logger.debug("task_registered", task_id=task_id, interval_ms=interval_ms, enabled=enabled)
        return task

    def unregister(self, task_id: str) -> None:
        """Stop the task, then drop its definition."""
        self.stop(task_id)
        self._tasks.pop(task_id, None)
        self._stats.pop(task_id, None)
        self._in_flight.pop(task_id, None)
        logger.debug("task_unregistered", task_id=task_id)

    # ── Start / stop ─────────────────────────────────────────────

    def start(self, task_id: str) -> None:
        """Start a fixed-rate timer for ``task_id``.

        No-op if the task is unknown or disabled. Any existing timer for the
        same id is cancelled first, so repeated calls never stack timers.
        Must be called with a running event loop.
        """
        task = self._tasks.get(task_id)
        if task is None:
            logger.warning("task_not_found", task_id=task_id)
            return
        if not task.enabled:
            logger.debug("task_disabled", task_id=task_id)
            return

        self.stop(task_id)

        loop = asyncio.get_running_loop()
        self._timers[task_id] = loop.create_task(
            self._run_timer(task), name=f"marginalia-timer:{task_id}"
        )
        logger.info("task_started", task_id=task_id, interval_ms=task.interval_ms)

    def stop(self, task_id: str) -> None:
        """Cancel future ticks of ``task_id``. Idempotent."""
        timer = self._timers.pop(task_id, None)
        if timer is None:
            return
        timer.cancel()
        logger.info("task_stopped", task_id=task_id)

    def start_all(self) -> None:
        """Start every enabled task."""
        for task_id, task in list(self._tasks.items()):
            if task.enabled:
                self.start(task_id)

    def stop_all(self) -> None:
        """Stop every running task."""
        for task_id in list(self._timers):
            self.stop(task_id)

    def cleanup(self) -> None:
        """Stop all timers and drop all task definitions."""
        self.stop_all()
        self._tasks.clear()
        self._stats.clear()
        self._in_flight.clear()

    async def drain(self, timeout: float | None = 5.0) -> None:
        """Wait for in-flight invocations to settle (used at shutdown)."""
        pending = [t for t in self._in_flight.values() if not t.done()]
        if not pending:
            return
        done, still_pending = await asyncio.wait(pending, timeout=timeout)
        if still_pending:
            logger.warning("task_drain_timeout", pending=len(still_pending))

    # ── Queries ──────────────────────────────────────────────────

    def is_running(self, task_id: str) -> bool:
        timer = self._timers.get(task_id)
        return timer is not None and not timer.done()

    @property
    def task_ids(self) -> list[str]:
        return list(self._tasks)

    def get_task(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def task_health(self, task_id: str) -> TaskHealth | None:
        task = self._tasks.get(task_id)
        if task is None:
            return None
        stats = self._stats.get(task_id, _TaskStats())
        in_flight = self._in_flight.get(task_id)
        return TaskHealth(
            task_id=task_id,
            running=self.is_running(task_id),
            interval_ms=task.interval_ms,
            enabled=task.enabled,
            tick_count=stats.tick_count,
            skipped_count=stats.skipped_count,
            failure_count=stats.failure_count,
            in_flight=in_flight is not None and not in_flight.done(),
            last_tick=stats.last_tick,
            last_error=stats.last_error,
        )

    def health(self) -> dict:
        """Return scheduler health: overall flag plus per-task records."""
        tasks = [self.task_health(task_id) for task_id in self._tasks]
        return {
            "healthy": True,
            "backend": self.name,
            "allow_overlap": self.allow_overlap,
            "running": [t for t in self._timers if self.is_running(t)],
            "tasks": [t.to_dict() for t in tasks if t is not None],
        }

    # ── Internals ────────────────────────────────────────────────

    async def _run_timer(self, task: Task) -> None:
        loop = asyncio.get_running_loop()
        interval = task.interval_seconds
        next_at = loop.time() + interval
        tick = 0

        while True:
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            tick += 1
            self._fire(task, tick)

            next_at += interval
            now = loop.time()
            if next_at <= now:
                # Loop was blocked past a whole period; drop the missed beats.
                next_at = now + interval

    def _fire(self, task: Task, tick: int) -> None:
        stats = self._stats.setdefault(task.task_id, _TaskStats())
        previous = self._in_flight.get(task.task_id)

        if previous is not None and not previous.done() and not self.allow_overlap:
            stats.skipped_count += 1
            logger.debug("task_tick_skipped", task_id=task.task_id, tick=tick)
            return

        stats.tick_count += 1
        stats.last_tick = utc_now()
        self._in_flight[task.task_id] = asyncio.get_running_loop().create_task(
            self._invoke(task, tick), name=f"marginalia-tick:{task.task_id}:{tick}"
        )

    async def _invoke(self, task: Task, tick: int) -> None:
        # Each tick runs in its own asyncio task, so the bound context stays local to it.
        with LogContext(task_id=task.task_id, tick=tick):
            try:
                result = task.callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = SchedulerTaskError(
                    f"Task failed: {task.task_id}", task_id=task.task_id, tick=tick, cause=exc
                )
                stats = self._stats.get(task.task_id)
                if stats is not None:
                    stats.failure_count += 1
                    stats.last_error = str(exc) or exc.__class__.__name__
                logger.error("scheduler_task_failed", error=error.to_dict(), exc_info=exc)


__all__ = ["TaskScheduler"]
