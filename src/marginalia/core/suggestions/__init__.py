"""Suggestion queue: models, the priority queue, and counter persistence.

Architecture::

    models.py     Suggestion, Priority, SuggestionStats, QueueState, QueueStatus
    queue.py      SuggestionQueue (dedup window, expiry sweep, counters)
    stats.py      StatsStore (JSON persistence of the counters only)
"""

from .models import (
    PRIORITY_WEIGHTS,
    Priority,
    QueueState,
    QueueStatus,
    Suggestion,
    SuggestionKind,
    SuggestionStats,
    sort_suggestions,
)
from .queue import DUPLICATE_CHECK_WINDOW_MS, SuggestionQueue
from .stats import StatsStore

__all__ = [
    "PRIORITY_WEIGHTS",
    "DUPLICATE_CHECK_WINDOW_MS",
    "Priority",
    "QueueState",
    "QueueStatus",
    "Suggestion",
    "SuggestionKind",
    "SuggestionStats",
    "SuggestionQueue",
    "StatsStore",
    "sort_suggestions",
]
