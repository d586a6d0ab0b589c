"""Persistence for suggestion counters.

Only the four counters survive a restart; the live queue and the
current-suggestion pointer are deliberately never written.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from marginalia.core.logging import get_logger

from .models import SuggestionStats

logger = get_logger(__name__)

_COUNTER_FIELDS = ("total_generated", "total_accepted", "total_rejected", "total_dismissed")


class StatsStore:
    """JSON file holding :class:`SuggestionStats`."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> SuggestionStats:
        """Read the counters; missing or unreadable files yield zeroes."""
        if not self.path.exists():
            return SuggestionStats()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            counters = {name: max(0, int(raw.get(name, 0))) for name in _COUNTER_FIELDS}
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            logger.warning("suggestion_stats_unreadable", path=str(self.path), error=str(exc))
            return SuggestionStats()
        return SuggestionStats(**counters)

    def save(self, stats: SuggestionStats) -> None:
        """Write the counters atomically (temp file + rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(stats.to_dict(), indent=2), encoding="utf-8")
        os.replace(tmp, self.path)
        logger.debug("suggestion_stats_saved", path=str(self.path), **stats.to_dict())


__all__ = ["StatsStore"]
