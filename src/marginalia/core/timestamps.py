"""
Epoch-millisecond clock and id helpers (stdlib-only).

The queue, collector and behavior sink all reason in epoch milliseconds
(the dedup window, expiry and session durations are ms quantities).  They
take a ``Clock`` callable instead of calling ``time.time()`` directly so
tests can move time explicitly.

Tags:
    timestamps, clock, unique-id, marginalia-core, stdlib-only

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import random
import string
import time
from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], int]

_ID_ALPHABET = string.ascii_lowercase + string.digits


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def ms_to_iso8601(ms: int) -> str:
    """Format epoch milliseconds as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(ms / 1000, UTC).isoformat().replace("+00:00", "Z")


def generate_id(prefix: str, *, clock: Clock = now_ms, rng: random.Random | None = None) -> str:
    """Generate ``<prefix>-<epoch ms>-<9 random chars>``."""
    chooser = rng or random
    suffix = "".join(chooser.choices(_ID_ALPHABET, k=9))
    return f"{prefix}-{clock()}-{suffix}"


class ManualClock:
    """A settable clock for tests and simulations.

    Example:
        >>> clock = ManualClock(1_000)
        >>> clock()
        1000
        >>> clock.advance(500)
        >>> clock()
        1500
    """

    def __init__(self, start_ms: int = 0) -> None:
        self._now = start_ms

    def __call__(self) -> int:
        return self._now

    def advance(self, ms: int) -> None:
        self._now += ms

    def set(self, ms: int) -> None:
        self._now = ms


__all__ = ["Clock", "ManualClock", "now_ms", "utc_now", "ms_to_iso8601", "generate_id"]
