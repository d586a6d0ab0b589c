"""
Event Collector - single entry point for behavioral telemetry.

Controllers and UI adapters call :meth:`EventCollector.collect` with a
source, a message and arbitrary data.  The collector filters by level,
sanitizes the data (redacts secrets, breaks cycles), formats an
:class:`EventRecord` and forwards its wire form to the behavior sink.
Nothing in here is allowed to raise into the caller: telemetry must never
break the feature that emits it.

Manifesto:
    - **One entry point:** controllers depend on the collector, not the store
    - **Safe by default:** sensitive keys are redacted before formatting
    - **Terminates:** self-referencing data yields a marker, not a recursion
    - **Contained:** sink and serialization failures are logged, not raised

Architecture:
    ::

        collect(source, message, data, level, category)
            │
            ├── disabled? ─────────────────────────► drop
            ├── level < threshold? ────────────────► drop
            ├── filter(source, message, data) False ► drop
            ▼
        sanitize(data) ──► json ──► EventRecord ──► to_wire()
            │                                          │
            │                   buffered? ──► buffer ──┤ flush()
            ▼                                          ▼
                                             sink.collect_event(wire)

Wire format:
    ``timestamp|level|source|category|message|json_data`` in that order.
    Backslash and ``|`` inside a field are backslash-escaped, so a message
    containing the delimiter survives :func:`parse_wire` intact.

Tags:
    telemetry, sanitization, redaction, event-collector, marginalia-core

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import csv
import io
import json
import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from marginalia.core.behavior import BehaviorData, BehaviorSink, CollectionStatus
from marginalia.core.errors import SerializationError
from marginalia.core.logging import get_logger
from marginalia.core.settings import LogLevelName
from marginalia.core.timestamps import Clock, now_ms

logger = get_logger(__name__)

REDACTED = "[REDACTED]"
CIRCULAR_REFERENCE = "[Circular Reference]"
SERIALIZATION_ERROR = "[Serialization Error]"

SENSITIVE_FIELDS = ("password", "token", "secret", "key", "credential", "authorization")

WIRE_DELIMITER = "|"
WIRE_FIELDS = ("timestamp", "level", "source", "category", "message", "data")


class EventLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


LEVEL_PRIORITY = {
    EventLevel.DEBUG: 0,
    EventLevel.INFO: 1,
    EventLevel.WARN: 2,
    EventLevel.ERROR: 3,
}

EventFilter = Callable[[str, str, Any], bool]


class CollectorConfig(BaseModel):
    """Collector options; replaced wholesale on every :meth:`EventCollector.configure`."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    buffer_size: int = Field(default=50, gt=0)
    flush_interval_ms: int = Field(default=1_000, gt=0)
    log_level_threshold: LogLevelName = "debug"


# ── Sanitization ─────────────────────────────────────────────────────────


def is_sensitive_field(name: str) -> bool:
    """True if the lowercase key contains any sensitive substring."""
    lowered = name.lower()
    return any(marker in lowered for marker in SENSITIVE_FIELDS)


def sanitize(data: Any, _seen: set[int] | None = None) -> Any:
    """Redact sensitive keys and break reference cycles, depth first.

    Every container visited during one walk is remembered by identity;
    meeting it again yields :data:`CIRCULAR_REFERENCE` instead of recursing.
    """
    if data is None or isinstance(data, (str, int, float, bool)):
        return data

    if _seen is None:
        _seen = set()

    if id(data) in _seen:
        return CIRCULAR_REFERENCE

    if isinstance(data, Mapping):
        _seen.add(id(data))
        items: Iterable[tuple[Any, Any]] = data.items()
    elif is_dataclass(data) and not isinstance(data, type):
        _seen.add(id(data))
        items = ((f.name, getattr(data, f.name)) for f in fields(data))
    elif isinstance(data, BaseModel):
        _seen.add(id(data))
        items = ((name, getattr(data, name)) for name in type(data).model_fields)
    elif isinstance(data, (list, tuple, set, frozenset)):
        _seen.add(id(data))
        return [sanitize(item, _seen) for item in data]
    else:
        return data

    result: dict[str, Any] = {}
    for key, value in items:
        name = str(key)
        if is_sensitive_field(name):
            result[name] = REDACTED
        else:
            result[name] = sanitize(value, _seen)
    return result


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _is_blank(data: Any) -> bool:
    # None, False, 0, NaN and "" carry no data; empty containers still do.
    if data is None or data is False:
        return True
    if isinstance(data, str):
        return not data
    if isinstance(data, (int, float)):
        return data == 0 or math.isnan(data)
    return False


def format_event_data(data: Any) -> str:
    """Sanitize and serialize ``data``; ``""`` for blank data, a marker on failure."""
    if _is_blank(data):
        return ""
    try:
        return json.dumps(sanitize(data), ensure_ascii=False, default=_json_default)
    except (TypeError, ValueError, RecursionError) as exc:
        error = SerializationError("Event data could not be serialized", cause=exc)
        logger.warning("event_serialization_failed", error=error.to_dict())
        return SERIALIZATION_ERROR


# ── Wire format ──────────────────────────────────────────────────────────


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace(WIRE_DELIMITER, "\\" + WIRE_DELIMITER)


def _split_wire(line: str) -> list[str]:
    parts: list[str] = []
    current: list[str] = []
    chars = iter(line)
    for char in chars:
        if char == "\\":
            current.append(next(chars, ""))
        elif char == WIRE_DELIMITER:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return parts


@dataclass(frozen=True)
class EventRecord:
    """One formatted telemetry record.

    ``data`` holds the sanitized payload already serialized to JSON, or an
    empty string when no data was supplied.
    """

    timestamp: int
    level: EventLevel
    source: str
    category: str
    message: str
    data: str = ""

    def to_wire(self) -> str:
        return WIRE_DELIMITER.join(
            _escape(str(part))
            for part in (
                self.timestamp,
                self.level.value,
                self.source,
                self.category,
                self.message,
                self.data,
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "source": self.source,
            "category": self.category,
            "message": self.message,
            "data": self.data,
        }


def parse_wire(line: str) -> EventRecord:
    """Inverse of :meth:`EventRecord.to_wire`.

    Raises:
        ValueError: if the line does not have exactly six fields.
    """
    parts = _split_wire(line)
    if len(parts) != len(WIRE_FIELDS):
        raise ValueError(f"expected {len(WIRE_FIELDS)} fields, got {len(parts)}")
    timestamp, level, source, category, message, data = parts
    return EventRecord(
        timestamp=int(timestamp),
        level=EventLevel(level),
        source=source,
        category=category,
        message=message,
        data=data,
    )


# ── Collector ────────────────────────────────────────────────────────────


class EventCollector:
    """Unified telemetry entry point in front of a :class:`BehaviorSink`."""

    def __init__(
        self,
        sink: BehaviorSink,
        config: CollectorConfig | None = None,
        *,
        clock: Clock = now_ms,
    ) -> None:
        self._sink = sink
        self._config = config or CollectorConfig()
        self._clock = clock
        self._buffer: tuple[EventRecord, ...] = ()
        self._filter: EventFilter | None = None

    @property
    def config(self) -> CollectorConfig:
        return self._config

    @property
    def sink(self) -> BehaviorSink:
        return self._sink

    @property
    def buffered_count(self) -> int:
        return len(self._buffer)

    def configure(self, **options: Any) -> CollectorConfig:
        """Merge ``options`` into the current config and validate the result."""
        self._config = CollectorConfig.model_validate({**self._config.model_dump(), **options})
        logger.debug("collector_configured", **options)
        return self._config

    def set_event_filter(self, event_filter: EventFilter | None) -> None:
        """Install (or clear with ``None``) a predicate that can veto events."""
        self._filter = event_filter

    def should_log(self, level: EventLevel | str) -> bool:
        """Level gate: ``level`` must be at or above the configured threshold."""
        event_level = _coerce_level(level)
        threshold = EventLevel(self._config.log_level_threshold)
        return LEVEL_PRIORITY[event_level] >= LEVEL_PRIORITY[threshold]

    def collect(
        self,
        source: str,
        message: str,
        data: Any = None,
        *,
        level: EventLevel | str = EventLevel.INFO,
        category: str = "default",
        buffered: bool = False,
    ) -> EventRecord | None:
        """Filter, sanitize, format and forward one event.

        Returns the record that was forwarded (or buffered), or ``None`` if
        the event was dropped.
        """
        if not self._config.enabled:
            return None

        event_level = _coerce_level(level)
        if not self.should_log(event_level):
            return None

        if self._filter is not None and not self._passes_filter(source, message, data):
            return None

        record = EventRecord(
            timestamp=self._clock(),
            level=event_level,
            source=source,
            category=category or "default",
            message=message,
            data=format_event_data(data),
        )

        if buffered:
            self._buffer = self._buffer + (record,)
            if len(self._buffer) >= self._config.buffer_size:
                self.flush()
        else:
            self._forward(record)
        return record

    def collect_batch(self, events: Iterable[Mapping[str, Any]]) -> int:
        """Collect several events; each mapping holds ``collect`` arguments.

        Returns the number of events that were not dropped.
        """
        accepted = 0
        for event in events:
            record = self.collect(
                event["source"],
                event["message"],
                event.get("data"),
                level=event.get("level", EventLevel.INFO),
                category=event.get("category", "default"),
                buffered=event.get("buffered", False),
            )
            if record is not None:
                accepted += 1
        return accepted

    def flush(self) -> int:
        """Forward every buffered record to the sink; returns how many."""
        pending, self._buffer = self._buffer, ()
        for record in pending:
            self._forward(record)
        if pending:
            logger.debug("collector_flushed", count=len(pending))
        return len(pending)

    # ── Collection session ───────────────────────────────────────

    def start_collecting(self, subject_id: str) -> None:
        if not self._config.enabled:
            return
        try:
            self._sink.start_collecting(subject_id)
        except Exception as exc:
            logger.warning("collector_start_failed", subject_id=subject_id, error=str(exc))

    def stop_collecting(self) -> None:
        if not self._config.enabled:
            return
        self.flush()
        try:
            self._sink.stop_collecting()
        except Exception as exc:
            logger.warning("collector_stop_failed", error=str(exc))

    def get_collection_status(self) -> CollectionStatus:
        return self._sink.get_collection_status()

    def get_behavior_data(self) -> BehaviorData:
        return self._sink.get_behavior_data()

    # ── Export ───────────────────────────────────────────────────

    def recent_records(self) -> list[EventRecord]:
        """Parse the sink's recent events back into records, skipping foreign lines."""
        records = []
        for line in self.get_behavior_data().recent_events:
            try:
                records.append(parse_wire(line))
            except ValueError:
                logger.debug("collector_unparseable_event", line=line)
        return records

    def export_logs(self, fmt: str = "json") -> str:
        """Dump the behavior data as JSON, or the recent events as CSV."""
        if fmt == "csv":
            return records_to_csv(self.recent_records())
        if fmt == "json":
            return json.dumps(self.get_behavior_data().to_dict(), indent=2, ensure_ascii=False)
        raise ValueError(f"unsupported export format: {fmt}")

    # ── Internals ────────────────────────────────────────────────

    def _passes_filter(self, source: str, message: str, data: Any) -> bool:
        try:
            return bool(self._filter(source, message, data))  # type: ignore[misc]
        except Exception as exc:
            logger.warning("collector_filter_failed", source=source, error=str(exc))
            return True

    def _forward(self, record: EventRecord) -> None:
        try:
            self._sink.collect_event(record.to_wire())
        except Exception as exc:
            # Telemetry failures stay inside the collector.
            logger.warning("collector_sink_failed", source=record.source, error=str(exc))


def records_to_csv(records: Iterable[EventRecord]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["Timestamp", "Level", "Source", "Category", "Message", "Data"])
    for record in records:
        writer.writerow(
            [record.timestamp, record.level.value, record.source, record.category, record.message, record.data]
        )
    return buffer.getvalue()


def _coerce_level(level: EventLevel | str) -> EventLevel:
    if isinstance(level, EventLevel):
        return level
    try:
        return EventLevel(str(level).lower())
    except ValueError:
        logger.warning("collector_unknown_level", level=level)
        return EventLevel.DEBUG


__all__ = [
    "REDACTED",
    "CIRCULAR_REFERENCE",
    "SERIALIZATION_ERROR",
    "SENSITIVE_FIELDS",
    "EventLevel",
    "EventFilter",
    "CollectorConfig",
    "EventRecord",
    "EventCollector",
    "sanitize",
    "is_sensitive_field",
    "format_event_data",
    "parse_wire",
    "records_to_csv",
]
