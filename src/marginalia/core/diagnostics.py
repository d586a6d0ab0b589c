"""Diagnostics export: suggestion counters plus the collected event log.

Formats:
    json   ``{"stats": {...}, "events": [...]}``
    csv    a ``metric,value`` block, a blank line, then the event CSV
    table  two rich tables rendered to plain text
"""

from __future__ import annotations

import csv
import io
import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from marginalia.core.collector import EventCollector, EventRecord, records_to_csv
from marginalia.core.suggestions import SuggestionQueue

EXPORT_FORMATS = ("json", "csv", "table")

_EVENT_COLUMNS = ("timestamp", "level", "source", "category", "message", "data")


def diagnostics_stats(queue: SuggestionQueue) -> dict[str, Any]:
    stats = queue.stats
    return {**stats.to_dict(), "acceptance_rate": stats.format_acceptance_rate()}


def export_diagnostics(queue: SuggestionQueue, collector: EventCollector, fmt: str = "json") -> str:
    """Render counters and the event log.

    Raises:
        ValueError: If ``fmt`` is not one of :data:`EXPORT_FORMATS`
    """
    stats = diagnostics_stats(queue)
    records = collector.recent_records()

    if fmt == "json":
        return json.dumps(
            {"stats": stats, "events": [r.to_dict() for r in records]},
            indent=2,
            ensure_ascii=False,
        )
    if fmt == "csv":
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["metric", "value"])
        for key, value in stats.items():
            writer.writerow([key, value])
        return buffer.getvalue() + "\n" + records_to_csv(records)
    if fmt == "table":
        return _render_tables(stats, records)
    raise ValueError(f"unsupported export format: {fmt} (expected one of {', '.join(EXPORT_FORMATS)})")


def _render_tables(stats: dict[str, Any], records: list[EventRecord]) -> str:
    console = Console(file=io.StringIO(), width=120, color_system=None, force_terminal=False)

    stats_table = Table(title="Suggestion stats", show_lines=False, pad_edge=False)
    stats_table.add_column("metric")
    stats_table.add_column("value", justify="right")
    for key, value in stats.items():
        stats_table.add_row(key, escape(str(value)))
    console.print(stats_table)

    if not records:
        console.print("No events.")
    else:
        events_table = Table(title="Events", show_lines=False, pad_edge=False)
        for column in _EVENT_COLUMNS:
            events_table.add_column(column, overflow="fold")
        for record in records:
            row = record.to_dict()
            events_table.add_row(*(escape(str(row[c])) for c in _EVENT_COLUMNS))
        console.print(events_table)

    return console.file.getvalue()  # type: ignore[attr-defined]


__all__ = ["EXPORT_FORMATS", "diagnostics_stats", "export_diagnostics"]
