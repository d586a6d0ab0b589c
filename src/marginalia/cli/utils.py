"""
CLI utility helpers: output formatting and settings overrides.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from marginalia.core.errors import ConfigError
from marginalia.core.settings import MarginaliaSettings, get_settings

console = Console()
err_console = Console(stderr=True)


def load_settings(stats_path: Path | None = None, **overrides: Any) -> MarginaliaSettings:
    """Cached settings with CLI overrides applied on a copy."""
    update = dict(overrides)
    if stats_path is not None:
        update["stats_path"] = stats_path
    try:
        settings = get_settings()
    except ConfigError as exc:
        err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {escape(exc.message)}")
        raise typer.Exit(code=1) from exc
    return settings.model_copy(update=update) if update else settings


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a dict, or a list of records, to the terminal."""
    if as_json:
        payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(data, list | tuple):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        print_table(list(data), title=title)
    else:
        print_dict(_to_dict(data), title=title)


def print_table(items: list, *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(_cell(v) for v in d.values()))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {_cell(v)}")


def _cell(value: Any) -> str:
    if isinstance(value, list | tuple):
        return escape(", ".join(str(v) for v in value))
    return escape(str(value))
