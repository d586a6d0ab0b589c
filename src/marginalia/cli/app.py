"""
Root Typer application for the marginalia CLI.

Commands:
    actions    list every controller action
    stats      show persisted suggestion counters
    simulate   run a scripted reading session and show the emitted events
    export     run a session and dump diagnostics (json, csv or table)
"""

from __future__ import annotations

import asyncio
from enum import Enum
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from pathlib import Path

import typer
from typer import Typer

from marginalia import __version__
from marginalia.cli.session import run_session
from marginalia.cli.utils import console, err_console, load_settings, output
from marginalia.core.logging import configure_logging
from marginalia.core.suggestions import StatsStore

app = Typer(
    name="marginalia",
    help="marginalia: behavior-driven reading suggestions.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


class Pattern(str, Enum):
    scanning = "scanning"
    reading = "reading"
    studying = "studying"


class Response(str, Enum):
    accept = "accept"
    reject = "reject"
    dismiss = "dismiss"
    none = "none"


class ExportFormat(str, Enum):
    json = "json"
    csv = "csv"
    table = "table"


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("marginalia-core")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"marginalia {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log pipeline internals to stderr."),
) -> None:
    """marginalia CLI: inspect actions, counters and simulated sessions."""
    configure_logging(level="DEBUG" if verbose else "WARNING", json_format=False)


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("actions")
def list_actions(
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List every action each controller accepts."""
    from marginalia.app import AppContext

    settings = load_settings()
    app_context = AppContext(settings, stats_store=StatsStore(settings.stats_path))
    status = app_context.registry.get_registration_status()
    rows = [
        {
            "controller": c["name"],
            "category": c["category"],
            "actions": c["actions"],
        }
        for c in status["controllers"]
    ]
    output(rows, as_json=json_out, title="Controller actions")


@app.command("stats")
def show_stats(
    stats_path: Path | None = typer.Option(None, "--stats-path", help="Counter file to read."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the persisted suggestion counters."""
    settings = load_settings(stats_path)
    stats = StatsStore(settings.stats_path).load()
    output(
        {**stats.to_dict(), "acceptance_rate": stats.format_acceptance_rate()},
        as_json=json_out,
        title=f"Suggestion stats ({settings.stats_path})",
    )


@app.command("simulate")
def simulate(
    pattern: Pattern = typer.Option(Pattern.reading, "--pattern", "-p", help="Reading pace to simulate."),
    events: int = typer.Option(10, "--events", "-n", min=0, help="Number of reader events."),
    seed: int | None = typer.Option(None, "--seed", help="Seed for suggestion sampling."),
    response: Response = typer.Option(Response.accept, "--respond", help="Answer to the shown suggestion."),
    post_id: str = typer.Option("post-1", "--post"),
    selected_text: str = typer.Option("", "--selected-text"),
    stats_path: Path | None = typer.Option(None, "--stats-path"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run a scripted reading session and print the emitted events."""
    result = asyncio.run(
        run_session(
            load_settings(stats_path),
            pattern=pattern.value,
            event_count=events,
            seed=seed,
            response=None if response is Response.none else response.value,
            post_id=post_id,
            selected_text=selected_text,
        )
    )
    rows = [
        {"event": e.event_type, "payload_keys": sorted(e.payload)}
        for e in result.events
    ]
    output(rows, as_json=json_out, title="Events")
    if not json_out:
        if result.shown is None:
            console.print("[dim]No suggestion was shown.[/dim]")
        else:
            output(result.shown, title="Shown suggestion")
        output(result.stats, title="Stats")


@app.command("export")
def export(
    fmt: ExportFormat = typer.Option(ExportFormat.json, "--format", "-f"),
    pattern: Pattern = typer.Option(Pattern.reading, "--pattern", "-p"),
    events: int = typer.Option(10, "--events", "-n", min=0),
    seed: int | None = typer.Option(None, "--seed"),
    stats_path: Path | None = typer.Option(None, "--stats-path"),
    out: Path | None = typer.Option(None, "--out", "-o", help="Write to a file instead of stdout."),
) -> None:
    """Run a session and dump counters plus the event log."""
    result = asyncio.run(
        run_session(
            load_settings(stats_path),
            pattern=pattern.value,
            event_count=events,
            seed=seed,
            response=None,
            export_format=fmt.value,
        )
    )
    text = result.export or ""
    if out is None:
        typer.echo(text)
        return
    try:
        out.write_text(text, encoding="utf-8")
    except OSError as exc:
        err_console.print(f"[bold red]Error[/bold red]: cannot write {out}: {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"Wrote {fmt.value} diagnostics to {out}")


if __name__ == "__main__":
    app()
