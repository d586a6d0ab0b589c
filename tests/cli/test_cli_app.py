"""Tests for the marginalia CLI and the scripted session behind it."""

import json

import pytest
from typer.testing import CliRunner

from marginalia import __version__
from marginalia.cli.app import app
from marginalia.cli.session import run_session
from marginalia.core.suggestions import StatsStore, SuggestionStats

runner = CliRunner()

# random.Random(0).random() is ~0.84 and random.Random(1).random() is ~0.13, so
# a scanning session's bookmark rule fires for seed 0 and not for seed 1.
FIRING_SEED = 0
QUIET_SEED = 1


class TestTopLevel:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.stdout.startswith("marginalia ")

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "simulate" in result.output

    def test_actions_json(self):
        result = runner.invoke(app, ["actions", "--json"])
        assert result.exit_code == 0

        rows = {row["controller"]: row for row in json.loads(result.stdout)}
        assert set(rows) == {"post", "interaction", "ai_suggestion", "ai_agent"}
        assert rows["ai_agent"]["category"] == "ai"
        assert "RESPOND_TO_SUGGESTION" in rows["ai_suggestion"]["actions"]

    def test_invalid_environment_exits(self, monkeypatch):
        monkeypatch.setenv("MARGINALIA_ANALYSIS_INTERVAL_MS", "0")
        result = runner.invoke(app, ["actions"])
        assert result.exit_code == 1

    def test_actions_table(self):
        result = runner.invoke(app, ["actions"])
        assert result.exit_code == 0
        assert "Controller actions" in result.stdout


class TestStats:
    def test_stats_from_file(self, tmp_path):
        path = tmp_path / "counters.json"
        StatsStore(path).save(SuggestionStats(4, 1, 2, 1))

        result = runner.invoke(app, ["stats", "--stats-path", str(path), "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout) == {
            "total_generated": 4,
            "total_accepted": 1,
            "total_rejected": 2,
            "total_dismissed": 1,
            "acceptance_rate": "25.0%",
        }

    def test_stats_without_file(self, tmp_path):
        result = runner.invoke(app, ["stats", "--stats-path", str(tmp_path / "absent.json")])
        assert result.exit_code == 0
        assert "acceptance_rate" in result.stdout
        assert "0%" in result.stdout


class TestSimulate:
    def test_scanning_session_accepts_bookmark(self, tmp_path):
        path = tmp_path / "sim.json"
        result = runner.invoke(
            app,
            ["simulate", "-p", "scanning", "--seed", str(FIRING_SEED), "--stats-path", str(path), "--json"],
        )
        assert result.exit_code == 0

        events = [row["event"] for row in json.loads(result.stdout)]
        assert "ai_suggestion.suggestion_shown" in events
        assert events.index("post.bookmark_added") < events.index("ai_suggestion.suggestion_executed")
        assert StatsStore(path).load().total_accepted == 1

    def test_respond_none_leaves_counters(self, tmp_path):
        path = tmp_path / "sim.json"
        result = runner.invoke(
            app,
            ["simulate", "-p", "scanning", "--seed", str(FIRING_SEED), "--respond", "none", "--stats-path", str(path)],
        )
        assert result.exit_code == 0
        assert "Shown suggestion" in result.stdout
        assert StatsStore(path).load() == SuggestionStats(total_generated=1)

    def test_no_suggestion(self):
        result = runner.invoke(app, ["simulate", "-p", "scanning", "--seed", str(QUIET_SEED)])
        assert result.exit_code == 0
        assert "No suggestion was shown." in result.stdout

    def test_invalid_pattern(self):
        result = runner.invoke(app, ["simulate", "-p", "skipping"])
        assert result.exit_code != 0


class TestExport:
    def test_json_to_stdout(self):
        result = runner.invoke(app, ["export", "-p", "scanning", "--seed", str(FIRING_SEED), "-n", "6"])
        assert result.exit_code == 0

        data = json.loads(result.stdout)
        assert data["stats"]["total_generated"] == 1
        assert len(data["events"]) == 6
        assert data["events"][0]["category"] == "navigation"

    def test_csv(self):
        result = runner.invoke(app, ["export", "-f", "csv", "-n", "3"])
        assert result.exit_code == 0
        assert result.stdout.startswith("metric,value\n")
        assert "Timestamp,Level,Source,Category,Message,Data" in result.stdout

    def test_table(self):
        result = runner.invoke(app, ["export", "-f", "table", "-n", "2"])
        assert result.exit_code == 0
        assert "Suggestion stats" in result.stdout
        assert "Events" in result.stdout

    def test_write_to_file(self, tmp_path):
        out = tmp_path / "diagnostics.json"
        result = runner.invoke(app, ["export", "-o", str(out)])

        assert result.exit_code == 0
        assert "Wrote json diagnostics" in result.stdout
        assert set(json.loads(out.read_text())) == {"stats", "events"}

    def test_unwritable_target(self, tmp_path):
        result = runner.invoke(app, ["export", "-o", str(tmp_path / "missing" / "dir" / "x.json")])
        assert result.exit_code == 1


class TestRunSession:
    @pytest.mark.asyncio
    async def test_studying_session_takes_note(self, settings):
        result = await run_session(settings, pattern="studying", seed=FIRING_SEED, selected_text="the thesis")

        assert result.shown["action_type"] == "ADD_NOTE"
        assert result.shown["payload"]["selected_text"] == "the thesis"
        note = next(e for e in result.events if e.event_type == "interaction.note_added")
        assert note.payload["interaction"]["post_id"] == "post-1"
        assert result.stats["total_accepted"] == 1

    @pytest.mark.asyncio
    async def test_quiet_session(self, settings):
        result = await run_session(settings, pattern="scanning", seed=QUIET_SEED, response=None)

        assert result.shown is None
        assert "ai_agent.behavior_analysis_completed" in [e.event_type for e in result.events]
        assert result.stats["total_generated"] == 0
        assert result.export is None

    @pytest.mark.asyncio
    async def test_too_few_events(self, settings):
        result = await run_session(settings, pattern="scanning", seed=FIRING_SEED, event_count=3)
        assert result.shown is None

    @pytest.mark.asyncio
    async def test_export_attached(self, settings):
        result = await run_session(settings, event_count=4, response=None, export_format="csv")
        assert result.export.startswith("metric,value")

    def test_version_constant(self):
        assert __version__
