"""Tests for the command line interface."""

import json
from datetime import date, datetime, time, timezone
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from optima.cli import main
from optima.config import Config
from optima.core.tasks import Task
from optima.workflows import get_stores

FEED = "\r\n".join(
    [
        "BEGIN:VCALENDAR",
        "BEGIN:VEVENT",
        "UID:standup",
        "SUMMARY:Standup",
        "DTSTART:20250115T090000Z",
        "DTEND:20250115T100000Z",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
)


@pytest.fixture
def config(tmp_path):
    feed = tmp_path / "calendar.ics"
    feed.write_text(FEED)
    return Config(data_dir=str(tmp_path / "data"), calendar_feed=str(feed))


@pytest.fixture
def run(config):
    runner = CliRunner()

    def _run(*args: str, **kwargs):
        with patch("optima.cli.load_config", return_value=config):
            return runner.invoke(main, list(args), **kwargs)
    return _run


class TestCapacity:
    def test_json(self, run):
        result = run("capacity", "--date", "2025-01-15", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data == {"date": "2025-01-15", "total": 546, "scheduled": 0, "available": 546, "percentage": 0}

    def test_energy_changes_capacity(self, run):
        assert run("energy", "high", "--date", "2025-01-15").exit_code == 0
        result = run("capacity", "--date", "2025-01-15")
        assert "Total:     11h 3m" in result.output

    def test_rejects_unknown_energy(self, run):
        assert run("energy", "wired").exit_code != 0


class TestSchedule:
    def test_schedules_backlog(self, run, config):
        get_stores(config).tasks.bulk_add([Task(id="a", title="Write report"), Task(id="b", title="Email")])
        result = run("schedule", "--date", "2025-01-15")
        assert result.exit_code == 0
        assert "09:00 Write report" in result.output
        assert "Scheduled 2 of 2 tasks." in result.output

    def test_json_output(self, run, config):
        get_stores(config).tasks.add(Task(id="a", title="Write"))
        data = json.loads(run("schedule", "backlog", "--date", "2025-01-15", "--json").output)
        assert data["scheduled"][0]["time"] == "09:00"
        assert data["scheduled"][0]["placement"] == "full"

    def test_selected_needs_ids(self, run):
        result = run("schedule", "selected")
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_selected_unknown_id(self, run):
        result = run("schedule", "selected", "ghost", "--date", "2025-01-15")
        assert result.exit_code == 1
        assert "ghost" in result.output

    def test_tasks_listing(self, run, config):
        get_stores(config).tasks.bulk_add(
            [Task(id="a", title="Planned", scheduled_time=time(10), scheduled_date=date(2025, 1, 15)),
             Task(id="b", title="Someday")]
        )
        result = run("tasks", "--date", "2025-01-15")
        assert "10:00 Planned" in result.output
        assert "Someday" in result.output


class TestSlot:
    def test_finds_slot(self, run):
        result = run("slot", "45", "--window", "afternoon", "--date", "2025-01-15")
        assert result.output.strip() == "2025-01-15 12:00"

    def test_invalid_duration(self, run):
        assert run("slot", "0").exit_code != 0


class TestSync:
    def test_preview_then_apply(self, run):
        preview = run("sync", "preview")
        assert "+ 2025-01-15 09:00 Standup" in preview.output
        assert "1 new, 0 updated, 0 deleted" in preview.output

        applied = run("sync", "apply")
        assert "Added 1, updated 0, deleted 0 events." in applied.output
        assert "Calendar is up to date." in run("sync", "preview").output

    def test_preview_json(self, run):
        data = json.loads(run("sync", "preview", "--json").output)
        assert data["new"][0]["external_id"] == "standup"
        assert data["new"][0]["start_time"] == "2025-01-15T09:00:00Z"

    def test_missing_feed(self, run, tmp_path):
        result = run("sync", "preview", str(tmp_path / "missing.ics"))
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_import_and_clear(self, run):
        assert "Imported 1 events." in run("import").output
        assert "Skipped 1 already imported." in run("import").output
        assert "Removed 1 synced events." in run("clear-synced", "--yes").output


class TestBackup:
    def test_export_and_restore(self, run, config, tmp_path):
        get_stores(config).tasks.add(Task(id="a", title="Write"))
        path = tmp_path / "backup.json"
        assert run("export", str(path)).exit_code == 0
        result = run("restore", str(path))
        assert "Restored 0 tasks" in result.output
        assert "Skipped 1 records" in result.output

    def test_restore_bad_file(self, run, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("[]")
        result = run("restore", str(path))
        assert result.exit_code == 1
        assert "Unsupported backup format" in result.output


class FrozenClock(datetime):
    """23:30 UTC on 2025-01-15, already the 16th east of UTC+1."""

    @classmethod
    def now(cls, tz=None):
        return datetime(2025, 1, 15, 23, 30, tzinfo=timezone.utc).astimezone(tz)


class TestDefaultDate:
    def test_today_follows_configured_timezone(self, run, config):
        config.timezone = "Pacific/Kiritimati"
        with patch("optima.cli.datetime", FrozenClock):
            result = run("energy", "high")
        assert result.output.strip() == "Energy for 2025-01-16 set to high."

    def test_today_in_utc(self, run):
        with patch("optima.cli.datetime", FrozenClock):
            result = run("energy", "low")
        assert result.output.strip() == "Energy for 2025-01-15 set to low."
