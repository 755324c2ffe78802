"""Tests for JSON backup export and restore."""

import json
from datetime import date, datetime, timedelta, timezone

import pytest

from optima.adapters.backup import BackupError, export_backup, import_backup
from optima.adapters.json_store import JsonEnergyStore, JsonEventStore, JsonTaskStore
from optima.core.calendar import CalendarEvent
from optima.core.energy import DailyEnergy
from optima.core.tasks import Task


def open_stores(path):
    return JsonTaskStore(path), JsonEventStore(path), JsonEnergyStore(path)


@pytest.fixture
def populated(tmp_path):
    tasks, events, energy = open_stores(tmp_path / "source")
    start = datetime(2025, 1, 15, 9, tzinfo=timezone.utc)
    tasks.bulk_add([Task(id="t1", title="Write"), Task(id="t2", title="Read", priority="high")])
    events.add(CalendarEvent(id="e1", title="Standup", start=start, end=start + timedelta(minutes=15)))
    energy.upsert(DailyEnergy(id="d1", date=date(2025, 1, 15), energy_level="high"))
    return tasks, events, energy


class TestExport:
    def test_file_layout(self, tmp_path, populated):
        path = export_backup(tmp_path / "backup.json", *populated, now=datetime(2025, 1, 16, tzinfo=timezone.utc))
        data = json.loads(path.read_text())
        assert data["version"] == 1
        assert data["exported_at"] == "2025-01-16T00:00:00Z"
        assert [t["id"] for t in data["tasks"]] == ["t1", "t2"]
        assert data["calendar_events"][0]["start_time"] == "2025-01-15T09:00:00Z"
        assert data["daily_energy"][0]["energy_level"] == "high"


class TestRestore:
    def test_into_empty_stores(self, tmp_path, populated):
        path = export_backup(tmp_path / "backup.json", *populated)
        target = open_stores(tmp_path / "target")

        result = import_backup(path, *target)

        assert (result.tasks, result.events, result.energy, result.skipped) == (2, 1, 1, 0)
        assert target[0].list() == populated[0].list()
        assert target[1].list() == populated[1].list()

    def test_existing_ids_skipped(self, tmp_path, populated):
        path = export_backup(tmp_path / "backup.json", *populated)
        result = import_backup(path, *populated)
        assert result.tasks == 0
        assert result.skipped == 3
        assert len(populated[0].list()) == 2

    def test_wrong_version(self, tmp_path):
        path = tmp_path / "backup.json"
        path.write_text(json.dumps({"version": 99, "tasks": []}))
        with pytest.raises(BackupError, match="Unsupported"):
            import_backup(path, *open_stores(tmp_path))

    def test_not_json(self, tmp_path):
        path = tmp_path / "backup.json"
        path.write_text("nope")
        with pytest.raises(BackupError):
            import_backup(path, *open_stores(tmp_path))

    def test_bad_record_writes_nothing(self, tmp_path):
        path = tmp_path / "backup.json"
        path.write_text(json.dumps({"version": 1, "tasks": [{"id": "ok", "title": "fine"}], "calendar_events": [{"id": "broken"}]}))
        stores = open_stores(tmp_path)
        with pytest.raises(BackupError, match="event"):
            import_backup(path, *stores)
        assert stores[0].list() == []

    def test_unknown_energy_level_writes_nothing(self, tmp_path):
        path = tmp_path / "backup.json"
        path.write_text(
            json.dumps(
                {
                    "version": 1,
                    "tasks": [{"id": "t1", "title": "Write"}],
                    "daily_energy": [{"id": "d1", "date": "2025-01-15", "energy_level": "sleepy"}],
                }
            )
        )
        stores = open_stores(tmp_path)
        with pytest.raises(BackupError, match="energy"):
            import_backup(path, *stores)
        assert stores[0].list() == []

    def test_task_breaking_invariants_rejected(self, tmp_path):
        path = tmp_path / "backup.json"
        path.write_text(json.dumps({"version": 1, "tasks": [{"id": "t1", "title": "Pinned", "is_locked": True}]}))
        with pytest.raises(BackupError, match="task"):
            import_backup(path, *open_stores(tmp_path))

    def test_duplicate_ids_in_file_write_nothing(self, tmp_path):
        path = tmp_path / "backup.json"
        path.write_text(
            json.dumps(
                {
                    "version": 1,
                    "tasks": [{"id": "t1", "title": "Write"}],
                    "calendar_events": [
                        {"id": "e1", "title": "A", "start_time": "2025-01-15T09:00:00Z", "end_time": "2025-01-15T10:00:00Z"},
                        {"id": "e1", "title": "B", "start_time": "2025-01-15T11:00:00Z", "end_time": "2025-01-15T12:00:00Z"},
                    ],
                }
            )
        )
        stores = open_stores(tmp_path)
        with pytest.raises(BackupError, match="Duplicate event id"):
            import_backup(path, *stores)
        assert stores[0].list() == []
