"""Tests for the shared workflow layer."""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from optima.adapters.ics_feed import FeedError
from optima.config import Config
from optima.core.calendar import CalendarEvent
from optima.core.tasks import Task
from optima.workflows import (
    clear_synced,
    day_capacity,
    export_data,
    find_free_slot,
    get_stores,
    import_feed,
    preview_sync,
    record_energy,
    restore_data,
    run_schedule,
    sync_feed,
)

UTC = timezone.utc
DAY = date(2025, 1, 15)
NOW = datetime(2025, 1, 14, 12, tzinfo=UTC)

FEED = "\r\n".join(
    [
        "BEGIN:VCALENDAR",
        "X-WR-CALNAME:Work",
        "BEGIN:VEVENT",
        "UID:standup",
        "SUMMARY:Standup",
        "DTSTART:20250115T090000Z",
        "DTEND:20250115T100000Z",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:review",
        "SUMMARY:Review",
        "DTSTART:20250116T140000Z",
        "DTEND:20250116T150000Z",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
)


@pytest.fixture
def feed_file(tmp_path):
    path = tmp_path / "calendar.ics"
    path.write_text(FEED)
    return path


@pytest.fixture
def config(tmp_path, feed_file):
    return Config(data_dir=str(tmp_path / "data"), calendar_feed=str(feed_file))


@pytest.fixture
def stores(config):
    return get_stores(config)


class TestCapacity:
    def test_uses_stored_energy_and_day_items(self, config, stores):
        record_energy(config, "high", DAY, stores=stores)
        stores.tasks.bulk_add(
            [
                Task(id="a", title="a", duration=60, scheduled_time=time(9), scheduled_date=DAY),
                Task(id="b", title="b", duration=60, scheduled_time=time(9), scheduled_date=DAY + timedelta(days=1)),
                Task(id="c", title="c", duration=60),
            ]
        )
        start = datetime.combine(DAY, time(13), tzinfo=UTC)
        stores.events.add(CalendarEvent(id="e", title="e", start=start, end=start + timedelta(minutes=30)))

        cap = day_capacity(config, DAY, stores)
        assert cap.total == 663
        assert cap.scheduled == 90

    def test_override_and_intention(self, config, stores):
        config.daily_capacity_minutes = 600
        config.day_intention = "recovery"
        assert day_capacity(config, DAY, stores).total == 252


class TestEnergy:
    def test_one_entry_per_day(self, config, stores):
        record_energy(config, "low", DAY, stores=stores)
        record_energy(config, "energized", DAY, "great sleep", stores=stores)
        [entry] = stores.energy.list()
        assert entry.energy_level == "energized"
        assert entry.notes == "great sleep"

    def test_rejects_unknown_level(self, config, stores):
        with pytest.raises(ValueError):
            record_energy(config, "wired", DAY, stores=stores)


class TestSchedule:
    def test_persists_placements(self, config, stores):
        stores.tasks.bulk_add([Task(id="a", title="a", priority="high"), Task(id="b", title="b")])
        result = run_schedule(config, "all", DAY, now=NOW, stores=stores)
        assert len(result.scheduled) == 2
        saved = {t.id: t.scheduled_time for t in stores.tasks.list()}
        assert saved == {"a": time(9, 0), "b": time(9, 30)}

    def test_selected_unknown_id(self, config, stores):
        with pytest.raises(ValueError, match="ghost"):
            run_schedule(config, "selected", DAY, ["ghost"], now=NOW, stores=stores)

    def test_unknown_mode(self, config, stores):
        with pytest.raises(ValueError, match="mode"):
            run_schedule(config, "everything", DAY, stores=stores)

    def test_respects_configured_work_hours(self, config, stores):
        config.work_hours = "13:00-18:00"
        stores.tasks.add(Task(id="a", title="a"))
        run_schedule(config, "backlog", DAY, now=NOW, stores=stores)
        assert stores.tasks.get("a").scheduled_time == time(13, 0)

    def test_find_free_slot(self, config, stores):
        stores.tasks.add(Task(id="a", title="a", duration=60, scheduled_time=time(9), scheduled_date=DAY))
        assert find_free_slot(config, 30, DAY, now=NOW, stores=stores) == time(10, 0)


class TestFeedSync:
    def test_preview_writes_nothing(self, config, stores):
        diff = preview_sync(config, now=NOW, stores=stores)
        assert {c.external_id for c in diff.new} == {"standup", "review"}
        assert stores.events.list() == []

    def test_preview_one_day(self, config, stores):
        diff = preview_sync(config, on_date=DAY, now=NOW, stores=stores)
        assert [c.external_id for c in diff.new] == ["standup"]

    def test_sync_then_resync_is_empty(self, config, stores):
        diff, stats = sync_feed(config, now=NOW, stores=stores)
        assert stats.added == 2
        assert preview_sync(config, now=NOW, stores=stores).is_empty

    def test_sync_without_deletes(self, config, stores, tmp_path):
        sync_feed(config, now=NOW, stores=stores)
        smaller = tmp_path / "smaller.ics"
        smaller.write_text(FEED.replace("UID:review", "UID:other"))
        diff, stats = sync_feed(config, str(smaller), include_deletes=False, now=NOW, stores=stores)
        assert [c.external_id for c in diff.deleted] == ["review"]
        assert (stats.added, stats.deleted) == (1, 0)
        assert len(stores.events.list()) == 3

    def test_import_dedupes(self, config, stores):
        assert import_feed(config, now=NOW, stores=stores).imported == 2
        again = import_feed(config, now=NOW, stores=stores)
        assert (again.imported, again.skipped) == (0, 2)

    def test_empty_feed_is_an_error(self, config, stores, tmp_path):
        empty = tmp_path / "empty.ics"
        empty.write_text("BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n")
        with pytest.raises(FeedError, match="No events"):
            import_feed(config, str(empty), stores=stores)

    def test_clear_synced(self, config, stores):
        import_feed(config, now=NOW, stores=stores)
        assert clear_synced(config, stores) == 2
        assert stores.events.list() == []


class TestBackup:
    def test_export_then_restore(self, config, stores, tmp_path):
        stores.tasks.add(Task(id="a", title="a"))
        path = export_data(config, tmp_path / "out" / "backup.json", stores)
        fresh = get_stores(Config(data_dir=str(tmp_path / "fresh")))
        result = restore_data(config, path, fresh)
        assert result.tasks == 1
        assert fresh.tasks.get("a").title == "a"
