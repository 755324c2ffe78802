"""Tests for recurrence rule parsing and expansion."""

from datetime import date, datetime, timedelta, timezone

import pytest

from optima.core.recurrence import (
    MAX_INSTANCES,
    RecurrenceRule,
    expand_occurrences,
    parse_date_value,
    parse_rrule,
)

UTC = timezone.utc


@pytest.fixture
def now():
    return datetime(2025, 1, 1, tzinfo=UTC)


def expand(start: datetime, rrule: str, now: datetime, **kwargs) -> list[date]:
    occurrences = expand_occurrences(start, start + timedelta(hours=1), parse_rrule(rrule), now=now, **kwargs)
    return [o.start.date() for o in occurrences]


class TestParseDateValue:
    def test_utc(self):
        assert parse_date_value("20250115T090000Z") == datetime(2025, 1, 15, 9, tzinfo=UTC)

    def test_date_only_is_utc_midnight(self):
        assert parse_date_value("20250115") == datetime(2025, 1, 15, tzinfo=UTC)

    def test_floating_uses_local_tz(self):
        plus_two = timezone(timedelta(hours=2))
        assert parse_date_value("20250115T090000", plus_two) == datetime(2025, 1, 15, 7, tzinfo=UTC)

    @pytest.mark.parametrize("value", ["", "2025", "20251345", "garbage!"])
    def test_unparseable(self, value):
        assert parse_date_value(value) is None


class TestParseRrule:
    def test_full_rule(self):
        rule = parse_rrule("RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE;COUNT=10")
        assert rule == RecurrenceRule(freq="WEEKLY", interval=2, count=10, by_day=("MO", "WE"))
        assert rule.weekdays() == {0, 2}

    def test_until(self):
        assert parse_rrule("FREQ=DAILY;UNTIL=20250110").until == datetime(2025, 1, 10, tzinfo=UTC)

    def test_ordinal_weekdays_keep_the_day(self):
        assert parse_rrule("FREQ=WEEKLY;BYDAY=1MO,-1FR").weekdays() == {0, 4}

    @pytest.mark.parametrize("value", ["FREQ=HOURLY", "INTERVAL=2", ""])
    def test_unsupported(self, value):
        assert parse_rrule(value) is None

    def test_bad_interval_defaults(self):
        assert parse_rrule("FREQ=DAILY;INTERVAL=often").interval == 1


class TestExpand:
    def test_daily_count(self, now):
        start = datetime(2025, 1, 6, 9, tzinfo=UTC)
        assert expand(start, "FREQ=DAILY;COUNT=3", now) == [date(2025, 1, 6), date(2025, 1, 7), date(2025, 1, 8)]

    def test_until_is_inclusive(self, now):
        start = datetime(2025, 1, 6, 9, tzinfo=UTC)
        assert len(expand(start, "FREQ=DAILY;UNTIL=20250108T090000Z", now)) == 3

    def test_weekly_by_day(self, now):
        start = datetime(2025, 1, 6, 9, tzinfo=UTC)  # Monday
        assert expand(start, "FREQ=WEEKLY;BYDAY=MO,WE;COUNT=4", now) == [
            date(2025, 1, 6),
            date(2025, 1, 8),
            date(2025, 1, 13),
            date(2025, 1, 15),
        ]

    def test_biweekly(self, now):
        start = datetime(2025, 1, 6, 9, tzinfo=UTC)
        assert expand(start, "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO;COUNT=3", now) == [
            date(2025, 1, 6),
            date(2025, 1, 20),
            date(2025, 2, 3),
        ]

    def test_monthly_skips_short_months(self, now):
        start = datetime(2025, 1, 31, 9, tzinfo=UTC)
        assert expand(start, "FREQ=MONTHLY;COUNT=3", now) == [date(2025, 1, 31), date(2025, 3, 31), date(2025, 5, 31)]

    def test_monthly_last_day(self, now):
        start = datetime(2025, 1, 31, 9, tzinfo=UTC)
        assert expand(start, "FREQ=MONTHLY;BYMONTHDAY=-1;COUNT=3", now) == [
            date(2025, 1, 31),
            date(2025, 2, 28),
            date(2025, 3, 31),
        ]

    def test_yearly(self):
        now = datetime(2025, 6, 1, tzinfo=UTC)
        start = datetime(2025, 3, 1, 9, tzinfo=UTC)
        assert expand(start, "FREQ=YEARLY;COUNT=2", now) == [date(2025, 3, 1), date(2026, 3, 1)]

    def test_yearly_stops_a_year_after_now(self, now):
        start = datetime(2025, 3, 1, 9, tzinfo=UTC)
        assert expand(start, "FREQ=YEARLY;COUNT=2", now) == [date(2025, 3, 1)]

    def test_exdates_still_count(self, now):
        start = datetime(2025, 1, 6, 9, tzinfo=UTC)
        dates = expand(start, "FREQ=DAILY;COUNT=3", now, exdates={date(2025, 1, 7)})
        assert dates == [date(2025, 1, 6), date(2025, 1, 8)]

    def test_instance_ids(self, now):
        start = datetime(2025, 1, 6, 9, tzinfo=UTC)
        occurrences = expand_occurrences(
            start, start + timedelta(hours=1), parse_rrule("FREQ=DAILY;COUNT=2"), external_id="uid-1", now=now
        )
        assert [o.external_id for o in occurrences] == ["uid-1_2025-01-06", "uid-1_2025-01-07"]
        assert occurrences[0].end - occurrences[0].start == timedelta(hours=1)

    def test_unbounded_rule_is_capped_and_recent(self, now):
        start = now - timedelta(days=730)
        dates = expand(start, "FREQ=DAILY", now)
        assert len(dates) == MAX_INSTANCES
        assert dates[0] >= (now - timedelta(days=180)).date()
        assert dates[-1] <= (now + timedelta(days=365)).date()

    def test_lookahead_bounds_unbounded_weekly(self, now):
        dates = expand(now, "FREQ=WEEKLY", now)
        assert len(dates) == 53
