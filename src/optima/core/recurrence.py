"""Recurrence rule parsing and expansion for calendar feeds."""

import calendar
import logging
from dataclasses import dataclass
from datetime import MAXYEAR, date, datetime, timedelta, timezone, tzinfo
from typing import Iterator

logger = logging.getLogger(__name__)

FREQUENCIES = ("DAILY", "WEEKLY", "MONTHLY", "YEARLY")
WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

MAX_INSTANCES = 500
LOOKAHEAD = timedelta(days=365)
LOOKBACK = timedelta(days=180)


def parse_date_value(value: str, local_tz: tzinfo = timezone.utc) -> datetime | None:
    """
    Parse a bare ``YYYYMMDD[THHMMSS[Z]]`` value.

    ``Z`` values are UTC, floating times are taken in ``local_tz`` and
    date-only values resolve to UTC midnight. Returns None if unparseable.
    """
    value = value.strip()
    if len(value) < 8 or not value[:8].isdigit():
        return None
    try:
        day = date(int(value[0:4]), int(value[4:6]), int(value[6:8]))
        if "T" not in value:
            return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)

        clock = value.split("T", 1)[1].rstrip("Z")
        hour = int(clock[0:2] or 0)
        minute = int(clock[2:4] or 0)
        second = int(clock[4:6] or 0)
        tz = timezone.utc if value.endswith("Z") else local_tz
        return datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=tz).astimezone(timezone.utc)
    except ValueError:
        return None


@dataclass
class RecurrenceRule:
    """A parsed RRULE."""

    freq: str
    interval: int = 1
    until: datetime | None = None
    count: int | None = None
    by_day: tuple[str, ...] = ()
    by_month_day: tuple[int, ...] = ()

    def weekdays(self) -> set[int]:
        """BYDAY entries as ``date.weekday()`` numbers. Ordinal prefixes are ignored."""
        return {WEEKDAY_CODES.index(d[-2:]) for d in self.by_day if d[-2:] in WEEKDAY_CODES}


@dataclass
class Occurrence:
    """One concrete instance of a recurring event."""

    start: datetime
    end: datetime
    external_id: str | None


def parse_rrule(value: str, local_tz: tzinfo = timezone.utc) -> RecurrenceRule | None:
    """
    Parse an RRULE value such as ``FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE``.

    Returns None when FREQ is missing or unsupported. Malformed parts other
    than FREQ fall back to their defaults.
    """
    if value.upper().startswith("RRULE:"):
        value = value[6:]

    parts = {}
    for part in value.split(";"):
        key, sep, val = part.partition("=")
        if sep:
            parts[key.strip().upper()] = val.strip()

    freq = parts.get("FREQ", "").upper()
    if freq not in FREQUENCIES:
        logger.debug(f"Unsupported recurrence frequency in {value!r}")
        return None

    rule = RecurrenceRule(freq=freq)
    if "INTERVAL" in parts:
        try:
            rule.interval = max(1, int(parts["INTERVAL"]))
        except ValueError:
            logger.debug(f"Bad INTERVAL in {value!r}")
    if "UNTIL" in parts:
        rule.until = parse_date_value(parts["UNTIL"], local_tz)
    if "COUNT" in parts:
        try:
            rule.count = max(0, int(parts["COUNT"]))
        except ValueError:
            logger.debug(f"Bad COUNT in {value!r}")
    if parts.get("BYDAY"):
        rule.by_day = tuple(d.strip().upper() for d in parts["BYDAY"].split(",") if d.strip())
    if parts.get("BYMONTHDAY"):
        days = []
        for d in parts["BYMONTHDAY"].split(","):
            try:
                days.append(int(d))
            except ValueError:
                logger.debug(f"Bad BYMONTHDAY entry {d!r}")
        rule.by_month_day = tuple(days)
    return rule


def _add_months(dt: datetime, months: int) -> datetime | None:
    """Shift by whole months, or None if the day does not exist in the target month."""
    index = dt.month - 1 + months
    year, month = dt.year + index // 12, index % 12 + 1
    if year > MAXYEAR:
        return None
    try:
        return dt.replace(year=year, month=month)
    except ValueError:
        return None


def _month_days(dt: datetime, by_month_day: tuple[int, ...]) -> set[int]:
    last = calendar.monthrange(dt.year, dt.month)[1]
    return {d if d > 0 else last + d + 1 for d in by_month_day}


def _candidates(start: datetime, rule: RecurrenceRule) -> Iterator[datetime]:
    """Yield occurrence candidates in order, before BYxxx filtering."""
    if rule.freq == "DAILY":
        step = timedelta(days=rule.interval)
        current = start
        while True:
            yield current
            current += step

    elif rule.freq == "WEEKLY":
        if not rule.by_day:
            step = timedelta(weeks=rule.interval)
            current = start
            while True:
                yield current
                current += step
        week_zero = start.date() - timedelta(days=start.weekday())
        current = start
        while True:
            if ((current.date() - week_zero).days // 7) % rule.interval == 0:
                yield current
            current += timedelta(days=1)

    elif rule.freq == "MONTHLY":
        if not rule.by_month_day:
            k = 0
            while True:
                current = _add_months(start, k * rule.interval)
                if current is None and start.year + (k * rule.interval) // 12 > MAXYEAR:
                    return
                if current is not None:
                    yield current
                k += 1
        current = start
        while True:
            months = (current.year - start.year) * 12 + current.month - start.month
            if months % rule.interval == 0:
                yield current
            current += timedelta(days=1)

    elif rule.freq == "YEARLY":
        k = 0
        while True:
            current = _add_months(start, 12 * k * rule.interval)
            if current is None and start.year + k * rule.interval > MAXYEAR:
                return
            if current is not None:
                yield current
            k += 1


def _matches(current: datetime, rule: RecurrenceRule) -> bool:
    if rule.freq == "WEEKLY" and rule.by_day:
        return current.weekday() in rule.weekdays()
    if rule.freq == "MONTHLY" and rule.by_month_day:
        return current.day in _month_days(current, rule.by_month_day)
    return True


def expand_occurrences(
    start: datetime,
    end: datetime,
    rule: RecurrenceRule,
    exdates: set[date] | None = None,
    external_id: str | None = None,
    now: datetime | None = None,
) -> list[Occurrence]:
    """
    Expand a recurring event into concrete occurrences.

    Pure function - no I/O.

    Occurrences step in UTC from ``start``. Output is bounded to
    ``[now - 180 days, min(now + 365 days, UNTIL)]`` and to 500 instances.
    COUNT is counted from the first occurrence, including ones that fall
    before the window or on an excluded date. Each occurrence gets the
    external id ``"{external_id}_{YYYY-MM-DD}"`` (UTC date).
    """
    start = start.astimezone(timezone.utc)
    duration = end - start
    exdates = exdates or set()
    now = now or datetime.now(timezone.utc)

    ceiling = now + LOOKAHEAD
    if rule.until is not None and rule.until < ceiling:
        ceiling = rule.until
    floor = now - LOOKBACK

    occurrences: list[Occurrence] = []
    generated = 0
    for current in _candidates(start, rule):
        if current > ceiling:
            break
        if not _matches(current, rule):
            continue
        if rule.count is not None and generated >= rule.count:
            break
        generated += 1

        day_key = current.date()
        if day_key in exdates or current < floor:
            continue

        instance_id = f"{external_id}_{day_key.isoformat()}" if external_id else None
        occurrences.append(Occurrence(start=current, end=current + duration, external_id=instance_id))
        if len(occurrences) >= MAX_INSTANCES:
            logger.debug(f"Recurrence for {external_id} hit the {MAX_INSTANCES}-instance limit")
            break

    return occurrences
