"""Slot finding - pure interval arithmetic over one day's timeline."""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from .calendar import CalendarEvent, TimeSlot, active_events
from .tasks import Task

MINUTES_PER_DAY = 24 * 60
SLOT_GRANULARITY = 15
DEFAULT_HORIZON_DAYS = 7


@dataclass(frozen=True)
class TimeRange:
    """A [start, end) range of minutes after local midnight."""

    start: int
    end: int

    def __post_init__(self):
        if not 0 <= self.start < self.end <= MINUTES_PER_DAY:
            raise ValueError(f"Invalid time range {self.start}-{self.end}")

    @classmethod
    def parse(cls, value: str) -> "TimeRange":
        """Parse ``HH:MM-HH:MM``. ``24:00`` is accepted as end of day."""
        start_str, sep, end_str = value.strip().partition("-")
        if not sep:
            raise ValueError(f"Invalid time range {value!r}, expected HH:MM-HH:MM")
        return cls(_parse_minutes(start_str), _parse_minutes(end_str))

    @classmethod
    def from_times(cls, start: time, end: time) -> "TimeRange":
        end_minute = end.hour * 60 + end.minute or MINUTES_PER_DAY
        return cls(start.hour * 60 + start.minute, end_minute)

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        lo, hi = max(self.start, other.start), min(self.end, other.end)
        return TimeRange(lo, hi) if lo < hi else None

    def format(self) -> str:
        return f"{_format_minutes(self.start)}-{_format_minutes(self.end)}"


def _parse_minutes(value: str) -> int:
    hour_str, _, minute_str = value.strip().partition(":")
    try:
        hour, minute = int(hour_str), int(minute_str or 0)
    except ValueError as e:
        raise ValueError(f"Invalid time of day {value!r}") from e
    if not (0 <= minute < 60 and (0 <= hour < 24 or (hour == 24 and minute == 0))):
        raise ValueError(f"Invalid time of day {value!r}")
    return hour * 60 + minute


def _format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


WHOLE_DAY = TimeRange(0, MINUTES_PER_DAY)

DEFAULT_WINDOWS = {
    "morning": TimeRange.parse("09:00-12:00"),
    "afternoon": TimeRange.parse("12:00-17:00"),
    "evening": TimeRange.parse("17:00-21:00"),
}


@dataclass(frozen=True)
class SlotSettings:
    """Work hours and named availability windows, supplied by configuration."""

    work_hours: TimeRange = TimeRange.parse("09:00-17:00")
    windows: dict[str, TimeRange] = field(default_factory=lambda: dict(DEFAULT_WINDOWS), hash=False)
    granularity: int = SLOT_GRANULARITY


def is_time_in_past(
    slot_time: time,
    target_date: date,
    now: datetime | None = None,
    tz: tzinfo = timezone.utc,
) -> bool:
    """Check whether a time on a date has already passed."""
    now = _local_now(now, tz)
    if target_date != now.date():
        return target_date < now.date()
    return datetime.combine(target_date, slot_time, tzinfo=tz) < now


def eligible_ranges(
    windows: tuple[str, ...] | list[str],
    settings: SlotSettings,
    ignore_windows: bool = False,
    ignore_work_hours: bool = False,
) -> list[TimeRange]:
    """
    The parts of the day a candidate slot must fall inside.

    Windows are clipped to work hours, then touching or overlapping windows
    are merged, so a slot may run from one window into the next.
    """
    base = WHOLE_DAY if ignore_work_hours else settings.work_hours
    if ignore_windows or not windows:
        return [base]

    clipped = []
    for name in windows:
        if name not in settings.windows:
            raise ValueError(f"Unknown availability window {name!r}")
        r = settings.windows[name].intersect(base)
        if r:
            clipped.append(r)

    merged: list[TimeRange] = []
    for r in sorted(clipped, key=lambda r: r.start):
        if merged and r.start <= merged[-1].end:
            merged[-1] = TimeRange(merged[-1].start, max(merged[-1].end, r.end))
        else:
            merged.append(r)
    return merged


def occupied_slots(
    target_date: date,
    events: list[CalendarEvent],
    tasks: list[Task],
    tz: tzinfo = timezone.utc,
    exclude_task_id: str | None = None,
) -> list[TimeSlot]:
    """Intervals already taken on ``target_date`` by events and scheduled tasks."""
    day = TimeSlot(
        start=datetime.combine(target_date, time(0), tzinfo=tz),
        end=datetime.combine(target_date + timedelta(days=1), time(0), tzinfo=tz),
    )

    slots = [e.slot() for e in active_events(events)]
    for task in tasks:
        if task.id == exclude_task_id:
            continue
        slot = task.slot(tz)
        if slot is not None:
            slots.append(slot)

    return sorted((s for s in slots if s.overlaps(day)), key=lambda s: s.start)


def _candidate_minutes(ranges: list[TimeRange], duration: int, granularity: int) -> list[int]:
    minutes = set()
    for r in ranges:
        # First grid point at or after the range start
        m = -(-r.start // granularity) * granularity
        while m + duration <= r.end:
            minutes.add(m)
            m += granularity
    return sorted(minutes)


def _local_now(now: datetime | None, tz: tzinfo) -> datetime:
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def find_slot(
    target_date: date,
    duration: int,
    windows: tuple[str, ...] | list[str],
    events: list[CalendarEvent],
    tasks: list[Task],
    settings: SlotSettings | None = None,
    *,
    tz: tzinfo = timezone.utc,
    now: datetime | None = None,
    ignore_windows: bool = False,
    ignore_work_hours: bool = False,
    exclude_task_id: str | None = None,
) -> time | None:
    """
    Find the earliest free start time for a task of ``duration`` minutes.

    Pure function - no I/O.

    Args:
        target_date: Local date to search.
        duration: Task length in minutes.
        windows: Availability window names; empty means all of work hours.
        events: Calendar events. Dismissed events do not block.
        tasks: Tasks already on the timeline. Unscheduled ones are ignored.
        settings: Work hours, window ranges and grid size.
        tz: Timezone the timeline is laid out in.
        now: Current time; candidates before it are skipped when
            ``target_date`` is today.
        ignore_windows: Search all of work hours regardless of ``windows``.
        ignore_work_hours: Search the whole day instead of work hours.
        exclude_task_id: Task being placed, so its current slot does not block itself.

    Returns:
        Start time of the slot, or None if nothing fits.
    """
    if duration <= 0:
        raise ValueError(f"duration must be a positive number of minutes, got {duration}")
    for task in tasks:
        task.validate()
    for event in events:
        event.validate()

    settings = settings or SlotSettings()
    ranges = eligible_ranges(windows, settings, ignore_windows, ignore_work_hours)
    occupied = occupied_slots(target_date, events, tasks, tz, exclude_task_id)
    local_now = _local_now(now, tz)
    is_today = target_date == local_now.date()
    day_start = datetime.combine(target_date, time(0), tzinfo=tz)

    for minute in _candidate_minutes(ranges, duration, settings.granularity):
        start = day_start + timedelta(minutes=minute)
        if is_today and start < local_now:
            continue
        candidate = TimeSlot(start=start, end=start + timedelta(minutes=duration))
        if any(candidate.overlaps(o) for o in occupied):
            continue
        return time(minute // 60, minute % 60)

    return None


def find_next_available_day(
    start_date: date,
    duration: int,
    windows: tuple[str, ...] | list[str],
    events: list[CalendarEvent],
    tasks: list[Task],
    settings: SlotSettings | None = None,
    *,
    horizon: int = DEFAULT_HORIZON_DAYS,
    include_start: bool = True,
    tz: tzinfo = timezone.utc,
    now: datetime | None = None,
    exclude_task_id: str | None = None,
) -> tuple[date, time] | None:
    """
    Find the first day with room for the task, starting at ``start_date``.

    Probes ``start_date`` (unless ``include_start`` is False) and then up to
    ``horizon`` following days with the same per-day search as find_slot.
    """
    if horizon < 0:
        raise ValueError("horizon must not be negative")

    first = 0 if include_start else 1
    for offset in range(first, horizon + 1):
        day = start_date + timedelta(days=offset)
        found = find_slot(
            day,
            duration,
            windows,
            events,
            tasks,
            settings,
            tz=tz,
            now=now,
            exclude_task_id=exclude_task_id,
        )
        if found is not None:
            return day, found
    return None
