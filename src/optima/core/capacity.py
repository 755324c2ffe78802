"""Daily capacity accounting - pure, no I/O."""

from dataclasses import dataclass

from .calendar import CalendarEvent, active_events
from .energy import (
    daily_energy_multiplier,
    event_drain_minutes,
    intention_multiplier,
    round_half_up,
)
from .tasks import Task

WAKING_HOURS_MINUTES = 16 * 60
ESSENTIAL_MINUTES = 3 * 60
BASE_PRODUCTIVE_MINUTES = WAKING_HOURS_MINUTES - ESSENTIAL_MINUTES


@dataclass
class DayCapacity:
    """Productive minutes for one day."""

    total: int
    scheduled: int
    available: int
    percentage: int

    @property
    def is_overcommitted(self) -> bool:
        return self.scheduled > self.total


def calculate_capacity(
    tasks: list[Task],
    events: list[CalendarEvent],
    daily_energy: str | None = None,
    intention: str | None = None,
    capacity_override: int | None = None,
) -> DayCapacity:
    """
    Compute the day's total, used and available productive minutes.

    Pure function - no I/O.

    Args:
        tasks: Tasks for the day. Any task with a scheduled time counts,
            completed or not.
        events: Events for the day. Dismissed events are ignored.
        daily_energy: Daily energy level, "medium" when not given.
        intention: Day intention, "balance" when not given.
        capacity_override: Replaces the 780-minute productive base.

    Returns:
        DayCapacity. ``percentage`` is not clamped and exceeds 100 when the
        day is overcommitted.

    Raises:
        InvalidTaskError, InvalidEventError: An input breaks its invariants.
    """
    if capacity_override is not None and capacity_override < 0:
        raise ValueError("capacity_override must not be negative")
    for task in tasks:
        task.validate()
    for event in events:
        event.validate()

    base = BASE_PRODUCTIVE_MINUTES if capacity_override is None else capacity_override
    total = round_half_up(base * daily_energy_multiplier(daily_energy) * intention_multiplier(intention))

    task_minutes = sum(t.duration for t in tasks if t.scheduled_time is not None)
    event_minutes = sum(event_drain_minutes(e) for e in active_events(events))
    used = task_minutes + event_minutes

    return DayCapacity(
        total=total,
        scheduled=used,
        available=max(0, total - used),
        percentage=0 if total == 0 else round_half_up(used / total * 100),
    )


def format_duration(minutes: int | float) -> str:
    """Format minutes as ``45m``, ``1h`` or ``2h 15m``."""
    total = max(0, round_half_up(minutes))
    hours, mins = divmod(total, 60)
    if hours == 0:
        return f"{mins}m"
    if mins == 0:
        return f"{hours}h"
    return f"{hours}h {mins}m"
