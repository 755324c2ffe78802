"""Functional core - pure scheduling and sync logic with no I/O."""

from .tasks import Task, InvalidTaskError, filter_backlog, filter_for_date, sort_backlog, sort_by_priority
from .calendar import CalendarEvent, InvalidEventError, TimeSlot, filter_events_by_date
from .energy import DailyEnergy, event_drain_minutes, task_energy_alignment
from .capacity import DayCapacity, calculate_capacity, format_duration
from .slots import SlotSettings, TimeRange, find_next_available_day, find_slot, is_time_in_past
from .scheduler import (
    ScheduleResult,
    Strictness,
    auto_schedule_all_unlocked,
    auto_schedule_backlog,
    auto_schedule_selected,
    schedule_for_next_day,
    schedule_ignoring_all,
    schedule_ignoring_windows,
)
from .ics import FeedEvent, parse_feed
from .recurrence import RecurrenceRule, expand_occurrences, parse_rrule
from .sync import SyncDiff, SyncSelections, apply_sync, compute_diff, import_events

__all__ = [
    # Tasks
    "Task",
    "InvalidTaskError",
    "filter_backlog",
    "filter_for_date",
    "sort_backlog",
    "sort_by_priority",
    # Calendar
    "CalendarEvent",
    "InvalidEventError",
    "TimeSlot",
    "filter_events_by_date",
    # Energy and capacity
    "DailyEnergy",
    "event_drain_minutes",
    "task_energy_alignment",
    "DayCapacity",
    "calculate_capacity",
    "format_duration",
    # Slots and scheduling
    "SlotSettings",
    "TimeRange",
    "find_slot",
    "find_next_available_day",
    "is_time_in_past",
    "ScheduleResult",
    "Strictness",
    "auto_schedule_all_unlocked",
    "auto_schedule_backlog",
    "auto_schedule_selected",
    "schedule_for_next_day",
    "schedule_ignoring_all",
    "schedule_ignoring_windows",
    # Feeds and sync
    "FeedEvent",
    "parse_feed",
    "RecurrenceRule",
    "expand_occurrences",
    "parse_rrule",
    "SyncDiff",
    "SyncSelections",
    "apply_sync",
    "compute_diff",
    "import_events",
]
