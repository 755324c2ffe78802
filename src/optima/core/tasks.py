"""Pure task domain logic - no I/O dependencies."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from .calendar import TimeSlot

PRIORITIES = ("low", "medium", "high")
TASK_ENERGY_LEVELS = ("low", "medium", "high")
MOTIVATION_LEVELS = ("hate", "dislike", "neutral", "like", "love")
AVAILABILITY_WINDOWS = ("morning", "afternoon", "evening")

PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}


class InvalidTaskError(ValueError):
    """Raised when a task violates one of its invariants."""

    pass


def parse_hhmm(value: str) -> time:
    """Parse an ``HH:MM`` string into a time."""
    hour_str, _, minute_str = value.strip().partition(":")
    try:
        return time(int(hour_str), int(minute_str or 0))
    except ValueError as e:
        raise ValueError(f"Invalid time of day {value!r}, expected HH:MM") from e


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


@dataclass
class Task:
    """A task that can be placed on the timeline."""

    id: str
    title: str
    duration: int = 30
    completed: bool = False
    scheduled_time: time | None = None
    scheduled_date: date | None = None
    priority: str = "medium"
    energy_level: str = "medium"
    motivation_level: str = "neutral"
    availability_windows: tuple[str, ...] = field(default_factory=tuple)
    is_locked: bool = False
    order_index: int = 0
    description: str | None = None

    @property
    def is_scheduled(self) -> bool:
        return self.scheduled_time is not None and self.scheduled_date is not None

    def validate(self) -> "Task":
        """Check invariants, raising InvalidTaskError on the first violation."""
        if not isinstance(self.duration, int) or self.duration <= 0:
            raise InvalidTaskError(f"Task {self.id}: duration must be a positive number of minutes, got {self.duration!r}")
        if self.priority not in PRIORITIES:
            raise InvalidTaskError(f"Task {self.id}: unknown priority {self.priority!r}")
        if self.energy_level not in TASK_ENERGY_LEVELS:
            raise InvalidTaskError(f"Task {self.id}: unknown energy level {self.energy_level!r}")
        if self.motivation_level not in MOTIVATION_LEVELS:
            raise InvalidTaskError(f"Task {self.id}: unknown motivation level {self.motivation_level!r}")
        for window in self.availability_windows:
            if window not in AVAILABILITY_WINDOWS:
                raise InvalidTaskError(f"Task {self.id}: unknown availability window {window!r}")
        if (self.scheduled_time is None) != (self.scheduled_date is None):
            raise InvalidTaskError(f"Task {self.id}: scheduled time and date must be set together")
        if self.is_locked and not self.is_scheduled:
            raise InvalidTaskError(f"Task {self.id}: a locked task must have a scheduled time and date")
        return self

    def start_at(self, tz: tzinfo = timezone.utc) -> datetime | None:
        """Wall-clock start of the task in ``tz``, or None if unscheduled."""
        if not self.is_scheduled:
            return None
        return datetime.combine(self.scheduled_date, self.scheduled_time, tzinfo=tz)

    def slot(self, tz: tzinfo = timezone.utc) -> TimeSlot | None:
        """The interval this task occupies on the timeline."""
        start = self.start_at(tz)
        if start is None:
            return None
        return TimeSlot(start=start, end=start + timedelta(minutes=self.duration))

    def with_schedule(self, slot_time: time | None, slot_date: date | None) -> "Task":
        """Return a copy placed at (slot_time, slot_date)."""
        return replace(self, scheduled_time=slot_time, scheduled_date=slot_date)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "completed": self.completed,
            "scheduled_time": format_hhmm(self.scheduled_time) if self.scheduled_time else None,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "duration": self.duration,
            "priority": self.priority,
            "energy_level": self.energy_level,
            "motivation_level": self.motivation_level,
            "availability_windows": list(self.availability_windows),
            "is_locked": self.is_locked,
            "order_index": self.order_index,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        """Create a Task from its stored representation."""
        scheduled_time = data.get("scheduled_time")
        scheduled_date = data.get("scheduled_date")
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            description=data.get("description"),
            completed=bool(data.get("completed", False)),
            scheduled_time=parse_hhmm(scheduled_time) if scheduled_time else None,
            scheduled_date=date.fromisoformat(scheduled_date) if scheduled_date else None,
            duration=int(data.get("duration", 30)),
            priority=data.get("priority", "medium"),
            energy_level=data.get("energy_level", "medium"),
            motivation_level=data.get("motivation_level", "neutral"),
            availability_windows=tuple(data.get("availability_windows") or ()),
            is_locked=bool(data.get("is_locked", False)),
            order_index=int(data.get("order_index", 0)),
        )


def filter_backlog(tasks: list[Task]) -> list[Task]:
    """Incomplete tasks with no scheduled date."""
    return [t for t in tasks if not t.completed and t.scheduled_date is None]


def filter_for_date(tasks: list[Task], target_date: date) -> list[Task]:
    """Tasks placed on a given date, sorted by start time."""
    return sorted(
        [t for t in tasks if t.is_scheduled and t.scheduled_date == target_date],
        key=lambda t: t.scheduled_time,
    )


def sort_backlog(tasks: list[Task]) -> list[Task]:
    """Stable backlog display order."""
    return sorted(tasks, key=lambda t: (t.order_index, t.id))


def sort_by_priority(tasks: list[Task]) -> list[Task]:
    """
    Sort tasks by priority (high first) then backlog order.

    Pure function - no I/O.
    """
    return sorted(tasks, key=lambda t: (PRIORITY_RANK.get(t.priority, 1), t.order_index, t.id))
