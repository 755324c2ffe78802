"""Pure calendar domain logic - no I/O dependencies."""

from dataclasses import dataclass, replace
from datetime import date, datetime, timezone, tzinfo

EVENT_ENERGY_LEVELS = ("restful", "low", "medium", "high")


class InvalidEventError(ValueError):
    """Raised when a calendar event violates one of its invariants."""

    pass


def parse_instant(value: str) -> datetime:
    """Parse an ISO 8601 instant. Naive values are taken as UTC."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_instant(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class TimeSlot:
    """A span of time on the timeline."""

    start: datetime
    end: datetime

    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() / 60)

    def format(self) -> str:
        return f"{self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')} ({self.duration_minutes()} min)"

    def contains(self, dt: datetime) -> bool:
        """Check if a datetime falls within this slot."""
        return self.start <= dt < self.end

    def overlaps(self, other: "TimeSlot") -> bool:
        """Check if this slot overlaps with another."""
        return self.start < other.end and other.start < self.end


@dataclass
class CalendarEvent:
    """A calendar event, either created locally or imported from a feed."""

    id: str
    title: str
    start: datetime
    end: datetime
    is_external: bool = False
    external_id: str | None = None
    calendar_source: str | None = None
    location: str | None = None
    energy_level: str = "medium"
    energy_drain: int | None = None
    is_dismissed: bool = False

    def validate(self) -> "CalendarEvent":
        """Check invariants, raising InvalidEventError on the first violation."""
        if self.end <= self.start:
            raise InvalidEventError(f"Event {self.id}: end must be after start")
        if self.energy_level not in EVENT_ENERGY_LEVELS:
            raise InvalidEventError(f"Event {self.id}: unknown energy level {self.energy_level!r}")
        if self.energy_drain is not None and (
            isinstance(self.energy_drain, bool)
            or not isinstance(self.energy_drain, int)
            or self.energy_drain < 0
        ):
            raise InvalidEventError(f"Event {self.id}: energy_drain must be a non-negative integer")
        if not self.is_external and (self.external_id or self.calendar_source):
            raise InvalidEventError(f"Event {self.id}: only external events carry an external id or source")
        if self.is_dismissed and not self.is_external:
            raise InvalidEventError(f"Event {self.id}: only external events can be dismissed")
        return self

    def duration_minutes(self) -> int:
        """Event duration in minutes, never negative."""
        return max(0, round((self.end - self.start).total_seconds() / 60))

    def slot(self) -> TimeSlot:
        return TimeSlot(start=self.start, end=self.end)

    def local_date(self, tz: tzinfo = timezone.utc) -> date:
        return self.start.astimezone(tz).date()

    def with_changes(self, **changes) -> "CalendarEvent":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "start_time": format_instant(self.start),
            "end_time": format_instant(self.end),
            "is_external": self.is_external,
            "external_id": self.external_id,
            "calendar_source": self.calendar_source,
            "location": self.location,
            "energy_level": self.energy_level,
            "energy_drain": self.energy_drain,
            "is_dismissed": self.is_dismissed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CalendarEvent":
        """Create a CalendarEvent from its stored representation."""
        drain = data.get("energy_drain")
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            start=parse_instant(data["start_time"]),
            end=parse_instant(data["end_time"]),
            is_external=bool(data.get("is_external", False)),
            external_id=data.get("external_id"),
            calendar_source=data.get("calendar_source"),
            location=data.get("location"),
            energy_level=data.get("energy_level") or "medium",
            energy_drain=int(drain) if drain is not None else None,
            is_dismissed=bool(data.get("is_dismissed", False)),
        )


def active_events(events: list[CalendarEvent]) -> list[CalendarEvent]:
    """Events that count against capacity and block slots (not dismissed)."""
    return [e for e in events if not e.is_dismissed]


def filter_events_by_date(
    events: list[CalendarEvent],
    start_date: date,
    end_date: date | None = None,
    tz: tzinfo = timezone.utc,
) -> list[CalendarEvent]:
    """
    Filter events to those starting within a local date range.

    Pure function - no I/O.
    """
    end_date = end_date or start_date
    return [e for e in events if start_date <= e.local_date(tz) <= end_date]


def sort_events_by_start(events: list[CalendarEvent]) -> list[CalendarEvent]:
    """Sort events by start time."""
    return sorted(events, key=lambda e: e.start)
