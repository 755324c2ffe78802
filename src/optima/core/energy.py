"""Energy model: lookup tables that turn energy labels into capacity multipliers.

Values may arrive from loosely typed sources (an imported feed, a hand-edited
data file), so lookups never raise: an unknown label falls back to the
medium / balance entry.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date

from .calendar import CalendarEvent

logger = logging.getLogger(__name__)

DAILY_ENERGY_MULTIPLIERS = {
    "exhausted": 0.30,
    "low": 0.50,
    "medium": 0.70,
    "high": 0.85,
    "energized": 1.00,
}

INTENTION_MULTIPLIERS = {
    "push": 1.20,
    "balance": 1.00,
    "recovery": 0.60,
}

EVENT_DRAIN_MULTIPLIERS = {
    "restful": 0.00,
    "low": 0.50,
    "medium": 1.00,
    "high": 1.50,
}

DEFAULT_DAILY_ENERGY = "medium"
DEFAULT_INTENTION = "balance"
DEFAULT_EVENT_ENERGY = "medium"

# Day energy collapsed onto the three task energy bands
_DAY_ENERGY_BAND = {
    "exhausted": 0,
    "low": 0,
    "medium": 1,
    "high": 2,
    "energized": 2,
}
_TASK_ENERGY_BAND = {"low": 0, "medium": 1, "high": 2}


@dataclass
class DailyEnergy:
    """How the user feels on a given date. At most one per date."""

    id: str
    date: date
    energy_level: str = DEFAULT_DAILY_ENERGY
    notes: str | None = None

    def validate(self) -> "DailyEnergy":
        if self.energy_level not in DAILY_ENERGY_MULTIPLIERS:
            raise ValueError(f"Unknown daily energy level {self.energy_level!r}")
        return self

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "energy_level": self.energy_level,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DailyEnergy":
        return cls(
            id=data["id"],
            date=date.fromisoformat(data["date"]),
            energy_level=data.get("energy_level", DEFAULT_DAILY_ENERGY),
            notes=data.get("notes"),
        )


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for non-negative values."""
    return math.floor(value + 0.5)


def _lookup(table: dict[str, float], level: str | None, default: str, kind: str) -> float:
    if level in table:
        return table[level]
    if level is not None:
        logger.debug(f"Unknown {kind} {level!r}, using {default}")
    return table[default]


def daily_energy_multiplier(level: str | None) -> float:
    return _lookup(DAILY_ENERGY_MULTIPLIERS, level, DEFAULT_DAILY_ENERGY, "daily energy level")


def intention_multiplier(intention: str | None) -> float:
    return _lookup(INTENTION_MULTIPLIERS, intention, DEFAULT_INTENTION, "day intention")


def event_drain_multiplier(level: str | None) -> float:
    return _lookup(EVENT_DRAIN_MULTIPLIERS, level, DEFAULT_EVENT_ENERGY, "event energy level")


def event_drain_minutes(event: CalendarEvent) -> int:
    """Minutes of capacity an event consumes. An explicit override always wins."""
    if event.energy_drain is not None:
        return event.energy_drain
    return round_half_up(event.duration_minutes() * event_drain_multiplier(event.energy_level))


def task_energy_alignment(task_level: str, day_level: str | None) -> bool:
    """True when a task's energy requirement is at or below what the day offers."""
    day_band = _DAY_ENERGY_BAND.get(day_level or DEFAULT_DAILY_ENERGY, 1)
    return _TASK_ENERGY_BAND.get(task_level, 1) <= day_band
