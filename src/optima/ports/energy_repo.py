"""Daily energy repository interface."""

from __future__ import annotations

from datetime import date
from typing import Protocol

from optima.core.energy import DailyEnergy


class EnergyRepository(Protocol):
    """Interface for storing daily energy check-ins. At most one per date."""

    def list(self) -> list[DailyEnergy]:
        ...

    def get_by_date(self, target_date: date) -> DailyEnergy | None:
        """Energy for a date. Returns None if the user has not checked in."""
        ...

    def upsert(self, energy: DailyEnergy) -> DailyEnergy:
        """Insert, or replace the existing entry for the same date."""
        ...
