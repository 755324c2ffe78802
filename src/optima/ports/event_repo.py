"""Calendar event repository interface."""

from __future__ import annotations

from typing import Protocol

from optima.core.calendar import CalendarEvent


class EventRepository(Protocol):
    """Interface for storing calendar events in any backend."""

    def list(self) -> list[CalendarEvent]:
        """Fetch all events, local and external."""
        ...

    def get(self, event_id: str) -> CalendarEvent | None:
        ...

    def add(self, event: CalendarEvent) -> None:
        ...

    def update(self, event: CalendarEvent) -> None:
        """Replace a stored event. Raises KeyError for an unknown id."""
        ...

    def remove(self, event_id: str) -> None:
        """Delete an event. Raises KeyError for an unknown id."""
        ...

    def bulk_add(self, events: list[CalendarEvent]) -> None:
        ...

    def bulk_update(self, events: list[CalendarEvent]) -> None:
        ...

    def bulk_remove(self, event_ids: list[str]) -> None:
        ...

    def external_events(self) -> list[CalendarEvent]:
        """Events imported from a feed."""
        ...

    def existing_external_ids(self) -> set[str]:
        """External ids of every imported event."""
        ...
