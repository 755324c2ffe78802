"""Ports - interfaces/protocols for external dependencies."""

from .task_repo import TaskRepository
from .event_repo import EventRepository
from .energy_repo import EnergyRepository
from .feed_source import FeedSource

__all__ = [
    "TaskRepository",
    "EventRepository",
    "EnergyRepository",
    "FeedSource",
]
