"""Task repository interface."""

from __future__ import annotations

from typing import Protocol

from optima.core.tasks import Task


class TaskRepository(Protocol):
    """Interface for storing tasks in any backend."""

    def list(self) -> list[Task]:
        """Fetch all tasks."""
        ...

    def get(self, task_id: str) -> Task | None:
        """Fetch one task. Returns None if not found."""
        ...

    def add(self, task: Task) -> None:
        ...

    def update(self, task: Task) -> None:
        """Replace a stored task. Raises KeyError for an unknown id."""
        ...

    def remove(self, task_id: str) -> None:
        """Delete a task. Raises KeyError for an unknown id."""
        ...

    def bulk_add(self, tasks: list[Task]) -> None:
        ...

    def bulk_update(self, tasks: list[Task]) -> None:
        """Replace several tasks in one write."""
        ...
