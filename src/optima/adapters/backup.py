"""JSON backup export and restore."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from optima.core.calendar import CalendarEvent, format_instant
from optima.core.energy import DailyEnergy
from optima.core.tasks import Task
from optima.ports import EnergyRepository, EventRepository, TaskRepository

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1


class BackupError(Exception):
    """Raised when a backup file cannot be read or has the wrong shape."""

    pass


@dataclass
class RestoreResult:
    tasks: int = 0
    events: int = 0
    energy: int = 0
    skipped: int = 0


def export_backup(
    path: Path | str,
    tasks: TaskRepository,
    events: EventRepository,
    energy: EnergyRepository,
    now: datetime | None = None,
) -> Path:
    """Write every task, event and energy check-in to a JSON backup file."""
    now = now or datetime.now(timezone.utc)
    backup = {
        "version": BACKUP_VERSION,
        "exported_at": format_instant(now),
        "tasks": [t.to_dict() for t in tasks.list()],
        "calendar_events": [e.to_dict() for e in events.list()],
        "daily_energy": [d.to_dict() for d in energy.list()],
    }
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(backup, indent=2))
    logger.info(
        f"Exported {len(backup['tasks'])} tasks, {len(backup['calendar_events'])} events "
        f"and {len(backup['daily_energy'])} energy entries to {path}"
    )
    return path


def _parse(records: list, model, kind: str) -> list:
    """Build and validate every record of one kind. Ids must be unique within the file."""
    items = []
    seen = set()
    for record in records:
        try:
            item = model.from_dict(record).validate()
        except (KeyError, TypeError, ValueError) as e:
            raise BackupError(f"Invalid {kind} record in backup: {e}") from e
        if item.id in seen:
            raise BackupError(f"Duplicate {kind} id {item.id!r} in backup")
        seen.add(item.id)
        items.append(item)
    return items


def import_backup(
    path: Path | str,
    tasks: TaskRepository,
    events: EventRepository,
    energy: EnergyRepository,
) -> RestoreResult:
    """
    Add the records from a backup file to the stores.

    Records are inserted, not merged: tasks and events whose id already
    exists are skipped, and energy entries are upserted by date. The whole
    file is validated before anything is written.
    """
    path = Path(path).expanduser()
    try:
        backup = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise BackupError(f"Could not read backup {path}: {e}") from e

    if not isinstance(backup, dict) or backup.get("version") != BACKUP_VERSION:
        raise BackupError(f"Unsupported backup format in {path}")

    new_tasks = _parse(backup.get("tasks") or [], Task, "task")
    new_events = _parse(backup.get("calendar_events") or [], CalendarEvent, "event")
    new_energy = _parse(backup.get("daily_energy") or [], DailyEnergy, "energy")

    result = RestoreResult()
    known_tasks = {t.id for t in tasks.list()}
    to_add = [t for t in new_tasks if t.id not in known_tasks]
    result.skipped += len(new_tasks) - len(to_add)
    if to_add:
        tasks.bulk_add(to_add)
    result.tasks = len(to_add)

    known_events = {e.id for e in events.list()}
    to_add = [e for e in new_events if e.id not in known_events]
    result.skipped += len(new_events) - len(to_add)
    if to_add:
        events.bulk_add(to_add)
    result.events = len(to_add)

    for entry in new_energy:
        energy.upsert(entry)
    result.energy = len(new_energy)

    logger.info(
        f"Restored {result.tasks} tasks, {result.events} events, {result.energy} energy entries "
        f"({result.skipped} skipped)"
    )
    return result
