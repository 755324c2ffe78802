"""JSON file storage adapters for tasks, events and daily energy."""

from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path

from optima.core.calendar import CalendarEvent
from optima.core.energy import DailyEnergy
from optima.core.tasks import Task

logger = logging.getLogger(__name__)


class _JsonFile:
    """
    A list of records kept in one JSON file.

    A missing file reads as empty. A corrupt file also reads as empty, with
    a warning, and is overwritten on the next write.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def read(self) -> list[dict]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {self.path}: {e}")
            return []
        if not isinstance(data, list):
            logger.warning(f"Ignoring {self.path}: expected a list of records")
            return []
        return data

    def write(self, records: list[dict]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(records, indent=2))
        tmp.replace(self.path)


class _JsonRepository:
    """Shared CRUD over a JSON file, keyed by record id."""

    model = None
    filename = ""

    def __init__(self, data_dir: Path | str):
        self._file = _JsonFile(Path(data_dir).expanduser() / self.filename)

    @property
    def path(self) -> Path:
        return self._file.path

    def _load(self) -> list:
        items = []
        for record in self._file.read():
            try:
                items.append(self.model.from_dict(record).validate())
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping bad record in {self.path}: {e}")
        return items

    def _save(self, items: list) -> None:
        self._file.write([item.to_dict() for item in items])

    def list(self) -> list:
        return self._load()

    def get(self, item_id: str):
        for item in self._load():
            if item.id == item_id:
                return item
        return None

    def add(self, item) -> None:
        self.bulk_add([item])

    def bulk_add(self, items: list) -> None:
        current = self._load()
        ids = {i.id for i in current}
        for item in items:
            item.validate()
            if item.id in ids:
                raise ValueError(f"Duplicate id {item.id!r}")
            ids.add(item.id)
        self._save(current + list(items))

    def update(self, item) -> None:
        self.bulk_update([item])

    def bulk_update(self, items: list) -> None:
        current = self._load()
        index = {item.id: n for n, item in enumerate(current)}
        for item in items:
            item.validate()
            if item.id not in index:
                raise KeyError(item.id)
            current[index[item.id]] = item
        self._save(current)

    def remove(self, item_id: str) -> None:
        self.bulk_remove([item_id])

    def bulk_remove(self, item_ids: list[str]) -> None:
        current = self._load()
        known = {item.id for item in current}
        for item_id in item_ids:
            if item_id not in known:
                raise KeyError(item_id)
        doomed = set(item_ids)
        self._save([item for item in current if item.id not in doomed])


class JsonTaskStore(_JsonRepository):
    """Implements TaskRepository protocol. Tasks live in ``tasks.json``."""

    model = Task
    filename = "tasks.json"


class JsonEventStore(_JsonRepository):
    """Implements EventRepository protocol. Events live in ``calendar_events.json``."""

    model = CalendarEvent
    filename = "calendar_events.json"

    def external_events(self) -> list[CalendarEvent]:
        return [e for e in self._load() if e.is_external]

    def existing_external_ids(self) -> set[str]:
        return {e.external_id for e in self._load() if e.is_external and e.external_id}


class JsonEnergyStore(_JsonRepository):
    """Implements EnergyRepository protocol. Check-ins live in ``daily_energy.json``."""

    model = DailyEnergy
    filename = "daily_energy.json"

    def get_by_date(self, target_date: date) -> DailyEnergy | None:
        for entry in self._load():
            if entry.date == target_date:
                return entry
        return None

    def upsert(self, energy: DailyEnergy) -> DailyEnergy:
        """Store ``energy``, replacing any entry for the same date but keeping its id."""
        energy.validate()
        current = self._load()
        for n, entry in enumerate(current):
            if entry.date == energy.date:
                energy.id = entry.id
                current[n] = energy
                break
        else:
            current.append(energy)
        self._save(current)
        return energy
