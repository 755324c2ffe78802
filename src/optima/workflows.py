"""Shared workflow layer between the CLI and the engine.

Each function loads what it needs from the stores, runs a pure engine
function, persists the result and returns it for display.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from pathlib import Path

from .adapters.backup import RestoreResult, export_backup, import_backup
from .adapters.ics_feed import FeedError, IcsFeedAdapter
from .adapters.json_store import JsonEnergyStore, JsonEventStore, JsonTaskStore
from .config import Config
from .core.calendar import filter_events_by_date
from .core.capacity import DayCapacity, calculate_capacity
from .core.energy import DailyEnergy
from .core.ics import FeedEvent, filter_by_date, parse_feed
from .core.scheduler import (
    ScheduleResult,
    auto_schedule_all_unlocked,
    auto_schedule_backlog,
    auto_schedule_selected,
)
from .core.slots import find_slot
from .core.sync import (
    ImportResult,
    SyncDiff,
    SyncSelections,
    SyncStats,
    apply_sync,
    clear_external_events,
    compute_diff,
    import_events,
)
from .core.tasks import filter_for_date
from .ports import FeedSource

logger = logging.getLogger(__name__)

SCHEDULE_MODES = ("all", "backlog", "selected")


@dataclass
class Stores:
    tasks: JsonTaskStore
    events: JsonEventStore
    energy: JsonEnergyStore


def get_stores(config: Config) -> Stores:
    """Resolve the data directory from config and open the stores."""
    data_dir = config.data_path()
    return Stores(
        tasks=JsonTaskStore(data_dir),
        events=JsonEventStore(data_dir),
        energy=JsonEnergyStore(data_dir),
    )


def _daily_energy(stores: Stores, target_date: date) -> str | None:
    entry = stores.energy.get_by_date(target_date)
    return entry.energy_level if entry else None


# ============== Capacity and energy ==============


def day_capacity(config: Config, target_date: date, stores: Stores | None = None) -> DayCapacity:
    """Capacity for a date from the stored tasks, events and energy check-in."""
    stores = stores or get_stores(config)
    tasks = filter_for_date(stores.tasks.list(), target_date)
    events = filter_events_by_date(stores.events.list(), target_date, tz=config.tzinfo())
    return calculate_capacity(
        tasks,
        events,
        daily_energy=_daily_energy(stores, target_date),
        intention=config.day_intention,
        capacity_override=config.daily_capacity_minutes,
    )


def record_energy(
    config: Config,
    level: str,
    target_date: date,
    notes: str | None = None,
    stores: Stores | None = None,
) -> DailyEnergy:
    """Store the energy check-in for a date, replacing any earlier one."""
    stores = stores or get_stores(config)
    entry = DailyEnergy(id=f"energy-{target_date.isoformat()}", date=target_date, energy_level=level, notes=notes)
    return stores.energy.upsert(entry)


# ============== Scheduling ==============


def run_schedule(
    config: Config,
    mode: str,
    target_date: date,
    selected_ids: list[str] | None = None,
    escalate: bool = True,
    now: datetime | None = None,
    stores: Stores | None = None,
) -> ScheduleResult:
    """Run one of the auto-schedule modes and save the placed tasks."""
    if mode not in SCHEDULE_MODES:
        raise ValueError(f"Unknown schedule mode {mode!r}, expected one of {', '.join(SCHEDULE_MODES)}")

    stores = stores or get_stores(config)
    tasks = stores.tasks.list()
    options = dict(
        daily_energy=_daily_energy(stores, target_date),
        settings=config.slot_settings(),
        tz=config.tzinfo(),
        now=now,
        horizon=config.schedule_horizon_days,
        escalate=escalate,
    )

    match mode:
        case "all":
            result = auto_schedule_all_unlocked(tasks, stores.events.list(), target_date, **options)
        case "backlog":
            result = auto_schedule_backlog(tasks, stores.events.list(), target_date, **options)
        case "selected":
            known = {t.id for t in tasks}
            missing = [i for i in selected_ids or [] if i not in known]
            if missing:
                raise ValueError(f"Unknown task id(s): {', '.join(missing)}")
            result = auto_schedule_selected(tasks, selected_ids or [], stores.events.list(), target_date, **options)

    if result.scheduled:
        stores.tasks.bulk_update(result.scheduled)
    return result


def find_free_slot(
    config: Config,
    duration: int,
    target_date: date,
    windows: list[str] | None = None,
    now: datetime | None = None,
    stores: Stores | None = None,
) -> time | None:
    """Earliest free start time for a task of ``duration`` minutes."""
    stores = stores or get_stores(config)
    return find_slot(
        target_date,
        duration,
        windows or [],
        stores.events.list(),
        [t for t in stores.tasks.list() if not t.completed],
        config.slot_settings(),
        tz=config.tzinfo(),
        now=now,
    )


# ============== Calendar feed ==============


def load_feed_events(
    config: Config,
    location: str | None = None,
    on_date: date | None = None,
    now: datetime | None = None,
) -> list[FeedEvent]:
    """Fetch and parse the calendar feed. Raises FeedError if it has no usable events."""
    location = location or config.calendar_feed
    feed: FeedSource = IcsFeedAdapter(location)
    events = parse_feed(feed.fetch(), now=now, local_tz=config.tzinfo())
    if not events:
        raise FeedError(f"No events found in feed {location}")
    if on_date is not None:
        events = filter_by_date(events, on_date, config.tzinfo())
    return events


def preview_sync(
    config: Config,
    location: str | None = None,
    on_date: date | None = None,
    now: datetime | None = None,
    stores: Stores | None = None,
) -> SyncDiff:
    """Compare the feed against stored external events without writing anything."""
    stores = stores or get_stores(config)
    candidates = load_feed_events(config, location, now=now)
    return compute_diff(candidates, stores.events.list(), on_date=on_date, tz=config.tzinfo())


def sync_feed(
    config: Config,
    location: str | None = None,
    on_date: date | None = None,
    include_new: bool = True,
    include_updates: bool = True,
    include_deletes: bool = True,
    now: datetime | None = None,
    stores: Stores | None = None,
) -> tuple[SyncDiff, SyncStats]:
    """Compute the sync diff and apply the accepted kinds of change."""
    stores = stores or get_stores(config)
    diff = preview_sync(config, location, on_date, now, stores)
    everything = SyncSelections.all(diff)
    selections = SyncSelections(
        new_ids=everything.new_ids if include_new else set(),
        update_ids=everything.update_ids if include_updates else set(),
        delete_ids=everything.delete_ids if include_deletes else set(),
    )
    return diff, apply_sync(diff, selections, stores.events)


def import_feed(
    config: Config,
    location: str | None = None,
    on_date: date | None = None,
    now: datetime | None = None,
    stores: Stores | None = None,
) -> ImportResult:
    """First-time import of feed events, skipping ones already stored."""
    stores = stores or get_stores(config)
    return import_events(load_feed_events(config, location, on_date, now), stores.events)


def clear_synced(config: Config, stores: Stores | None = None) -> int:
    stores = stores or get_stores(config)
    return clear_external_events(stores.events)


# ============== Backup ==============


def export_data(config: Config, path: Path | str, stores: Stores | None = None) -> Path:
    stores = stores or get_stores(config)
    return export_backup(path, stores.tasks, stores.events, stores.energy)


def restore_data(config: Config, path: Path | str, stores: Stores | None = None) -> RestoreResult:
    stores = stores or get_stores(config)
    return import_backup(path, stores.tasks, stores.events, stores.energy)
