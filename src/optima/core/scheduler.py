"""Auto-scheduling - greedy placement of tasks onto the timeline.

All entry points share one engine parameterized by which tasks are
candidates and how strictly constraints apply. Inputs are never mutated;
results carry copies of the tasks with their new (time, date).
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from enum import Enum
from typing import Callable, Iterable

from .calendar import CalendarEvent
from .energy import task_energy_alignment
from .slots import DEFAULT_HORIZON_DAYS, SlotSettings, find_next_available_day, find_slot
from .tasks import PRIORITY_RANK, Task

logger = logging.getLogger(__name__)


class Strictness(Enum):
    """How much of the constraint set a placement honors."""

    FULL = "full"
    IGNORE_WINDOWS = "ignore_windows"
    IGNORE_ALL = "ignore_all"
    NEXT_DAY = "next_day"


ESCALATION_LADDER = (Strictness.FULL, Strictness.IGNORE_WINDOWS, Strictness.IGNORE_ALL)


@dataclass
class ScheduleResult:
    """Partition of the candidate tasks after a scheduling pass."""

    scheduled: list[Task] = field(default_factory=list)
    unscheduled: list[Task] = field(default_factory=list)
    placements: dict[str, Strictness] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.scheduled) + len(self.unscheduled)


def priority_key(task: Task, daily_energy: str | None) -> tuple:
    """Sort key: priority, then energy fit with the day, then backlog order."""
    aligned = task_energy_alignment(task.energy_level, daily_energy)
    return (PRIORITY_RANK.get(task.priority, 1), 0 if aligned else 1, task.order_index, task.id)


def _place(
    task: Task,
    target_date: date,
    strictness: Strictness,
    events: list[CalendarEvent],
    occupied: list[Task],
    settings: SlotSettings,
    tz: tzinfo,
    now: datetime | None,
    horizon: int,
) -> Task | None:
    if strictness is Strictness.NEXT_DAY:
        found = find_next_available_day(
            target_date,
            task.duration,
            task.availability_windows,
            events,
            occupied,
            settings,
            horizon=horizon,
            include_start=False,
            tz=tz,
            now=now,
            exclude_task_id=task.id,
        )
        return task.with_schedule(found[1], found[0]) if found else None

    slot_time = find_slot(
        target_date,
        task.duration,
        task.availability_windows,
        events,
        occupied,
        settings,
        tz=tz,
        now=now,
        ignore_windows=strictness is not Strictness.FULL,
        ignore_work_hours=strictness is Strictness.IGNORE_ALL,
        exclude_task_id=task.id,
    )
    return task.with_schedule(slot_time, target_date) if slot_time is not None else None


def run_schedule(
    tasks: list[Task],
    events: list[CalendarEvent],
    target_date: date,
    is_candidate: Callable[[Task], bool],
    levels: Iterable[Strictness] = ESCALATION_LADDER + (Strictness.NEXT_DAY,),
    *,
    daily_energy: str | None = None,
    settings: SlotSettings | None = None,
    tz: tzinfo = timezone.utc,
    now: datetime | None = None,
    horizon: int = DEFAULT_HORIZON_DAYS,
) -> ScheduleResult:
    """
    Greedily assign every candidate task to the earliest slot it fits.

    Pure function - no I/O.

    Completed tasks are dropped from both the candidate and obstacle sets.
    Locked tasks are never candidates. Every other scheduled task that is
    not a candidate keeps its slot and blocks time. Each candidate is tried
    against ``levels`` in order; the first level that finds a slot wins and
    the placed task blocks time for the candidates after it.

    Raises InvalidTaskError or InvalidEventError before placing anything if
    an input breaks its invariants, so no task drops out of the result.
    """
    settings = settings or SlotSettings()
    levels = tuple(levels)
    for task in tasks:
        task.validate()
    for event in events:
        event.validate()

    live = [t for t in tasks if not t.completed]
    candidates = [t for t in live if not t.is_locked and is_candidate(t)]
    candidate_ids = {t.id for t in candidates}
    occupied = [t for t in live if t.id not in candidate_ids and t.is_scheduled]

    result = ScheduleResult()
    for task in sorted(candidates, key=lambda t: priority_key(t, daily_energy)):
        placed = None
        for level in levels:
            placed = _place(task, target_date, level, events, occupied, settings, tz, now, horizon)
            if placed is not None:
                result.placements[task.id] = level
                break

        if placed is None:
            logger.debug(f"No slot for task {task.id} ({task.duration} min)")
            result.unscheduled.append(task)
            continue

        occupied.append(placed)
        result.scheduled.append(placed)

    logger.info(
        f"Scheduled {len(result.scheduled)} of {result.total} tasks for {target_date.isoformat()}"
    )
    return result


def _levels(escalate: bool) -> tuple[Strictness, ...]:
    return ESCALATION_LADDER + (Strictness.NEXT_DAY,) if escalate else (Strictness.FULL,)


def auto_schedule_all_unlocked(
    tasks: list[Task],
    events: list[CalendarEvent],
    target_date: date,
    *,
    daily_energy: str | None = None,
    settings: SlotSettings | None = None,
    tz: tzinfo = timezone.utc,
    now: datetime | None = None,
    horizon: int = DEFAULT_HORIZON_DAYS,
    escalate: bool = True,
) -> ScheduleResult:
    """Re-plan the day: every unlocked task on ``target_date`` or in the backlog moves."""
    return run_schedule(
        tasks,
        events,
        target_date,
        lambda t: t.scheduled_date is None or t.scheduled_date == target_date,
        _levels(escalate),
        daily_energy=daily_energy,
        settings=settings,
        tz=tz,
        now=now,
        horizon=horizon,
    )


def auto_schedule_selected(
    tasks: list[Task],
    selected_ids: Iterable[str],
    events: list[CalendarEvent],
    target_date: date,
    *,
    daily_energy: str | None = None,
    settings: SlotSettings | None = None,
    tz: tzinfo = timezone.utc,
    now: datetime | None = None,
    horizon: int = DEFAULT_HORIZON_DAYS,
    escalate: bool = True,
) -> ScheduleResult:
    """Place only the selected tasks; everything else stays where it is."""
    selected = set(selected_ids)
    return run_schedule(
        tasks,
        events,
        target_date,
        lambda t: t.id in selected,
        _levels(escalate),
        daily_energy=daily_energy,
        settings=settings,
        tz=tz,
        now=now,
        horizon=horizon,
    )


def auto_schedule_backlog(
    tasks: list[Task],
    events: list[CalendarEvent],
    target_date: date,
    *,
    daily_energy: str | None = None,
    settings: SlotSettings | None = None,
    tz: tzinfo = timezone.utc,
    now: datetime | None = None,
    horizon: int = DEFAULT_HORIZON_DAYS,
    escalate: bool = True,
) -> ScheduleResult:
    """Fill gaps with backlog tasks without disturbing the existing timeline."""
    return run_schedule(
        tasks,
        events,
        target_date,
        lambda t: t.scheduled_date is None,
        _levels(escalate),
        daily_energy=daily_energy,
        settings=settings,
        tz=tz,
        now=now,
        horizon=horizon,
    )


def _schedule_subset(
    subset: list[Task],
    tasks: list[Task],
    events: list[CalendarEvent],
    target_date: date,
    level: Strictness,
    **kwargs,
) -> ScheduleResult:
    ids = {t.id for t in subset}
    by_id = {t.id: t for t in tasks}
    # Tasks passed in that the store no longer knows about still get placed
    merged = list(tasks) + [t for t in subset if t.id not in by_id]
    return run_schedule(merged, events, target_date, lambda t: t.id in ids, (level,), **kwargs)


def schedule_ignoring_windows(
    subset: list[Task],
    tasks: list[Task],
    events: list[CalendarEvent],
    target_date: date,
    **kwargs,
) -> ScheduleResult:
    """Retry placement for ``subset`` on ``target_date`` without availability windows."""
    return _schedule_subset(subset, tasks, events, target_date, Strictness.IGNORE_WINDOWS, **kwargs)


def schedule_ignoring_all(
    subset: list[Task],
    tasks: list[Task],
    events: list[CalendarEvent],
    target_date: date,
    **kwargs,
) -> ScheduleResult:
    """Retry placement for ``subset`` anywhere on ``target_date``."""
    return _schedule_subset(subset, tasks, events, target_date, Strictness.IGNORE_ALL, **kwargs)


def schedule_for_next_day(
    subset: list[Task],
    tasks: list[Task],
    events: list[CalendarEvent],
    target_date: date,
    **kwargs,
) -> ScheduleResult:
    """Push ``subset`` to the first following day with room, within the horizon."""
    return _schedule_subset(subset, tasks, events, target_date, Strictness.NEXT_DAY, **kwargs)
