"""Calendar sync reconciliation.

compute_diff is pure. apply_sync, import_events and clear_external_events
drive an EventRepository but hold no state of their own; callers should
re-read the store afterwards rather than patch in-memory copies.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timezone, tzinfo
from enum import Enum
from typing import Callable
from uuid import uuid4

from ..ports.event_repo import EventRepository
from .calendar import CalendarEvent
from .ics import FeedEvent

logger = logging.getLogger(__name__)

SYNC_FIELDS = ("title", "start", "end", "location")


class ChangeKind(Enum):
    NEW = "new"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass
class SyncChange:
    """One reviewable difference between the feed and the store."""

    kind: ChangeKind
    external_id: str
    candidate: FeedEvent | None = None
    existing: CalendarEvent | None = None
    changed_fields: tuple[str, ...] = ()

    @property
    def title(self) -> str:
        source = self.candidate or self.existing
        return source.title if source else ""


@dataclass
class SyncDiff:
    new: list[SyncChange] = field(default_factory=list)
    updated: list[SyncChange] = field(default_factory=list)
    deleted: list[SyncChange] = field(default_factory=list)

    @property
    def total_changes(self) -> int:
        return len(self.new) + len(self.updated) + len(self.deleted)

    @property
    def is_empty(self) -> bool:
        return self.total_changes == 0


@dataclass
class SyncSelections:
    """External ids the user accepted, per change kind."""

    new_ids: set[str] = field(default_factory=set)
    update_ids: set[str] = field(default_factory=set)
    delete_ids: set[str] = field(default_factory=set)

    @classmethod
    def all(cls, diff: SyncDiff) -> "SyncSelections":
        """Accept every change in the diff."""
        return cls(
            new_ids={c.external_id for c in diff.new},
            update_ids={c.external_id for c in diff.updated},
            delete_ids={c.external_id for c in diff.deleted},
        )


@dataclass
class SyncStats:
    added: int = 0
    updated: int = 0
    deleted: int = 0


class SyncApplyError(Exception):
    """
    Raised when one or more sync sub-operations failed.

    Sub-operations that succeeded are not rolled back; ``stats`` shows what
    reached the store and ``failures`` names the operations that did not.
    """

    def __init__(self, stats: SyncStats, failures: list[str]):
        self.stats = stats
        self.failures = failures
        super().__init__(
            f"Sync partially applied, failed: {', '.join(failures)} "
            f"(added {stats.added}, updated {stats.updated}, deleted {stats.deleted})"
        )


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0


def changed_fields(candidate: FeedEvent, existing: CalendarEvent) -> tuple[str, ...]:
    """Fields that differ between a feed event and its stored copy. Empty location equals None."""
    changes = []
    if candidate.title != existing.title:
        changes.append("title")
    if candidate.start != existing.start:
        changes.append("start")
    if candidate.end != existing.end:
        changes.append("end")
    if (candidate.location or None) != (existing.location or None):
        changes.append("location")
    return tuple(changes)


def compute_diff(
    candidates: list[FeedEvent],
    existing: list[CalendarEvent],
    *,
    on_date: date | None = None,
    tz: tzinfo = timezone.utc,
) -> SyncDiff:
    """
    Classify feed events against stored external events by external id.

    Pure function - no I/O.

    Args:
        candidates: Events from the latest feed pull. Ones without an
            external id cannot be matched and are ignored.
        existing: Stored events. Only external events with an id take part.
        on_date: Restrict both sides to events starting on this local date.
        tz: Timezone used for ``on_date``.

    Returns:
        SyncDiff with new, updated and deleted changes. Dismissed events
        whose id left the feed are classified as deleted like any other.
    """
    stored = [e for e in existing if e.is_external and e.external_id]
    if on_date is not None:
        candidates = [c for c in candidates if c.local_date(tz) == on_date]
        stored = [e for e in stored if e.local_date(tz) == on_date]

    by_id: dict[str, CalendarEvent] = {}
    for event in stored:
        by_id.setdefault(event.external_id, event)

    diff = SyncDiff()
    seen: set[str] = set()
    for candidate in candidates:
        ext_id = candidate.external_id
        if not ext_id or ext_id in seen:
            continue
        seen.add(ext_id)

        match = by_id.get(ext_id)
        if match is None:
            diff.new.append(SyncChange(ChangeKind.NEW, ext_id, candidate=candidate))
            continue
        fields = changed_fields(candidate, match)
        if fields:
            diff.updated.append(
                SyncChange(ChangeKind.UPDATED, ext_id, candidate=candidate, existing=match, changed_fields=fields)
            )

    for ext_id, event in by_id.items():
        if ext_id not in seen:
            diff.deleted.append(SyncChange(ChangeKind.DELETED, ext_id, existing=event))

    logger.debug(
        f"Sync diff: {len(diff.new)} new, {len(diff.updated)} updated, {len(diff.deleted)} deleted"
    )
    return diff


def _new_id() -> str:
    return str(uuid4())


def apply_sync(
    diff: SyncDiff,
    selections: SyncSelections,
    store: EventRepository,
    *,
    id_factory: Callable[[], str] = _new_id,
) -> SyncStats:
    """
    Write the selected changes to the store: adds, then updates, then deletes.

    Unselected changes are left alone. Each of the three writes is attempted
    even if an earlier one failed, and nothing is rolled back. Any failure
    raises SyncApplyError after all three have been attempted.
    """
    stats = SyncStats()
    failures: list[str] = []
    first_error: Exception | None = None

    to_add = [
        c.candidate.to_event(id_factory())
        for c in diff.new
        if c.external_id in selections.new_ids and c.candidate is not None
    ]
    to_update = [
        c.existing.with_changes(
            title=c.candidate.title,
            start=c.candidate.start,
            end=c.candidate.end,
            location=c.candidate.location,
        )
        for c in diff.updated
        if c.external_id in selections.update_ids and c.candidate is not None and c.existing is not None
    ]
    to_delete = [
        c.existing.id
        for c in diff.deleted
        if c.external_id in selections.delete_ids and c.existing is not None
    ]

    operations = (
        ("add", to_add, store.bulk_add, "added"),
        ("update", to_update, store.bulk_update, "updated"),
        ("delete", to_delete, store.bulk_remove, "deleted"),
    )
    for name, items, write, counter in operations:
        if not items:
            continue
        try:
            write(items)
        except Exception as e:
            logger.error(f"Sync {name} of {len(items)} events failed: {e}")
            failures.append(name)
            first_error = first_error or e
            continue
        setattr(stats, counter, len(items))

    if failures:
        raise SyncApplyError(stats, failures) from first_error

    logger.info(f"Sync applied: {stats.added} added, {stats.updated} updated, {stats.deleted} deleted")
    return stats


def import_events(
    candidates: list[FeedEvent],
    store: EventRepository,
    *,
    id_factory: Callable[[], str] = _new_id,
) -> ImportResult:
    """
    Bulk-add feed events, skipping external ids that are already stored.

    Duplicates within the batch are skipped too. Events without an external
    id are always imported.
    """
    known = set(store.existing_external_ids())
    result = ImportResult()
    to_add = []
    for candidate in candidates:
        if candidate.external_id:
            if candidate.external_id in known:
                result.skipped += 1
                continue
            known.add(candidate.external_id)
        to_add.append(candidate.to_event(id_factory()))

    if to_add:
        store.bulk_add(to_add)
    result.imported = len(to_add)
    logger.info(f"Imported {result.imported} events, skipped {result.skipped} duplicates")
    return result


def clear_external_events(store: EventRepository) -> int:
    """Remove every imported event. Returns how many were removed."""
    ids = [e.id for e in store.external_events()]
    if ids:
        store.bulk_remove(ids)
    logger.info(f"Removed {len(ids)} synced events")
    return len(ids)
