"""Optima CLI - energy-aware day planner."""

import json
import logging
import sys
from datetime import date, datetime

import click

from .adapters.backup import BackupError
from .adapters.ics_feed import FeedError
from .config import Config, load_config
from .core.calendar import format_instant
from .core.capacity import format_duration
from .core.energy import DAILY_ENERGY_MULTIPLIERS
from .core.scheduler import Strictness
from .core.sync import SyncApplyError, SyncDiff
from .core.tasks import AVAILABILITY_WINDOWS, filter_backlog, filter_for_date, format_hhmm, sort_backlog
from .workflows import (
    clear_synced,
    day_capacity,
    export_data,
    find_free_slot,
    get_stores,
    import_feed,
    preview_sync,
    record_energy,
    restore_data,
    run_schedule,
    sync_feed,
)

PLACEMENT_NOTES = {
    Strictness.FULL: "",
    Strictness.IGNORE_WINDOWS: " (outside preferred window)",
    Strictness.IGNORE_ALL: " (outside work hours)",
    Strictness.NEXT_DAY: " (moved to a later day)",
}


def _fail(e: Exception) -> None:
    click.echo(f"Error: {e}", err=True)
    sys.exit(1)


def _target_date(value, config: Config) -> date:
    """The --date value, or today in the configured timezone."""
    return value.date() if value else datetime.now(config.tzinfo()).date()


date_option = click.option(
    "--date", "on_date", type=click.DateTime(formats=["%Y-%m-%d"]), help="Date to plan (default: today)"
)


@click.group()
@click.version_option(package_name="optima")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool):
    """Optima - energy-aware task scheduling and calendar sync."""
    if debug:
        logging.basicConfig(
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            level=logging.DEBUG,
        )


@main.command()
@date_option
def tasks(on_date):
    """List the day's timeline and the backlog."""
    config = load_config()
    target = _target_date(on_date, config)
    all_tasks = get_stores(config).tasks.list()

    planned = filter_for_date(all_tasks, target)
    click.echo(f"Plan for {target.strftime('%A, %b %d')}")
    if not planned:
        click.echo("  Nothing scheduled.")
    for task in planned:
        mark = "x" if task.completed else " "
        lock = " [locked]" if task.is_locked else ""
        click.echo(f"  [{mark}] {format_hhmm(task.scheduled_time)} {task.title} ({task.duration}m){lock}")

    backlog = sort_backlog(filter_backlog(all_tasks))
    if backlog:
        click.echo("\nBacklog")
        for task in backlog:
            click.echo(f"  • {task.title} ({task.duration}m, {task.priority}) [{task.id}]")


@main.command()
@date_option
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def capacity(on_date, as_json: bool):
    """Show how much of the day's capacity is used."""
    config = load_config()
    target = _target_date(on_date, config)
    cap = day_capacity(config, target)

    if as_json:
        click.echo(
            json.dumps(
                {
                    "date": target.isoformat(),
                    "total": cap.total,
                    "scheduled": cap.scheduled,
                    "available": cap.available,
                    "percentage": cap.percentage,
                },
                indent=2,
            )
        )
        return

    click.echo(f"Capacity for {target.strftime('%A, %b %d')}")
    click.echo(f"  Total:     {format_duration(cap.total)}")
    click.echo(f"  Scheduled: {format_duration(cap.scheduled)} ({cap.percentage}%)")
    click.echo(f"  Available: {format_duration(cap.available)}")
    if cap.is_overcommitted:
        click.echo("  Over capacity - consider moving something to another day.")


@main.command()
@click.argument("level", type=click.Choice(list(DAILY_ENERGY_MULTIPLIERS)))
@date_option
@click.option("--note", default=None, help="Optional note for the day")
def energy(level: str, on_date, note: str | None):
    """Record how energetic you feel today."""
    config = load_config()
    entry = record_energy(config, level, _target_date(on_date, config), note)
    click.echo(f"Energy for {entry.date.isoformat()} set to {entry.energy_level}.")


@main.command()
@click.argument("mode", type=click.Choice(["all", "backlog", "selected"]), default="all")
@click.argument("task_ids", nargs=-1)
@date_option
@click.option("--no-escalate", is_flag=True, help="Only place tasks that fit all their constraints")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def schedule(mode: str, task_ids: tuple[str, ...], on_date, no_escalate: bool, as_json: bool):
    """Auto-schedule tasks: all unlocked, the backlog, or selected task IDS."""
    if mode == "selected" and not task_ids:
        _fail(ValueError("Give at least one task id to schedule"))
    config = load_config()
    target = _target_date(on_date, config)
    try:
        result = run_schedule(config, mode, target, list(task_ids), escalate=not no_escalate)
    except ValueError as e:
        _fail(e)

    if as_json:
        click.echo(
            json.dumps(
                {
                    "scheduled": [
                        {
                            "id": t.id,
                            "title": t.title,
                            "date": t.scheduled_date.isoformat(),
                            "time": format_hhmm(t.scheduled_time),
                            "placement": result.placements[t.id].value,
                        }
                        for t in result.scheduled
                    ],
                    "unscheduled": [{"id": t.id, "title": t.title} for t in result.unscheduled],
                },
                indent=2,
            )
        )
        return

    if not result.total:
        click.echo("Nothing to schedule.")
        return

    for task in result.scheduled:
        note = PLACEMENT_NOTES[result.placements[task.id]]
        day = "" if task.scheduled_date == target else f"{task.scheduled_date.isoformat()} "
        click.echo(f"  {day}{format_hhmm(task.scheduled_time)} {task.title}{note}")
    for task in result.unscheduled:
        click.echo(f"  -- {task.title} (no room)")
    click.echo(f"\nScheduled {len(result.scheduled)} of {result.total} tasks.")


@main.command()
@click.argument("duration", type=click.IntRange(min=1))
@click.option("--window", "windows", multiple=True, type=click.Choice(AVAILABILITY_WINDOWS), help="Restrict to a window")
@date_option
def slot(duration: int, windows: tuple[str, ...], on_date):
    """Find the earliest free slot of DURATION minutes."""
    config = load_config()
    target = _target_date(on_date, config)
    try:
        found = find_free_slot(config, duration, target, list(windows))
    except ValueError as e:
        _fail(e)

    if found is None:
        click.echo(f"No free {duration}-minute slot on {target.isoformat()}.")
    else:
        click.echo(f"{target.isoformat()} {format_hhmm(found)}")


# ============== Calendar sync ==============


def _diff_json(diff: SyncDiff) -> dict:
    def change(c):
        source = c.candidate or c.existing
        return {
            "external_id": c.external_id,
            "title": c.title,
            "start_time": format_instant(source.start),
            "end_time": format_instant(source.end),
            "changed_fields": list(c.changed_fields),
        }

    return {
        "new": [change(c) for c in diff.new],
        "updated": [change(c) for c in diff.updated],
        "deleted": [change(c) for c in diff.deleted],
    }


def _show_diff(diff: SyncDiff) -> None:
    if diff.is_empty:
        click.echo("Calendar is up to date.")
        return
    for c in diff.new:
        click.echo(f"  + {c.candidate.start.strftime('%Y-%m-%d %H:%M')} {c.title}")
    for c in diff.updated:
        click.echo(f"  ~ {c.candidate.start.strftime('%Y-%m-%d %H:%M')} {c.title} ({', '.join(c.changed_fields)})")
    for c in diff.deleted:
        click.echo(f"  - {c.existing.start.strftime('%Y-%m-%d %H:%M')} {c.title}")
    click.echo(f"\n{len(diff.new)} new, {len(diff.updated)} updated, {len(diff.deleted)} deleted")


@main.group()
def sync():
    """Reconcile imported events with the calendar feed."""
    pass


@sync.command("preview")
@click.argument("feed", required=False)
@click.option("--date", "on_date", type=click.DateTime(formats=["%Y-%m-%d"]), help="Only compare one day")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def sync_preview(feed: str | None, on_date, as_json: bool):
    """Show what a sync would change, without changing anything."""
    try:
        diff = preview_sync(load_config(), feed, on_date.date() if on_date else None)
    except FeedError as e:
        _fail(e)

    if as_json:
        click.echo(json.dumps(_diff_json(diff), indent=2))
    else:
        _show_diff(diff)


@sync.command("apply")
@click.argument("feed", required=False)
@click.option("--date", "on_date", type=click.DateTime(formats=["%Y-%m-%d"]), help="Only sync one day")
@click.option("--only-new", is_flag=True, help="Add new events, leave existing ones alone")
@click.option("--no-delete", is_flag=True, help="Keep events that left the feed")
def sync_apply(feed: str | None, on_date, only_new: bool, no_delete: bool):
    """Apply the feed's changes to stored events."""
    try:
        diff, stats = sync_feed(
            load_config(),
            feed,
            on_date.date() if on_date else None,
            include_new=True,
            include_updates=not only_new,
            include_deletes=not (only_new or no_delete),
        )
    except SyncApplyError as e:
        click.echo("Sync was only partly applied; re-run 'optima sync preview' to see what is left.", err=True)
        _fail(e)
    except FeedError as e:
        _fail(e)

    click.echo(f"Added {stats.added}, updated {stats.updated}, deleted {stats.deleted} events.")


@main.command("import")
@click.argument("feed", required=False)
@click.option("--date", "on_date", type=click.DateTime(formats=["%Y-%m-%d"]), help="Only import one day")
def import_cmd(feed: str | None, on_date):
    """Import events from a calendar feed, skipping ones already imported."""
    try:
        result = import_feed(load_config(), feed, on_date.date() if on_date else None)
    except FeedError as e:
        _fail(e)

    click.echo(f"Imported {result.imported} events.")
    if result.skipped:
        click.echo(f"Skipped {result.skipped} already imported.")


@main.command("clear-synced")
@click.confirmation_option(prompt="Remove all imported calendar events?")
def clear_synced_cmd():
    """Remove every event imported from a feed."""
    removed = clear_synced(load_config())
    click.echo(f"Removed {removed} synced events.")


# ============== Backup ==============


@main.command("export")
@click.argument("path", type=click.Path(dir_okay=False))
def export_cmd(path: str):
    """Write a JSON backup of all data to PATH."""
    written = export_data(load_config(), path)
    click.echo(f"Backup written to {written}")


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def restore(path: str):
    """Add the records from a JSON backup at PATH."""
    try:
        result = restore_data(load_config(), path)
    except BackupError as e:
        _fail(e)

    click.echo(f"Restored {result.tasks} tasks, {result.events} events and {result.energy} energy entries.")
    if result.skipped:
        click.echo(f"Skipped {result.skipped} records that already exist.")


if __name__ == "__main__":
    main()
