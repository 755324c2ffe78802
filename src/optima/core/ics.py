"""iCalendar feed parsing - pure, no I/O.

Parsing runs in two stages. A line-level state machine first turns the
document into a tree of Components (one per BEGIN/END block). Only then are
VTIMEZONE blocks collected and VEVENT blocks interpreted, so an event may
reference a timezone defined anywhere in the document.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Iterator
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .calendar import CalendarEvent
from .recurrence import RecurrenceRule, expand_occurrences, parse_rrule

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "ics"
DEFAULT_STANDARD_MONTH = 10
DEFAULT_DAYLIGHT_MONTH = 3

_PROPERTY_START = re.compile(r"^[A-Za-z][A-Za-z0-9-]*[;:]")
_DURATION = re.compile(
    r"^([+-])?P(?:(\d+)W)?(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?$"
)
_ESCAPES = {"n": "\n", "N": "\n", ",": ",", ";": ";", "\\": "\\"}


# ============== Stage 1: lines and components ==============


@dataclass
class ContentLine:
    """One logical property line: ``NAME;PARAM=VALUE:value``."""

    name: str
    params: dict[str, str]
    value: str


@dataclass
class Component:
    """A BEGIN/END block with its own properties and nested blocks."""

    name: str
    properties: list[ContentLine] = field(default_factory=list)
    children: list["Component"] = field(default_factory=list)
    closed: bool = False

    def get(self, name: str) -> ContentLine | None:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def get_all(self, name: str) -> list[ContentLine]:
        return [p for p in self.properties if p.name == name]

    def value(self, name: str) -> str | None:
        prop = self.get(name)
        return prop.value if prop else None

    def walk(self, name: str | None = None) -> Iterator["Component"]:
        """Depth-first iteration over this component and its descendants."""
        if name is None or self.name == name:
            yield self
        for child in self.children:
            yield from child.walk(name)


def unfold_lines(text: str) -> list[str]:
    """
    Split a document into logical lines.

    Handles CRLF and LF endings and RFC 5545 folding, where a line starting
    with a space or tab continues the previous one. Indented lines that look
    like a property of their own are kept separate, so hand-indented feeds
    still parse.
    """
    lines: list[str] = []
    for raw in re.split(r"\r\n|\n|\r", text):
        if not raw.strip():
            continue
        if raw[0] in (" ", "\t") and lines and not _PROPERTY_START.match(raw.strip()):
            lines[-1] += raw[1:]
        else:
            lines.append(raw.strip())
    return lines


def _split_unquoted(text: str, sep: str) -> list[str]:
    parts, current, quoted = [], [], False
    for ch in text:
        if ch == '"':
            quoted = not quoted
        if ch == sep and not quoted:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return parts


def parse_content_line(line: str) -> ContentLine | None:
    """Parse a logical line. Returns None if it has no ``:`` separator."""
    quoted = False
    for i, ch in enumerate(line):
        if ch == '"':
            quoted = not quoted
        elif ch == ":" and not quoted:
            head, value = line[:i], line[i + 1 :]
            break
    else:
        return None

    name, *raw_params = _split_unquoted(head, ";")
    params = {}
    for raw in raw_params:
        key, _, val = raw.partition("=")
        params[key.strip().upper()] = val.strip().strip('"')
    return ContentLine(name=name.strip().upper(), params=params, value=value)


def parse_components(text: str) -> list[Component]:
    """
    Build the component tree for a document.

    END lines that match no open block are ignored. Blocks still open at the
    end of input are attached to their parent with ``closed=False``.
    """
    roots: list[Component] = []
    stack: list[Component] = []

    def attach(component: Component) -> None:
        if stack:
            stack[-1].children.append(component)
        else:
            roots.append(component)

    for line in unfold_lines(text):
        prop = parse_content_line(line)
        if prop is None:
            logger.debug(f"Skipping malformed line: {line[:60]!r}")
            continue

        if prop.name == "BEGIN":
            stack.append(Component(name=prop.value.strip().upper()))
        elif prop.name == "END":
            name = prop.value.strip().upper()
            if not any(c.name == name for c in stack):
                logger.debug(f"Ignoring unmatched END:{name}")
                continue
            while stack:
                component = stack.pop()
                component.closed = component.name == name
                attach(component)
                if component.closed:
                    break
        elif stack:
            stack[-1].properties.append(prop)

    while stack:
        attach(stack.pop())

    return roots


# ============== Stage 2: timezones ==============


@dataclass
class VTimezone:
    """
    UTC offsets for a timezone defined inside the feed.

    Daylight time is decided by month only: it applies from
    ``daylight_month`` up to (not including) ``standard_month``, wrapping
    around the year end for southern-hemisphere zones. Events within a few
    days of a real transition can get the wrong offset.
    """

    tzid: str
    standard_offset: int = 0
    daylight_offset: int | None = None
    standard_month: int = DEFAULT_STANDARD_MONTH
    daylight_month: int = DEFAULT_DAYLIGHT_MONTH

    def is_daylight(self, month: int) -> bool:
        if self.daylight_month < self.standard_month:
            return self.daylight_month <= month < self.standard_month
        return month >= self.daylight_month or month < self.standard_month

    def utc_offset(self, month: int) -> timedelta:
        """Offset east of UTC for a local time in ``month``."""
        daylight = self.standard_offset if self.daylight_offset is None else self.daylight_offset
        minutes = daylight if self.is_daylight(month) else self.standard_offset
        return timedelta(minutes=minutes)


def parse_utc_offset(value: str) -> int:
    """Parse ``+0100`` / ``-0530`` into minutes east of UTC."""
    value = value.strip()
    sign = -1 if value.startswith("-") else 1
    digits = value.lstrip("+-")
    try:
        hours = int(digits[0:2] or 0)
        minutes = int(digits[2:4] or 0)
    except ValueError:
        logger.debug(f"Bad UTC offset {value!r}")
        return 0
    return sign * (hours * 60 + minutes)


def _transition_month(observance: Component) -> int | None:
    month = None
    dtstart = observance.value("DTSTART")
    if dtstart and len(dtstart) >= 6 and dtstart[4:6].isdigit():
        month = int(dtstart[4:6])
    rrule = observance.value("RRULE")
    if rrule:
        match = re.search(r"BYMONTH=(\d+)", rrule)
        if match:
            month = int(match.group(1))
    return month


def build_timezone_table(components: list[Component]) -> dict[str, VTimezone]:
    """Collect every complete VTIMEZONE in the document, keyed by TZID."""
    table: dict[str, VTimezone] = {}
    for root in components:
        for block in root.walk("VTIMEZONE"):
            tzid = block.value("TZID")
            if not block.closed or not tzid:
                continue
            tz = VTimezone(tzid=tzid.strip())
            for observance in block.children:
                offset_to = observance.value("TZOFFSETTO")
                month = _transition_month(observance)
                if observance.name == "STANDARD":
                    if offset_to:
                        tz.standard_offset = parse_utc_offset(offset_to)
                    if month:
                        tz.standard_month = month
                elif observance.name == "DAYLIGHT":
                    if offset_to:
                        tz.daylight_offset = parse_utc_offset(offset_to)
                    if month:
                        tz.daylight_month = month
            table[tz.tzid] = tz
    return table


def resolve_instant(
    prop: ContentLine,
    timezones: dict[str, VTimezone] | None = None,
    local_tz: tzinfo = timezone.utc,
) -> tuple[datetime, bool] | None:
    """
    Turn a DTSTART/DTEND style property into a UTC instant.

    Returns (instant, is_all_day), or None if the value is unparseable.
    Resolution order for times with a TZID: the feed's own VTIMEZONE, then
    the system timezone database, then ``local_tz``.
    """
    value = prop.value.strip()
    if len(value) < 8 or not value[:8].isdigit():
        return None

    try:
        year, month, day = int(value[0:4]), int(value[4:6]), int(value[6:8])
        if prop.params.get("VALUE", "").upper() == "DATE" or "T" not in value:
            return datetime(year, month, day, tzinfo=timezone.utc), True

        clock = value.split("T", 1)[1].rstrip("Z")
        naive = datetime(year, month, day, int(clock[0:2] or 0), int(clock[2:4] or 0), int(clock[4:6] or 0))
    except ValueError:
        return None

    if value.endswith("Z"):
        return naive.replace(tzinfo=timezone.utc), False

    tzid = prop.params.get("TZID")
    if tzid:
        feed_tz = (timezones or {}).get(tzid)
        if feed_tz is not None:
            return (naive - feed_tz.utc_offset(month)).replace(tzinfo=timezone.utc), False
        try:
            return naive.replace(tzinfo=ZoneInfo(tzid)).astimezone(timezone.utc), False
        except (ZoneInfoNotFoundError, ValueError):
            logger.debug(f"Unknown timezone {tzid!r}, treating as local time")

    return naive.replace(tzinfo=local_tz).astimezone(timezone.utc), False


def parse_duration(value: str) -> timedelta | None:
    """Parse an iCalendar DURATION such as ``PT1H30M`` or ``P1D``."""
    match = _DURATION.match(value.strip())
    if not match or not any(match.groups()[1:]):
        return None
    sign, weeks, days, hours, minutes, seconds = match.groups()
    delta = timedelta(
        weeks=int(weeks or 0),
        days=int(days or 0),
        hours=int(hours or 0),
        minutes=int(minutes or 0),
        seconds=int(seconds or 0),
    )
    return -delta if sign == "-" else delta


def unescape_text(value: str) -> str:
    """Undo iCalendar TEXT escaping (``\\,`` ``\\;`` ``\\n`` ``\\\\``)."""
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), value)


# ============== Stage 3: events ==============


@dataclass
class FeedEvent:
    """A candidate event parsed from an external feed."""

    title: str
    start: datetime
    end: datetime
    location: str | None = None
    external_id: str | None = None
    calendar_source: str | None = None
    calendar_name: str | None = None
    energy_level: str = "medium"
    all_day: bool = False

    def local_date(self, tz: tzinfo = timezone.utc) -> date:
        return self.start.astimezone(tz).date()

    def to_event(self, event_id: str) -> CalendarEvent:
        """Materialize as a stored external CalendarEvent."""
        return CalendarEvent(
            id=event_id,
            title=self.title,
            start=self.start,
            end=self.end,
            is_external=True,
            external_id=self.external_id,
            calendar_source=self.calendar_source,
            location=self.location,
            energy_level=self.energy_level,
        )


def _skip_reason(event: Component) -> str | None:
    if (event.value("STATUS") or "").strip().upper() == "CANCELLED":
        return "cancelled"
    if (event.value("METHOD") or "").strip().upper() == "CANCEL":
        return "cancel method"
    if (event.value("X-MICROSOFT-CDO-INSTTYPE") or "").strip() == "3":
        return "cancelled instance"
    for attendee in event.get_all("ATTENDEE"):
        if attendee.params.get("PARTSTAT", "").upper() == "DECLINED":
            return "declined"
    if (event.value("TRANSP") or "").strip().upper() == "TRANSPARENT":
        return "transparent"
    return None


def _exdates(event: Component, timezones: dict[str, VTimezone], local_tz: tzinfo) -> set[date]:
    dates = set()
    for prop in event.get_all("EXDATE"):
        for raw in prop.value.split(","):
            resolved = resolve_instant(ContentLine(prop.name, prop.params, raw), timezones, local_tz)
            if resolved:
                dates.add(resolved[0].date())
    return dates


def _interpret_event(
    event: Component,
    timezones: dict[str, VTimezone],
    local_tz: tzinfo,
    calendar_name: str | None,
    source: str,
    now: datetime | None,
    overridden: dict[str, set[date]],
) -> list[FeedEvent]:
    uid = (event.value("UID") or "").strip() or None

    if not event.closed:
        logger.debug(f"Skipping unterminated event {uid}")
        return []
    reason = _skip_reason(event)
    if reason:
        logger.debug(f"Skipping {reason} event {uid}")
        return []

    title = unescape_text(event.value("SUMMARY") or "")
    dtstart = event.get("DTSTART")
    start = resolve_instant(dtstart, timezones, local_tz) if dtstart else None
    if not title or start is None:
        logger.debug(f"Skipping event {uid}: missing title or start")
        return []
    start_dt, all_day = start

    dtend = event.get("DTEND")
    end = resolve_instant(dtend, timezones, local_tz) if dtend else None
    if end is not None:
        end_dt = end[0]
    elif event.value("DURATION") and parse_duration(event.value("DURATION")) is not None:
        end_dt = start_dt + parse_duration(event.value("DURATION"))
    elif all_day:
        end_dt = start_dt + timedelta(days=1)
    else:
        logger.debug(f"Skipping event {uid}: missing end")
        return []
    if end_dt <= start_dt:
        logger.debug(f"Skipping event {uid}: end is not after start")
        return []

    location = unescape_text(event.value("LOCATION") or "").strip() or None
    base = FeedEvent(
        title=title,
        start=start_dt,
        end=end_dt,
        location=location,
        external_id=uid,
        calendar_source=source if uid else None,
        calendar_name=calendar_name,
        all_day=all_day,
    )

    recurrence_id = event.get("RECURRENCE-ID")
    if recurrence_id is not None and uid:
        resolved = resolve_instant(recurrence_id, timezones, local_tz)
        if resolved:
            base.external_id = f"{uid}_{resolved[0].date().isoformat()}"
        return [base]

    rule: RecurrenceRule | None = None
    rrule = event.value("RRULE")
    if rrule:
        rule = parse_rrule(rrule, local_tz)
    if rule is None:
        return [base]

    skip = _exdates(event, timezones, local_tz) | overridden.get(uid or "", set())
    return [
        FeedEvent(
            title=base.title,
            start=occ.start,
            end=occ.end,
            location=base.location,
            external_id=occ.external_id,
            calendar_source=base.calendar_source,
            calendar_name=base.calendar_name,
            all_day=base.all_day,
        )
        for occ in expand_occurrences(start_dt, end_dt, rule, skip, uid, now)
    ]


def _overridden_instances(
    components: list[Component], timezones: dict[str, VTimezone], local_tz: tzinfo
) -> dict[str, set[date]]:
    """Dates of recurring instances replaced by a RECURRENCE-ID block, per UID."""
    overridden: dict[str, set[date]] = {}
    for root in components:
        for event in root.walk("VEVENT"):
            uid = (event.value("UID") or "").strip()
            recurrence_id = event.get("RECURRENCE-ID")
            if not uid or recurrence_id is None:
                continue
            resolved = resolve_instant(recurrence_id, timezones, local_tz)
            if resolved:
                overridden.setdefault(uid, set()).add(resolved[0].date())
    return overridden


def parse_feed(
    text: str,
    *,
    now: datetime | None = None,
    local_tz: tzinfo | None = None,
    source: str = DEFAULT_SOURCE,
) -> list[FeedEvent]:
    """
    Parse an iCalendar document into concrete event instances.

    Pure function - no I/O. Never raises on malformed content: bad records
    are logged at DEBUG and dropped.

    Args:
        text: The feed contents.
        now: Reference time for recurrence bounds (defaults to now, UTC).
        local_tz: Timezone for floating times and unknown TZIDs (UTC if None).
        source: Source tag stored on events that carry a UID.

    Returns:
        FeedEvents with UTC start/end, recurring events expanded.
    """
    local_tz = local_tz or timezone.utc
    components = parse_components(text)
    timezones = build_timezone_table(components)
    overridden = _overridden_instances(components, timezones, local_tz)

    events: list[FeedEvent] = []
    seen_blocks = 0
    for root in components:
        calendar_name = root.value("X-WR-CALNAME")
        calendar_name = calendar_name.strip() if calendar_name else None
        for block in root.walk("VEVENT"):
            seen_blocks += 1
            events.extend(
                _interpret_event(block, timezones, local_tz, calendar_name, source, now, overridden)
            )

    if seen_blocks and not events:
        logger.warning(f"Feed contained {seen_blocks} events but none could be used")
    return events


def filter_by_date(events: list[FeedEvent], target_date: date, tz: tzinfo = timezone.utc) -> list[FeedEvent]:
    """Feed events starting on a local date."""
    return [e for e in events if e.local_date(tz) == target_date]


def calendar_names(events: list[FeedEvent]) -> list[str]:
    """Distinct calendar names in the feed, sorted."""
    return sorted({e.calendar_name for e in events if e.calendar_name})
