"""Plain-text calendar interchange (iCalendar) for bulk export and import."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional

import pytz
from icalendar import Calendar as iCalendar
from icalendar import Event as iEvent
from icalendar import vDDDTypes, vRecur
from pydantic import ValidationError

from ..models.event import Event, EventDraft, EventStatus, event_key
from ..utils.date_utils import ensure_utc, get_timezone
from ..utils.exceptions import InterchangeError

logger = logging.getLogger(__name__)

DEFAULT_PRODID = "-//Calendar Scheduler//Calendar//EN"
ALL_DAY_MARKER = "X-MICROSOFT-CDO-ALLDAYEVENT"
LOCAL_STAMP = "%Y%m%dT%H%M%S"


def _local_date(instant: datetime, tz: str) -> date:
    return ensure_utc(instant).astimezone(get_timezone(tz)).date()


def _wall_time(instant: datetime, tz: Optional[str]) -> datetime:
    """UTC for UTC events, otherwise the event's own zone (written with TZID)."""
    zone = get_timezone(tz)
    if zone == pytz.utc:
        return ensure_utc(instant)
    return ensure_utc(instant).astimezone(zone)


def _instance_stamp(instant: datetime, event: Event) -> Any:
    """RECURRENCE-ID / EXDATE value for one instance of ``event``'s series."""
    if event.all_day:
        return _local_date(instant, event.timezone)
    return _wall_time(instant, event.timezone)


def _add_rule_lines(component: iEvent, rule: str) -> None:
    """Copy RRULE/EXDATE lines of a stored rule onto a VEVENT."""
    for line in rule.strip().splitlines():
        line = line.strip()
        if not line:
            continue
        name, _, value = line.rpartition(":")
        name = name.split(";")[0].upper()
        if name == "EXDATE":
            component.add("exdate", [vDDDTypes.from_ical(v) for v in value.split(",")])
        elif name in ("", "RRULE"):
            component.add("rrule", vRecur.from_ical(value))


def _to_component(
    event: Event,
    stamp: datetime,
    uid: Optional[str] = None,
    recurrence_id: Optional[Any] = None,
    exdates: Iterable[Any] = (),
) -> iEvent:
    component = iEvent()
    component.add("uid", uid or event.id)
    component.add("dtstamp", stamp)
    if event.all_day:
        component.add("dtstart", _local_date(event.start_at, event.timezone))
        component.add("dtend", _local_date(event.end_at, event.timezone))
        component.add(ALL_DAY_MARKER, "TRUE")
    else:
        component.add("dtstart", _wall_time(event.start_at, event.timezone))
        component.add("dtend", _wall_time(event.end_at, event.timezone))
    if recurrence_id is not None:
        component.add("recurrence-id", recurrence_id)
    component.add("summary", event.title)
    if event.description:
        component.add("description", event.description)
    if event.location:
        component.add("location", event.location)
    if event.recurrence_rule:
        _add_rule_lines(component, event.recurrence_rule)
    exdates = list(exdates)
    if exdates:
        component.add("exdate", exdates)
    if event.status == EventStatus.CANCELED:
        component.add("status", "CANCELLED")
    return component


def _is_anchor_before(candidate: Event, held: Event) -> bool:
    """A series root beats its occurrences; otherwise the earliest start wins."""
    if candidate.is_occurrence != held.is_occurrence:
        return not candidate.is_occurrence
    return candidate.start_at < held.start_at


def export_ics(
    events: Iterable[Event],
    prodid: str = DEFAULT_PRODID,
    now: Optional[datetime] = None,
) -> str:
    """
    Serialize events as a VCALENDAR document.

    Occurrences of one series are exported once, as the series, anchored at
    the series root when it is among ``events`` and at the earliest
    occurrence otherwise. Exception children of an exported series are
    written as RECURRENCE-ID instances under the series UID; cancelled
    ones become EXDATEs of the series.

    Args:
        events: Events to export
        prodid: Product identifier line
        now: Creation stamp for every block (defaults to the current time)

    Returns:
        Document text with CRLF line endings, folded at 75 octets
    """
    stamp = ensure_utc(now or datetime.now(pytz.utc))
    cal = iCalendar()
    cal.add("prodid", prodid)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")

    anchors: dict[str, Event] = {}
    children: list[Event] = []
    for event in events:
        if event.parent_event_id:
            children.append(event)
            continue
        held = anchors.get(event.id)
        if held is None or _is_anchor_before(event, held):
            anchors[event.id] = event

    exdates: dict[str, list[Any]] = {}
    instances: list[iEvent] = []
    for child in children:
        series = anchors.get(child.parent_event_id)
        if series is None or not series.is_recurring:
            if child.status != EventStatus.CANCELED:
                anchors.setdefault(child.key, child)
            continue
        original = _instance_stamp(child.occurrence_start_at or child.start_at, series)
        if child.status == EventStatus.CANCELED:
            exdates.setdefault(series.id, []).append(original)
        else:
            instances.append(_to_component(child, stamp, series.id, original))

    for event in anchors.values():
        if event.is_occurrence and event.parent_event_id is None:
            logger.debug(f"Series {event.id} exported from its earliest held occurrence")
        cal.add_component(_to_component(event, stamp, exdates=exdates.get(event.id, ())))
    for instance in instances:
        cal.add_component(instance)

    logger.info(f"Exported {len(anchors)} events, {len(instances)} modified instances")
    return cal.to_ical().decode("utf-8")


@dataclass
class ImportResult:
    """
    Outcome of parsing an interchange document.

    Modified instances (blocks with RECURRENCE-ID) are flattened: the
    instance becomes a one-off draft and its slot is excluded from the
    series, so the pair does not duplicate. Their uid is reported as
    ``<series uid>|<original start>``.
    """

    drafts: list[EventDraft] = field(default_factory=list)
    uids: list[Optional[str]] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def _instant(value: Any, tzid: Optional[str]) -> tuple[datetime, bool]:
    """Decoded DTSTART/DTEND value as (UTC instant, is_date_only)."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = get_timezone(tzid).localize(value)
        return ensure_utc(value), False
    if isinstance(value, date):
        midnight = get_timezone(tzid).localize(datetime(value.year, value.month, value.day))
        return ensure_utc(midnight), True
    raise ValueError(f"unsupported date value {value!r}")


def _local_stamp(value: Any, tz: str) -> str:
    """An instance value as naive wall time in the series zone."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = ensure_utc(value).astimezone(get_timezone(tz)).replace(tzinfo=None)
        return value.strftime(LOCAL_STAMP)
    return datetime(value.year, value.month, value.day).strftime(LOCAL_STAMP)


def _as_list(value: Any) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _rule_text(component: iEvent, tz: str, extra_exdates: Iterable[datetime] = ()) -> Optional[str]:
    lines = []
    for rrule in _as_list(component.get("rrule")):
        lines.append("RRULE:" + rrule.to_ical().decode("utf-8"))
    if not lines:
        return None
    excluded = [
        _local_stamp(item.dt, tz)
        for exdate in _as_list(component.get("exdate"))
        for item in exdate.dts
    ]
    excluded.extend(_local_stamp(instant, tz) for instant in extra_exdates)
    if excluded:
        lines.append("EXDATE:" + ",".join(sorted(set(excluded))))
    return "\n".join(lines)


def _recurrence_instant(component: iEvent) -> Optional[datetime]:
    if "recurrence-id" not in component:
        return None
    tzid = component["recurrence-id"].params.get("TZID")
    instant, _ = _instant(component.decoded("recurrence-id"), tzid)
    return instant


def parse_ics(text: str, calendar_id: str) -> ImportResult:
    """
    Parse VEVENT blocks into event drafts.

    Unknown properties and components are ignored. Blocks without SUMMARY
    or DTSTART, or with unreadable stamps, are skipped.

    Args:
        text: Document text
        calendar_id: Calendar the drafts are created in

    Returns:
        ImportResult with drafts and skipped block descriptions

    Raises:
        InterchangeError: If the document cannot be read or holds no VEVENT
    """
    try:
        cal = iCalendar.from_ical(text)
    except ValueError as e:
        raise InterchangeError(f"Unreadable calendar document: {e}") from e

    components = cal.walk("VEVENT")
    if not components:
        raise InterchangeError("No VEVENT blocks found")

    overridden: dict[str, list[datetime]] = {}
    for component in components:
        try:
            instant = _recurrence_instant(component)
        except (ValueError, KeyError):
            continue
        if instant is not None and "uid" in component:
            overridden.setdefault(str(component["uid"]), []).append(instant)

    result = ImportResult()
    for component in components:
        _read_component(component, calendar_id, result, overridden)

    logger.info(f"Parsed {len(result.drafts)} events, skipped {len(result.skipped)}")
    return result


def _read_component(
    component: iEvent,
    calendar_id: str,
    result: ImportResult,
    overridden: dict[str, list[datetime]],
) -> None:
    uid = str(component["uid"]) if "uid" in component else None
    summary = str(component.get("summary", "")).strip()
    label = uid or summary or "<unnamed>"
    if not summary or "dtstart" not in component:
        result.skipped.append(f"{label}: missing SUMMARY or DTSTART")
        return

    tzid = component["dtstart"].params.get("TZID")
    try:
        recurrence_id = _recurrence_instant(component)
        if recurrence_id is not None and str(component.get("status", "")).upper() == "CANCELLED":
            return
        start, date_only = _instant(component.decoded("dtstart"), tzid)
        if "dtend" in component:
            end, _ = _instant(component.decoded("dtend"), tzid)
        else:
            end = start + (timedelta(days=1) if date_only else timedelta(hours=1))
        marker = str(component.get(ALL_DAY_MARKER, "")).upper() == "TRUE"
        timezone = tzid if tzid and get_timezone(tzid).zone == tzid else "UTC"
        rule = None
        if recurrence_id is None:
            rule = _rule_text(component, timezone, overridden.get(uid, ()))
        draft = EventDraft(
            calendar_id=calendar_id,
            title=summary,
            description=str(component["description"]) if "description" in component else None,
            location=str(component["location"]) if "location" in component else None,
            start_at=start,
            end_at=end,
            all_day=date_only or marker,
            timezone=timezone,
            recurrence_rule=rule,
        )
    except (ValueError, KeyError, ValidationError) as e:
        result.skipped.append(f"{label}: {e}")
        return
    result.drafts.append(draft)
    result.uids.append(event_key(uid, recurrence_id) if uid and recurrence_id else uid)
