"""Recurrence rule validation and occurrence expansion.

Rule strings are opaque to the rest of the scheduler. They are parsed here
with dateutil only to reject malformed input before a write, and to expand
a series into occurrences for a visible range.
"""

import logging
from collections.abc import Iterable, Iterator
from datetime import datetime
from typing import Optional, Union

from dateutil.rrule import rrule, rruleset, rrulestr

from ..models.event import Event
from ..utils.date_utils import ensure_utc, get_timezone
from ..utils.exceptions import RecurrenceRuleError

logger = logging.getLogger(__name__)

# Upper bound on occurrences produced for one series in one range
MAX_OCCURRENCES = 1000

_PROPERTY_PREFIXES = ("RRULE:", "EXDATE", "RDATE", "EXRULE:", "DTSTART")


def normalize_rule(rule: str) -> str:
    """Put every line of a rule in ``NAME:value`` form (bare FREQ=... becomes RRULE:)."""
    lines = []
    for line in rule.strip().splitlines():
        line = line.strip()
        if not line:
            continue
        if not line.upper().startswith(_PROPERTY_PREFIXES):
            line = f"RRULE:{line}"
        lines.append(line)
    return "\n".join(lines)


def parse_rule(rule: Optional[str], dtstart: datetime) -> Union[rrule, rruleset]:
    """
    Parse a recurrence rule anchored at ``dtstart``.

    Args:
        rule: RRULE text, with or without the ``RRULE:`` prefix, optionally
            followed by EXDATE lines
        dtstart: Naive local start of the series

    Returns:
        dateutil rule set

    Raises:
        RecurrenceRuleError: If the rule is empty or malformed
    """
    if not rule or not rule.strip():
        raise RecurrenceRuleError("Recurrence rule is empty")
    text = normalize_rule(rule)
    try:
        return rrulestr(text, dtstart=dtstart, forceset=True, ignoretz=True)
    except (ValueError, TypeError, KeyError, IndexError) as e:
        raise RecurrenceRuleError(f"Invalid recurrence rule {rule!r}: {e}") from e


def validate_recurrence_rule(
    rule: Optional[str], dtstart: Optional[datetime] = None, tz: Optional[str] = None
) -> Optional[str]:
    """
    Reject a malformed rule before it is sent anywhere.

    Returns:
        The normalized rule, or None when no rule was given

    Raises:
        RecurrenceRuleError: If the rule cannot be parsed or yields no occurrence
    """
    if rule is None:
        return None
    anchor = _local_naive(dtstart or datetime.now(), tz)
    parsed = parse_rule(rule, anchor)
    if parsed.after(anchor, inc=True) is None:
        raise RecurrenceRuleError(f"Recurrence rule {rule!r} produces no occurrences")
    return normalize_rule(rule)


def _local_naive(instant: datetime, tz: Optional[str]) -> datetime:
    if instant.tzinfo is None:
        return instant
    return ensure_utc(instant).astimezone(get_timezone(tz)).replace(tzinfo=None)


def _occurrence_starts(event: Event, exceptions: Iterable[Event]) -> set[datetime]:
    replaced = set()
    for child in exceptions:
        if child.parent_event_id == event.id:
            replaced.add(child.occurrence_start_at or child.start_at)
    return replaced


def expand_occurrences(
    event: Event,
    range_start: datetime,
    range_end: datetime,
    exceptions: Iterable[Event] = (),
) -> Iterator[Event]:
    """
    Expand a series into the occurrences overlapping [range_start, range_end).

    Occurrences are computed in the series' own timezone so they keep their
    wall-clock time across DST changes. Each yielded copy carries
    ``occurrence_start_at`` and the series duration. Occurrences after
    ``recurrence_end_at`` and those replaced by an exception child are
    skipped. Non-recurring events are yielded unchanged when they overlap.

    Raises:
        RecurrenceRuleError: If the series rule is malformed
    """
    range_start, range_end = ensure_utc(range_start), ensure_utc(range_end)
    if not event.is_recurring:
        if event.start_at < range_end and event.end_at > range_start:
            yield event
        return

    zone = get_timezone(event.timezone)
    duration = event.duration
    rules = parse_rule(event.recurrence_rule, _local_naive(event.start_at, event.timezone))
    window_start = _local_naive(range_start - duration, event.timezone)
    window_end = _local_naive(range_end, event.timezone)
    replaced = _occurrence_starts(event, exceptions)

    count = 0
    for local_start in rules.between(window_start, window_end, inc=True):
        start = ensure_utc(zone.localize(local_start))
        end = start + duration
        if not (start < range_end and end > range_start):
            continue
        if event.recurrence_end_at is not None and start > event.recurrence_end_at:
            break
        if start in replaced:
            continue
        yield event.model_copy(
            update={"start_at": start, "end_at": end, "occurrence_start_at": start}
        )
        count += 1
        if count >= MAX_OCCURRENCES:
            logger.warning(
                f"Series {event.id} truncated at {MAX_OCCURRENCES} occurrences"
            )
            break


def expand_all(
    events: Iterable[Event], range_start: datetime, range_end: datetime
) -> list[Event]:
    """Expand every series in a range listing, honouring its exception children."""
    events = list(events)
    exceptions = [e for e in events if e.parent_event_id]
    expanded: list[Event] = []
    for event in events:
        if event.is_recurring and not event.is_occurrence and not event.parent_event_id:
            expanded.extend(expand_occurrences(event, range_start, range_end, exceptions))
        else:
            expanded.append(event)
    return expanded
