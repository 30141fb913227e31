"""Lane assignment for overlapping events on a single day.

The packing is a greedy walk, not an optimal interval colouring: within a
contiguous run of overlapping events the lane index only ever increases.
Rendered layouts depend on this exact behaviour.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

import pytz

from ..models.event import Event
from ..utils.date_utils import day_bounds, ensure_utc, local_date

logger = logging.getLogger(__name__)

TzArg = Union[str, pytz.BaseTzInfo, None]


@dataclass(frozen=True)
class LaneAssignment:
    """Lane index of one event on one day."""

    event_id: str
    event_key: str
    lane: int


@dataclass(frozen=True)
class OverlapAssignment:
    """Lane placement of one event on one day, with the day's lane total."""

    event_key: str
    lane: int
    total_lanes: int
    start: datetime
    end: datetime


def clip_to_day(
    start: datetime, end: datetime, day: date, tz: TzArg = None
) -> Optional[tuple[datetime, datetime]]:
    """
    Clip an interval to one calendar day.

    Returns:
        The clipped (start, end), or None when the interval misses the day
    """
    day_start, day_end = day_bounds(day, tz)
    start, end = ensure_utc(start), ensure_utc(end)
    if not (start < day_end and end > day_start):
        return None
    return max(start, day_start), min(end, day_end)


def bucket_by_day(
    events: Iterable[Event],
    range_start: datetime,
    range_end: datetime,
    tz: TzArg = None,
) -> dict[date, list[Event]]:
    """
    Group events by each day they touch within [range_start, range_end).

    Multi-day events appear under every day they intersect.
    """
    buckets: dict[date, list[Event]] = {}
    range_start, range_end = ensure_utc(range_start), ensure_utc(range_end)
    for event in events:
        start = max(event.start_at, range_start)
        end = min(event.end_at, range_end)
        if start >= end:
            continue
        day = local_date(start, tz)
        last_day = local_date(end - timedelta(microseconds=1), tz)
        while day <= last_day:
            buckets.setdefault(day, []).append(event)
            day += timedelta(days=1)
    return dict(sorted(buckets.items()))


def _clipped(events: Iterable[Event], day: date, tz: TzArg) -> list[tuple[Event, datetime, datetime]]:
    clipped = []
    for event in events:
        window = clip_to_day(event.start_at, event.end_at, day, tz)
        if window is not None:
            clipped.append((event, window[0], window[1]))
    return clipped


def _packing_order(item: tuple[Event, datetime, datetime]):
    event, start, end = item
    # Earlier first; on equal starts the longer event claims the lower lane.
    return (start, -(end - start), event.key)


def assign_lanes(
    events: Iterable[Event], day: date, tz: TzArg = None
) -> list[LaneAssignment]:
    """
    Assign a lane to each event intersecting ``day``.

    Events are sorted by start, ties broken by descending duration. Walking
    that order, an event starting before the latest end seen so far takes
    the next lane; otherwise the lane counter resets to 0.

    Returns:
        Assignments in packing order
    """
    assignments = []
    lane = 0
    last_end: Optional[datetime] = None
    for event, start, end in sorted(_clipped(events, day, tz), key=_packing_order):
        if last_end is not None and start < last_end:
            lane += 1
        else:
            lane = 0
        assignments.append(LaneAssignment(event.id, event.key, lane))
        last_end = end if last_end is None else max(last_end, end)
    return assignments


def lane_count(assignments: Iterable[LaneAssignment]) -> int:
    """Lanes in use on a day: highest lane index plus one."""
    return max((a.lane + 1 for a in assignments), default=0)


def layout_day(
    events: Iterable[Event], day: date, tz: TzArg = None
) -> list[OverlapAssignment]:
    """Lane, lane total and clipped interval for every event on ``day``."""
    events = list(events)
    clipped = {event.key: (start, end) for event, start, end in _clipped(events, day, tz)}
    assignments = assign_lanes(events, day, tz)
    total = lane_count(assignments)
    return [
        OverlapAssignment(
            event_key=a.event_key,
            lane=a.lane,
            total_lanes=total,
            start=clipped[a.event_key][0],
            end=clipped[a.event_key][1],
        )
        for a in assignments
    ]


class OverlapPacker:
    """
    Caches day layouts against a store revision.

    A cached day is reused only while both the revision and the intervals it
    was built from are unchanged. A new revision drops every cached day.
    """

    def __init__(self, tz: TzArg = None):
        self.tz = tz
        self.revision: Optional[int] = None
        self._cache: dict[date, tuple[tuple, list[OverlapAssignment]]] = {}

    def layout(
        self, events: Iterable[Event], day: date, revision: int = 0
    ) -> list[OverlapAssignment]:
        """
        Layout for ``day``, recomputed when ``revision`` or the events change.

        Args:
            events: Events to place (anything not touching ``day`` is ignored)
            day: Calendar day
            revision: Revision of the event source the layout was built from
        """
        if revision != self.revision:
            self._cache.clear()
            self.revision = revision
        events = list(events)
        source = tuple(sorted((e.key, e.start_at, e.end_at) for e in events))
        cached = self._cache.get(day)
        if cached is not None and cached[0] == source:
            return cached[1]
        result = layout_day(events, day, self.tz)
        self._cache[day] = (source, result)
        logger.debug(f"Laid out {len(result)} events on {day} at revision {revision}")
        return result

    def invalidate(self, day: Optional[date] = None) -> None:
        if day is None:
            self._cache.clear()
        else:
            self._cache.pop(day, None)
