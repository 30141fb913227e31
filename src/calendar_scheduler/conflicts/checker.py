"""Advisory overlap check of a proposed interval against busy intervals.

The checker only reports. Whether a write goes ahead after a conflict is
the caller's decision.
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Optional, Union

from ..models.event import BusyInterval, Event, EventStatus
from ..utils.date_utils import ensure_utc

logger = logging.getLogger(__name__)

IntervalLike = Union[BusyInterval, tuple[datetime, datetime]]


def overlaps(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    """Half-open overlap test: touching boundaries do not overlap."""
    return start1 < end2 and end1 > start2


def bounds(interval: IntervalLike) -> tuple[datetime, datetime]:
    if isinstance(interval, BusyInterval):
        return interval.start, interval.end
    start, end = interval
    return ensure_utc(start), ensure_utc(end)


def busy_from_events(events: Iterable[Event]) -> list[BusyInterval]:
    """Project events onto busy intervals. Cancelled events are free."""
    return [
        BusyInterval.from_event(event)
        for event in events
        if event.status != EventStatus.CANCELED
    ]


def find_conflicts(
    candidate: IntervalLike,
    busy_intervals: Iterable[BusyInterval],
    exclude_event_id: Optional[str] = None,
) -> list[BusyInterval]:
    """
    Find busy intervals overlapping a candidate interval.

    Args:
        candidate: Proposed interval
        busy_intervals: Intervals already occupied
        exclude_event_id: Event whose own prior position is ignored

    Returns:
        Overlapping busy intervals, in input order
    """
    start, end = bounds(candidate)
    return [
        busy
        for busy in busy_intervals
        if not (exclude_event_id and busy.event_id == exclude_event_id)
        and overlaps(start, end, busy.start, busy.end)
    ]


class ConflictChecker:
    """Holds the busy set for one resource and answers overlap queries."""

    def __init__(self, busy_intervals: Optional[Iterable[BusyInterval]] = None):
        self._busy: list[BusyInterval] = list(busy_intervals or [])

    @classmethod
    def for_events(cls, events: Iterable[Event]) -> "ConflictChecker":
        return cls(busy_from_events(events))

    @property
    def busy_intervals(self) -> list[BusyInterval]:
        return list(self._busy)

    def replace(self, busy_intervals: Iterable[BusyInterval]) -> None:
        self._busy = list(busy_intervals)

    def find_conflicts(
        self, candidate: IntervalLike, exclude_event_id: Optional[str] = None
    ) -> list[BusyInterval]:
        conflicts = find_conflicts(candidate, self._busy, exclude_event_id)
        if conflicts:
            start, end = bounds(candidate)
            logger.debug(f"{len(conflicts)} conflict(s) for {start} - {end}")
        return conflicts

    def has_conflict(
        self, candidate: IntervalLike, exclude_event_id: Optional[str] = None
    ) -> bool:
        return bool(self.find_conflicts(candidate, exclude_event_id))
