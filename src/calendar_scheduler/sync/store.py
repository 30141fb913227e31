"""Client-held cache of the events in the visible range."""

import logging
from collections.abc import Callable, Iterable, Iterator
from datetime import date, datetime
from typing import Any, Optional

from pydantic import ValidationError

from ..layout.packer import clip_to_day
from ..models.event import (
    Event,
    EventPatch,
    EventStatus,
    PushAction,
    PushNotification,
    event_key,
)
from ..recurrence.rules import expand_occurrences
from ..utils.date_utils import ensure_utc
from ..utils.exceptions import RecurrenceRuleError
from .strategies import LastWriteWinsStrategy, MergeStrategy

logger = logging.getLogger(__name__)

EVENT_ENTITY = "event"

# Fields that place a series in time; occurrences cannot take them from a
# partial root payload without the root itself.
SERIES_SHAPE_FIELDS = frozenset(
    {
        "start_at",
        "end_at",
        "all_day",
        "timezone",
        "recurrence_rule",
        "recurrence_end_at",
        "occurrence_start_at",
        "parent_event_id",
    }
)

Listener = Callable[["LiveEventStore"], None]


def is_skip_marker(event: Event) -> bool:
    """A cancelled exception child: one skipped occurrence of a series."""
    return bool(event.parent_event_id) and event.status == EventStatus.CANCELED


def skip_marker_id(series_id: str) -> str:
    return f"{series_id}:cancelled"


class LiveEventStore:
    """
    Events for the visible range, keyed by ``Event.key``.

    Every mutation goes through an idempotent upsert or delete, so a write
    confirmation and a push for the same event converge whichever arrives
    first and however often either is delivered.

    Skipped occurrences are held as cancelled exception children next to the
    visible events. They never appear in ``events()`` or day buckets, but
    every re-expansion of their series honours them.
    """

    def __init__(self, strategy: Optional[MergeStrategy] = None):
        self.strategy = strategy or LastWriteWinsStrategy()
        self._events: dict[str, Event] = {}
        self._skipped: dict[str, Event] = {}
        self._listeners: list[Listener] = []
        self.revision = 0
        self.range_start: Optional[datetime] = None
        self.range_end: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self._events)

    def __contains__(self, key: str) -> bool:
        return key in self._events

    def __iter__(self) -> Iterator[Event]:
        return iter(self.events())

    def get(self, key: str) -> Optional[Event]:
        return self._events.get(key)

    def events(self) -> list[Event]:
        """Events ordered by start, then key."""
        return sorted(self._events.values(), key=lambda e: (e.start_at, e.key))

    def series(self, event_id: str) -> list[Event]:
        """The entry for ``event_id`` and all of its occurrences."""
        return [e for e in self.events() if e.id == event_id]

    def exceptions(self, event_id: str) -> list[Event]:
        """Exception children of a series, skipped occurrences included."""
        children = [e for e in self._events.values() if e.parent_event_id == event_id]
        children.extend(e for e in self._skipped.values() if e.parent_event_id == event_id)
        return children

    def skipped(self) -> list[Event]:
        """Cancelled exception children, ordered by start."""
        return sorted(self._skipped.values(), key=lambda e: (e.start_at, e.key))

    def day_bucket(self, day: date, tz: Optional[str] = None) -> list[Event]:
        """Events intersecting one calendar day."""
        return [
            e for e in self.events() if clip_to_day(e.start_at, e.end_at, day, tz) is not None
        ]

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def load(
        self,
        events: Iterable[Event],
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
    ) -> None:
        """Replace the contents with a fresh range listing."""
        self._events, self._skipped = {}, {}
        for event in events:
            target = self._skipped if is_skip_marker(event) else self._events
            target[event.key] = event
        self.range_start = ensure_utc(range_start) if range_start else None
        self.range_end = ensure_utc(range_end) if range_end else None
        logger.info(f"Loaded {len(self._events)} events, {len(self._skipped)} skipped occurrences")
        self._changed()

    def apply_local_write(self, event: Event, replaces: Optional[str] = None) -> bool:
        """
        Insert or replace an event returned by a confirmed write.

        Args:
            event: Event as returned by the server
            replaces: Key of an entry this event supersedes (e.g. the
                occurrence an exception child was created for)

        Returns:
            True if the store changed
        """
        changed = False
        if replaces and replaces != event.key and replaces in self._events:
            del self._events[replaces]
            changed = True
        if is_skip_marker(event):
            changed = self._hold_skip(event) or changed
        else:
            held = self._events.get(event.key)
            if held is None or not _same(held, event):
                self._events[event.key] = event
                changed = True
        if changed:
            logger.info(f"Applied local write for {event.key}")
            self._changed()
        return changed

    def remove(self, key: str) -> bool:
        """Remove one entry. Removing an absent key is a no-op."""
        if self._events.pop(key, None) is None:
            return False
        self._changed()
        return True

    def skip_occurrence(self, event_id: str, occurrence_start_at: datetime) -> bool:
        """
        Drop one occurrence and remember it as skipped.

        The marker is built from the held occurrence, or any held entry of
        the series, so later re-expansions leave the slot empty. Skipping an
        already skipped occurrence is a no-op.

        Returns:
            True if the store changed
        """
        occurrence_start_at = ensure_utc(occurrence_start_at)
        key = event_key(event_id, occurrence_start_at)
        base = self._events.get(key) or next(iter(self.series(event_id)), None)
        changed = self._events.pop(key, None) is not None
        marker_key = event_key(skip_marker_id(event_id), occurrence_start_at)
        if base is not None and marker_key not in self._skipped:
            marker = base.model_copy(
                update={
                    "id": skip_marker_id(event_id),
                    "start_at": occurrence_start_at,
                    "end_at": occurrence_start_at + base.duration,
                    "occurrence_start_at": occurrence_start_at,
                    "parent_event_id": event_id,
                    "status": EventStatus.CANCELED,
                    "recurrence_rule": None,
                    "recurrence_end_at": None,
                }
            )
            changed = self._hold_skip(marker) or changed
        if changed:
            logger.info(f"Skipped occurrence {key}")
            self._changed()
        return changed

    def replace_series(self, event_id: str, events: Iterable[Event]) -> None:
        """Swap every entry of a series for a fresh set (e.g. a re-expansion)."""
        for key in [k for k, e in self._events.items() if e.id == event_id]:
            del self._events[key]
        for event in events:
            self._events[event.key] = event
        logger.info(f"Replaced series {event_id}")
        self._changed()

    def remove_series(self, event_id: str) -> int:
        """Remove an event, every occurrence sharing its id and its exception children."""
        removed = 0
        for held in (self._events, self._skipped):
            keys = [
                key for key, event in held.items()
                if event.id == event_id or event.parent_event_id == event_id
            ]
            for key in keys:
                del held[key]
            removed += len(keys)
        if removed:
            self._changed()
        return removed

    def apply_push(self, notification: PushNotification) -> bool:
        """
        Apply a pushed change.

        ``deleted`` removes by identity and is a no-op when already absent;
        a delete carrying an occurrence start skips that occurrence.
        ``created``/``updated`` upsert, merging present fields over the held
        event so a partial payload keeps the fields it omits. A payload for an
        unknown event that is not a complete event is dropped, unless
        occurrences of that series are held: their shared fields are merged
        in place. A complete series root replaces its held occurrences with a
        fresh expansion over the loaded range.

        Returns:
            True if the store changed
        """
        if notification.entity_kind != EVENT_ENTITY:
            logger.debug(f"Ignoring push for entity kind {notification.entity_kind!r}")
            return False

        try:
            patch = EventPatch.model_validate(notification.event)
        except ValidationError as e:
            logger.warning(f"Dropping malformed push payload: {e}")
            return False
        fields = patch.changes()

        if notification.action == PushAction.DELETED:
            if patch.occurrence_start_at is not None:
                return self.skip_occurrence(patch.id, patch.occurrence_start_at)
            return self.remove_series(patch.id) > 0

        key = event_key(patch.id, patch.occurrence_start_at)
        current = self._events.get(key) or self._skipped.get(key)
        try:
            resolved = self.strategy.resolve(current, fields)
        except ValidationError as e:
            if current is None and patch.occurrence_start_at is None and self.series(patch.id):
                return self._merge_into_occurrences(patch.id, fields)
            logger.warning(f"Dropping push for {key}: {e}")
            return False

        if current is None and self._expands(resolved):
            return self._apply_series_push(resolved)

        # An exception child takes the slot of the occurrence it replaces
        changed = False
        if resolved.parent_event_id and resolved.occurrence_start_at is not None:
            replaced = event_key(resolved.parent_event_id, resolved.occurrence_start_at)
            changed = self._events.pop(replaced, None) is not None

        if is_skip_marker(resolved):
            changed = self._events.pop(key, None) is not None or changed
            changed = self._hold_skip(resolved) or changed
        elif current is None or not _same(current, resolved):
            self._skipped.pop(key, None)
            self._events[key] = resolved
            changed = True
        if changed:
            logger.info(f"Applied {notification.action.value} push for {key}")
            self._changed()
        return changed

    def _hold_skip(self, marker: Event) -> bool:
        held = self._skipped.get(marker.key)
        if held is not None and _same(held, marker):
            return False
        self._skipped[marker.key] = marker
        return True

    def _expands(self, event: Event) -> bool:
        """A pushed series root whose occurrences are held is re-expanded."""
        if event.is_occurrence or event.parent_event_id or self.range_start is None:
            return False
        return any(held.id == event.id for held in self._events.values())

    def _apply_series_push(self, event: Event) -> bool:
        try:
            occurrences = list(
                expand_occurrences(
                    event, self.range_start, self.range_end, self.exceptions(event.id)
                )
            )
        except RecurrenceRuleError as e:
            logger.warning(f"Dropping push for series {event.id}: {e}")
            return False
        held = {e.key: e for e in self.series(event.id)}
        fresh = {e.key: e for e in occurrences}
        if held.keys() == fresh.keys() and all(_same(held[k], fresh[k]) for k in held):
            return False
        self.replace_series(event.id, occurrences)
        return True

    def _merge_into_occurrences(self, event_id: str, fields: dict[str, Any]) -> bool:
        """Merge a partial root payload into the occurrences held for it."""
        shared = {k: v for k, v in fields.items() if k not in SERIES_SHAPE_FIELDS}
        ignored = sorted(fields.keys() & SERIES_SHAPE_FIELDS)
        if ignored:
            logger.warning(
                f"Series {event_id} root is not held; ignoring {', '.join(ignored)} from push"
            )
        try:
            merged = [
                (occurrence, self.strategy.resolve(occurrence, shared))
                for occurrence in self.series(event_id)
            ]
        except ValidationError as e:
            logger.warning(f"Dropping push for series {event_id}: {e}")
            return False
        changed = False
        for occurrence, resolved in merged:
            if not _same(occurrence, resolved):
                self._events[occurrence.key] = resolved
                changed = True
        if changed:
            logger.info(f"Applied partial series push to occurrences of {event_id}")
            self._changed()
        return changed

    def _changed(self) -> None:
        self.revision += 1
        for listener in list(self._listeners):
            listener(self)


def _same(a: Event, b: Event) -> bool:
    return a.model_dump() == b.model_dump()
