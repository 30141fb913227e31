"""Calendar session engine: writes, range loads and conflict pre-checks.

Blocking HTTP calls run in worker threads; their results are applied to the
store back on the event loop, so the store is only ever mutated from one
thread. A failed call leaves the store untouched and raises a retryable
``TransportError``.
"""

import asyncio
import logging
from collections.abc import Iterable, Sequence
from datetime import date, datetime
from typing import Any, Optional

from ..conflicts.checker import ConflictChecker, busy_from_events
from ..interaction.drag import (
    DEFAULT_RESIZE_HANDLE_PX,
    CreateIntent,
    DragGestureController,
    UpdateTimeIntent,
)
from ..layout.geometry import TimeGeometry
from ..models.event import (
    AttendeeResponse,
    BusyInterval,
    ConflictingEvent,
    Event,
    EventDraft,
)
from ..readers.base import CalendarReader
from ..recurrence.resolver import (
    EditScope,
    RecurrenceEditResolver,
    WriteAction,
    WriteDirective,
)
from ..recurrence.rules import expand_all, expand_occurrences, validate_recurrence_rule
from ..utils.exceptions import CalendarSchedulerError, TransportError
from ..writers.base import CalendarWriter
from .search import DEFAULT_DEBOUNCE_SECONDS, DebouncedSearch, ResultsFn
from .store import LiveEventStore

logger = logging.getLogger(__name__)


class EventSyncEngine:
    """Keeps a ``LiveEventStore`` in step with the calendar service."""

    def __init__(
        self,
        reader: CalendarReader,
        writer: Optional[CalendarWriter] = None,
        store: Optional[LiveEventStore] = None,
        resolver: Optional[RecurrenceEditResolver] = None,
    ):
        """
        Initialize sync engine.

        Args:
            reader: Calendar reader for the service
            writer: Calendar writer for the service (read-only without one)
            store: Store to keep current (a new one by default)
            resolver: Recurrence edit resolver (default instance if omitted)
        """
        self.reader = reader
        self.writer = writer
        self.store = store or LiveEventStore()
        self.resolver = resolver or RecurrenceEditResolver()

    def _require_writer(self) -> CalendarWriter:
        if self.writer is None:
            raise CalendarSchedulerError("No calendar writer configured (read-only session)")
        return self.writer

    async def load_range(
        self,
        range_start: datetime,
        range_end: datetime,
        context_filters: Sequence[str] = (),
        calendar_ids: Optional[Sequence[str]] = None,
        expand: bool = False,
    ) -> list[Event]:
        """
        Fetch a range and replace the store contents with it.

        Args:
            range_start: Start of the visible range
            range_end: End of the visible range
            context_filters: Context identifiers to restrict to
            calendar_ids: Calendars to restrict to
            expand: Expand series locally (for services that return roots only)
        """
        events = await asyncio.to_thread(
            self.reader.list_events, range_start, range_end, context_filters, calendar_ids
        )
        if expand:
            events = expand_all(events, range_start, range_end)
        self.store.load(events, range_start, range_end)
        return events

    def _apply_series(self, event: Event) -> None:
        """
        Apply a written series root, re-expanding it over the loaded range.

        Exception children and skipped occurrences already held keep their slots.
        """
        store = self.store
        if event.is_recurring and store.range_start and store.range_end:
            occurrences = expand_occurrences(
                event, store.range_start, store.range_end, store.exceptions(event.id)
            )
            store.replace_series(event.id, list(occurrences))
        else:
            store.apply_local_write(event)

    async def create_event(self, draft: EventDraft) -> Event:
        """
        Create an event and add the confirmed result to the store.

        Raises:
            RecurrenceRuleError: If the draft carries a malformed rule (nothing sent)
            TransportError: If the write fails (store unchanged)
        """
        validate_recurrence_rule(draft.recurrence_rule, draft.start_at, draft.timezone)
        writer = self._require_writer()
        try:
            event = await asyncio.to_thread(writer.create_event, draft)
        except TransportError as e:
            logger.error(f"Create failed, store unchanged: {e}")
            raise
        self._apply_series(event)
        return event

    def draft_from_intent(
        self,
        intent: CreateIntent,
        calendar_id: str,
        title: str = "New event",
        timezone: str = "UTC",
        **fields: Any,
    ) -> EventDraft:
        """Build a draft for a create gesture; the editor fills in the rest."""
        return EventDraft(
            calendar_id=calendar_id,
            title=title,
            start_at=intent.start,
            end_at=intent.end,
            timezone=timezone,
            **fields,
        )

    async def _write_update(self, directive: WriteDirective) -> Event:
        writer = self._require_writer()
        try:
            event = await asyncio.to_thread(writer.update_event, directive)
        except TransportError as e:
            logger.error(f"Update of {directive.event_id} failed, store unchanged: {e}")
            raise
        if directive.is_occurrence_scoped:
            self.store.apply_local_write(event, replaces=directive.target_key)
        else:
            self._apply_series(event)
        return event

    async def update_event(
        self,
        event: Event,
        changes: dict[str, Any],
        scope: Optional[EditScope] = None,
    ) -> Event:
        """
        Update an event.

        Args:
            event: Event as held in the store
            changes: Fields to change, snake_case keyed
            scope: Occurrence or series, required when ``event`` recurs

        Raises:
            EditScopeRequiredError: If ``event`` recurs and no scope was given
            RecurrenceRuleError: If the changes carry a malformed rule
            TransportError: If the write fails (store unchanged)
        """
        directive = self.resolver.resolve(event, scope, WriteAction.UPDATE, changes)
        return await self._write_update(directive)

    async def move_event(
        self,
        event: Event,
        start: datetime,
        end: datetime,
        scope: Optional[EditScope] = None,
    ) -> Event:
        """Write a new interval for an event (the outcome of a move or resize)."""
        return await self.update_event(event, {"start_at": start, "end_at": end}, scope)

    async def apply_intent(
        self, intent: UpdateTimeIntent, scope: Optional[EditScope] = None
    ) -> Event:
        """
        Write an update-time intent produced by a drag gesture.

        Raises:
            KeyError: If the dragged event is no longer in the store
        """
        event = self.store.get(intent.event_key or intent.event_id)
        if event is None:
            raise KeyError(f"Event {intent.event_key or intent.event_id} is not loaded")
        return await self.move_event(event, intent.start, intent.end, scope)

    async def delete_event(self, event: Event, scope: Optional[EditScope] = None) -> None:
        """
        Delete an event, or skip one occurrence of a series.

        Raises:
            EditScopeRequiredError: If ``event`` recurs and no scope was given
            TransportError: If the delete fails (store unchanged)
        """
        directive = self.resolver.resolve(event, scope, WriteAction.DELETE)
        writer = self._require_writer()
        try:
            await asyncio.to_thread(writer.delete_event, directive)
        except TransportError as e:
            logger.error(f"Delete of {event.id} failed, store unchanged: {e}")
            raise
        if directive.is_occurrence_scoped:
            self.store.skip_occurrence(event.id, directive.occurrence_start_at)
            self.store.remove(directive.target_key)
        else:
            self.store.remove_series(event.id)

    async def rsvp(self, event_id: str, response: AttendeeResponse) -> Event:
        writer = self._require_writer()
        event = await asyncio.to_thread(writer.rsvp, event_id, response)
        self.store.apply_local_write(event)
        return event

    def preflight(
        self,
        start: datetime,
        end: datetime,
        exclude_event_id: Optional[str] = None,
        busy: Iterable[BusyInterval] = (),
    ) -> list[BusyInterval]:
        """
        Advisory local conflict check before a write.

        Compares against the loaded events plus any extra busy intervals
        (e.g. free/busy of other attendees). Never blocks the write.
        """
        checker = ConflictChecker([*busy_from_events(self.store.events()), *busy])
        conflicts = checker.find_conflicts((start, end), exclude_event_id)
        if conflicts:
            logger.warning(f"Proposed {start} - {end} overlaps {len(conflicts)} busy interval(s)")
        return conflicts

    async def check_conflicts_remote(
        self, start: datetime, end: datetime, calendar_ids: Sequence[str] = ()
    ) -> list[ConflictingEvent]:
        return await asyncio.to_thread(self.reader.check_conflicts, start, end, calendar_ids)

    async def free_busy(
        self, start: datetime, end: datetime, calendar_ids: Sequence[str]
    ) -> list[BusyInterval]:
        return await asyncio.to_thread(self.reader.free_busy, start, end, calendar_ids)

    async def search(self, text: str) -> list[Event]:
        """Search within the loaded range; suitable as a ``DebouncedSearch`` backend."""
        return await asyncio.to_thread(
            self.reader.search_events, text, self.store.range_start, self.store.range_end
        )

    def debounced_search(
        self, on_results: ResultsFn, delay: float = DEFAULT_DEBOUNCE_SECONDS
    ) -> DebouncedSearch:
        return DebouncedSearch(self.search, on_results, delay)

    def drag_controller(
        self,
        geometry: TimeGeometry,
        day: date,
        resize_handle_px: float = DEFAULT_RESIZE_HANDLE_PX,
    ) -> DragGestureController:
        """Gesture controller for one day column, previewing against the loaded events."""
        checker = ConflictChecker.for_events(self.store.day_bucket(day, geometry.timezone))
        return DragGestureController(geometry, day, checker, resize_handle_px)
