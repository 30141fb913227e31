"""Pointer-drag gestures on a day column: create, move and resize.

The controller is synchronous and holds no reference to rendering. It turns
pointer offsets (pixels from the top of the column) into a live preview
interval and, when the gesture ends, at most one intent.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional, Union

from ..conflicts.checker import ConflictChecker
from ..layout.geometry import TimeGeometry, snap
from ..models.event import BusyInterval

logger = logging.getLogger(__name__)

DEFAULT_RESIZE_HANDLE_PX = 8


class DragMode(str, Enum):
    """Gesture mode."""

    NONE = "none"
    CREATING = "creating"
    MOVING = "moving"
    RESIZING = "resizing"


@dataclass(frozen=True)
class EventBlock:
    """An event as rendered in the column, used as a pointer-down target."""

    event_id: str
    start: datetime
    end: datetime
    top: float
    height: float
    event_key: Optional[str] = None


@dataclass(frozen=True)
class CreateIntent:
    """Request to create an event over an interval."""

    start: datetime
    end: datetime
    kind: str = "create"


@dataclass(frozen=True)
class UpdateTimeIntent:
    """Request to move an existing event to a new interval."""

    event_id: str
    start: datetime
    end: datetime
    event_key: Optional[str] = None
    kind: str = "update-time"


DragIntent = Union[CreateIntent, UpdateTimeIntent]


@dataclass
class DragState:
    """Transient state of one gesture, from pointer-down to pointer-up."""

    mode: DragMode
    anchor_offset: float
    current_offset: Optional[float] = None
    event_id: Optional[str] = None
    event_key: Optional[str] = None
    origin_start: Optional[datetime] = None
    origin_end: Optional[datetime] = None
    preview_start: Optional[datetime] = None
    preview_end: Optional[datetime] = None
    preview_conflicts: list[BusyInterval] = field(default_factory=list)

    @property
    def has_preview(self) -> bool:
        return self.preview_start is not None and self.preview_end is not None

    @property
    def preview_is_valid(self) -> bool:
        return self.has_preview and self.preview_end > self.preview_start


class DragGestureController:
    """
    State machine for drag gestures in one day column.

    States are IDLE (no ``state``), CREATING, MOVING and RESIZING. Pointer-up
    and pointer-leave both end the gesture the same way.
    """

    def __init__(
        self,
        geometry: TimeGeometry,
        day: date,
        conflict_checker: Optional[ConflictChecker] = None,
        resize_handle_px: float = DEFAULT_RESIZE_HANDLE_PX,
    ):
        """
        Args:
            geometry: Column geometry used for offset/time conversion
            day: Calendar day the column shows
            conflict_checker: Busy set used to flag the preview (optional)
            resize_handle_px: Height of the resize zone at the bottom of a block
        """
        self.geometry = geometry
        self.day = day
        self.conflict_checker = conflict_checker
        self.resize_handle_px = resize_handle_px
        self._state: Optional[DragState] = None

    @property
    def state(self) -> Optional[DragState]:
        return self._state

    @property
    def mode(self) -> DragMode:
        return self._state.mode if self._state else DragMode.NONE

    @property
    def preview(self) -> Optional[tuple[datetime, datetime]]:
        if self._state is None or not self._state.has_preview:
            return None
        return self._state.preview_start, self._state.preview_end

    @property
    def preview_conflicting(self) -> bool:
        return bool(self._state and self._state.preview_conflicts)

    def pointer_down(self, offset: float, block: Optional[EventBlock] = None) -> DragMode:
        """
        Begin a gesture.

        Args:
            offset: Pointer offset within the column
            block: Event block under the pointer, or None for empty grid

        Returns:
            The mode entered
        """
        if self._state is not None:
            logger.debug("Pointer-down during an active gesture ignored")
            return self._state.mode

        if block is None:
            self._state = DragState(mode=DragMode.CREATING, anchor_offset=offset)
        else:
            in_block = offset - block.top
            resizing = in_block > block.height - self.resize_handle_px
            self._state = DragState(
                mode=DragMode.RESIZING if resizing else DragMode.MOVING,
                anchor_offset=offset,
                event_id=block.event_id,
                event_key=block.event_key or block.event_id,
                origin_start=block.start,
                origin_end=block.end,
            )
        logger.debug(f"Gesture started: {self._state.mode.value} at {offset:.1f}px")
        return self._state.mode

    def pointer_move(self, offset: float) -> Optional[tuple[datetime, datetime]]:
        """Track the pointer and recompute the preview interval."""
        state = self._state
        if state is None:
            return None
        state.current_offset = offset

        if state.mode == DragMode.CREATING:
            low = min(state.anchor_offset, offset)
            high = max(state.anchor_offset, offset)
            state.preview_start = self.geometry.datetime_at(self.day, low)
            state.preview_end = self.geometry.datetime_at(self.day, high)
        elif state.mode == DragMode.MOVING:
            delta = snap(
                self.geometry.minutes_for_pixels(offset - state.anchor_offset),
                self.geometry.snap_minutes,
            )
            shift = timedelta(minutes=delta)
            state.preview_start = state.origin_start + shift
            state.preview_end = state.origin_end + shift
        elif state.mode == DragMode.RESIZING:
            state.preview_start = state.origin_start
            state.preview_end = self.geometry.datetime_at(self.day, offset)

        self._refresh_conflicts()
        return self.preview

    def pointer_up(self, offset: Optional[float] = None) -> Optional[DragIntent]:
        """End the gesture and return the resulting intent, if any."""
        return self._finish(offset)

    def pointer_leave(self, offset: Optional[float] = None) -> Optional[DragIntent]:
        """Pointer left the grid; ends the gesture exactly like pointer-up."""
        return self._finish(offset)

    def cancel(self) -> None:
        """Drop the gesture without emitting anything."""
        self._state = None

    def _refresh_conflicts(self) -> None:
        state = self._state
        if self.conflict_checker is None or not state.preview_is_valid:
            state.preview_conflicts = []
            return
        state.preview_conflicts = self.conflict_checker.find_conflicts(
            (state.preview_start, state.preview_end),
            exclude_event_id=state.event_id,
        )

    def _finish(self, offset: Optional[float]) -> Optional[DragIntent]:
        if self._state is None:
            return None
        if offset is not None:
            self.pointer_move(offset)
        state, self._state = self._state, None

        if state.current_offset is None or not state.preview_is_valid:
            logger.debug(f"Gesture {state.mode.value} ended without a valid interval")
            return None

        if state.mode == DragMode.CREATING:
            intent: DragIntent = CreateIntent(state.preview_start, state.preview_end)
        else:
            if (state.preview_start, state.preview_end) == (state.origin_start, state.origin_end):
                logger.debug(f"Gesture {state.mode.value} left event {state.event_id} unchanged")
                return None
            intent = UpdateTimeIntent(
                state.event_id, state.preview_start, state.preview_end, state.event_key
            )

        logger.debug(f"Gesture {state.mode.value} produced {intent.kind} intent")
        return intent
