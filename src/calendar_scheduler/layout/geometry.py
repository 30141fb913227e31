"""Conversions between time-of-day and pixel offsets within a day column.

All functions clamp instead of raising: an offset above the column maps to
the window start, one below it to the window end, and a time outside the
visible window renders flush against the nearest column edge.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

import pytz

from ..utils.date_utils import ensure_utc, get_timezone

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60
DEFAULT_SNAP_MINUTES = 15


@dataclass(frozen=True, order=True)
class TimeOfDay:
    """Minutes since midnight. 1440 stands for the end of the day."""

    minutes: int

    def __post_init__(self):
        if not 0 <= self.minutes <= MINUTES_PER_DAY:
            object.__setattr__(
                self, "minutes", max(0, min(MINUTES_PER_DAY, self.minutes))
            )

    @classmethod
    def from_hm(cls, hour: int, minute: int = 0) -> "TimeOfDay":
        return cls(hour * 60 + minute)

    @classmethod
    def from_datetime(
        cls, value: Union[datetime, time], tz: Union[str, pytz.BaseTzInfo, None] = None
    ) -> "TimeOfDay":
        if isinstance(value, datetime):
            if value.tzinfo is not None or tz is not None:
                value = ensure_utc(value).astimezone(get_timezone(tz))
            return cls(value.hour * 60 + value.minute)
        return cls(value.hour * 60 + value.minute)

    @property
    def hour(self) -> int:
        return self.minutes // 60

    @property
    def minute(self) -> int:
        return self.minutes % 60

    def on(self, day: date, tz: Union[str, pytz.BaseTzInfo, None] = None) -> datetime:
        """Anchor this time on a calendar day, returning an aware instant."""
        zone = get_timezone(tz)
        midnight = zone.localize(datetime(day.year, day.month, day.day))
        return zone.normalize(midnight + timedelta(minutes=self.minutes))

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def snap(value: float, granularity: int = DEFAULT_SNAP_MINUTES) -> int:
    """Round to the nearest multiple of ``granularity``, halves rounding up."""
    if granularity <= 0:
        return int(math.floor(value + 0.5))
    return int(math.floor(value / granularity + 0.5)) * granularity


def _ratio(offset: float, column_height: float) -> float:
    if column_height <= 0 or math.isnan(offset):
        return 0.0
    return max(0.0, min(1.0, offset / column_height))


def to_time(
    offset: float,
    column_height: float,
    window_start_hour: int,
    window_duration_hours: int,
    snap_minutes: int = DEFAULT_SNAP_MINUTES,
) -> TimeOfDay:
    """
    Map a pixel offset within a column to a snapped time of day.

    Args:
        offset: Pointer offset from the top of the column, in pixels
        column_height: Rendered column height, in pixels
        window_start_hour: First visible hour
        window_duration_hours: Number of visible hours
        snap_minutes: Snapping granularity

    Returns:
        TimeOfDay inside the visible window, aligned to ``snap_minutes``
    """
    window_minutes = window_duration_hours * 60
    minute_of_window = snap(_ratio(offset, column_height) * window_minutes, snap_minutes)
    minute_of_window = max(0, min(window_minutes, minute_of_window))
    return TimeOfDay(window_start_hour * 60 + minute_of_window)


def to_offset(
    time_of_day: TimeOfDay,
    column_height: float,
    window_start_hour: int,
    window_duration_hours: int,
) -> float:
    """
    Map a time of day to a pixel offset, clamped to the visible window.

    Args:
        time_of_day: Time to place
        column_height: Rendered column height, in pixels
        window_start_hour: First visible hour
        window_duration_hours: Number of visible hours

    Returns:
        Offset in pixels from the top of the column
    """
    window_minutes = window_duration_hours * 60
    if window_minutes <= 0 or column_height <= 0:
        return 0.0
    minutes = time_of_day.minutes - window_start_hour * 60
    clamped = max(0, min(window_minutes, minutes))
    return clamped / window_minutes * column_height


@dataclass(frozen=True)
class BlockExtent:
    """Vertical placement of an event block."""

    top: float
    height: float

    @property
    def bottom(self) -> float:
        return self.top + self.height


@dataclass(frozen=True)
class TimeGeometry:
    """Geometry of one day column: its height, visible window and snapping."""

    column_height: float = 600.0
    window_start_hour: int = 8
    window_duration_hours: int = 10
    snap_minutes: int = DEFAULT_SNAP_MINUTES
    timezone: str = "UTC"

    @property
    def window_minutes(self) -> int:
        return self.window_duration_hours * 60

    def to_time(self, offset: float) -> TimeOfDay:
        return to_time(
            offset,
            self.column_height,
            self.window_start_hour,
            self.window_duration_hours,
            self.snap_minutes,
        )

    def to_offset(self, time_of_day: TimeOfDay) -> float:
        return to_offset(
            time_of_day,
            self.column_height,
            self.window_start_hour,
            self.window_duration_hours,
        )

    def minutes_for_pixels(self, pixels: float) -> float:
        """Unsnapped duration covered by a vertical pixel distance."""
        if self.column_height <= 0 or math.isnan(pixels):
            return 0.0
        return pixels / self.column_height * self.window_minutes

    def datetime_at(self, day: date, offset: float) -> datetime:
        """Instant on ``day`` under a pointer offset."""
        return self.to_time(offset).on(day, self.timezone)

    def offset_of(self, instant: datetime, day: Optional[date] = None) -> float:
        """
        Offset of an instant in the column for ``day``.

        Instants on an earlier day pin to the top and instants on a later
        day pin to the bottom, so multi-day events render flush.
        """
        local = ensure_utc(instant).astimezone(get_timezone(self.timezone))
        if day is not None and local.date() != day:
            return 0.0 if local.date() < day else self.column_height
        return self.to_offset(TimeOfDay.from_datetime(local))

    def block_extent(
        self,
        start: datetime,
        end: datetime,
        day: Optional[date] = None,
        min_height: float = 10.0,
    ) -> BlockExtent:
        """Top and height of an event block, never thinner than ``min_height``."""
        top = self.offset_of(start, day)
        bottom = self.offset_of(end, day)
        return BlockExtent(top=top, height=max(min_height, bottom - top))
