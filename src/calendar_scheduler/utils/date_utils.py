"""Date and time utilities for the calendar scheduler."""

from datetime import date, datetime, timedelta
from typing import Optional, Union

import pytz


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure datetime is in UTC.

    Naive datetimes are assumed to already be UTC.

    Args:
        dt: Datetime to convert

    Returns:
        UTC datetime
    """
    if dt.tzinfo is None:
        return pytz.utc.localize(dt)
    return dt.astimezone(pytz.utc)


def get_timezone(name: Union[str, pytz.BaseTzInfo, None]) -> pytz.BaseTzInfo:
    """Resolve a timezone label, falling back to UTC for unknown names."""
    if hasattr(name, "localize"):
        return name
    if not name:
        return pytz.utc
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        return pytz.utc


def day_bounds(
    day: date, tz: Union[str, pytz.BaseTzInfo, None] = None
) -> tuple[datetime, datetime]:
    """
    Get the [start, end) instants of a calendar day in a timezone.

    Args:
        day: Calendar day
        tz: Timezone name or tzinfo (UTC if omitted)

    Returns:
        Tuple of (day_start, next_day_start), both timezone-aware
    """
    zone = get_timezone(tz)
    start = zone.localize(datetime(day.year, day.month, day.day))
    next_day = day + timedelta(days=1)
    end = zone.localize(datetime(next_day.year, next_day.month, next_day.day))
    return start, end


def local_date(dt: datetime, tz: Union[str, pytz.BaseTzInfo, None] = None) -> date:
    """Calendar date of an instant as seen in a timezone."""
    zone = get_timezone(tz)
    return ensure_utc(dt).astimezone(zone).date()


def get_view_window(
    lookback_days: int = 0,
    lookahead_days: int = 7,
) -> tuple[datetime, datetime]:
    """
    Get a visible range (start, end) in UTC around today.

    Args:
        lookback_days: Days to look back from now
        lookahead_days: Days to look ahead from now

    Returns:
        Tuple of (start_date, end_date) in UTC
    """
    now = datetime.now(pytz.utc)
    today_midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start = today_midnight - timedelta(days=lookback_days)
    # End at midnight after the last day so the whole day is covered
    end = today_midnight + timedelta(days=lookahead_days + 1)
    return start, end


def isoformat_utc(dt: datetime) -> str:
    """ISO-8601 UTC representation with a Z suffix, as the API expects."""
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")
