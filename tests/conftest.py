"""Shared fixtures for the calendar scheduler tests."""

from datetime import date, datetime, timezone

import pytest

from calendar_scheduler.layout.geometry import TimeGeometry
from calendar_scheduler.models.event import Event

DAY = date(2025, 3, 10)


def utc(day: int, hour: int, minute: int = 0, month: int = 3) -> datetime:
    return datetime(2025, month, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def at():
    """Build a UTC instant in March 2025: at(10, 9, 30) -> 2025-03-10 09:30Z."""
    return utc


@pytest.fixture
def day() -> date:
    return DAY


@pytest.fixture
def geometry() -> TimeGeometry:
    """600px column over 08:00-18:00, so one pixel is one minute."""
    return TimeGeometry(
        column_height=600,
        window_start_hour=8,
        window_duration_hours=10,
        snap_minutes=15,
        timezone="UTC",
    )


@pytest.fixture
def make_event():
    """Factory for events on 2025-03-10, times given as (hour, minute) pairs."""

    def _make(
        event_id: str = "evt-1",
        start: tuple = (9, 0),
        end: tuple = (10, 0),
        day: int = 10,
        **fields,
    ) -> Event:
        values = {
            "id": event_id,
            "calendar_id": "cal-1",
            "title": f"Event {event_id}",
            "start_at": utc(day, *start),
            "end_at": utc(day, *end),
        }
        values.update(fields)
        return Event(**values)

    return _make
