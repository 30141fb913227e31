"""Abstract base class for calendar readers."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from typing import Optional

from ..models.calendar import Calendar
from ..models.event import BusyInterval, ConflictingEvent, Event


class CalendarReader(ABC):
    """Abstract base class for calendar readers."""

    @abstractmethod
    def list_calendars(self) -> list[Calendar]:
        """
        List all calendars visible to the user.

        Raises:
            CalendarReadError: If listing calendars fails
        """

    @abstractmethod
    def list_events(
        self,
        range_start: datetime,
        range_end: datetime,
        context_filters: Sequence[str] = (),
        calendar_ids: Optional[Sequence[str]] = None,
    ) -> list[Event]:
        """
        List events intersecting a range, recurring series already expanded.

        Args:
            range_start: Start of the range
            range_end: End of the range
            context_filters: Context (dashboard) identifiers to restrict to
            calendar_ids: Calendar identifiers to restrict to

        Raises:
            CalendarReadError: If reading events fails
        """

    @abstractmethod
    def search_events(
        self,
        text: str,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
        context_filters: Sequence[str] = (),
    ) -> list[Event]:
        """
        Search events by title, description or location.

        Raises:
            CalendarReadError: If the search fails
        """

    @abstractmethod
    def free_busy(
        self,
        range_start: datetime,
        range_end: datetime,
        calendar_ids: Sequence[str],
    ) -> list[BusyInterval]:
        """
        Busy intervals of calendars, without event details.

        Raises:
            CalendarReadError: If the query fails
        """

    @abstractmethod
    def check_conflicts(
        self,
        range_start: datetime,
        range_end: datetime,
        calendar_ids: Sequence[str] = (),
    ) -> list[ConflictingEvent]:
        """
        Server-side conflict pre-check for a proposed range.

        Raises:
            CalendarReadError: If the query fails
        """
