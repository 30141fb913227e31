"""Abstract base class for calendar writers."""

from abc import ABC, abstractmethod

from ..models.event import AttendeeResponse, Event, EventDraft
from ..recurrence.resolver import WriteDirective


class CalendarWriter(ABC):
    """Abstract base class for calendar writers."""

    @abstractmethod
    def create_event(self, draft: EventDraft) -> Event:
        """
        Create a new event.

        Args:
            draft: Event to create

        Returns:
            The created Event as stored by the server

        Raises:
            CalendarWriteError: If event creation fails
        """

    @abstractmethod
    def update_event(self, directive: WriteDirective) -> Event:
        """
        Update an event, or create an exception for one occurrence.

        Args:
            directive: Resolved update directive

        Returns:
            The updated event, or the new exception child

        Raises:
            CalendarWriteError: If the update fails
        """

    @abstractmethod
    def delete_event(self, directive: WriteDirective) -> None:
        """
        Delete an event, or skip a single occurrence of a series.

        Args:
            directive: Resolved delete directive

        Raises:
            CalendarWriteError: If the delete fails
        """

    @abstractmethod
    def rsvp(self, event_id: str, response: AttendeeResponse) -> Event:
        """
        Record the user's response to an invitation.

        Raises:
            CalendarWriteError: If the response cannot be recorded
        """
