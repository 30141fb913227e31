"""Calendar writer for the workspace REST API."""

import logging
from typing import Any, Optional

import requests
from pydantic import ValidationError

from ..auth.base import AuthProvider
from ..models.event import AttendeeResponse, Event, EventDraft
from ..recurrence.resolver import WriteDirective
from ..utils.exceptions import AuthenticationError, CalendarWriteError
from ..utils.http import unwrap
from .base import CalendarWriter

logger = logging.getLogger(__name__)


class ApiCalendarWriter(CalendarWriter):
    """Write events through the workspace API."""

    def __init__(
        self,
        base_url: str,
        auth_provider: AuthProvider,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth_provider = auth_provider
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/calendar/{path}"

    def _send(self, method: str, path: str, **kwargs: Any) -> Any:
        resp = self.session.request(
            method,
            self._url(path),
            headers=self.auth_provider.headers(),
            timeout=self.timeout,
            **kwargs,
        )
        return unwrap(resp)

    def create_event(self, draft: EventDraft) -> Event:
        try:
            data = self._send("POST", "events", json=draft.to_payload())
            event = Event.model_validate(data)
            logger.info(f"Created event: {event.title}")
            return event
        except AuthenticationError:
            raise
        except (requests.RequestException, ValidationError, ValueError) as e:
            raise CalendarWriteError(f"Failed to create event {draft.title!r}: {e}") from e

    def update_event(self, directive: WriteDirective) -> Event:
        try:
            data = self._send(
                "PATCH",
                f"events/{directive.event_id}",
                json=directive.to_update_payload(),
            )
            event = Event.model_validate(data)
            scope = "occurrence" if directive.is_occurrence_scoped else "event"
            logger.info(f"Updated {scope}: {event.title}")
            return event
        except AuthenticationError:
            raise
        except (requests.RequestException, ValidationError, ValueError) as e:
            raise CalendarWriteError(
                f"Failed to update event {directive.event_id}: {e}"
            ) from e

    def delete_event(self, directive: WriteDirective) -> None:
        try:
            self._send(
                "DELETE",
                f"events/{directive.event_id}",
                params=directive.to_delete_params() or None,
            )
            if directive.is_occurrence_scoped:
                logger.info(
                    f"Skipped occurrence {directive.occurrence_start_at} of {directive.event_id}"
                )
            else:
                logger.info(f"Deleted event: {directive.event_id}")
        except AuthenticationError:
            raise
        except (requests.RequestException, ValueError) as e:
            raise CalendarWriteError(
                f"Failed to delete event {directive.event_id}: {e}"
            ) from e

    def rsvp(self, event_id: str, response: AttendeeResponse) -> Event:
        try:
            data = self._send(
                "POST", f"events/{event_id}/rsvp", json={"response": response.value}
            )
            return Event.model_validate(data)
        except AuthenticationError:
            raise
        except (requests.RequestException, ValidationError, ValueError) as e:
            raise CalendarWriteError(f"Failed to record RSVP for {event_id}: {e}") from e
