"""Calendar reader for the workspace REST API."""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Optional

import requests
from pydantic import ValidationError

from ..auth.base import AuthProvider
from ..models.calendar import Calendar
from ..models.event import BusyInterval, ConflictingEvent, Event
from ..utils.date_utils import isoformat_utc
from ..utils.exceptions import AuthenticationError, CalendarReadError
from ..utils.http import unwrap
from .base import CalendarReader

logger = logging.getLogger(__name__)


class ApiCalendarReader(CalendarReader):
    """Read calendars and events from the workspace API."""

    def __init__(
        self,
        base_url: str,
        auth_provider: AuthProvider,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize API calendar reader.

        Args:
            base_url: API root, e.g. https://api.example.com/api
            auth_provider: Supplies the bearer token
            timeout: Request timeout in seconds
            session: HTTP session to reuse (a new one by default)
        """
        self.base_url = base_url.rstrip("/")
        self.auth_provider = auth_provider
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}/calendar/{path}"
        resp = self.session.get(
            url,
            headers=self.auth_provider.headers(),
            params=params,
            timeout=self.timeout,
        )
        return unwrap(resp)

    def list_calendars(self) -> list[Calendar]:
        try:
            data = self._get("calendars") or []
            calendars = [Calendar.model_validate(item) for item in data]
            logger.info(f"Found {len(calendars)} calendars")
            return calendars
        except AuthenticationError:
            raise
        except (requests.RequestException, ValidationError, ValueError) as e:
            raise CalendarReadError(f"Failed to list calendars: {e}") from e

    def list_events(
        self,
        range_start: datetime,
        range_end: datetime,
        context_filters: Sequence[str] = (),
        calendar_ids: Optional[Sequence[str]] = None,
    ) -> list[Event]:
        params: dict[str, Any] = {
            "start": isoformat_utc(range_start),
            "end": isoformat_utc(range_end),
        }
        if context_filters:
            params["contexts"] = list(context_filters)
        if calendar_ids:
            params["calendarIds"] = list(calendar_ids)
        try:
            data = self._get("events", params) or []
            events = [Event.model_validate(item) for item in data]
            logger.info(
                f"Read {len(events)} events from {range_start.date()} to {range_end.date()}"
            )
            return events
        except AuthenticationError:
            raise
        except (requests.RequestException, ValidationError, ValueError) as e:
            raise CalendarReadError(f"Failed to list events: {e}") from e

    def search_events(
        self,
        text: str,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
        context_filters: Sequence[str] = (),
    ) -> list[Event]:
        params: dict[str, Any] = {"text": text}
        if range_start and range_end:
            params["start"] = isoformat_utc(range_start)
            params["end"] = isoformat_utc(range_end)
        if context_filters:
            params["contexts"] = list(context_filters)
        try:
            data = self._get("events/search", params) or []
            return [Event.model_validate(item) for item in data]
        except AuthenticationError:
            raise
        except (requests.RequestException, ValidationError, ValueError) as e:
            raise CalendarReadError(f"Failed to search events for {text!r}: {e}") from e

    def free_busy(
        self,
        range_start: datetime,
        range_end: datetime,
        calendar_ids: Sequence[str],
    ) -> list[BusyInterval]:
        params = {
            "start": isoformat_utc(range_start),
            "end": isoformat_utc(range_end),
            "calendarIds": list(calendar_ids),
        }
        try:
            data = self._get("freebusy", params) or []
            return [
                BusyInterval(
                    start=item.get("start") or item["startAt"],
                    end=item.get("end") or item["endAt"],
                    calendar_id=item.get("calendarId"),
                )
                for item in data
            ]
        except AuthenticationError:
            raise
        except (requests.RequestException, ValidationError, ValueError, KeyError) as e:
            raise CalendarReadError(f"Failed to read free/busy: {e}") from e

    def check_conflicts(
        self,
        range_start: datetime,
        range_end: datetime,
        calendar_ids: Sequence[str] = (),
    ) -> list[ConflictingEvent]:
        params: dict[str, Any] = {
            "start": isoformat_utc(range_start),
            "end": isoformat_utc(range_end),
        }
        if calendar_ids:
            params["calendarIds"] = list(calendar_ids)
        try:
            data = self._get("events/conflicts", params) or []
            return [ConflictingEvent.model_validate(item) for item in data]
        except AuthenticationError:
            raise
        except (requests.RequestException, ValidationError, ValueError) as e:
            raise CalendarReadError(f"Failed to check conflicts: {e}") from e
