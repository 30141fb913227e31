"""Tests for the REST reader and writer with a mocked HTTP session."""

from unittest.mock import MagicMock

import pytest
import requests

from calendar_scheduler.auth.base import StaticTokenAuth
from calendar_scheduler.models.calendar import ContextType
from calendar_scheduler.models.event import AttendeeResponse, EventDraft
from calendar_scheduler.readers.api_reader import ApiCalendarReader
from calendar_scheduler.recurrence.resolver import EditScope, RecurrenceEditResolver, WriteAction
from calendar_scheduler.utils.exceptions import (
    AuthenticationError,
    CalendarReadError,
    CalendarWriteError,
)
from calendar_scheduler.writers.api_writer import ApiCalendarWriter

BASE = "https://workspace.example.com/api"

EVENT_JSON = {
    "id": "evt-1",
    "calendarId": "cal-1",
    "title": "Standup",
    "startAt": "2025-03-10T09:00:00.000Z",
    "endAt": "2025-03-10T09:15:00.000Z",
    "allDay": False,
    "timezone": "Europe/Zurich",
    "status": "CONFIRMED",
    "attendees": [{"userId": "u-1", "response": "ACCEPTED"}],
    "createdById": "u-1",
}


def response(data=None, success=True, status=200):
    resp = MagicMock()
    resp.status_code = status
    resp.content = b"{}"
    resp.json.return_value = {"success": success, "data": data}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    return resp


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def reader(session):
    return ApiCalendarReader(BASE + "/", StaticTokenAuth("secret"), timeout=5, session=session)


@pytest.fixture
def writer(session):
    return ApiCalendarWriter(BASE, StaticTokenAuth("secret"), timeout=5, session=session)


class TestApiCalendarReader:
    def test_list_events(self, reader, session, at):
        session.get.return_value = response([EVENT_JSON])
        events = reader.list_events(at(10, 0), at(11, 0), ["ctx-1"])

        assert [e.title for e in events] == ["Standup"]
        assert events[0].attendees[0].response == AttendeeResponse.ACCEPTED
        url = session.get.call_args.args[0]
        kwargs = session.get.call_args.kwargs
        assert url == f"{BASE}/calendar/events"
        assert kwargs["params"] == {
            "start": "2025-03-10T00:00:00Z",
            "end": "2025-03-11T00:00:00Z",
            "contexts": ["ctx-1"],
        }
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["timeout"] == 5

    def test_occurrence_rows_use_occurrence_window(self, reader, session, at):
        row = dict(
            EVENT_JSON,
            recurrenceRule="FREQ=DAILY",
            occurrenceStartAt="2025-03-12T09:00:00.000Z",
            occurrenceEndAt="2025-03-12T09:15:00.000Z",
        )
        one_off = dict(
            EVENT_JSON,
            id="evt-2",
            occurrenceStartAt="2025-03-10T09:00:00.000Z",
            occurrenceEndAt="2025-03-10T09:15:00.000Z",
        )
        session.get.return_value = response([row, one_off])
        occurrence, plain = reader.list_events(at(10, 0), at(17, 0))

        assert occurrence.start_at == at(12, 9)
        assert occurrence.occurrence_start_at == at(12, 9)
        assert occurrence.key == "evt-1|2025-03-12T09:00:00Z"
        assert not plain.is_occurrence
        assert plain.key == "evt-2"

    def test_list_calendars(self, reader, session):
        session.get.return_value = response(
            [{"id": "cal-1", "name": "Work", "isPrimary": True, "contextType": "BUSINESS"}]
        )
        (calendar,) = reader.list_calendars()
        assert calendar.is_primary
        assert calendar.context_type == ContextType.BUSINESS
        assert calendar.is_deletable

    def test_free_busy(self, reader, session, at):
        session.get.return_value = response(
            [{"start": "2025-03-10T13:00:00Z", "end": "2025-03-10T14:00:00Z", "calendarId": "cal-2"}]
        )
        (busy,) = reader.free_busy(at(10, 0), at(11, 0), ["cal-2"])
        assert (busy.start, busy.end, busy.calendar_id) == (at(10, 13), at(10, 14), "cal-2")
        assert session.get.call_args.args[0] == f"{BASE}/calendar/freebusy"

    def test_check_conflicts(self, reader, session, at):
        session.get.return_value = response([EVENT_JSON])
        (conflict,) = reader.check_conflicts(at(10, 9), at(10, 10), ["cal-1"])
        assert conflict.id == "evt-1"
        assert session.get.call_args.kwargs["params"]["calendarIds"] == ["cal-1"]

    def test_http_error_is_read_error(self, reader, session, at):
        session.get.return_value = response(status=500)
        with pytest.raises(CalendarReadError):
            reader.list_events(at(10, 0), at(11, 0))

    def test_rejected_envelope_is_read_error(self, reader, session):
        session.get.return_value = response(success=False)
        with pytest.raises(CalendarReadError):
            reader.search_events("standup")

    def test_connection_error_is_read_error(self, reader, session):
        session.get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(CalendarReadError):
            reader.list_calendars()

    def test_malformed_event_is_read_error(self, reader, session, at):
        session.get.return_value = response([{"id": "evt-1"}])
        with pytest.raises(CalendarReadError):
            reader.list_events(at(10, 0), at(11, 0))

    def test_missing_token(self, session):
        reader = ApiCalendarReader(BASE, StaticTokenAuth(None), session=session)
        with pytest.raises(AuthenticationError):
            reader.list_calendars()
        session.get.assert_not_called()


class TestApiCalendarWriter:
    def test_create_event(self, writer, session, at):
        session.request.return_value = response(EVENT_JSON)
        draft = EventDraft(calendar_id="cal-1", title="Standup", start_at=at(10, 9), end_at=at(10, 9, 15))
        event = writer.create_event(draft)

        method, url = session.request.call_args.args
        body = session.request.call_args.kwargs["json"]
        assert (method, url) == ("POST", f"{BASE}/calendar/events")
        assert body["calendarId"] == "cal-1"
        assert "recurrenceRule" not in body
        assert event.id == "evt-1"

    def test_occurrence_update(self, writer, session, make_event, at):
        series = make_event("series-1", recurrence_rule="FREQ=DAILY")
        directive = RecurrenceEditResolver().resolve(
            series, EditScope.THIS_OCCURRENCE, changes={"title": "Moved"}
        )
        session.request.return_value = response(EVENT_JSON)
        writer.update_event(directive)

        method, url = session.request.call_args.args
        assert (method, url) == ("PATCH", f"{BASE}/calendar/events/series-1")
        assert session.request.call_args.kwargs["json"] == {
            "title": "Moved",
            "editMode": "THIS",
            "occurrenceStartAt": "2025-03-10T09:00:00Z",
        }

    def test_scoped_delete(self, writer, session, make_event):
        series = make_event("series-1", recurrence_rule="FREQ=DAILY")
        directive = RecurrenceEditResolver().resolve(
            series, EditScope.THIS_OCCURRENCE, WriteAction.DELETE
        )
        session.request.return_value = response()
        writer.delete_event(directive)

        assert session.request.call_args.args == ("DELETE", f"{BASE}/calendar/events/series-1")
        assert session.request.call_args.kwargs["params"] == {
            "editMode": "THIS",
            "occurrenceStartAt": "2025-03-10T09:00:00Z",
        }

    def test_series_delete_has_no_params(self, writer, session, make_event):
        directive = RecurrenceEditResolver().resolve(make_event("evt-1"), action=WriteAction.DELETE)
        session.request.return_value = response()
        writer.delete_event(directive)
        assert session.request.call_args.kwargs["params"] is None

    def test_rsvp(self, writer, session):
        session.request.return_value = response(EVENT_JSON)
        writer.rsvp("evt-1", AttendeeResponse.DECLINED)
        assert session.request.call_args.kwargs["json"] == {"response": "DECLINED"}

    def test_failure_is_write_error(self, writer, session, make_event):
        directive = RecurrenceEditResolver().resolve(make_event("evt-1"), changes={"title": "x"})
        session.request.return_value = response(status=409)
        with pytest.raises(CalendarWriteError):
            writer.update_event(directive)
