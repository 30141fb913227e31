"""Tests for calendar interchange export and import."""

from datetime import datetime, timedelta, timezone

import pytest

from calendar_scheduler.interchange.ics import export_ics, parse_ics
from calendar_scheduler.models.event import Event
from calendar_scheduler.recurrence.rules import expand_all, expand_occurrences
from calendar_scheduler.utils.exceptions import InterchangeError

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestExport:
    def test_timed_event(self, make_event):
        event = make_event("evt-1", title="Lunch, team", location="Cafe")
        text = export_ics([event], now=NOW)
        lines = text.split("\r\n")
        assert text.endswith("\r\n")
        assert lines[0] == "BEGIN:VCALENDAR"
        assert "UID:evt-1" in lines
        assert "DTSTAMP:20250301T120000Z" in lines
        assert "DTSTART:20250310T090000Z" in lines
        assert "DTEND:20250310T100000Z" in lines
        assert "SUMMARY:Lunch\\, team" in lines
        assert "LOCATION:Cafe" in lines
        assert not any(line.startswith("DESCRIPTION") for line in lines)

    def test_all_day_event_uses_date_stamps(self, make_event, at):
        event = make_event("evt-2", start_at=at(10, 0), end_at=at(11, 0), all_day=True)
        lines = export_ics([event], now=NOW).split("\r\n")
        assert "DTSTART;VALUE=DATE:20250310" in lines
        assert "DTEND;VALUE=DATE:20250311" in lines
        assert "X-MICROSOFT-CDO-ALLDAYEVENT:TRUE" in lines

    def test_series_exported_once_with_rule(self, make_event, at):
        series = make_event("series-1", recurrence_rule="FREQ=WEEKLY;BYDAY=MO")
        occurrences = list(expand_occurrences(series, at(10, 0), at(31, 0)))
        text = export_ics(occurrences, now=NOW)
        assert text.count("BEGIN:VEVENT") == 1
        assert "RRULE:FREQ=WEEKLY;BYDAY=MO\r\n" in text


SAMPLE = "\r\n".join(
    [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Example//EN",
        "X-WR-CALNAME:Team",
        "BEGIN:VEVENT",
        "UID:abc-123",
        "DTSTAMP:20250301T120000Z",
        "DTSTART:20250310T090000Z",
        "DTEND:20250310T100000Z",
        "SUMMARY:Planning\\, Q2",
        "DESCRIPTION:Agenda:",
        " bring numbers",
        "X-UNKNOWN-PROPERTY:whatever",
        "RRULE:FREQ=WEEKLY;COUNT=4",
        "BEGIN:VALARM",
        "DESCRIPTION:Reminder",
        "END:VALARM",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:day-1",
        "DTSTART;VALUE=DATE:20250312",
        "SUMMARY:Offsite",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:zurich-1",
        "DTSTART;TZID=Europe/Zurich:20250313T090000",
        "SUMMARY:Local",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:broken-1",
        "DTSTART:20250314T090000Z",
        "END:VEVENT",
        "END:VCALENDAR",
        "",
    ]
)


class TestImport:
    @pytest.fixture
    def result(self):
        return parse_ics(SAMPLE, "cal-1")

    def test_reads_event_blocks(self, result):
        assert result.uids == ["abc-123", "day-1", "zurich-1"]
        planning = result.drafts[0]
        assert planning.calendar_id == "cal-1"
        assert planning.title == "Planning, Q2"
        assert planning.description == "Agenda:bring numbers"
        assert planning.start_at == datetime(2025, 3, 10, 9, tzinfo=timezone.utc)
        assert planning.recurrence_rule == "RRULE:FREQ=WEEKLY;COUNT=4"

    def test_all_day_without_end_lasts_one_day(self, result):
        offsite = result.drafts[1]
        assert offsite.all_day
        assert offsite.end_at - offsite.start_at == timedelta(days=1)

    def test_tzid_parameter(self, result):
        local = result.drafts[2]
        assert local.timezone == "Europe/Zurich"
        assert local.start_at == datetime(2025, 3, 13, 8, tzinfo=timezone.utc)
        assert local.end_at - local.start_at == timedelta(hours=1)

    def test_block_without_summary_is_skipped(self, result):
        assert len(result.skipped) == 1
        assert result.skipped[0].startswith("broken-1")

    def test_document_without_events(self):
        with pytest.raises(InterchangeError):
            parse_ics("BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n", "cal-1")

    def test_exported_document_reads_back(self, make_event):
        event = make_event("evt-1", title="Lunch; team", description="line one\nline two")
        result = parse_ics(export_ics([event], now=NOW), "cal-1")
        draft = result.drafts[0]
        assert (draft.title, draft.description) == (event.title, event.description)
        assert (draft.start_at, draft.end_at) == (event.start_at, event.end_at)


class TestTextHandling:
    def test_long_lines_are_folded(self, make_event):
        event = make_event("evt-1", description="é" * 80 + "; done, really")
        text = export_ics([event], now=NOW)
        assert all(len(line.encode("utf-8")) <= 75 for line in text.split("\r\n"))
        assert parse_ics(text, "cal-1").drafts[0].description == event.description

    def test_unreadable_document(self):
        with pytest.raises(InterchangeError):
            parse_ics("this is not a calendar", "cal-1")

    def test_exdate_lines_survive_export(self, make_event):
        event = make_event("s", recurrence_rule="FREQ=DAILY\nEXDATE:20250311T090000")
        draft = parse_ics(export_ics([event], now=NOW), "cal-1").drafts[0]
        assert draft.recurrence_rule == "RRULE:FREQ=DAILY\nEXDATE:20250311T090000"


class TestSeriesExport:
    @pytest.fixture
    def series(self, make_event):
        return make_event("series-1", recurrence_rule="FREQ=DAILY")

    def test_series_anchored_at_earliest_held_occurrence(self, series, at):
        occurrences = list(expand_occurrences(series, at(12, 0), at(15, 0)))
        lines = export_ics(reversed(occurrences), now=NOW).split("\r\n")
        assert "DTSTART:20250312T090000Z" in lines

    def test_series_root_wins_over_occurrences(self, series, at):
        occurrences = list(expand_occurrences(series, at(12, 0), at(15, 0)))
        lines = export_ics([*occurrences, series], now=NOW).split("\r\n")
        assert "DTSTART:20250310T090000Z" in lines
        assert lines.count("BEGIN:VEVENT") == 1

    def test_exception_child_is_a_modified_instance(self, series, make_event, at):
        child = make_event(
            "child-1", (14, 0), (15, 0), day=11,
            parent_event_id="series-1", occurrence_start_at=at(11, 9),
        )
        text = export_ics([series, child], now=NOW)
        lines = text.split("\r\n")
        assert lines.count("UID:series-1") == 2
        assert "RECURRENCE-ID:20250311T090000Z" in lines

        result = parse_ics(text, "cal-1")
        assert result.uids == ["series-1", "series-1|2025-03-11T09:00:00Z"]
        master, instance = result.drafts
        assert master.recurrence_rule == "RRULE:FREQ=DAILY\nEXDATE:20250311T090000"
        assert instance.recurrence_rule is None
        assert instance.start_at == at(11, 14)

        events = [Event(id=uid, **draft.model_dump()) for draft, uid in zip(result.drafts, result.uids)]
        starts = sorted(e.start_at for e in expand_all(events, at(10, 0), at(13, 0)))
        assert starts == [at(10, 9), at(11, 14), at(12, 9)]

    def test_cancelled_child_becomes_exdate(self, series, make_event, at):
        cancelled = make_event(
            "exc-9", day=11, parent_event_id="series-1",
            occurrence_start_at=at(11, 9), status="CANCELED",
        )
        text = export_ics([series, cancelled], now=NOW)
        lines = text.split("\r\n")
        assert lines.count("BEGIN:VEVENT") == 1
        assert "EXDATE:20250311T090000Z" in lines
        rule = parse_ics(text, "cal-1").drafts[0].recurrence_rule
        assert rule == "RRULE:FREQ=DAILY\nEXDATE:20250311T090000"

    def test_local_series_keeps_its_zone(self, make_event, at):
        event = make_event("zrh", timezone="Europe/Zurich", recurrence_rule="FREQ=WEEKLY")
        text = export_ics([event], now=NOW)
        assert "DTSTART;TZID=Europe/Zurich:20250310T100000" in text.split("\r\n")
        draft = parse_ics(text, "cal-1").drafts[0]
        assert draft.timezone == "Europe/Zurich"
        assert draft.start_at == at(10, 9)


class TestModifiedInstanceImport:
    def test_cancelled_instance_only_excludes_the_slot(self):
        text = "\r\n".join(
            [
                "BEGIN:VCALENDAR",
                "BEGIN:VEVENT",
                "UID:weekly",
                "DTSTART:20250310T090000Z",
                "DTEND:20250310T100000Z",
                "SUMMARY:Weekly",
                "RRULE:FREQ=WEEKLY",
                "END:VEVENT",
                "BEGIN:VEVENT",
                "UID:weekly",
                "RECURRENCE-ID:20250317T090000Z",
                "DTSTART:20250317T090000Z",
                "DTEND:20250317T100000Z",
                "SUMMARY:Weekly",
                "STATUS:CANCELLED",
                "END:VEVENT",
                "END:VCALENDAR",
                "",
            ]
        )
        result = parse_ics(text, "cal-1")
        assert result.uids == ["weekly"]
        assert result.drafts[0].recurrence_rule == "RRULE:FREQ=WEEKLY\nEXDATE:20250317T090000"
