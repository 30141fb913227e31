"""Tests for the sync engine against in-memory collaborators."""

import asyncio

import pytest

from calendar_scheduler.interaction.drag import CreateIntent, UpdateTimeIntent
from calendar_scheduler.models.event import (
    AttendeeResponse,
    BusyInterval,
    Event,
    EventDraft,
    event_key,
)
from calendar_scheduler.readers.base import CalendarReader
from calendar_scheduler.recurrence.resolver import EditScope
from calendar_scheduler.recurrence.rules import expand_occurrences
from calendar_scheduler.sync.engine import EventSyncEngine
from calendar_scheduler.utils.exceptions import (
    CalendarSchedulerError,
    CalendarWriteError,
    EditScopeRequiredError,
    RecurrenceRuleError,
    TransportError,
)
from calendar_scheduler.writers.base import CalendarWriter


class FakeReader(CalendarReader):
    def __init__(self, events=(), busy=()):
        self.events = list(events)
        self.busy = list(busy)
        self.searches = []

    def list_calendars(self):
        return []

    def list_events(self, range_start, range_end, context_filters=(), calendar_ids=None):
        return list(self.events)

    def search_events(self, text, range_start=None, range_end=None, context_filters=()):
        self.searches.append((text, range_start, range_end))
        return [e for e in self.events if text.lower() in e.title.lower()]

    def free_busy(self, range_start, range_end, calendar_ids):
        return list(self.busy)

    def check_conflicts(self, range_start, range_end, calendar_ids=()):
        return []


class FakeWriter(CalendarWriter):
    """Echoes writes back as the server would, or fails every call."""

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []
        self.reply = None

    def _check(self, name, payload):
        self.calls.append((name, payload))
        if self.fail:
            raise CalendarWriteError(f"{name} failed: connection reset")

    def create_event(self, draft):
        self._check("create", draft)
        return Event(id="new-1", **draft.model_dump())

    def update_event(self, directive):
        self._check("update", directive)
        return self.reply

    def delete_event(self, directive):
        self._check("delete", directive)

    def rsvp(self, event_id, response):
        self._check("rsvp", response)
        return self.reply


def snapshot(store):
    return store.revision, [e.model_dump() for e in store.events()]


@pytest.fixture
def series(make_event):
    return make_event("series-1", recurrence_rule="FREQ=DAILY")


@pytest.fixture
def engine(make_event, series, at):
    reader = FakeReader([make_event("evt-1"), *expand_occurrences(series, at(10, 0), at(13, 0))])
    engine = EventSyncEngine(reader, FakeWriter())
    asyncio.run(engine.load_range(at(10, 0), at(13, 0)))
    return engine


class TestLoad:
    def test_load_range_fills_store(self, engine):
        assert len(engine.store) == 4
        assert engine.store.range_start is not None

    def test_load_range_can_expand_roots(self, series, at):
        engine = EventSyncEngine(FakeReader([series]))
        asyncio.run(engine.load_range(at(10, 0), at(12, 0), expand=True))
        assert len(engine.store.series("series-1")) == 2


class TestWrites:
    def test_create_adds_confirmed_event(self, engine, at):
        draft = engine.draft_from_intent(CreateIntent(at(10, 14), at(10, 15)), "cal-1", "Review")
        event = asyncio.run(engine.create_event(draft))
        assert engine.store.get("new-1") == event

    def test_create_with_bad_rule_sends_nothing(self, engine, at):
        draft = EventDraft(
            calendar_id="cal-1", title="x", start_at=at(10, 14), end_at=at(10, 15),
            recurrence_rule="FREQ=WHENEVER",
        )
        with pytest.raises(RecurrenceRuleError):
            asyncio.run(engine.create_event(draft))
        assert engine.writer.calls == []

    def test_create_series_is_expanded_over_range(self, engine, at):
        draft = EventDraft(
            calendar_id="cal-1", title="Daily", start_at=at(10, 16), end_at=at(10, 17),
            recurrence_rule="FREQ=DAILY",
        )
        asyncio.run(engine.create_event(draft))
        assert len(engine.store.series("new-1")) == 3

    def test_failed_update_leaves_store_unchanged(self, engine, at):
        engine.writer.fail = True
        before = snapshot(engine.store)
        event = engine.store.get("evt-1")
        with pytest.raises(TransportError):
            asyncio.run(engine.move_event(event, at(10, 10), at(10, 11)))
        assert snapshot(engine.store) == before

    def test_update_one_off(self, engine, make_event, at):
        engine.writer.reply = make_event("evt-1", (10, 0), (11, 0))
        asyncio.run(engine.move_event(engine.store.get("evt-1"), at(10, 10), at(10, 11)))
        assert engine.store.get("evt-1").start_at == at(10, 10)
        directive = engine.writer.calls[0][1]
        assert directive.changes == {"start_at": at(10, 10), "end_at": at(10, 11)}

    def test_recurring_update_without_scope_sends_nothing(self, engine):
        occurrence = engine.store.series("series-1")[0]
        with pytest.raises(EditScopeRequiredError):
            asyncio.run(engine.update_event(occurrence, {"title": "x"}))
        assert engine.writer.calls == []

    def test_occurrence_update_replaces_occurrence(self, engine, make_event, at):
        occurrence = engine.store.series("series-1")[1]
        child = make_event(
            "exc-1", (11, 0), (12, 0), day=11,
            parent_event_id="series-1", occurrence_start_at=at(11, 9),
        )
        engine.writer.reply = child
        asyncio.run(
            engine.update_event(
                occurrence, {"start_at": at(11, 11), "end_at": at(11, 12)}, EditScope.THIS_OCCURRENCE
            )
        )
        assert occurrence.key not in engine.store
        assert engine.store.get(child.key) == child
        assert len(engine.store.series("series-1")) == 2
        assert engine.writer.calls[0][1].to_update_payload()["editMode"] == "THIS"

    def test_series_update_re_expands(self, engine, series):
        engine.writer.reply = series.model_copy(update={"title": "Renamed series"})
        occurrence = engine.store.series("series-1")[0]
        asyncio.run(engine.update_event(occurrence, {"title": "Renamed series"}, EditScope.ENTIRE_SERIES))
        titles = {e.title for e in engine.store.series("series-1")}
        assert titles == {"Renamed series"}
        assert len(engine.store.series("series-1")) == 3

    def test_apply_drag_intent(self, engine, make_event, at):
        engine.writer.reply = make_event("evt-1", (10, 0), (11, 0))
        intent = UpdateTimeIntent("evt-1", at(10, 10), at(10, 11))
        asyncio.run(engine.apply_intent(intent))
        assert engine.store.get("evt-1").end_at == at(10, 11)

    def test_apply_intent_for_unloaded_event(self, engine, at):
        with pytest.raises(KeyError):
            asyncio.run(engine.apply_intent(UpdateTimeIntent("gone", at(10, 10), at(10, 11))))

    def test_occurrence_delete_keeps_series(self, engine):
        occurrence = engine.store.series("series-1")[0]
        asyncio.run(engine.delete_event(occurrence, EditScope.THIS_OCCURRENCE))
        assert occurrence.key not in engine.store
        assert len(engine.store.series("series-1")) == 2

    def test_series_delete_removes_all(self, engine):
        occurrence = engine.store.series("series-1")[0]
        asyncio.run(engine.delete_event(occurrence, EditScope.ENTIRE_SERIES))
        assert engine.store.series("series-1") == []

    def test_failed_delete_leaves_store_unchanged(self, engine):
        engine.writer.fail = True
        before = snapshot(engine.store)
        with pytest.raises(CalendarWriteError):
            asyncio.run(engine.delete_event(engine.store.get("evt-1")))
        assert snapshot(engine.store) == before

    def test_rsvp(self, engine, make_event):
        engine.writer.reply = make_event("evt-1", title="Accepted")
        asyncio.run(engine.rsvp("evt-1", AttendeeResponse.ACCEPTED))
        assert engine.store.get("evt-1").title == "Accepted"

    def test_read_only_session(self, make_event, at):
        engine = EventSyncEngine(FakeReader())
        with pytest.raises(CalendarSchedulerError):
            asyncio.run(engine.move_event(make_event("evt-1"), at(10, 10), at(10, 11)))


class TestSeriesWritesWithExceptions:
    @pytest.fixture
    def eleventh(self, engine, at):
        return engine.store.get(event_key("series-1", at(11, 9)))

    def rename_series(self, engine, series):
        engine.writer.reply = series.model_copy(update={"title": "Renamed"})
        occurrence = engine.store.series("series-1")[0]
        asyncio.run(engine.update_event(occurrence, {"title": "Renamed"}, EditScope.ENTIRE_SERIES))

    def test_series_update_keeps_exception_child(self, engine, series, make_event, at, eleventh):
        child = make_event(
            "child-1", (14, 0), (15, 0), day=11,
            parent_event_id="series-1", occurrence_start_at=at(11, 9),
        )
        engine.writer.reply = child
        asyncio.run(
            engine.update_event(
                eleventh, {"start_at": at(11, 14), "end_at": at(11, 15)}, EditScope.THIS_OCCURRENCE
            )
        )

        self.rename_series(engine, series)
        assert eleventh.key not in engine.store
        assert engine.store.get("child-1") == child
        assert [e.start_at.day for e in engine.store.series("series-1")] == [10, 12]

    def test_deleted_occurrence_stays_deleted(self, engine, series, at, eleventh):
        asyncio.run(engine.delete_event(eleventh, EditScope.THIS_OCCURRENCE))
        self.rename_series(engine, series)

        assert eleventh.key not in engine.store
        assert {e.title for e in engine.store.series("series-1")} == {"Renamed"}
        assert [e.start_at for e in engine.store.skipped()] == [at(11, 9)]

    def test_deleted_occurrence_is_free_time(self, engine, at, eleventh):
        asyncio.run(engine.delete_event(eleventh, EditScope.THIS_OCCURRENCE))
        assert engine.preflight(at(11, 9), at(11, 10)) == []
        assert engine.store.day_bucket(at(11, 0).date()) == []


class TestConflictsAndSearch:
    def test_preflight_reports_without_blocking(self, engine, at):
        conflicts = engine.preflight(at(10, 9, 30), at(10, 10, 30))
        assert sorted(c.event_id for c in conflicts) == ["evt-1", "series-1"]

    def test_preflight_excludes_moved_event(self, engine, at):
        conflicts = engine.preflight(at(10, 9, 30), at(10, 10, 30), exclude_event_id="evt-1")
        assert [c.event_id for c in conflicts] == ["series-1"]

    def test_preflight_includes_external_busy(self, engine, at):
        extra = BusyInterval(start=at(10, 14), end=at(10, 15), calendar_id="cal-2")
        assert engine.preflight(at(10, 14, 30), at(10, 16), busy=[extra]) == [extra]

    def test_free_busy_and_search(self, engine, at):
        engine.reader.busy = [BusyInterval(start=at(10, 8), end=at(10, 9))]
        assert len(asyncio.run(engine.free_busy(at(10, 0), at(11, 0), ["cal-2"]))) == 1
        found = asyncio.run(engine.search("event evt-1"))
        assert [e.id for e in found] == ["evt-1"]
        assert engine.reader.searches[0][1] == engine.store.range_start


class TestSessionHelpers:
    def test_drag_controller_previews_against_loaded_events(self, engine, geometry, day):
        controller = engine.drag_controller(geometry, day)
        controller.pointer_down(200)  # 11:20 on empty grid
        controller.pointer_move(30)  # 08:30
        assert controller.preview_conflicting
        assert controller.pointer_up() is not None

    def test_debounced_search_uses_reader(self, engine):
        results = []

        async def scenario():
            search = engine.debounced_search(lambda text, found: results.append(found), delay=0.01)
            search.submit("evt-1")
            await search.drain()

        asyncio.run(scenario())
        assert [[e.id for e in found] for found in results] == [["evt-1"]]
