"""
Unit tests for the query service (public read surface).

Query contract:
- fast variants only read the in-memory index
- blocking variants build the index from the stored snapshot
- nothing cached / nothing selected -> empty list, never an error
- local filters are applied to every result
"""

import unittest
from datetime import date
from unittest.mock import patch

from _factories import GROUP_10, TEACHER_5, BareStore, FakeRemote, FakeSelection, make_event

from schedcache.codec import encode_snapshot
from schedcache.model import EntityKind, Filters
from schedcache.prefs import FiltersStorage, HiddenSubjectsStorage
from schedcache.query import QueryService
from schedcache.sync import SyncOutcome
from schedcache.storage import MemoryStore, data_key, day_key

MARCH = (2026, 3)
APRIL = (2026, 4)


class QueryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryStore()
        self.prefs = MemoryStore()
        self.selection = FakeSelection(GROUP_10)
        self.remote = FakeRemote()
        self.filters = FiltersStorage(self.prefs)
        self.hidden = HiddenSubjectsStorage(self.prefs)
        self.service = QueryService(
            self.store,
            self.remote,
            self.selection,
            filters=self.filters,
            hidden=self.hidden,
            today=lambda: date(2026, 3, 2),
        )

    def put_snapshot(self, selector, month, events) -> None:
        self.store.put_string(data_key(selector, month), encode_snapshot(events))


class TestDateQueries(QueryTestCase):
    def test_nothing_cached_returns_empty(self) -> None:
        self.assertEqual(self.service.events_for_date(date(2026, 3, 2)), [])
        self.assertEqual(self.service.events_for_date_fast(date(2026, 3, 2)), [])
        self.assertEqual(self.service.count(date(2026, 3, 2)), 0)

    def test_no_selection_returns_empty(self) -> None:
        self.put_snapshot(GROUP_10, MARCH, [make_event(1)])
        self.selection.selector = None
        self.assertEqual(self.service.events_for_date(date(2026, 3, 2)), [])
        self.assertEqual(self.service.events_for_week(date(2026, 3, 2)), [])

    def test_fast_path_is_index_only(self) -> None:
        self.put_snapshot(GROUP_10, MARCH, [make_event(1)])
        day = date(2026, 3, 2)
        self.assertEqual(self.service.events_for_date_fast(day), [])

        self.assertEqual([ev.id for ev in self.service.events_for_date(day)], [1])
        self.assertEqual([ev.id for ev in self.service.events_for_date_fast(day)], [1])

    def test_blocking_read_falls_back_to_snapshot(self) -> None:
        self.put_snapshot(GROUP_10, MARCH, [make_event(2, pair=2), make_event(1, pair=1), make_event(3, "2026-03-05T08:00")])
        with patch.object(self.service.cache, "get_or_build", side_effect=RuntimeError("index broken")):
            with self.assertLogs("schedcache.query", level="ERROR"):
                events = self.service.events_for_date(date(2026, 3, 2))
        self.assertEqual([ev.id for ev in events], [1, 2])

    def test_count_matches_events(self) -> None:
        self.put_snapshot(GROUP_10, MARCH, [make_event(1), make_event(2, pair=2)])
        self.assertEqual(self.service.count(date(2026, 3, 2)), 2)
        self.assertEqual(self.service.count(date(2026, 3, 3)), 0)

    def test_hidden_subjects_are_removed(self) -> None:
        self.put_snapshot(GROUP_10, MARCH, [make_event(1, subject_id=100), make_event(2, subject_id=200)])
        self.hidden.add(200)
        self.assertEqual([ev.id for ev in self.service.events_for_date(date(2026, 3, 2))], [1])

    def test_group_filters_apply_only_to_groups(self) -> None:
        events = [make_event(1, category="Лк"), make_event(2, category="Лб", pair=2)]
        self.put_snapshot(GROUP_10, MARCH, events)
        self.put_snapshot(TEACHER_5, MARCH, events)
        only_lectures = Filters(categories=frozenset({"Лк"}))
        self.filters.set_filters(EntityKind.GROUP, 10, only_lectures)
        self.filters.set_filters(EntityKind.TEACHER, 5, only_lectures)

        self.assertEqual([ev.id for ev in self.service.events_for_date(date(2026, 3, 2))], [1])
        self.selection.selector = TEACHER_5
        self.assertEqual([ev.id for ev in self.service.events_for_date(date(2026, 3, 2))], [1, 2])


class TestWeekQueries(QueryTestCase):
    def test_week_straddling_two_months(self) -> None:
        spanning = make_event(5, "2026-03-31T10:00", "2026-04-01T12:00", pair=3)
        self.put_snapshot(GROUP_10, MARCH, [make_event(1, "2026-03-28T08:00"), make_event(2, "2026-03-30T08:00"), spanning])
        self.put_snapshot(GROUP_10, APRIL, [spanning, make_event(3, "2026-04-02T08:00"), make_event(4, "2026-04-06T08:00")])

        week = self.service.events_for_week(date(2026, 3, 30))
        self.assertEqual([ev.id for ev in week], [2, 3, 5])

    def test_week_is_idempotent(self) -> None:
        self.put_snapshot(GROUP_10, MARCH, [make_event(i, f"2026-03-0{2 + i % 5}T08:00", pair=i % 3) for i in range(1, 10)])
        first = self.service.events_for_week(date(2026, 3, 2))
        second = self.service.events_for_week(date(2026, 3, 2))
        self.assertEqual(first, second)
        self.assertEqual(len(first), 9)

    def test_fast_week_needs_warm_index(self) -> None:
        self.put_snapshot(GROUP_10, MARCH, [make_event(1)])
        self.assertEqual(self.service.events_for_week_fast(date(2026, 3, 2)), [])
        self.service.events_for_week(date(2026, 3, 2))
        self.assertEqual([ev.id for ev in self.service.events_for_week_fast(date(2026, 3, 2))], [1])

    def test_multi_day_event_overlapping_window_start(self) -> None:
        self.put_snapshot(GROUP_10, MARCH, [make_event(1, "2026-03-01T08:00", "2026-03-03T18:00")])
        self.assertEqual([ev.id for ev in self.service.events_for_week(date(2026, 3, 2))], [1])


class TestInvalidation(QueryTestCase):
    def test_entity_switch_drops_old_keys_and_whole_index(self) -> None:
        self.put_snapshot(GROUP_10, MARCH, [make_event(1)])
        self.store.put_string(day_key(GROUP_10, MARCH), "2026-03-02")
        self.put_snapshot(GROUP_10, APRIL, [make_event(2, "2026-04-01T08:00")])
        self.put_snapshot(TEACHER_5, MARCH, [make_event(3)])

        self.service.events_for_date(date(2026, 3, 2))
        self.selection.selector = TEACHER_5
        self.service.events_for_date(date(2026, 3, 2))
        self.assertEqual(len(self.service.cache), 2)

        self.selection.selector = GROUP_10
        self.service.switch_active(TEACHER_5)

        self.assertEqual(self.selection.get_active_selector(), TEACHER_5)
        self.assertEqual(len(self.service.cache), 0)
        self.assertEqual(self.store.keys(), [data_key(TEACHER_5, MARCH)])

    def test_clear_cache_for_explicit_previous(self) -> None:
        self.put_snapshot(GROUP_10, MARCH, [make_event(1)])
        self.selection.selector = TEACHER_5
        self.service.clear_cache_for_entity_change(GROUP_10)
        self.assertEqual(self.store.keys(), [])

    def test_clear_all(self) -> None:
        self.put_snapshot(GROUP_10, MARCH, [make_event(1)])
        self.service.events_for_date(date(2026, 3, 2))
        self.service.clear_all()
        self.assertEqual(self.store.keys(), [])
        self.assertEqual(self.service.events_for_date_fast(date(2026, 3, 2)), [])

    def test_clear_stamp_for_month(self) -> None:
        self.remote.events = [make_event(1)]
        self.service.ensure_month_cached(MARCH)
        self.service.ensure_month_cached(MARCH)
        self.assertEqual(len(self.remote.calls), 1)

        self.service.clear_stamp_for_month(MARCH)
        self.assertIsNone(self.store.get_string(day_key(GROUP_10, MARCH)))
        self.service.ensure_month_cached(MARCH)
        self.assertEqual(len(self.remote.calls), 2)

    def test_sync_then_query_sees_new_data(self) -> None:
        self.remote.events = [make_event(1), make_event(2, pair=2)]
        self.service.ensure_month_cached(MARCH)
        self.assertEqual([ev.id for ev in self.service.events_for_date_fast(date(2026, 3, 2))], [1, 2])


    def test_switch_during_fetch_leaves_no_old_keys(self) -> None:
        self.remote.events = [make_event(1)]
        self.remote.on_fetch = lambda: self.service.switch_active(TEACHER_5)

        result = self.service.ensure_month_cached(MARCH)

        self.assertIs(result.outcome, SyncOutcome.STALE)
        self.assertEqual(self.selection.get_active_selector(), TEACHER_5)
        self.assertEqual([k for k in self.store.keys() if "group_10" in k], [])
        self.assertEqual(len(self.service.cache), 0)

    def test_clear_all_during_fetch_keeps_store_empty(self) -> None:
        self.remote.events = [make_event(1)]
        self.remote.on_fetch = self.service.clear_all

        result = self.service.ensure_month_cached(MARCH)

        self.assertIs(result.outcome, SyncOutcome.STALE)
        self.assertEqual(self.store.keys(), [])
        # the next call fetches again
        self.remote.on_fetch = None
        self.assertIs(self.service.ensure_month_cached(MARCH).outcome, SyncOutcome.COMMITTED)


class TestBareStore(unittest.TestCase):
    """The service only needs the five basic store operations."""

    def setUp(self) -> None:
        self.store = BareStore()
        self.selection = FakeSelection(GROUP_10)
        self.remote = FakeRemote([make_event(1)])
        self.service = QueryService(self.store, self.remote, self.selection, today=lambda: date(2026, 3, 2))

    def test_sync_query_and_clear_stamp(self) -> None:
        self.assertIs(self.service.ensure_month_cached(MARCH).outcome, SyncOutcome.COMMITTED)
        self.assertEqual(self.store.keys(), [data_key(GROUP_10, MARCH), day_key(GROUP_10, MARCH)])
        self.assertEqual([ev.id for ev in self.service.events_for_date(date(2026, 3, 2))], [1])

        self.service.clear_stamp_for_month(MARCH)
        self.assertIsNone(self.store.get_string(day_key(GROUP_10, MARCH)))
        self.assertIs(self.service.ensure_month_cached(MARCH).outcome, SyncOutcome.UNCHANGED)

    def test_switch_and_clear_all(self) -> None:
        self.service.ensure_month_cached(MARCH)
        self.service.switch_active(TEACHER_5)
        self.assertEqual(self.store.keys(), [])

        self.service.ensure_month_cached(MARCH)
        self.service.clear_all()
        self.assertEqual(self.store.keys(), [])


class TestSubjectNames(QueryTestCase):
    def test_collects_names_from_all_snapshots(self) -> None:
        self.put_snapshot(GROUP_10, MARCH, [make_event(1, subject_id=100, title="Mathematics")])
        self.put_snapshot(TEACHER_5, APRIL, [make_event(2, "2026-04-01T08:00", subject_id=200, title="Physics")])
        self.store.put_string("data_group_11_2026-03", "broken")
        self.store.put_string("day_group_10_2026-03", "2026-03-02")

        self.assertEqual(self.service.subject_names(), {100: "Mathematics", 200: "Physics"})


if __name__ == "__main__":
    unittest.main()
