"""
Unit tests for the local filter predicate.
"""

import unittest

from _factories import GROUP_10, TEACHER_5, make_event

from schedcache.filters import apply_filters, event_passes
from schedcache.model import Filters


class TestFilters(unittest.TestCase):
    def test_hidden_subject_is_always_removed(self) -> None:
        ev = make_event(1, subject_id=100)
        self.assertFalse(event_passes(ev, TEACHER_5, Filters(), {100}))
        self.assertFalse(event_passes(ev, GROUP_10, Filters(), {100}))

    def test_teacher_schedule_ignores_saved_filters(self) -> None:
        ev = make_event(1, category="Лб")
        only_lectures = Filters(categories=frozenset({"Лк"}))
        self.assertTrue(event_passes(ev, TEACHER_5, only_lectures, set()))
        self.assertFalse(event_passes(ev, GROUP_10, only_lectures, set()))

    def test_empty_sets_do_not_filter(self) -> None:
        self.assertTrue(event_passes(make_event(1), GROUP_10, Filters(), set()))

    def test_each_whitelist_applies(self) -> None:
        ev = make_event(1, category="Лк", room_id=7, subject_id=100, teacher_ids=(1, 2))
        self.assertTrue(event_passes(ev, GROUP_10, Filters(teacher_ids=frozenset({2})), set()))
        self.assertFalse(event_passes(ev, GROUP_10, Filters(teacher_ids=frozenset({3})), set()))
        self.assertFalse(event_passes(ev, GROUP_10, Filters(room_ids=frozenset({8})), set()))
        self.assertFalse(event_passes(ev, GROUP_10, Filters(subject_ids=frozenset({101})), set()))
        combined = Filters(categories=frozenset({"Лк"}), room_ids=frozenset({7}), subject_ids=frozenset({100}))
        self.assertTrue(event_passes(ev, GROUP_10, combined, set()))

    def test_apply_filters_keeps_order(self) -> None:
        events = [make_event(3), make_event(1, subject_id=5), make_event(2)]
        out = apply_filters(events, GROUP_10, Filters(), {5})
        self.assertEqual([ev.id for ev in out], [3, 2])


if __name__ == "__main__":
    unittest.main()
