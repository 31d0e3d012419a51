"""
Unit tests for the diff engine.

Equality is full field equality; teacher and group id lists are compared
in order, so reordering counts as a change.
"""

import unittest

from _factories import make_event

from schedcache.diff import diff_events


class TestDiff(unittest.TestCase):
    def test_both_empty_is_empty_report(self) -> None:
        report = diff_events([], [])
        self.assertFalse(report.has_changes)
        self.assertEqual((report.added, report.removed, report.changed), (0, 0, 0))
        self.assertEqual(report.details, [])

    def test_identical_lists_have_no_changes(self) -> None:
        old = [make_event(1), make_event(2, pair=2)]
        new = [make_event(2, pair=2), make_event(1)]
        self.assertFalse(diff_events(old, new).has_changes)

    def test_added_event(self) -> None:
        old = [make_event(1, pair=1)]
        new = [make_event(1, pair=1), make_event(2, pair=2)]
        report = diff_events(old, new)
        self.assertTrue(report.has_changes)
        self.assertEqual((report.added, report.removed, report.changed), (1, 0, 0))
        self.assertTrue(report.details[0].startswith("added #2"))

    def test_removed_event(self) -> None:
        report = diff_events([make_event(1), make_event(2)], [make_event(1)])
        self.assertEqual((report.added, report.removed, report.changed), (0, 1, 0))

    def test_changed_event_names_fields(self) -> None:
        report = diff_events([make_event(1, room_id=7)], [make_event(1, room_id=8, pair=3)])
        self.assertEqual(report.changed, 1)
        self.assertIn("room", report.details[0])
        self.assertIn("pair_number", report.details[0])

    def test_teacher_reorder_counts_as_change(self) -> None:
        report = diff_events([make_event(1, teacher_ids=(1, 2))], [make_event(1, teacher_ids=(2, 1))])
        self.assertTrue(report.has_changes)
        self.assertEqual(report.changed, 1)

    def test_group_reorder_counts_as_change(self) -> None:
        report = diff_events([make_event(1, group_ids=(10, 11))], [make_event(1, group_ids=(11, 10))])
        self.assertEqual(report.changed, 1)

    def test_details_are_capped(self) -> None:
        new = [make_event(i) for i in range(1, 61)]
        report = diff_events([], new)
        self.assertEqual(report.added, 60)
        self.assertEqual(len(report.details), 50)
        self.assertEqual(report.overflow, 10)


if __name__ == "__main__":
    unittest.main()
