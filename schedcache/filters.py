"""
Local filter predicate, applied after every cache lookup.

- hidden subjects are always removed
- teacher and room schedules ignore saved filters
- group schedules apply each non-empty whitelist (categories, teachers,
  rooms, subjects); an empty set leaves that dimension unfiltered
"""

from __future__ import annotations

from typing import AbstractSet, Iterable, List, Optional

from schedcache.model import EntityKind, EntitySelector, Event, Filters


def event_passes(
    ev: Event,
    selector: Optional[EntitySelector],
    filters: Filters,
    hidden_subject_ids: AbstractSet[int],
) -> bool:
    if ev.subject.id in hidden_subject_ids:
        return False
    if selector is None or selector.kind is not EntityKind.GROUP:
        return True

    if filters.categories and ev.category not in filters.categories:
        return False
    # any listed teacher is enough
    if filters.teacher_ids and not any(t.id in filters.teacher_ids for t in ev.teachers):
        return False
    if filters.room_ids and ev.room.id not in filters.room_ids:
        return False
    if filters.subject_ids and ev.subject.id not in filters.subject_ids:
        return False
    return True


def apply_filters(
    events: Iterable[Event],
    selector: Optional[EntitySelector],
    filters: Filters,
    hidden_subject_ids: AbstractSet[int],
) -> List[Event]:
    """Keep input order; drop events that fail the predicate."""
    return [ev for ev in events if event_passes(ev, selector, filters, hidden_subject_ids)]
