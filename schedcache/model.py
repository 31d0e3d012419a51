"""
Central data model definitions used across the project.

This module defines the canonical structure of schedule objects so that:
- the API client, the snapshot codec and the cache share the same field names
- events are immutable once built (safe to share between threads)
- cache keys are derived in exactly one place
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, FrozenSet, List, Optional, Tuple


class EntityKind(enum.Enum):
    """
    Which kind of schedule is being viewed.

    The value is the string used in cache keys and API paths.
    Rooms are called "auditorium" by the remote API.
    """

    GROUP = "group"
    TEACHER = "teacher"
    ROOM = "auditorium"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> "EntityKind":
        """
        Parse a kind from user input or storage ("room" is accepted as an alias).
        Raises ValueError for anything else.
        """
        text = (value or "").strip().lower()
        if text == "room":
            return cls.ROOM
        return cls(text)


@dataclass(frozen=True)
class EntitySelector:
    kind: EntityKind
    id: int

    def cache_key(self) -> str:
        return f"{self.kind}_{self.id}"

    def month_key(self, month: Tuple[int, int]) -> str:
        return f"{self.cache_key()}_{month_label(month)}"


@dataclass(frozen=True)
class Room:
    id: int
    name: str


@dataclass(frozen=True)
class Subject:
    id: int
    title: str
    brief: str

    @property
    def sort_title(self) -> str:
        return self.brief or self.title


@dataclass(frozen=True)
class GroupRef:
    id: int
    name: str


@dataclass(frozen=True)
class TeacherRef:
    id: int
    full_name: str
    short_name: str


@dataclass(frozen=True)
class Event:
    """
    One concrete teaching event (a class in a given slot).

    start/end are naive local wall-clock datetimes. An event may cover
    several calendar days.
    """

    id: int
    start: datetime
    end: datetime
    category: str
    room: Room
    pair_number: int
    subject: Subject
    groups: Tuple[GroupRef, ...] = ()
    teachers: Tuple[TeacherRef, ...] = ()

    @property
    def teacher_ids(self) -> List[int]:
        return [t.id for t in self.teachers]

    @property
    def group_ids(self) -> List[int]:
        return [g.id for g in self.groups]

    def covers(self, day: date) -> bool:
        return self.start.date() <= day <= self.end.date()


@dataclass(frozen=True)
class MonthCacheEntry:
    """
    In-memory, date-indexed view of one month snapshot.

    Never mutated after construction; the cache replaces entries whole.
    """

    month: Tuple[int, int]
    events: Tuple[Event, ...]
    by_date: Dict[date, Tuple[Event, ...]] = field(default_factory=dict)

    def events_on(self, day: date) -> Tuple[Event, ...]:
        return self.by_date.get(day, ())


@dataclass(frozen=True)
class Filters:
    """
    Saved per-schedule filter preferences. Every non-empty set is a whitelist.
    """

    categories: FrozenSet[str] = frozenset()
    teacher_ids: FrozenSet[int] = frozenset()
    room_ids: FrozenSet[int] = frozenset()
    subject_ids: FrozenSet[int] = frozenset()

    def is_empty(self) -> bool:
        return not (self.categories or self.teacher_ids or self.room_ids or self.subject_ids)


def month_of(day: date) -> Tuple[int, int]:
    return (day.year, day.month)


def month_label(month: Tuple[int, int]) -> str:
    """Return 'yyyy-MM' for a (year, month) pair."""
    year, mon = month
    return f"{year:04d}-{mon:02d}"


def parse_month(text: str) -> Optional[Tuple[int, int]]:
    """
    Parse 'yyyy-MM' into (year, month). Returns None for invalid input.
    """
    parts = (text or "").strip().split("-")
    if len(parts) != 2:
        return None
    try:
        year, mon = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (1 <= mon <= 12) or year < 1:
        return None
    return (year, mon)
