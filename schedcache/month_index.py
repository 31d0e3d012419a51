"""
Month index builder.

Turns a flat event list into a date -> events map for one calendar month.
Multi-day events appear once per covered day, clipped to the month.

Every bucket uses the same total order:

    (pair number, start, subject brief-or-title, event id)

The UI relies on this order only, so it must not depend on input order.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Tuple

from schedcache.model import Event, MonthCacheEntry


def event_sort_key(ev: Event) -> Tuple[int, datetime, str, int]:
    return (ev.pair_number, ev.start, ev.subject.sort_title, ev.id)


def sort_events(events: Iterable[Event]) -> List[Event]:
    return sorted(events, key=event_sort_key)


def month_bounds(month: Tuple[int, int]) -> Tuple[date, date]:
    """Return (first day, last day) of a (year, month) pair."""
    year, mon = month
    last = calendar.monthrange(year, mon)[1]
    return date(year, mon, 1), date(year, mon, last)


def next_month(month: Tuple[int, int]) -> Tuple[int, int]:
    year, mon = month
    return (year + 1, 1) if mon == 12 else (year, mon + 1)


def month_window(month: Tuple[int, int]) -> Tuple[int, int]:
    """
    Epoch-second window of a month in the local time zone:
    first instant of day 1 .. last whole second before the next month starts.
    """
    first, _ = month_bounds(month)
    ny, nm = next_month(month)
    start = datetime(first.year, first.month, 1).astimezone()
    following = datetime(ny, nm, 1).astimezone()
    return int(start.timestamp()), int(following.timestamp()) - 1


def build_month_index(events: Iterable[Event], month: Tuple[int, int]) -> Dict[date, List[Event]]:
    """
    Build the date -> sorted events map for `month`.

    Events wholly outside the month are skipped.
    """
    first, last = month_bounds(month)
    buckets: Dict[date, List[Event]] = {}

    for ev in events:
        lo = max(ev.start.date(), first)
        hi = min(ev.end.date(), last)
        if lo > hi:
            continue
        day = lo
        while day <= hi:
            buckets.setdefault(day, []).append(ev)
            day += timedelta(days=1)

    for day in buckets:
        buckets[day].sort(key=event_sort_key)
    return buckets


def build_month_entry(events: Iterable[Event], month: Tuple[int, int]) -> MonthCacheEntry:
    """
    Build a complete, immutable MonthCacheEntry from a snapshot.
    """
    ordered = sort_events(events)
    index = build_month_index(ordered, month)
    return MonthCacheEntry(
        month=month,
        events=tuple(ordered),
        by_date={day: tuple(evs) for day, evs in index.items()},
    )
