"""
Query service: the public surface used by the UI and the notifier.

    ensure_month_cached(month)        sync (may hit the network)
    events_for_date_fast(day)         index only, never blocks on disk
    events_for_week_fast(start)       index only, never blocks on disk
    events_for_date(day)              builds the index if cold
    events_for_week(start)            builds the index if cold
    count(day)
    clear_all()
    clear_cache_for_entity_change(previous)
    clear_stamp_for_month(month)

Every read applies the local filters (hidden subjects, and saved filters for
group schedules). No read method raises: missing data, a missing selection or
an unexpected failure all degrade to an empty or best-effort list.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from schedcache.cache import MonthCache, load_snapshot
from schedcache.codec import decode_snapshot
from schedcache.errors import SnapshotDecodeError
from schedcache.filters import apply_filters
from schedcache.model import EntityKind, EntitySelector, Event, Filters, MonthCacheEntry, month_of
from schedcache.month_index import sort_events
from schedcache.storage import MemoryStore, remove_entity_keys, snapshot_keys
from schedcache.sync import SyncOrchestrator, SyncResult

_LOGGER = logging.getLogger(__name__)


class QueryService:
    """
    Owns the in-memory month cache and the sync orchestrator for one process.

    Collaborators (duck-typed):
    - store:     durable key -> string store (event cache)
    - remote:    fetch_schedule(...), has_connectivity()
    - selection: get_active_selector()
    - filters:   get_filters(kind, id) -> Filters
    - hidden:    get_hidden_subject_ids() -> set[int]
    """

    def __init__(
        self,
        store: MemoryStore,
        remote,
        selection,
        filters=None,
        hidden=None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self.selection = selection
        self.filters = filters
        self.hidden = hidden
        self.cache = MonthCache(store)
        self.sync = SyncOrchestrator(store, self.cache, remote, selection, today=today)

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def ensure_month_cached(self, month: Tuple[int, int]) -> SyncResult:
        return self.sync.ensure_month_cached(month)

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def _local_filter(self, events: Iterable[Event], selector: EntitySelector) -> List[Event]:
        hidden = self.hidden.get_hidden_subject_ids() if self.hidden is not None else set()
        filters = Filters()
        if selector.kind is EntityKind.GROUP and self.filters is not None:
            filters = self.filters.get_filters(selector.kind, selector.id)
        return apply_filters(events, selector, filters, hidden)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _entry(self, selector: EntitySelector, month: Tuple[int, int], blocking: bool) -> Optional[MonthCacheEntry]:
        if blocking:
            return self.cache.get_or_build(selector, month)
        return self.cache.get(selector, month)

    def events_for_date_fast(self, day: date) -> List[Event]:
        selector = self.selection.get_active_selector()
        if selector is None:
            return []
        entry = self.cache.get(selector, month_of(day))
        if entry is None:
            return []
        return self._local_filter(entry.events_on(day), selector)

    def events_for_date(self, day: date) -> List[Event]:
        selector = self.selection.get_active_selector()
        if selector is None:
            return []

        fast = self.cache.get(selector, month_of(day))
        if fast is not None:
            return self._local_filter(fast.events_on(day), selector)

        try:
            entry = self.cache.get_or_build(selector, month_of(day))
            if entry is None:
                return []
            return self._local_filter(entry.events_on(day), selector)
        except Exception:
            _LOGGER.exception("Index build failed for %s; reading snapshot directly", day)

        try:
            events = load_snapshot(self.store, selector, month_of(day)) or []
            return self._local_filter(sort_events(ev for ev in events if ev.covers(day)), selector)
        except Exception:
            _LOGGER.exception("Snapshot fallback failed for %s", day)
            return []

    def _events_for_week(self, start: date, blocking: bool) -> List[Event]:
        selector = self.selection.get_active_selector()
        if selector is None:
            return []

        end = start + timedelta(days=6)
        months = [month_of(start)]
        if month_of(end) != months[0]:
            months.append(month_of(end))

        seen: Dict[int, Event] = {}
        for month in months:
            entry = self._entry(selector, month, blocking)
            if entry is None:
                continue
            for ev in entry.events:
                # an event spanning the month boundary can be in both snapshots
                if ev.id not in seen:
                    seen[ev.id] = ev

        in_window = [ev for ev in seen.values() if not (ev.end.date() < start or ev.start.date() > end)]
        return self._local_filter(sort_events(in_window), selector)

    def events_for_week_fast(self, start: date) -> List[Event]:
        return self._events_for_week(start, blocking=False)

    def events_for_week(self, start: date) -> List[Event]:
        try:
            return self._events_for_week(start, blocking=True)
        except Exception:
            _LOGGER.exception("Week query failed for %s", start)
            return []

    def events_for_month(self, month: Tuple[int, int]) -> List[Event]:
        """All (filtered) events of one cached month, in index order."""
        selector = self.selection.get_active_selector()
        if selector is None:
            return []
        entry = self.cache.get_or_build(selector, month)
        if entry is None:
            return []
        return self._local_filter(entry.events, selector)

    def count(self, day: date) -> int:
        return len(self.events_for_date(day))

    def subject_names(self) -> Dict[int, str]:
        """
        Subject id -> title, collected from every stored snapshot
        (all schedules, all months). First title seen wins.
        """
        names: Dict[int, str] = {}
        for key in snapshot_keys(self.store.keys()):
            raw = self.store.get_string(key)
            if raw is None:
                continue
            try:
                events = decode_snapshot(raw)
            except SnapshotDecodeError as e:
                _LOGGER.debug("Skipping %s while collecting subject names: %s", key, e)
                continue
            for ev in events:
                names.setdefault(ev.subject.id, ev.subject.title)
        return names

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def clear_all(self) -> None:
        """Drop every snapshot, every stamp and the whole in-memory index."""
        # bump the cache generation first so an in-flight sync drops its result
        self.cache.clear()
        self.store.clear_all()
        _LOGGER.info("Event cache cleared")

    def clear_cache_for_entity_change(self, previous: Optional[EntitySelector] = None) -> None:
        """
        Forget the stored data of the schedule being switched away from and
        clear the entire in-memory index.

        `previous` defaults to the currently active selection, i.e. call this
        before the new selection is saved (or use switch_active()).
        """
        target = previous if previous is not None else self.selection.get_active_selector()
        self.cache.clear()
        if target is not None:
            removed = remove_entity_keys(self.store, target)
            _LOGGER.info("Removed %s cached keys of %s %s", removed, target.kind, target.id)

    def switch_active(self, selector: EntitySelector) -> None:
        """Make `selector` the active schedule, invalidating the previous one."""
        previous = self.selection.get_active_selector()
        if previous == selector:
            return
        self.clear_cache_for_entity_change(previous)
        self.selection.set_active(selector)

    def clear_stamp_for_month(self, month: Tuple[int, int]) -> None:
        selector = self.selection.get_active_selector()
        if selector is None:
            return
        self.sync.clear_stamp(selector, month)
