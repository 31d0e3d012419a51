"""
Sync orchestrator.

ensure_month_cached(month) decides whether the active schedule's month must
be fetched again, fetches it, diffs it against the stored snapshot and
commits the result:

    no active entity       -> NO_ACTIVE_ENTITY (nothing happens)
    stamp == today         -> FRESH            (warm index, no network)
    no connectivity        -> NO_CONNECTIVITY  (stamp untouched, retry later)
    fetch/parse error      -> FAILED           (snapshot + stamp untouched)
    diff has changes       -> COMMITTED        (snapshot + stamp written, index rebuilt)
    diff has no changes    -> UNCHANGED        (stamp written, index warmed)
    cache cleared or active schedule switched during the fetch
                           -> STALE            (nothing kept for the old schedule)

The store is only used through get_string, put_string and
remove_keys_with_prefix.

Calls for the same (entity, month) are serialised, so a burst of callers
results in one fetch; everyone after the first sees today's stamp.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional, Tuple

import requests

from schedcache.cache import MonthCache, load_snapshot
from schedcache.codec import encode_snapshot
from schedcache.diff import DiffReport, diff_events
from schedcache.errors import ScheduleCacheError
from schedcache.model import EntitySelector, Event, month_label
from schedcache.month_index import build_month_entry, month_window
from schedcache.storage import MemoryStore, data_key, day_key

_LOGGER = logging.getLogger(__name__)


class SyncOutcome(enum.Enum):
    NO_ACTIVE_ENTITY = "no_active_entity"
    FRESH = "fresh"
    NO_CONNECTIVITY = "no_connectivity"
    COMMITTED = "committed"
    UNCHANGED = "unchanged"
    FAILED = "failed"
    STALE = "stale"


@dataclass
class SyncResult:
    outcome: SyncOutcome
    month: Tuple[int, int]
    selector: Optional[EntitySelector] = None
    report: Optional[DiffReport] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not SyncOutcome.FAILED


class SyncOrchestrator:
    """
    Collaborators (duck-typed):

    - remote:    fetch_schedule(kind, id, start, end) -> list[Event]
                 has_connectivity() -> bool
    - selection: get_active_selector() -> EntitySelector | None
    """

    def __init__(
        self,
        store: MemoryStore,
        cache: MonthCache,
        remote,
        selection,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self.cache = cache
        self.remote = remote
        self.selection = selection
        self.today = today

    def _fetch(self, selector: EntitySelector, month: Tuple[int, int]) -> List[Event]:
        start, end = month_window(month)
        _LOGGER.debug(
            "Fetching %s %s for %s (window %s..%s)", selector.kind, selector.id, month_label(month), start, end
        )
        return list(self.remote.fetch_schedule(selector.kind, selector.id, start, end))

    def ensure_month_cached(self, month: Tuple[int, int]) -> SyncResult:
        selector = self.selection.get_active_selector()
        if selector is None:
            _LOGGER.warning("ensure_month_cached(%s): no active schedule", month_label(month))
            return SyncResult(SyncOutcome.NO_ACTIVE_ENTITY, month)

        key = selector.month_key(month)
        with self.cache.key_lock("sync:" + key):
            return self._sync_locked(selector, month, key)

    def _sync_locked(self, selector: EntitySelector, month: Tuple[int, int], key: str) -> SyncResult:
        today = self.today().isoformat()
        stamp = self.store.get_string(day_key(selector, month))
        _LOGGER.debug("Cache check: key=%s, stamp=%s, today=%s", key, stamp, today)

        if stamp == today:
            self.cache.warm(selector, month)
            return SyncResult(SyncOutcome.FRESH, month, selector)

        if not self.remote.has_connectivity():
            _LOGGER.info("No connectivity; skipping sync of %s", key)
            return SyncResult(SyncOutcome.NO_CONNECTIVITY, month, selector)

        generation = self.cache.generation
        try:
            fresh = self._fetch(selector, month)
        except (ScheduleCacheError, requests.RequestException, ValueError) as e:
            # keep old snapshot and stamp so the next call retries
            _LOGGER.warning("Sync of %s failed: %s", key, e)
            return SyncResult(SyncOutcome.FAILED, month, selector, error=str(e))

        if self._superseded(selector, generation):
            _LOGGER.info("Schedule changed while fetching %s; dropping the result", key)
            return SyncResult(SyncOutcome.STALE, month, selector)

        previous = load_snapshot(self.store, selector, month)
        report = diff_events(previous or [], fresh)
        # an unreadable stored snapshot is replaced even if the fetch is empty
        unreadable = previous is None and self.store.get_string(data_key(selector, month)) is not None

        if report.has_changes or unreadable:
            # snapshot first: without a stamp the month is simply fetched again
            self.store.put_string(data_key(selector, month), encode_snapshot(fresh))
            self.store.put_string(day_key(selector, month), today)
            if self._superseded(selector, generation):
                self._drop_keys(selector, month, data_key(selector, month), day_key(selector, month))
                return SyncResult(SyncOutcome.STALE, month, selector)

            self.cache.install(selector, month, build_month_entry(fresh, month), generation)
            _LOGGER.info("Committed %s: %s (%s events)", key, report.summary(), len(fresh))
            for line in report.details:
                _LOGGER.debug("  %s", line)
            if report.overflow:
                _LOGGER.debug("  ... and %s more changes", report.overflow)
            return SyncResult(SyncOutcome.COMMITTED, month, selector, report=report)

        self.store.put_string(day_key(selector, month), today)
        if self._superseded(selector, generation):
            self._drop_keys(selector, month, day_key(selector, month))
            return SyncResult(SyncOutcome.STALE, month, selector)

        self.cache.warm(selector, month)
        _LOGGER.debug("No changes for %s; stamped %s", key, today)
        return SyncResult(SyncOutcome.UNCHANGED, month, selector, report=report)

    def _superseded(self, selector: EntitySelector, generation: int) -> bool:
        """
        True if the cache was cleared or another schedule became active
        since `generation` was read.
        """
        return self.cache.generation != generation or self.selection.get_active_selector() != selector

    def _drop_keys(self, selector: EntitySelector, month: Tuple[int, int], *keys: str) -> None:
        # the clear that superseded us may already have run; take back what we wrote
        for k in keys:
            self.store.remove_keys_with_prefix(k)
        _LOGGER.info("Schedule changed while committing %s; write rolled back", selector.month_key(month))

    def clear_stamp(self, selector: EntitySelector, month: Tuple[int, int]) -> None:
        """Forget the sync day of one key so the next ensure_month_cached fetches."""
        self.store.remove_keys_with_prefix(day_key(selector, month))
