"""
In-memory month cache with a per-key build guard.

One MonthCacheEntry per (entity, month) key. Reads of a present entry never
take a lock. A missing entry is built from the stored snapshot by exactly
one thread per key; concurrent callers wait on that key's lock and then get
the entry the first caller installed.

Entries are only ever replaced whole. clear() swaps in an empty map and
bumps a generation counter, so a build that was already running when the
cache was cleared does not resurrect data for the previous selection.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from schedcache.codec import decode_snapshot
from schedcache.errors import SnapshotDecodeError
from schedcache.model import EntitySelector, Event, MonthCacheEntry
from schedcache.month_index import build_month_entry
from schedcache.storage import MemoryStore, data_key

_LOGGER = logging.getLogger(__name__)


def load_snapshot(store: MemoryStore, selector: EntitySelector, month: Tuple[int, int]) -> Optional[List[Event]]:
    """
    Read and decode the stored snapshot of one key.

    Returns None when nothing is stored or the stored payload is malformed.
    """
    raw = store.get_string(data_key(selector, month))
    if raw is None:
        return None
    try:
        return decode_snapshot(raw)
    except SnapshotDecodeError as e:
        _LOGGER.warning("Ignoring malformed snapshot %s: %s", data_key(selector, month), e)
        return None


class MonthCache:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store
        self._entries: Dict[str, MonthCacheEntry] = {}
        # key -> [lock, holders]; a slot is dropped when its last holder leaves
        self._locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()
        self._generation = 0
        # number of snapshot decodes + index builds performed (diagnostics)
        self.build_count = 0

    @contextmanager
    def key_lock(self, key: str) -> Iterator[None]:
        """
        Hold the lock of one key. Threads asking for the same key queue up;
        different keys never block each other.
        """
        with self._locks_guard:
            slot = self._locks.get(key)
            if slot is None:
                slot = self._locks[key] = [threading.Lock(), 0]
            slot[1] += 1
        try:
            with slot[0]:
                yield
        finally:
            with self._locks_guard:
                slot[1] -= 1
                if slot[1] == 0:
                    del self._locks[key]

    def held_keys(self) -> List[str]:
        """Keys that currently have a holder or a waiter."""
        with self._locks_guard:
            return sorted(self._locks)

    def get(self, selector: EntitySelector, month: Tuple[int, int]) -> Optional[MonthCacheEntry]:
        """Fast path: the entry if it is in memory, else None. Never blocks."""
        return self._entries.get(selector.month_key(month))

    def get_or_build(self, selector: EntitySelector, month: Tuple[int, int]) -> Optional[MonthCacheEntry]:
        """
        Return the entry for (selector, month), building it from the stored
        snapshot if needed. None means there is no cached data yet.
        """
        key = selector.month_key(month)
        entry = self._entries.get(key)
        if entry is not None:
            return entry

        with self.key_lock(key):
            entry = self._entries.get(key)
            if entry is not None:
                return entry

            generation = self._generation
            events = load_snapshot(self.store, selector, month)
            if events is None:
                return None

            entry = build_month_entry(events, month)
            self.build_count += 1
            _LOGGER.debug("Built month index %s: %s events, %s days", key, len(entry.events), len(entry.by_date))
            self._put(key, entry, generation)
            return entry

    @property
    def generation(self) -> int:
        return self._generation

    def _put(self, key: str, entry: MonthCacheEntry, generation: int) -> bool:
        with self._locks_guard:
            if generation != self._generation:
                _LOGGER.debug("Cache cleared while building %s; not installing", key)
                return False
            self._entries[key] = entry
            return True

    def install(
        self,
        selector: EntitySelector,
        month: Tuple[int, int],
        entry: MonthCacheEntry,
        generation: Optional[int] = None,
    ) -> bool:
        """
        Replace the entry of one key as a whole.

        With `generation`, the entry is dropped if the cache was cleared
        since that generation was read. Returns True if installed.
        """
        key = selector.month_key(month)
        with self.key_lock(key):
            return self._put(key, entry, self._generation if generation is None else generation)

    def warm(self, selector: EntitySelector, month: Tuple[int, int]) -> None:
        """Build the entry if it is cold; no-op otherwise."""
        if self.get(selector, month) is None:
            self.get_or_build(selector, month)

    def clear(self) -> None:
        with self._locks_guard:
            self._generation += 1
            self._entries = {}

    def __len__(self) -> int:
        return len(self._entries)
