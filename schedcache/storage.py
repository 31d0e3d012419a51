"""
Durable key -> string storage.

Two implementations share the same small surface:

    get_string(key) -> str | None
    put_string(key, value)
    remove_keys_with_prefix(prefix)
    clear_all()
    keys()

The event cache needs nothing more. put_many and remove are extras used by
the preference and log storages.

MemoryStore is used in tests and for throwaway sessions. JsonFileStore keeps
everything in one JSON document on disk, e.g.

    data/events_cache.json

Each write replaces the file atomically, so a crash never leaves a
half-written cache behind. Both stores serialise their own writes; callers
never need to lock around a single key.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from schedcache.model import EntitySelector

_LOGGER = logging.getLogger(__name__)

KEY_DATA = "data_"  # + kind_id_yyyy-MM
KEY_DAY = "day_"  # + kind_id_yyyy-MM


def data_key(selector: EntitySelector, month: tuple[int, int]) -> str:
    return KEY_DATA + selector.month_key(month)


def day_key(selector: EntitySelector, month: tuple[int, int]) -> str:
    return KEY_DAY + selector.month_key(month)


class MemoryStore:
    """Process-local store (nothing survives a restart)."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get_string(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put_string(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def put_many(self, items: Dict[str, str]) -> None:
        with self._lock:
            self._data.update(items)

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def remove_keys_with_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._data if k.startswith(prefix)]
            for k in doomed:
                del self._data[k]
        return len(doomed)

    def clear_all(self) -> None:
        with self._lock:
            self._data.clear()

    def keys(self) -> List[str]:
        return sorted(self._data)


def _default_store_path() -> Path:
    """
    Return the default path of the cache file inside the package.

    Using a function instead of a constant makes testing easier,
    because tests can override the path.
    """
    base_dir = Path(__file__).resolve().parent
    return base_dir / "data" / "events_cache.json"


def _load_document(path: Path) -> Dict[str, str]:
    """
    Load the store document. Returns an empty dict if the file does not
    exist or is invalid; a corrupted cache is simply rebuilt by the next sync.
    """
    if not path.exists():
        return {}

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        _LOGGER.warning("Ignoring unreadable store file %s: %s", path, e)
        return {}

    if not isinstance(data, dict):
        _LOGGER.warning("Ignoring store file %s: top level is not an object", path)
        return {}

    # only string -> string pairs are valid
    return {k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str)}


class JsonFileStore(MemoryStore):
    """
    Durable store backed by a single JSON file.

    The document is loaded once; reads are served from memory and every
    mutation rewrites the file.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else _default_store_path()
        super().__init__(_load_document(self.path))

    def put_string(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def put_many(self, items: Dict[str, str]) -> None:
        with self._lock:
            self._data.update(items)
            self._flush()

    def remove(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()

    def remove_keys_with_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._data if k.startswith(prefix)]
            for k in doomed:
                del self._data[k]
            if doomed:
                self._flush()
        return len(doomed)

    def clear_all(self) -> None:
        with self._lock:
            self._data.clear()
            self._flush()

    def _flush(self) -> None:
        # caller holds self._lock
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps(self._data, ensure_ascii=False, sort_keys=True), encoding="utf-8")
        os.replace(tmp, self.path)


def remove_entity_keys(store: MemoryStore, selector: EntitySelector) -> int:
    """
    Remove every snapshot and stamp stored for one entity (all months).
    Returns the number of removed keys.
    """
    prefix = selector.cache_key() + "_"
    removed = 0
    for head in (KEY_DATA, KEY_DAY):
        removed += store.remove_keys_with_prefix(head + prefix)
    return removed


def snapshot_keys(keys: Iterable[str]) -> List[str]:
    return [k for k in keys if k.startswith(KEY_DATA)]
