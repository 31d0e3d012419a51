"""
User preferences: saved and active schedules, saved filters and hidden subjects.

All three live in a key -> string store (usually a JsonFileStore on
data/preferences.json, separate from the event cache so that clearing the
cache never loses user choices).

Every loader is defensive:
a missing or corrupted value reads as "nothing saved".
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from schedcache.model import EntityKind, EntitySelector, Filters
from schedcache.storage import MemoryStore

KEY_ACTIVE_KIND = "active_kind"
KEY_ACTIVE_ID = "active_id"
KEY_SAVED = "saved_schedules"
KEY_HIDDEN = "hidden_subject_ids"
KEY_FILTERS = "filters_"  # + kind_id


def _load_json(raw: Optional[str]):
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return None


def _int_set(values) -> Set[int]:
    if not isinstance(values, list):
        return set()
    return {int(v) for v in values if isinstance(v, int) and not isinstance(v, bool)}


@dataclass(frozen=True)
class SavedSchedule:
    selector: EntitySelector
    name: str = ""


class SelectionStorage:
    """
    The user's saved schedules and which one of them is active.

    Saved entries are unique per (kind, id); adding an existing one
    replaces its name in place. Removing the active entry also clears
    the active selection.
    """

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    def get_active_selector(self) -> Optional[EntitySelector]:
        kind_raw = self.store.get_string(KEY_ACTIVE_KIND)
        id_raw = self.store.get_string(KEY_ACTIVE_ID)
        if kind_raw is None or id_raw is None:
            return None
        try:
            kind = EntityKind.parse(kind_raw)
            entity_id = int(id_raw)
        except ValueError:
            return None
        if entity_id < 0:
            return None
        return EntitySelector(kind, entity_id)

    def set_active(self, selector: EntitySelector) -> None:
        self.store.put_many({KEY_ACTIVE_KIND: selector.kind.value, KEY_ACTIVE_ID: str(selector.id)})

    def clear_active(self) -> None:
        self.store.remove(KEY_ACTIVE_KIND)
        self.store.remove(KEY_ACTIVE_ID)

    def list_saved(self) -> List[SavedSchedule]:
        data = _load_json(self.store.get_string(KEY_SAVED))
        if not isinstance(data, list):
            return []
        out: List[SavedSchedule] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                selector = EntitySelector(EntityKind.parse(str(item.get("kind"))), int(item.get("id")))
            except (TypeError, ValueError):
                continue
            name = item.get("name")
            out.append(SavedSchedule(selector, name if isinstance(name, str) else ""))
        return out

    def add(self, selector: EntitySelector, name: str = "") -> None:
        saved = self.list_saved()
        entry = SavedSchedule(selector, name)
        for i, s in enumerate(saved):
            if s.selector == selector:
                saved[i] = entry
                break
        else:
            saved.append(entry)
        self._save(saved)

    def remove(self, selector: EntitySelector) -> bool:
        saved = self.list_saved()
        kept = [s for s in saved if s.selector != selector]
        if len(kept) != len(saved):
            self._save(kept)
        if self.get_active_selector() == selector:
            self.clear_active()
        return len(kept) != len(saved)

    def clear_saved(self) -> None:
        self.store.remove(KEY_SAVED)

    def _save(self, saved: Iterable[SavedSchedule]) -> None:
        payload = [{"kind": s.selector.kind.value, "id": s.selector.id, "name": s.name} for s in saved]
        self.store.put_string(KEY_SAVED, json.dumps(payload, ensure_ascii=False))


class FiltersStorage:
    """Saved filter sets per schedule (only applied to group schedules)."""

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    @staticmethod
    def _key(kind: EntityKind, entity_id: int) -> str:
        return f"{KEY_FILTERS}{kind}_{entity_id}"

    def get_filters(self, kind: EntityKind, entity_id: int) -> Filters:
        data = _load_json(self.store.get_string(self._key(kind, entity_id)))
        if not isinstance(data, dict):
            return Filters()
        categories = data.get("categories", [])
        return Filters(
            categories=frozenset(c for c in categories if isinstance(c, str)) if isinstance(categories, list) else frozenset(),
            teacher_ids=frozenset(_int_set(data.get("teacher_ids"))),
            room_ids=frozenset(_int_set(data.get("room_ids"))),
            subject_ids=frozenset(_int_set(data.get("subject_ids"))),
        )

    def set_filters(self, kind: EntityKind, entity_id: int, filters: Filters) -> None:
        payload = {
            "categories": sorted(filters.categories),
            "teacher_ids": sorted(filters.teacher_ids),
            "room_ids": sorted(filters.room_ids),
            "subject_ids": sorted(filters.subject_ids),
        }
        self.store.put_string(self._key(kind, entity_id), json.dumps(payload, ensure_ascii=False))

    def clear(self, kind: EntityKind, entity_id: int) -> None:
        self.store.remove(self._key(kind, entity_id))


class HiddenSubjectsStorage:
    """Subjects the user never wants to see, across all schedules."""

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    def get_hidden_subject_ids(self) -> Set[int]:
        return _int_set(_load_json(self.store.get_string(KEY_HIDDEN)))

    def is_hidden(self, subject_id: int) -> bool:
        return subject_id in self.get_hidden_subject_ids()

    def add(self, subject_id: int) -> bool:
        ids = self.get_hidden_subject_ids()
        if subject_id in ids:
            return False
        ids.add(subject_id)
        self._save(ids)
        return True

    def remove(self, subject_id: int) -> bool:
        ids = self.get_hidden_subject_ids()
        if subject_id not in ids:
            return False
        ids.discard(subject_id)
        self._save(ids)
        return True

    def clear(self) -> None:
        self.store.remove(KEY_HIDDEN)

    def _save(self, ids: Iterable[int]) -> None:
        self.store.put_string(KEY_HIDDEN, json.dumps(sorted(ids)))
