"""
Snapshot codec (Event <-> JSON).

Two formats are handled here:

1. The remote API format (one dict per event, epoch-second timestamps,
   camelCase keys). Only decoded, never written.
2. The stored snapshot format, a tagged and versioned document:

    {"schema": "schedcache.snapshot", "version": 1, "events": [...]}

   Each event is stored with ISO local datetimes so snapshots stay readable
   and do not depend on the time zone of the machine reading them.

Decoding validates every field. Anything unexpected raises
SnapshotDecodeError; callers treat that as "no cached data".
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Sequence

from schedcache.errors import SnapshotDecodeError
from schedcache.model import Event, GroupRef, Room, Subject, TeacherRef

SNAPSHOT_SCHEMA = "schedcache.snapshot"
SNAPSHOT_VERSION = 1


# ---------------------------------------------------------------------------
# Field validation helpers
# ---------------------------------------------------------------------------


def _field(obj: Any, key: str, where: str) -> Any:
    if not isinstance(obj, dict):
        raise SnapshotDecodeError(f"{where}: expected object, got {type(obj).__name__}")
    if key not in obj:
        raise SnapshotDecodeError(f"{where}: missing field {key!r}")
    return obj[key]


def _int(obj: Any, key: str, where: str) -> int:
    value = _field(obj, key, where)
    # JSON numbers may arrive as floats (e.g. 12.0); bool is not a number here
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SnapshotDecodeError(f"{where}.{key}: expected integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise SnapshotDecodeError(f"{where}.{key}: expected integer, got {value!r}")
    return int(value)


def _str(obj: Any, key: str, where: str, allow_null: bool = False) -> str:
    value = _field(obj, key, where)
    if value is None and allow_null:
        return ""
    if not isinstance(value, str):
        raise SnapshotDecodeError(f"{where}.{key}: expected string, got {value!r}")
    return value


def _list(obj: Any, key: str, where: str) -> list:
    value = _field(obj, key, where)
    if not isinstance(value, list):
        raise SnapshotDecodeError(f"{where}.{key}: expected list, got {type(value).__name__}")
    return value


def _epoch(obj: Any, key: str, where: str) -> datetime:
    value = _field(obj, key, where)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SnapshotDecodeError(f"{where}.{key}: expected epoch seconds, got {value!r}")
    try:
        return datetime.fromtimestamp(int(value))
    except (OverflowError, OSError, ValueError) as e:
        raise SnapshotDecodeError(f"{where}.{key}: invalid timestamp {value!r}") from e


def _iso(obj: Any, key: str, where: str) -> datetime:
    text = _str(obj, key, where)
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise SnapshotDecodeError(f"{where}.{key}: invalid datetime {text!r}") from e


def _check_range(start: datetime, end: datetime, where: str) -> None:
    if end < start:
        raise SnapshotDecodeError(f"{where}: end {end.isoformat()} before start {start.isoformat()}")


# ---------------------------------------------------------------------------
# Remote API format
# ---------------------------------------------------------------------------


def event_from_api(raw: Any, index: int = 0) -> Event:
    """
    Convert one API event dict into an Event.

    Timestamps are epoch seconds and are converted to local wall-clock time.
    """
    where = f"events[{index}]"
    start = _epoch(raw, "startedAt", where)
    end = _epoch(raw, "endedAt", where)
    _check_range(start, end, where)

    auditorium = _field(raw, "auditorium", where)
    subject = _field(raw, "subject", where)

    return Event(
        id=_int(raw, "id", where),
        start=start,
        end=end,
        category=_str(raw, "type", where, allow_null=True),
        room=Room(
            id=_int(auditorium, "id", where + ".auditorium"),
            name=_str(auditorium, "name", where + ".auditorium", allow_null=True),
        ),
        pair_number=_int(raw, "numberPair", where),
        subject=Subject(
            id=_int(subject, "id", where + ".subject"),
            title=_str(subject, "title", where + ".subject", allow_null=True),
            brief=_str(subject, "brief", where + ".subject", allow_null=True),
        ),
        groups=tuple(
            GroupRef(id=_int(g, "id", f"{where}.groups[{i}]"), name=_str(g, "name", f"{where}.groups[{i}]", True))
            for i, g in enumerate(_list(raw, "groups", where))
        ),
        teachers=tuple(
            TeacherRef(
                id=_int(t, "id", f"{where}.teachers[{i}]"),
                full_name=_str(t, "fullName", f"{where}.teachers[{i}]", True),
                short_name=_str(t, "shortName", f"{where}.teachers[{i}]", True),
            )
            for i, t in enumerate(_list(raw, "teachers", where))
        ),
    )


def events_from_api(payload: Any) -> List[Event]:
    if not isinstance(payload, list):
        raise SnapshotDecodeError(f"data: expected list, got {type(payload).__name__}")
    return [event_from_api(raw, i) for i, raw in enumerate(payload)]


# ---------------------------------------------------------------------------
# Stored snapshot format
# ---------------------------------------------------------------------------


def _event_to_dict(ev: Event) -> Dict[str, Any]:
    return {
        "id": ev.id,
        "start": ev.start.isoformat(),
        "end": ev.end.isoformat(),
        "category": ev.category,
        "room": {"id": ev.room.id, "name": ev.room.name},
        "pair_number": ev.pair_number,
        "subject": {"id": ev.subject.id, "title": ev.subject.title, "brief": ev.subject.brief},
        "groups": [{"id": g.id, "name": g.name} for g in ev.groups],
        "teachers": [{"id": t.id, "full_name": t.full_name, "short_name": t.short_name} for t in ev.teachers],
    }


def _event_from_dict(raw: Any, index: int) -> Event:
    where = f"events[{index}]"
    start = _iso(raw, "start", where)
    end = _iso(raw, "end", where)
    _check_range(start, end, where)

    room = _field(raw, "room", where)
    subject = _field(raw, "subject", where)

    return Event(
        id=_int(raw, "id", where),
        start=start,
        end=end,
        category=_str(raw, "category", where),
        room=Room(id=_int(room, "id", where + ".room"), name=_str(room, "name", where + ".room")),
        pair_number=_int(raw, "pair_number", where),
        subject=Subject(
            id=_int(subject, "id", where + ".subject"),
            title=_str(subject, "title", where + ".subject"),
            brief=_str(subject, "brief", where + ".subject"),
        ),
        groups=tuple(
            GroupRef(id=_int(g, "id", f"{where}.groups[{i}]"), name=_str(g, "name", f"{where}.groups[{i}]"))
            for i, g in enumerate(_list(raw, "groups", where))
        ),
        teachers=tuple(
            TeacherRef(
                id=_int(t, "id", f"{where}.teachers[{i}]"),
                full_name=_str(t, "full_name", f"{where}.teachers[{i}]"),
                short_name=_str(t, "short_name", f"{where}.teachers[{i}]"),
            )
            for i, t in enumerate(_list(raw, "teachers", where))
        ),
    )


def encode_snapshot(events: Sequence[Event]) -> str:
    """
    Serialize events verbatim (same order, no filtering) into a snapshot document.
    """
    doc = {
        "schema": SNAPSHOT_SCHEMA,
        "version": SNAPSHOT_VERSION,
        "events": [_event_to_dict(ev) for ev in events],
    }
    return json.dumps(doc, ensure_ascii=False, separators=(",", ":"))


def decode_snapshot(text: str) -> List[Event]:
    """
    Parse a snapshot document. Raises SnapshotDecodeError for malformed JSON,
    a foreign schema tag, an unknown version or any invalid event field.
    """
    try:
        doc = json.loads(text)
    except (TypeError, json.JSONDecodeError) as e:
        raise SnapshotDecodeError(f"invalid JSON: {e}") from e

    if not isinstance(doc, dict):
        raise SnapshotDecodeError("snapshot: expected object")
    if doc.get("schema") != SNAPSHOT_SCHEMA:
        raise SnapshotDecodeError(f"snapshot: unknown schema {doc.get('schema')!r}")
    if doc.get("version") != SNAPSHOT_VERSION:
        raise SnapshotDecodeError(f"snapshot: unsupported version {doc.get('version')!r}")

    return [_event_from_dict(raw, i) for i, raw in enumerate(_list(doc, "events", "snapshot"))]
