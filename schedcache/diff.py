"""
Diff engine.

Compare the previously stored snapshot of one (entity, month) with a fresh
fetch and report what changed. The report decides whether a sync rewrites
the snapshot or only re-stamps the day.

Equality is full field equality. Teacher and group lists are compared in
order, so a reordered list counts as a change.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Dict, List, Sequence

from schedcache.config import DIFF_DETAIL_LIMIT
from schedcache.model import Event


@dataclass
class DiffReport:
    added: int = 0
    removed: int = 0
    changed: int = 0
    details: List[str] = field(default_factory=list)
    overflow: int = 0

    @property
    def has_changes(self) -> bool:
        return self.added > 0 or self.removed > 0 or self.changed > 0

    def summary(self) -> str:
        return f"+{self.added} -{self.removed} ~{self.changed}"

    def _note(self, line: str, limit: int) -> None:
        if len(self.details) < limit:
            self.details.append(line)
        else:
            self.overflow += 1


def _describe(ev: Event) -> str:
    title = ev.subject.brief or ev.subject.title or f"subject {ev.subject.id}"
    return f"#{ev.id} {title} {ev.start:%Y-%m-%d %H:%M} (pair {ev.pair_number})"


def changed_fields(old: Event, new: Event) -> List[str]:
    """
    Names of the fields that differ between two versions of one event.
    """
    return [f.name for f in fields(Event) if getattr(old, f.name) != getattr(new, f.name)]


def diff_events(old: Sequence[Event], new: Sequence[Event], limit: int = DIFF_DETAIL_LIMIT) -> DiffReport:
    """
    Compare two event lists by id.

    added   = ids only in new
    removed = ids only in old
    changed = shared ids whose events are not equal

    Detail lines are capped at `limit`; the rest is counted in `overflow`.
    """
    report = DiffReport()
    if not old and not new:
        return report

    old_by_id: Dict[int, Event] = {ev.id: ev for ev in old}
    new_by_id: Dict[int, Event] = {ev.id: ev for ev in new}

    for eid in sorted(new_by_id.keys() - old_by_id.keys()):
        report.added += 1
        report._note("added " + _describe(new_by_id[eid]), limit)

    for eid in sorted(old_by_id.keys() - new_by_id.keys()):
        report.removed += 1
        report._note("removed " + _describe(old_by_id[eid]), limit)

    for eid in sorted(old_by_id.keys() & new_by_id.keys()):
        before, after = old_by_id[eid], new_by_id[eid]
        if before == after:
            continue
        report.changed += 1
        report._note(f"changed {_describe(after)}: {', '.join(changed_fields(before, after))}", limit)

    return report
