"""
iCalendar (.ics) export.

We convert cached events into a calendar file that can be imported into:
- Google Calendar
- Outlook
- Apple Calendar
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from schedcache.model import Event


def _ics_escape(text: str) -> str:
    """
    Escape text for ICS fields (very small subset, sufficient for our use).
    """
    return (
        text.replace("\\", "\\\\").replace("\r\n", "\\n").replace("\n", "\\n").replace(";", "\\;").replace(",", "\\,")
    )


def _dt_local(dt: datetime) -> str:
    """
    Convert a local datetime to an ICS floating datetime 'YYYYMMDDTHHMMSS'.
    """
    return dt.strftime("%Y%m%dT%H%M%S")


def _summary(ev: Event) -> str:
    title = ev.subject.title or ev.subject.brief or "Class"
    return f"{title} ({ev.category})" if ev.category else title


def _description(ev: Event) -> str:
    parts = [f"Pair {ev.pair_number}"]
    if ev.teachers:
        parts.append("Teachers: " + ", ".join(t.full_name or t.short_name for t in ev.teachers))
    if ev.groups:
        parts.append("Groups: " + ", ".join(g.name for g in ev.groups))
    return "\n".join(parts)


def export_events_to_ics(events: Iterable[Event], out_path: str | Path) -> int:
    """
    Export events to an .ics file. Returns number of exported events.
    """
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)

    lines: list[str] = []
    lines.append("BEGIN:VCALENDAR")
    lines.append("VERSION:2.0")
    lines.append("PRODID:-//schedcache//EN")
    lines.append("CALSCALE:GREGORIAN")

    dtstamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    count = 0
    for ev in events:
        lines.append("BEGIN:VEVENT")
        lines.append(f"UID:schedcache-{ev.id}")
        lines.append(f"DTSTAMP:{dtstamp}")
        lines.append(f"DTSTART:{_dt_local(ev.start)}")
        lines.append(f"DTEND:{_dt_local(ev.end)}")
        lines.append(f"SUMMARY:{_ics_escape(_summary(ev))}")
        if ev.room.name:
            lines.append(f"LOCATION:{_ics_escape(ev.room.name)}")
        lines.append(f"DESCRIPTION:{_ics_escape(_description(ev))}")
        lines.append("END:VEVENT")
        count += 1

    lines.append("END:VCALENDAR")

    # ICS standard uses CRLF
    out.write_text("\r\n".join(lines) + "\r\n", encoding="utf-8")
    return count
