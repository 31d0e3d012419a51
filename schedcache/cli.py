"""
CLI (Command Line Interface).

Quick terminal commands on top of the event cache, e.g.:

    schedcache select group 10 --name KI-21-1
    schedcache schedules / schedcache remove group 10
    schedcache filter --category Lk --teacher 5
    schedcache sync 2026-03
    schedcache day 2026-03-02
    schedcache week 2026-03-02
    schedcache hide 123 / schedcache unhide 123
    schedcache subjects
    schedcache export 2026-03 march.ics
    schedcache clear
    schedcache log

Note:
- data lives in --data-dir (default: the package data folder or SCHEDCACHE_DATA_DIR)
- sync is the only command that talks to the network
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from schedcache.api import ScheduleApiClient
from schedcache.background import BackgroundSyncer
from schedcache.config import Settings, load_settings
from schedcache.export_ics import export_events_to_ics
from schedcache.logstore import StoreLogHandler, read_log
from schedcache.model import EntityKind, EntitySelector, Event, Filters, month_label, month_of, parse_month
from schedcache.prefs import FiltersStorage, HiddenSubjectsStorage, SelectionStorage
from schedcache.query import QueryService
from schedcache.storage import JsonFileStore
from schedcache.sync import SyncOutcome, SyncResult

console = Console()


@dataclass
class App:
    settings: Settings
    service: QueryService
    selection: SelectionStorage
    filters: FiltersStorage
    hidden: HiddenSubjectsStorage
    log_store: JsonFileStore


def build_app(settings: Settings) -> App:
    """
    Wire stores, preference storages, the API client and the query service.
    """
    cache_store = JsonFileStore(settings.cache_path)
    prefs_store = JsonFileStore(settings.prefs_path)
    log_store = JsonFileStore(settings.log_path)

    selection = SelectionStorage(prefs_store)
    filters = FiltersStorage(prefs_store)
    hidden = HiddenSubjectsStorage(prefs_store)
    remote = ScheduleApiClient(settings.api_base_url, settings.connect_timeout, settings.read_timeout)

    service = QueryService(
        cache_store,
        remote,
        selection,
        filters=filters,
        hidden=hidden,
    )
    return App(
        settings=settings,
        service=service,
        selection=selection,
        filters=filters,
        hidden=hidden,
        log_store=log_store,
    )


def _setup_logging(app: App, verbose: bool) -> None:
    pkg_logger = logging.getLogger("schedcache")
    pkg_logger.setLevel(logging.DEBUG)
    pkg_logger.propagate = False
    # main() may run several times in one process (tests); keep one handler of each kind
    for handler in [h for h in pkg_logger.handlers if isinstance(h, (StoreLogHandler, logging.StreamHandler))]:
        pkg_logger.removeHandler(handler)

    stderr = logging.StreamHandler()
    stderr.setLevel(logging.DEBUG if verbose else logging.WARNING)
    stderr.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    pkg_logger.addHandler(stderr)
    pkg_logger.addHandler(StoreLogHandler(app.log_store, max_lines=app.settings.log_max_lines))


def _parse_day(text: Optional[str]) -> Optional[date]:
    if not text:
        return date.today()
    try:
        return date.fromisoformat(text.strip())
    except ValueError:
        return None


def _events_table(title: str, events: List[Event], show_date: bool = False) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAVY)
    if show_date:
        table.add_column("Date")
    table.add_column("#", justify="right")
    table.add_column("Time")
    table.add_column("Subject")
    table.add_column("Type")
    table.add_column("Room")
    table.add_column("Teachers")
    for ev in events:
        row = [
            str(ev.pair_number),
            f"{ev.start:%H:%M}-{ev.end:%H:%M}",
            ev.subject.brief or ev.subject.title,
            ev.category,
            ev.room.name,
            ", ".join(t.short_name or t.full_name for t in ev.teachers),
        ]
        if show_date:
            row.insert(0, f"{ev.start:%a %d.%m}")
        table.add_row(*row)
    return table


def _parse_selector(kind_text: str, entity_id: int) -> Optional[EntitySelector]:
    try:
        kind = EntityKind.parse(kind_text)
    except ValueError:
        console.print(f"Unknown kind: {kind_text!r} (use group, teacher or room)")
        return None
    if entity_id < 0:
        console.print("Please provide a non-negative id.")
        return None
    return EntitySelector(kind, entity_id)


def _cmd_select(args: argparse.Namespace, app: App) -> int:
    """
    Make a group/teacher/room schedule active (drops the previous one's cache)
    and remember it in the saved schedules.
    """
    selector = _parse_selector(args.kind, args.id)
    if selector is None:
        return 1

    name = args.name
    if name is None:
        # re-selecting without --name keeps the saved name
        name = next((s.name for s in app.selection.list_saved() if s.selector == selector), "")
    app.selection.add(selector, name)
    app.service.switch_active(selector)
    console.print(f"Active schedule: {selector.kind} {selector.id}")
    return 0


def _cmd_schedules(args: argparse.Namespace, app: App) -> int:
    saved = app.selection.list_saved()
    if not saved:
        console.print("No saved schedules. Use: schedcache select <kind> <id>")
        return 0

    active = app.selection.get_active_selector()
    table = Table(title="Schedules", box=box.SIMPLE_HEAVY)
    table.add_column("Kind")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Active")
    for s in saved:
        table.add_row(str(s.selector.kind), str(s.selector.id), s.name, "*" if s.selector == active else "")
    console.print(table)
    return 0


def _cmd_remove(args: argparse.Namespace, app: App) -> int:
    """
    Forget a saved schedule. Removing the active one also drops its cache
    and leaves no schedule selected.
    """
    selector = _parse_selector(args.kind, args.id)
    if selector is None:
        return 1

    if app.selection.get_active_selector() == selector:
        app.service.clear_cache_for_entity_change(selector)
    if app.selection.remove(selector):
        console.print(f"Removed: {selector.kind} {selector.id}")
    else:
        console.print(f"Not saved: {selector.kind} {selector.id}")
    return 0


def _cmd_filter(args: argparse.Namespace, app: App) -> int:
    """
    Show or replace the saved filters of the active group schedule.
    Teacher and room schedules are never filtered.
    """
    selector = app.selection.get_active_selector()
    if selector is None:
        console.print("No active schedule. Use: schedcache select <kind> <id>")
        return 1
    if selector.kind is not EntityKind.GROUP:
        console.print("Filters only apply to group schedules.")
        return 1

    if args.clear:
        app.filters.clear(selector.kind, selector.id)
    elif args.category or args.teacher or args.room or args.subject:
        app.filters.set_filters(
            selector.kind,
            selector.id,
            Filters(
                categories=frozenset(args.category or ()),
                teacher_ids=frozenset(args.teacher or ()),
                room_ids=frozenset(args.room or ()),
                subject_ids=frozenset(args.subject or ()),
            ),
        )

    current = app.filters.get_filters(selector.kind, selector.id)
    if current.is_empty():
        console.print(f"No filters for group {selector.id}.")
        return 0
    console.print(f"Filters for group {selector.id}:")
    console.print(f"  categories: {', '.join(sorted(current.categories)) or '-'}")
    console.print(f"  teachers:   {', '.join(map(str, sorted(current.teacher_ids))) or '-'}")
    console.print(f"  rooms:      {', '.join(map(str, sorted(current.room_ids))) or '-'}")
    console.print(f"  subjects:   {', '.join(map(str, sorted(current.subject_ids))) or '-'}")
    return 0


def _print_sync_result(result: SyncResult) -> None:
    label = month_label(result.month)
    if result.outcome is SyncOutcome.FAILED:
        console.print(f"Sync of {label} failed: {result.error}")
        return

    console.print(f"{label}: {result.outcome.value}")
    if result.report is not None and result.report.has_changes:
        console.print(f"Changes: {result.report.summary()}")
        for line in result.report.details:
            console.print(f"  {line}")
        if result.report.overflow:
            console.print(f"  ... and {result.report.overflow} more")


def _cmd_sync(args: argparse.Namespace, app: App) -> int:
    """
    Make sure one or more months are cached (each fetched at most once per day).
    Several months are synced in parallel on the background worker pool.
    """
    months = [parse_month(m) for m in args.months] if args.months else [month_of(date.today())]
    if any(m is None for m in months):
        console.print(f"Invalid month in {args.months!r} (expected YYYY-MM)")
        return 1

    if app.selection.get_active_selector() is None:
        console.print("No active schedule. Use: schedcache select <kind> <id>")
        return 1

    if args.force:
        for month in months:
            app.service.clear_stamp_for_month(month)

    crashed: List[tuple] = []
    if len(months) == 1:
        results = [app.service.ensure_month_cached(months[0])]
    else:
        with BackgroundSyncer(app.service, workers=app.settings.sync_workers) as syncer:
            syncer.submit_many(months)
            syncer.wait()
            results = sorted(syncer.drain(), key=lambda r: r.month)
            finished = {r.month for r in results}
            crashed = [(m, err) for m, err in syncer.failures if m not in finished]

    for result in results:
        _print_sync_result(result)
    for month, err in crashed:
        console.print(f"Sync of {month_label(month)} crashed: {err}")
    return 0 if all(r.ok for r in results) and not crashed else 1


def _cmd_day(args: argparse.Namespace, app: App) -> int:
    day = _parse_day(args.date)
    if day is None:
        console.print(f"Invalid date: {args.date!r} (expected YYYY-MM-DD)")
        return 1

    events = app.service.events_for_date(day)
    if not events:
        console.print(f"No events on {day.isoformat()}.")
        return 0
    console.print(_events_table(f"{day:%A %d.%m.%Y}", events))
    return 0


def _cmd_week(args: argparse.Namespace, app: App) -> int:
    day = _parse_day(args.date)
    if day is None:
        console.print(f"Invalid date: {args.date!r} (expected YYYY-MM-DD)")
        return 1

    start = day - timedelta(days=day.weekday())
    events = app.service.events_for_week(start)
    if not events:
        console.print(f"No events in the week of {start.isoformat()}.")
        return 0
    # index order is by pair first; show the week chronologically
    events = sorted(events, key=lambda ev: (ev.start.date(), ev.pair_number, ev.start, ev.id))
    console.print(_events_table(f"Week of {start:%d.%m.%Y}", events, show_date=True))
    return 0


def _cmd_hide(args: argparse.Namespace, app: App) -> int:
    if app.hidden.add(args.subject_id):
        console.print(f"Hidden: subject {args.subject_id}")
    else:
        console.print(f"Already hidden: subject {args.subject_id}")
    return 0


def _cmd_unhide(args: argparse.Namespace, app: App) -> int:
    if app.hidden.remove(args.subject_id):
        console.print(f"Visible again: subject {args.subject_id}")
    else:
        console.print(f"Not hidden: subject {args.subject_id}")
    return 0


def _cmd_subjects(args: argparse.Namespace, app: App) -> int:
    """
    List every subject found in cached snapshots, marking hidden ones.
    """
    names = app.service.subject_names()
    if not names:
        console.print("No cached subjects. Run: schedcache sync")
        return 0

    hidden = app.hidden.get_hidden_subject_ids()
    table = Table(title="Subjects", box=box.SIMPLE_HEAVY)
    table.add_column("ID", justify="right")
    table.add_column("Title")
    table.add_column("Hidden")
    for sid, title in sorted(names.items(), key=lambda kv: kv[1].lower()):
        table.add_row(str(sid), title, "yes" if sid in hidden else "")
    console.print(table)
    return 0


def _cmd_export(args: argparse.Namespace, app: App) -> int:
    month = parse_month(args.month)
    if month is None:
        console.print(f"Invalid month: {args.month!r} (expected YYYY-MM)")
        return 1

    out_path = (args.out or "").strip()
    if not out_path:
        console.print("Please provide output .ics path.")
        return 1

    events = app.service.events_for_month(month)
    if not events:
        console.print(f"No cached events for {month_label(month)}.")
        return 0

    n = export_events_to_ics(events, out_path)
    console.print(f"Exported {n} events to: {out_path}")
    return 0


def _cmd_clear(args: argparse.Namespace, app: App) -> int:
    app.service.clear_all()
    console.print("Event cache cleared.")
    return 0


def _cmd_log(args: argparse.Namespace, app: App) -> int:
    lines = read_log(app.log_store)
    if not lines:
        console.print("Log is empty.")
        return 0
    for line in lines[-args.tail :]:
        console.print(line, markup=False, highlight=False)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="schedcache", description="Schedule event cache CLI")
    parser.add_argument("--data-dir", type=str, default=None, help="Directory for cache and preferences")
    parser.add_argument("--base-url", type=str, default=None, help="Schedule API base URL")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    p_select = sub.add_parser("select", help="Set the active schedule")
    p_select.add_argument("kind", type=str, help="group, teacher or room")
    p_select.add_argument("id", type=int, help="Numeric id")
    p_select.add_argument("--name", type=str, default=None, help="Display name to save with it")

    sub.add_parser("schedules", help="List saved schedules")

    p_remove = sub.add_parser("remove", help="Forget a saved schedule")
    p_remove.add_argument("kind", type=str, help="group, teacher or room")
    p_remove.add_argument("id", type=int, help="Numeric id")

    p_filter = sub.add_parser("filter", help="Show or replace filters of the active group")
    p_filter.add_argument("--category", action="append", help="Keep only this event type (repeatable)")
    p_filter.add_argument("--teacher", type=int, action="append", help="Keep only events of this teacher id")
    p_filter.add_argument("--room", type=int, action="append", help="Keep only events in this room id")
    p_filter.add_argument("--subject", type=int, action="append", help="Keep only this subject id")
    p_filter.add_argument("--clear", action="store_true", help="Drop all saved filters")

    p_sync = sub.add_parser("sync", help="Fetch months not yet synced today")
    p_sync.add_argument("months", nargs="*", help="YYYY-MM ... (default: current month)")
    p_sync.add_argument("--force", action="store_true", help="Ignore today's sync stamp")

    p_day = sub.add_parser("day", help="Show events of one day")
    p_day.add_argument("date", nargs="?", default=None, help="YYYY-MM-DD (default: today)")

    p_week = sub.add_parser("week", help="Show events of the week containing a date")
    p_week.add_argument("date", nargs="?", default=None, help="YYYY-MM-DD (default: today)")

    p_hide = sub.add_parser("hide", help="Hide a subject everywhere")
    p_hide.add_argument("subject_id", type=int)

    p_unhide = sub.add_parser("unhide", help="Show a hidden subject again")
    p_unhide.add_argument("subject_id", type=int)

    sub.add_parser("subjects", help="List cached subjects")

    p_export = sub.add_parser("export", help="Export a cached month to .ics")
    p_export.add_argument("month", type=str, help="YYYY-MM")
    p_export.add_argument("out", type=str, help="Output file path (e.g. out.ics)")

    sub.add_parser("clear", help="Drop all cached events and stamps")

    p_log = sub.add_parser("log", help="Show the persistent sync log")
    p_log.add_argument("--tail", type=int, default=50, help="Number of lines")

    return parser


COMMANDS = {
    "select": _cmd_select,
    "schedules": _cmd_schedules,
    "remove": _cmd_remove,
    "filter": _cmd_filter,
    "sync": _cmd_sync,
    "day": _cmd_day,
    "week": _cmd_week,
    "hide": _cmd_hide,
    "unhide": _cmd_unhide,
    "subjects": _cmd_subjects,
    "export": _cmd_export,
    "clear": _cmd_clear,
    "log": _cmd_log,
}


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    app = build_app(load_settings(args.data_dir, args.base_url))
    _setup_logging(app, args.verbose)

    handler = COMMANDS.get(args.command)
    if handler is None:
        raise SystemExit(2)
    raise SystemExit(handler(args, app))
