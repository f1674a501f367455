from __future__ import annotations

import argparse
import logging
import sys
import threading
from datetime import date
from pathlib import Path
from typing import List, Optional

from daybook.agenda import render_day
from daybook.config import Settings
from daybook.models.reminder_models import Reminder
from daybook.providers.calendar_repository import CalendarRepository
from daybook.providers.notifiers import ConsoleNotifier, SlackNotifier
from daybook.providers.reminder_repository import DEFAULT_LIST_ID, ReminderRepository
from daybook.providers.slack_client import SlackClient
from daybook.quick_add import parse_quick_add
from daybook.scheduler import scheduler_start
from daybook.utils.dates import day_range, get_timezone, pretty_time, to_local, utc_now


logger = logging.getLogger("daybook")


def _build_notifier(settings: Settings):
    if settings.notifier == "slack":
        return SlackNotifier(
            SlackClient(settings.slack_bot_token),
            user_id=settings.slack_user_id,
            fallback_channel=settings.slack_fallback_channel,
        )
    return ConsoleNotifier()


def cmd_import_ics(args: argparse.Namespace, settings: Settings) -> int:
    text = Path(args.file).read_text(encoding="utf-8")
    created = CalendarRepository(settings.data_dir, settings.tz).import_ics(text)
    print(f"Imported {len(created)} event(s)")
    return 0


def cmd_export_ics(args: argparse.Namespace, settings: Settings) -> int:
    text = CalendarRepository(settings.data_dir, settings.tz).export_ics()
    if args.file:
        # newline="" keeps the CRLF line endings intact
        with open(args.file, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        logger.info("Calendar exported to %s", args.file)
    else:
        sys.stdout.write(text)
    return 0


def cmd_add(args: argparse.Namespace, settings: Settings) -> int:
    parsed = parse_quick_add(" ".join(args.text), tz=settings.tz)
    if not parsed.title.strip():
        logger.error("Nothing to add")
        return 1
    repo = ReminderRepository(settings.data_dir, settings.tz)
    r = repo.create_reminder(args.list, parsed.title, due_at=parsed.due_at, remind_at=parsed.remind_at)
    when = f" at {to_local(r.remind_at, settings.tz):%Y-%m-%d %H:%M}" if r.remind_at else ""
    print(f"Added “{r.title}”{when}")
    return 0


def _reminders_on(reminders: List[Reminder], day: date, settings: Settings) -> List[Reminder]:
    start, end = day_range(day, settings.tz)
    out = []
    for r in reminders:
        when = r.due_at or r.remind_at
        if r.completed_at is None and when is not None and start <= when < end:
            out.append(r)
    return sorted(out, key=lambda r: r.due_at or r.remind_at)


def cmd_agenda(args: argparse.Namespace, settings: Settings) -> int:
    day = date.fromisoformat(args.date) if args.date else to_local(utc_now(), settings.tz).date()
    events = CalendarRepository(settings.data_dir, settings.tz).events_for_day(day)
    reminders = ReminderRepository(settings.data_dir, settings.tz).load_reminders()
    print(render_day(day, events, _reminders_on(reminders, day, settings), settings.tz))
    return 0


def cmd_reminders(args: argparse.Namespace, settings: Settings) -> int:
    repo = ReminderRepository(settings.data_dir, settings.tz)
    for r in repo.list_smart(args.smart):
        when = r.due_at or r.remind_at
        stamp = f"{to_local(when, settings.tz):%Y-%m-%d} {pretty_time(when, settings.tz)}" if when else "-"
        done = "x" if r.completed_at else " "
        print(f"[{done}] {stamp:16} {r.title}  ({r.id})")
    return 0


def cmd_run_scheduler(args: argparse.Namespace, settings: Settings) -> int:
    repo = ReminderRepository(settings.data_dir, settings.tz)
    handle = scheduler_start(
        repo,
        _build_notifier(settings),
        fallback_seconds=settings.scheduler_fallback_seconds,
        max_delay=settings.scheduler_max_delay_seconds,
    )
    stop = threading.Event()
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        handle.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="daybook", description="Calendar and reminder engine")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("import-ics", help="Import events from an .ics file")
    s.add_argument("file")
    s.set_defaults(func=cmd_import_ics)

    s = sub.add_parser("export-ics", help="Export all events as iCalendar text")
    s.add_argument("file", nargs="?")
    s.set_defaults(func=cmd_export_ics)

    s = sub.add_parser("add", help='Quick-add a reminder, e.g. "Call Sam in 30m"')
    s.add_argument("text", nargs="+")
    s.add_argument("--list", default=DEFAULT_LIST_ID)
    s.set_defaults(func=cmd_add)

    s = sub.add_parser("agenda", help="Show one day's events laid out in columns")
    s.add_argument("--date", help="YYYY-MM-DD (default: today)")
    s.set_defaults(func=cmd_agenda)

    s = sub.add_parser("reminders", help="List reminders")
    s.add_argument("--smart", default="all", choices=["today", "scheduled", "overdue", "completed", "all"])
    s.set_defaults(func=cmd_reminders)

    s = sub.add_parser("run-scheduler", help="Fire reminder notifications until interrupted")
    s.set_defaults(func=cmd_run_scheduler)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    settings = Settings.load()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)

    try:
        get_timezone(settings.tz)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2

    try:
        return args.func(args, settings)
    except (OSError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
