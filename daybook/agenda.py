from __future__ import annotations

from datetime import date
from typing import List

from daybook.layout import layout_day
from daybook.models.calendar_models import CalendarEvent
from daybook.models.reminder_models import Reminder
from daybook.utils.dates import TzLike, pretty_day_header, pretty_time
from daybook.utils.formatting import section


def _events_lines(events: List[CalendarEvent], tz: TzLike) -> List[str]:
    lines: List[str] = []
    all_day = [e for e in events if e.all_day]
    timed = [e for e in events if not e.all_day]
    for e in all_day:
        lines.append(f"All day → {e.title}")
    for entry in layout_day(timed):
        e = entry.event
        span = f"{pretty_time(e.start_at, tz)}–{pretty_time(e.end_at, tz)}"
        lane = f" [col {entry.column_index + 1}/{entry.total_columns}]" if entry.total_columns > 1 else ""
        loc = f" @ {e.location}" if e.location else ""
        lines.append(f"{span} → {e.title}{loc}{lane}")
    return lines


def _reminder_lines(reminders: List[Reminder], tz: TzLike) -> List[str]:
    lines = []
    for r in reminders:
        when = r.due_at or r.remind_at
        prefix = f"{pretty_time(when, tz)} " if when else ""
        flag = "" if r.priority == "none" else f" (!{r.priority})"
        lines.append(f"{prefix}{r.title}{flag}")
    return lines


def render_day(day: date, events: List[CalendarEvent], reminders: List[Reminder], tz: TzLike = None) -> str:
    header = f"Agenda — {pretty_day_header(day)}"
    parts = [
        header,
        "",
        section("🗓️ Events", _events_lines(events, tz)),
        "",
        section("⏰ Reminders", _reminder_lines(reminders, tz)),
    ]
    return "\n".join(parts)
