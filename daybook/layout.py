from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from typing import Iterable, List, Sequence

from daybook.models.calendar_models import CalendarEvent, EventLayout
from daybook.utils.dates import TzLike, day_range, localize, to_local


SLOT_MINUTES = 15
MIN_DURATION_MINUTES = 30
PIXELS_PER_SLOT = 12


def overlaps(a: CalendarEvent, b: CalendarEvent) -> bool:
    # half-open: touching endpoints do not overlap
    return a.start_at < b.end_at and b.start_at < a.end_at


def layout_day(events: Sequence[CalendarEvent]) -> List[EventLayout]:
    """
    Assign display columns to the events of one day.

    Events are placed first-fit, in start order, into the leftmost column where
    they overlap nothing. Every entry reports the column count of the whole day,
    not of its own overlap cluster, so all events on a day share one width.
    """
    ordered = sorted(events, key=lambda e: e.start_at)
    columns: List[List[CalendarEvent]] = []
    placed: List[tuple[CalendarEvent, int]] = []

    for ev in ordered:
        for idx, column in enumerate(columns):
            if not any(overlaps(existing, ev) for existing in column):
                column.append(ev)
                placed.append((ev, idx))
                break
        else:
            columns.append([ev])
            placed.append((ev, len(columns) - 1))

    total = len(columns)
    return [EventLayout(event=ev, column_index=idx, total_columns=total) for ev, idx in placed]


def events_on_day(events: Iterable[CalendarEvent], day: date, tz: TzLike = None) -> List[CalendarEvent]:
    start, end = day_range(day, tz)
    return [e for e in events if (e.start_at < end and start < e.end_at) or e.start_at == start]


def snap_to_slot(minutes_from_day_start: float) -> int:
    slot = math.floor(minutes_from_day_start / SLOT_MINUTES + 0.5) * SLOT_MINUTES
    return max(0, int(slot))


def clamp_duration_minutes(start_slot: int, end_slot: int) -> int:
    raw = end_slot - start_slot
    duration = max(raw, MIN_DURATION_MINUTES / SLOT_MINUTES)
    return snap_to_slot(duration * SLOT_MINUTES)


def slot_to_minutes(slot_index: int) -> int:
    return slot_index * SLOT_MINUTES


def minutes_to_datetime(day: date, day_start_hour: int, minutes_from_start: float, tz: TzLike = None) -> datetime:
    base = localize(datetime(day.year, day.month, day.day, day_start_hour), tz)
    return base + timedelta(minutes=minutes_from_start)


def datetime_to_slot_minutes(moment: datetime, day_start_hour: int, tz: TzLike = None) -> float:
    local = to_local(moment, tz)
    start = localize(datetime(local.year, local.month, local.day, day_start_hour), tz)
    return max(0.0, (moment - start).total_seconds() / 60)
