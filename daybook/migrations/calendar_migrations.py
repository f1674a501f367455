from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, List, Optional

from daybook.migrations.common import (
    MigrationResult,
    as_record,
    payload_version,
    str_list,
    str_or,
    time_or_none,
    unwrap_collection,
)
from daybook.models.calendar_models import CalendarEvent, CalendarViewPrefs
from daybook.utils.dates import utc_now


logger = logging.getLogger(__name__)

CALENDAR_EVENTS_STORE_VERSION = 1
CALENDAR_SETTINGS_STORE_VERSION = 1

_VIEWS = ("month", "week", "day", "agenda")


def normalize_event(raw: Any, now: Optional[datetime] = None) -> Optional[CalendarEvent]:
    """Reconcile one stored event field by field. Records without an id or a usable start are dropped."""
    o = as_record(raw)
    event_id = str_or(o, "id", "")
    if not event_id:
        return None

    start_at = time_or_none(o, "startAt")
    if start_at is None:
        logger.warning("Dropping calendar event %s: unreadable startAt %r", event_id, o.get("startAt"))
        return None
    all_day = o.get("allDay") is True
    end_at = time_or_none(o, "endAt")
    if end_at is None or end_at < start_at:
        end_at = start_at + (timedelta(days=1) if all_day else timedelta(hours=1))

    created_at = time_or_none(o, "createdAt") or now or utc_now()
    updated_at = time_or_none(o, "updatedAt") or created_at
    recurrence = o.get("recurrence")
    linked = o.get("linkedNoteId")
    color = o.get("color")

    return CalendarEvent(
        id=event_id,
        title=str_or(o, "title", ""),
        notes=str_or(o, "notes"),
        location=str_or(o, "location"),
        start_at=start_at,
        end_at=end_at,
        all_day=all_day,
        timezone=str_or(o, "timezone"),
        reminder_ids=str_list(o.get("reminderIds")) or [],
        linked_note_id=linked if isinstance(linked, str) else None,
        participants=str_list(o.get("participants")),
        color=color if isinstance(color, str) else None,
        created_at=created_at,
        updated_at=updated_at,
        recurrence=recurrence if isinstance(recurrence, dict) else None,
    )


def migrate_calendar_events(raw: Any, now: Optional[datetime] = None) -> MigrationResult:
    out: List[CalendarEvent] = []
    for item in unwrap_collection(raw, "events"):
        event = normalize_event(item, now=now)
        if event is not None:
            out.append(event)
    version = payload_version(raw)
    return MigrationResult(out, version, version != CALENDAR_EVENTS_STORE_VERSION)


def normalize_view_prefs(raw: Any) -> CalendarViewPrefs:
    o = as_record(raw)
    defaults = CalendarViewPrefs()

    view = o.get("defaultView")
    start_hour = o.get("dayStartHour")
    end_hour = o.get("dayEndHour")
    show_weeks = o.get("showWeekNumbers")
    week_start = o.get("weekStartsOn")

    return CalendarViewPrefs(
        default_view=view if view in _VIEWS else defaults.default_view,
        week_starts_on=1 if week_start == 1 and not isinstance(week_start, bool) else 0,
        show_week_numbers=show_weeks if isinstance(show_weeks, bool) else defaults.show_week_numbers,
        day_start_hour=start_hour if _is_hour(start_hour, 23) else defaults.day_start_hour,
        day_end_hour=end_hour if _is_hour(end_hour, 24) else defaults.day_end_hour,
    )


def _is_hour(v: Any, upper: int) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and 0 <= v <= upper


def migrate_calendar_settings(raw: Any) -> MigrationResult:
    version = payload_version(raw)
    data = raw.get("data") if isinstance(raw, dict) and isinstance(raw.get("data"), dict) else raw
    prefs = normalize_view_prefs(data)
    return MigrationResult([prefs], version, version != CALENDAR_SETTINGS_STORE_VERSION)
