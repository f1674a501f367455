from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from daybook.migrations.common import (
    MigrationResult,
    as_record,
    is_number,
    number_or,
    payload_version,
    str_or,
    time_or_none,
    unwrap_collection,
)
from daybook.models.reminder_models import Reminder, ReminderList, RepeatDescriptor
from daybook.utils.dates import utc_now


REMINDERS_STORE_VERSION = 1
REMINDER_LISTS_STORE_VERSION = 1

_FREQS = ("daily", "weekly", "monthly", "yearly", "custom")
_PRIORITIES = ("low", "medium", "high")


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _positive_int(v: Any) -> Optional[int]:
    if is_number(v) and float(v).is_integer() and v >= 1:
        return int(v)
    return None


def normalize_repeat(raw: Any) -> Optional[RepeatDescriptor]:
    if not isinstance(raw, dict):
        return None
    freq = raw.get("freq")
    interval = raw.get("interval")
    by_weekday = raw.get("byWeekday")
    return RepeatDescriptor(
        freq=freq if freq in _FREQS else "daily",
        interval=_positive_int(interval) or 1,
        by_weekday=[x for x in by_weekday if _is_int(x)] if isinstance(by_weekday, list) else None,
        end_at=time_or_none(raw, "endAt"),
    )


def normalize_reminder(raw: Any, now: Optional[datetime] = None) -> Optional[Reminder]:
    o = as_record(raw)
    reminder_id = str_or(o, "id", "")
    if not reminder_id:
        return None
    priority = o.get("priority")
    created_at = time_or_none(o, "createdAt") or now or utc_now()
    return Reminder(
        id=reminder_id,
        list_id=str_or(o, "listId", ""),
        title=str_or(o, "title", ""),
        notes=str_or(o, "notes"),
        linked_note_id=str_or(o, "linkedNoteId"),
        due_at=time_or_none(o, "dueAt"),
        remind_at=time_or_none(o, "remindAt"),
        repeat=normalize_repeat(o.get("repeat")),
        priority=priority if priority in _PRIORITIES else "none",
        completed_at=time_or_none(o, "completedAt"),
        notification_fired_at=time_or_none(o, "notificationFiredAt"),
        created_at=created_at,
        updated_at=time_or_none(o, "updatedAt") or created_at,
        sort_key=number_or(o, "sortKey", 0),
    )


def normalize_reminder_list(raw: Any, now: Optional[datetime] = None) -> Optional[ReminderList]:
    o = as_record(raw)
    list_id = str_or(o, "id", "")
    if not list_id:
        return None
    created_at = time_or_none(o, "createdAt") or now or utc_now()
    return ReminderList(
        id=list_id,
        name=str_or(o, "name", ""),
        emoji=str_or(o, "emoji"),
        created_at=created_at,
        updated_at=time_or_none(o, "updatedAt") or created_at,
        sort_key=number_or(o, "sortKey", 0),
    )


def migrate_reminders(raw: Any, now: Optional[datetime] = None) -> MigrationResult:
    out: List[Reminder] = []
    for item in unwrap_collection(raw, "reminders"):
        r = normalize_reminder(item, now=now)
        if r is not None:
            out.append(r)
    version = payload_version(raw)
    return MigrationResult(out, version, version != REMINDERS_STORE_VERSION)


def migrate_reminder_lists(raw: Any, now: Optional[datetime] = None) -> MigrationResult:
    out: List[ReminderList] = []
    for item in unwrap_collection(raw, "lists"):
        lst = normalize_reminder_list(item, now=now)
        if lst is not None:
            out.append(lst)
    version = payload_version(raw)
    return MigrationResult(out, version, version != REMINDER_LISTS_STORE_VERSION)
