from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from daybook.migrations.reminder_migrations import (
    REMINDER_LISTS_STORE_VERSION,
    REMINDERS_STORE_VERSION,
    migrate_reminder_lists,
    migrate_reminders,
)
from daybook.models.reminder_models import Reminder, ReminderList, RepeatDescriptor, SmartFilter
from daybook.providers.json_store import JsonStore
from daybook.recurrence import next_occurrence
from daybook.utils.dates import TzLike, day_range, to_local, utc_now


logger = logging.getLogger(__name__)

REMINDERS_FILE = "reminders.json"
LISTS_FILE = "reminder_lists.json"

DEFAULT_LIST_ID = "inbox"
DEFAULT_LISTS = [
    ("inbox", "Inbox", 0),
    ("meetings", "Meetings", 1),
    ("personal", "Personal", 2),
]

SNOOZE_PRESETS: Dict[str, timedelta] = {
    "5m": timedelta(minutes=5),
    "15m": timedelta(minutes=15),
    "1h": timedelta(hours=1),
    "1d": timedelta(days=1),
}

_IMMUTABLE = {"id", "created_at"}


def _next_sort_key(items: Iterable[Any]) -> float:
    keys = [x.sort_key for x in items]
    if not keys:
        return 0
    return max(max(keys), 0) + 1


class ReminderRepository:
    """Reminders and reminder lists kept in two versioned JSON stores under `data_dir`."""

    def __init__(self, data_dir: str | Path, tz: TzLike = None):
        self.data_dir = Path(data_dir)
        self.tz = tz
        self.reminders_store = JsonStore(self.data_dir / REMINDERS_FILE)
        self.lists_store = JsonStore(self.data_dir / LISTS_FILE)

    # -- reminders --------------------------------------------------------

    def load_reminders(self) -> List[Reminder]:
        s = self.reminders_store
        with s.lock:
            s.reload()
            result = migrate_reminders(s.get("data"))
            if result.upgraded:
                logger.info("Upgrading reminders store from v%d to v%d", result.version, REMINDERS_STORE_VERSION)
                self._save_reminders(result.records)
            return list(result.records)

    def _save_reminders(self, reminders: List[Reminder]) -> None:
        s = self.reminders_store
        s.set(
            "data",
            {
                "version": REMINDERS_STORE_VERSION,
                "reminders": [r.model_dump(mode="json", by_alias=True) for r in reminders],
            },
        )
        s.save()

    def fetch_all_reminders(self) -> List[Reminder]:
        return self.load_reminders()

    def get_reminder(self, reminder_id: str) -> Optional[Reminder]:
        return next((r for r in self.load_reminders() if r.id == reminder_id), None)

    def list_reminders(self, list_id: Optional[str] = None, completed: Optional[bool] = None) -> List[Reminder]:
        reminders = self.load_reminders()
        if list_id is not None:
            reminders = [r for r in reminders if r.list_id == list_id]
        if completed is not None:
            reminders = [r for r in reminders if (r.completed_at is not None) == completed]
        return sorted(reminders, key=lambda r: r.sort_key)

    def list_smart(self, kind: SmartFilter, now: Optional[datetime] = None) -> List[Reminder]:
        now = now or utc_now()
        reminders = self.load_reminders()
        active = [r for r in reminders if r.completed_at is None]

        def when(r: Reminder) -> Optional[datetime]:
            return r.due_at or r.remind_at

        if kind == "today":
            start, end = day_range(to_local(now, self.tz).date(), self.tz)
            picked = [r for r in active if when(r) is not None and start <= when(r) < end]
            return sorted(picked, key=lambda r: r.sort_key)
        if kind == "scheduled":
            picked = [r for r in active if when(r) is not None and when(r) > now]
            return sorted(picked, key=lambda r: when(r))
        if kind == "overdue":
            picked = [r for r in active if when(r) is not None and when(r) < now]
            return sorted(picked, key=lambda r: r.sort_key)
        if kind == "completed":
            done = [r for r in reminders if r.completed_at is not None]
            return sorted(done, key=lambda r: r.completed_at, reverse=True)
        return sorted(active, key=lambda r: r.sort_key)

    def create_reminder(
        self,
        list_id: str,
        title: str,
        *,
        notes: Optional[str] = None,
        due_at: Optional[datetime] = None,
        remind_at: Optional[datetime] = None,
        repeat: Optional[RepeatDescriptor] = None,
        priority: str = "none",
        linked_note_id: Optional[str] = None,
    ) -> Reminder:
        with self.reminders_store.lock:
            reminders = self.load_reminders()
            now = utc_now()
            reminder = Reminder(
                id=str(uuid.uuid4()),
                list_id=list_id,
                title=title,
                notes=notes,
                linked_note_id=linked_note_id,
                due_at=due_at,
                remind_at=remind_at,
                repeat=repeat,
                priority=priority,
                created_at=now,
                updated_at=now,
                sort_key=_next_sort_key(reminders),
            )
            reminders.append(reminder)
            self._save_reminders(reminders)
        logger.info("Created reminder %s in list %s", reminder.id, list_id)
        return reminder

    def _insert(self, reminder: Reminder) -> None:
        with self.reminders_store.lock:
            reminders = self.load_reminders()
            reminders.append(reminder)
            self._save_reminders(reminders)

    def update_reminder(self, reminder_id: str, patch: Dict[str, Any]) -> Optional[Reminder]:
        """Apply `patch` (snake_case field names). A new remind_at re-arms the notification."""
        unknown = set(patch) - set(Reminder.model_fields)
        if unknown:
            raise ValueError(f"Unknown reminder fields: {sorted(unknown)}")
        changes = {k: v for k, v in patch.items() if k not in _IMMUTABLE}

        with self.reminders_store.lock:
            reminders = self.load_reminders()
            idx = next((i for i, r in enumerate(reminders) if r.id == reminder_id), None)
            if idx is None:
                return None
            current = reminders[idx]
            changes["updated_at"] = utc_now()
            if "remind_at" in changes and changes["remind_at"] != current.remind_at:
                changes["notification_fired_at"] = None
            updated = Reminder.model_validate({**current.model_dump(), **changes})
            reminders[idx] = updated
            self._save_reminders(reminders)
        return updated

    def complete_reminder(self, reminder_id: str) -> Optional[Reminder]:
        """Mark done. A repeating reminder also spawns its next occurrence."""
        with self.reminders_store.lock:
            current = self.get_reminder(reminder_id)
            if current is None:
                return None
            following = next_occurrence(current, tz=self.tz) if current.completed_at is None else None
            done = self.update_reminder(reminder_id, {"completed_at": utc_now()})
            if following is not None:
                self._insert(following)
                logger.info("Reminder %s repeats; next occurrence %s", reminder_id, following.id)
        return done

    def uncomplete_reminder(self, reminder_id: str) -> Optional[Reminder]:
        return self.update_reminder(reminder_id, {"completed_at": None})

    def snooze_reminder(self, reminder_id: str, preset: str = "1h") -> Optional[Reminder]:
        current = self.get_reminder(reminder_id)
        if current is None:
            return None
        delta = SNOOZE_PRESETS.get(preset, SNOOZE_PRESETS["1h"])
        nxt = utc_now() + delta
        return self.update_reminder(reminder_id, {"remind_at": nxt, "due_at": current.due_at or nxt})

    def remove_reminder(self, reminder_id: str) -> bool:
        with self.reminders_store.lock:
            reminders = self.load_reminders()
            kept = [r for r in reminders if r.id != reminder_id]
            if len(kept) == len(reminders):
                return False
            self._save_reminders(kept)
        return True

    # -- lists ------------------------------------------------------------

    def _load_lists(self) -> List[ReminderList]:
        s = self.lists_store
        with s.lock:
            s.reload()
            result = migrate_reminder_lists(s.get("data"))
            if result.upgraded:
                logger.info("Upgrading reminder lists store from v%d to v%d", result.version, REMINDER_LISTS_STORE_VERSION)
                self._save_lists(result.records)
            return list(result.records)

    def _save_lists(self, lists: List[ReminderList]) -> None:
        s = self.lists_store
        s.set(
            "data",
            {
                "version": REMINDER_LISTS_STORE_VERSION,
                "lists": [l.model_dump(mode="json", by_alias=True) for l in lists],
            },
        )
        s.save()

    def list_reminder_lists(self) -> List[ReminderList]:
        with self.lists_store.lock:
            lists = self._load_lists()
            now = utc_now()
            missing = [d for d in DEFAULT_LISTS if not any(l.id == d[0] for l in lists)]
            for list_id, name, sort_key in missing:
                lists.append(ReminderList(id=list_id, name=name, created_at=now, updated_at=now, sort_key=sort_key))
            if missing:
                self._save_lists(lists)
        return sorted(lists, key=lambda l: l.sort_key)

    def create_reminder_list(self, name: str, emoji: Optional[str] = None) -> ReminderList:
        with self.lists_store.lock:
            lists = self._load_lists()
            now = utc_now()
            lst = ReminderList(
                id=str(uuid.uuid4()),
                name=name,
                emoji=emoji,
                created_at=now,
                updated_at=now,
                sort_key=_next_sort_key(lists),
            )
            lists.append(lst)
            self._save_lists(lists)
        return lst

    def update_reminder_list(self, list_id: str, name: Optional[str] = None, emoji: Optional[str] = None) -> Optional[ReminderList]:
        with self.lists_store.lock:
            lists = self._load_lists()
            idx = next((i for i, l in enumerate(lists) if l.id == list_id), None)
            if idx is None:
                return None
            changes: Dict[str, Any] = {"updated_at": utc_now()}
            if name is not None:
                changes["name"] = name
            if emoji is not None:
                changes["emoji"] = emoji
            lists[idx] = lists[idx].model_copy(update=changes)
            self._save_lists(lists)
        return lists[idx]

    def remove_reminder_list(self, list_id: str) -> bool:
        """Delete a list and move its reminders to the inbox. The inbox itself cannot be removed."""
        if list_id == DEFAULT_LIST_ID:
            return False
        with self.lists_store.lock, self.reminders_store.lock:
            lists = self._load_lists()
            if not any(l.id == list_id for l in lists):
                return False
            self._save_lists([l for l in lists if l.id != list_id])
            now = utc_now()
            reminders = [
                r.model_copy(update={"list_id": DEFAULT_LIST_ID, "updated_at": now}) if r.list_id == list_id else r
                for r in self.load_reminders()
            ]
            self._save_reminders(reminders)
        return True
