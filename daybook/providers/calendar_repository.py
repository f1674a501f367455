from __future__ import annotations

import logging
import uuid
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

from daybook.ics_codec import decode_calendar_report, encode_calendar_events
from daybook.layout import events_on_day
from daybook.migrations.calendar_migrations import (
    CALENDAR_EVENTS_STORE_VERSION,
    CALENDAR_SETTINGS_STORE_VERSION,
    migrate_calendar_events,
    migrate_calendar_settings,
)
from daybook.models.calendar_models import CalendarEvent, CalendarViewPrefs
from daybook.providers.json_store import JsonStore
from daybook.utils.dates import TzLike, utc_now


logger = logging.getLogger(__name__)

EVENTS_FILE = "events.json"
CALENDAR_SETTINGS_FILE = "calendar_settings.json"

_IMMUTABLE = {"id", "created_at"}


class CalendarRepository:
    def __init__(self, data_dir: str | Path, tz: TzLike = None):
        self.data_dir = Path(data_dir)
        self.tz = tz
        self.events_store = JsonStore(self.data_dir / EVENTS_FILE)
        self.settings_store = JsonStore(self.data_dir / CALENDAR_SETTINGS_FILE)

    def load_events(self) -> List[CalendarEvent]:
        s = self.events_store
        with s.lock:
            s.reload()
            result = migrate_calendar_events(s.get("data"))
            if result.upgraded:
                logger.info("Upgrading events store from v%d to v%d", result.version, CALENDAR_EVENTS_STORE_VERSION)
                self._save_events(result.records)
            return list(result.records)

    def _save_events(self, events: List[CalendarEvent]) -> None:
        s = self.events_store
        s.set(
            "data",
            {
                "version": CALENDAR_EVENTS_STORE_VERSION,
                "events": [e.model_dump(mode="json", by_alias=True) for e in events],
            },
        )
        s.save()

    def events_for_day(self, day: date) -> List[CalendarEvent]:
        return events_on_day(self.load_events(), day, self.tz)

    def get_event(self, event_id: str) -> Optional[CalendarEvent]:
        return next((e for e in self.load_events() if e.id == event_id), None)

    def create_event(self, **fields: Any) -> CalendarEvent:
        with self.events_store.lock:
            events = self.load_events()
            now = utc_now()
            event = CalendarEvent(**{**fields, "id": str(uuid.uuid4()), "created_at": now, "updated_at": now})
            events.append(event)
            self._save_events(events)
        return event

    def update_event(self, event_id: str, patch: Dict[str, Any]) -> Optional[CalendarEvent]:
        changes = {k: v for k, v in patch.items() if k not in _IMMUTABLE}
        with self.events_store.lock:
            events = self.load_events()
            idx = next((i for i, e in enumerate(events) if e.id == event_id), None)
            if idx is None:
                return None
            changes["updated_at"] = utc_now()
            events[idx] = CalendarEvent.model_validate({**events[idx].model_dump(), **changes})
            self._save_events(events)
        return events[idx]

    def delete_event(self, event_id: str) -> bool:
        with self.events_store.lock:
            events = self.load_events()
            kept = [e for e in events if e.id != event_id]
            if len(kept) == len(events):
                return False
            self._save_events(kept)
        return True

    def import_ics(self, text: str) -> List[CalendarEvent]:
        report = decode_calendar_report(text, tz=self.tz)
        for note in report.skipped:
            logger.warning("ICS import: %s", note)
        created: List[CalendarEvent] = []
        for p in report.events:
            created.append(
                self.create_event(
                    title=p.title,
                    notes=p.description,
                    location=p.location,
                    start_at=p.start_at,
                    end_at=p.end_at,
                    all_day=p.all_day,
                    reminder_ids=[],
                    linked_note_id=None,
                )
            )
        logger.info("Imported %d events from ICS", len(created))
        return created

    def export_ics(self) -> str:
        return encode_calendar_events(self.load_events(), tz=self.tz)

    def load_view_prefs(self) -> CalendarViewPrefs:
        s = self.settings_store
        with s.lock:
            s.reload()
            result = migrate_calendar_settings(s.get("data"))
            prefs = result.records[0]
            if result.upgraded:
                self.save_view_prefs(prefs)
        return prefs

    def save_view_prefs(self, prefs: CalendarViewPrefs) -> None:
        s = self.settings_store
        with s.lock:
            s.set("data", {"version": CALENDAR_SETTINGS_STORE_VERSION, **prefs.model_dump(mode="json", by_alias=True)})
            s.save()
