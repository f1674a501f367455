from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from daybook.models.reminder_models import Reminder


class ReminderSource(Protocol):
    """What the scheduler needs from the reminder store."""

    def fetch_all_reminders(self) -> List[Reminder]:
        ...

    def update_reminder(self, reminder_id: str, patch: Dict[str, Any]) -> Optional[Reminder]:
        """Apply a partial update. Changing remind_at must clear notification_fired_at."""
        ...


class Notifier(Protocol):
    def request_permission(self) -> bool:
        ...

    def deliver(self, title: str, body: Optional[str] = None) -> bool:
        ...
