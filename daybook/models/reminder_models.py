from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


ReminderPriority = Literal["none", "low", "medium", "high"]
RepeatFreq = Literal["daily", "weekly", "monthly", "yearly", "custom"]
SmartFilter = Literal["today", "scheduled", "overdue", "completed", "all"]


class RepeatDescriptor(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    freq: RepeatFreq = "daily"
    interval: int = Field(default=1, ge=1)
    by_weekday: Optional[List[int]] = None
    end_at: Optional[datetime] = None


class Reminder(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    list_id: str = ""
    title: str = ""
    notes: Optional[str] = None
    linked_note_id: Optional[str] = None
    due_at: Optional[datetime] = None
    remind_at: Optional[datetime] = None
    repeat: Optional[RepeatDescriptor] = None
    priority: ReminderPriority = "none"
    completed_at: Optional[datetime] = None
    notification_fired_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    sort_key: float = 0

    def is_pending_notification(self) -> bool:
        return self.completed_at is None and self.notification_fired_at is None and self.remind_at is not None

    def is_due(self, now: datetime) -> bool:
        return self.is_pending_notification() and self.remind_at <= now


class ReminderList(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str = ""
    emoji: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    sort_key: float = 0


class QuickAddResult(BaseModel):
    title: str
    due_at: Optional[datetime] = None
    remind_at: Optional[datetime] = None
