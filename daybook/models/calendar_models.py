from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


CalendarViewType = Literal["month", "week", "day", "agenda"]


class CalendarEvent(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str = ""
    notes: Optional[str] = None
    location: Optional[str] = None
    start_at: datetime
    end_at: datetime
    all_day: bool = Field(default=False)
    timezone: Optional[str] = None
    reminder_ids: List[str] = Field(default_factory=list)
    linked_note_id: Optional[str] = None
    participants: Optional[List[str]] = None
    color: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    recurrence: Optional[Dict[str, Any]] = None


class ParsedIcsEvent(BaseModel):
    """One VEVENT as read from interchange text; ids and reminders are assigned on import."""

    model_config = ConfigDict(frozen=True)

    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    start_at: datetime
    end_at: datetime
    all_day: bool = False


class DecodeReport(BaseModel):
    events: List[ParsedIcsEvent] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)


class EventLayout(BaseModel):
    event: CalendarEvent
    column_index: int
    total_columns: int


class CalendarViewPrefs(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    default_view: CalendarViewType = "month"
    week_starts_on: Literal[0, 1] = 0
    show_week_numbers: bool = False
    day_start_hour: int = 6
    day_end_hour: int = 22
