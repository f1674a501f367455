from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Iterator, Optional

from dateutil.relativedelta import relativedelta

from daybook.models.reminder_models import Reminder, RepeatDescriptor
from daybook.utils.dates import TzLike, localize, to_local, utc_now


logger = logging.getLogger(__name__)


def _step_delta(repeat: RepeatDescriptor) -> relativedelta:
    n = repeat.interval
    if repeat.freq == "daily":
        return relativedelta(days=n)
    if repeat.freq == "weekly":
        return relativedelta(days=7 * n)
    if repeat.freq == "monthly":
        return relativedelta(months=n)
    if repeat.freq == "yearly":
        return relativedelta(years=n)
    return relativedelta(days=1)


def step(anchor: datetime, repeat: RepeatDescriptor, tz: TzLike = None) -> datetime:
    """Advance an instant by one repeat interval on the local wall clock.

    Month and year steps clamp to the end of the target month
    (Jan 31 + 1 month is Feb 28, or Feb 29 in a leap year).
    """
    local = to_local(anchor, tz).replace(tzinfo=None)
    return localize(local + _step_delta(repeat), tz)


def next_occurrence(
    reminder: Reminder,
    *,
    now: Optional[datetime] = None,
    tz: TzLike = None,
) -> Optional[Reminder]:
    """Build the occurrence after `reminder`, or None when the series is inert or has ended."""
    repeat = reminder.repeat
    if repeat is None or reminder.completed_at is not None:
        return None

    now = now or utc_now()
    anchor = reminder.due_at or reminder.remind_at or now
    next_anchor = step(anchor, repeat, tz)
    if repeat.end_at is not None and next_anchor > repeat.end_at:
        logger.debug("Series of reminder %s ended at %s", reminder.id, repeat.end_at)
        return None

    return reminder.model_copy(
        update={
            "id": str(uuid.uuid4()),
            "due_at": next_anchor if reminder.due_at else None,
            "remind_at": next_anchor if reminder.remind_at else None,
            "completed_at": None,
            "notification_fired_at": None,
            "created_at": now,
            "updated_at": now,
        },
        deep=True,
    )


def iter_occurrences(
    reminder: Reminder,
    limit: int,
    *,
    now: Optional[datetime] = None,
    tz: TzLike = None,
) -> Iterator[Reminder]:
    current = reminder
    for _ in range(limit):
        nxt = next_occurrence(current, now=now, tz=tz)
        if nxt is None:
            return
        yield nxt
        current = nxt
