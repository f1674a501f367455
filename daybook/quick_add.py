from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import List, Optional, Pattern

from daybook.models.reminder_models import QuickAddResult
from daybook.utils.dates import TzLike, localize, start_of_day, to_local, utc_now


TIME_RE = re.compile(r"\b(\d{1,2}):(\d{2})\b")
IN_RE = re.compile(r"\bin\s*(\d+)\s*(h|m|hr|min)\b", re.IGNORECASE)
TODAY_RE = re.compile(r"\btoday\b", re.IGNORECASE)
TOMORROW_RE = re.compile(r"\btomorrow\b", re.IGNORECASE)
NEXT_WEEK_RE = re.compile(r"\bnext\s+week\b", re.IGNORECASE)
NEXT_WEEK_WORDS_RE = re.compile(r"next\s+week", re.IGNORECASE)


def _strip_tokens(text: str, used: List[tuple[Pattern[str], int]]) -> str:
    out = text
    for pattern, count in used:
        out = pattern.sub(" ", out, count=count)
    return " ".join(out.split())


def parse_quick_add(text: str, *, now: Optional[datetime] = None, tz: TzLike = None) -> QuickAddResult:
    """
    Pull a title and a due/remind time out of one line of free text.

    Phrases, in precedence order: "in N h|hr|m|min", "tomorrow", "today",
    "next week"; with none of them the anchor is the start of today. An
    "H:MM" token sets the time of day on the anchor's date. When nothing but
    phrases remains, the input itself becomes the title with no times.
    """
    raw = text.strip()
    if not raw:
        return QuickAddResult(title="")

    now = now or utc_now()
    base: Optional[datetime] = None
    used: List[tuple[Pattern[str], int]] = []

    in_match = IN_RE.search(raw)
    if in_match:
        n = int(in_match.group(1))
        unit = in_match.group(2).lower()
        base = now + (timedelta(hours=n) if unit in ("h", "hr") else timedelta(minutes=n))
        used.append((IN_RE, 0))

    lower = raw.lower()
    # day words are detected anywhere ("tomorrows") but only stripped as whole words
    if base is None and "tomorrow" in lower:
        base = start_of_day(to_local(now, tz) + timedelta(days=1), tz)
        used.append((TOMORROW_RE, 0))
    if base is None and "today" in lower:
        base = start_of_day(now, tz)
        used.append((TODAY_RE, 0))
    if base is None and NEXT_WEEK_WORDS_RE.search(raw):
        base = start_of_day(to_local(now, tz) + timedelta(weeks=1), tz)
        used.append((NEXT_WEEK_RE, 0))
    if base is None:
        base = start_of_day(now, tz)

    time_match = TIME_RE.search(raw)
    if time_match:
        hour = int(time_match.group(1))
        minute = int(time_match.group(2))
        if 0 <= hour <= 23 and 0 <= minute <= 59:
            local = to_local(base, tz)
            base = localize(datetime(local.year, local.month, local.day, hour, minute), tz)
        used.append((TIME_RE, 1))

    title = _strip_tokens(raw, used)
    if not title:
        return QuickAddResult(title=text)

    return QuickAddResult(title=title, due_at=base, remind_at=base)
