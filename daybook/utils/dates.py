from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional, Tuple, Union

import pytz


TzLike = Union[str, tzinfo, None]

_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})$")


def get_timezone(tz: TzLike = None) -> tzinfo:
    """Resolve a zone name into a tzinfo.

    Accepts "local" (the host's current UTC offset), "UTC", IANA names and
    fixed offsets like "+02:00". Raises ValueError for unknown names.
    """
    if isinstance(tz, tzinfo):
        return tz
    name = (tz or "local").strip()
    low = name.lower()
    if low in {"local", "system"}:
        return datetime.now().astimezone().tzinfo or timezone.utc
    if low in {"utc", "z", "gmt"}:
        return pytz.utc
    m = _OFFSET_RE.match(name)
    if m:
        sign, hh, mm = m.groups()
        if int(hh) > 23 or int(mm) > 59:
            raise ValueError(f"Invalid timezone offset: {name!r}")
        minutes = int(hh) * 60 + int(mm)
        return pytz.FixedOffset(minutes if sign == "+" else -minutes)
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError as exc:
        raise ValueError(f"Invalid timezone identifier: {name!r}") from exc


def localize(naive: datetime, tz: TzLike = None) -> datetime:
    zone = get_timezone(tz)
    if hasattr(zone, "localize"):
        return zone.localize(naive)
    return naive.replace(tzinfo=zone)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(moment: datetime, tz: TzLike = None) -> datetime:
    if moment.tzinfo is None:
        return localize(moment, tz)
    return moment


def to_local(moment: datetime, tz: TzLike = None) -> datetime:
    return ensure_aware(moment, tz).astimezone(get_timezone(tz))


def start_of_day(moment: datetime, tz: TzLike = None) -> datetime:
    local = to_local(moment, tz)
    return localize(datetime(local.year, local.month, local.day), tz)


def midnight_of(d: date, tz: TzLike = None) -> datetime:
    return localize(datetime(d.year, d.month, d.day), tz)


def is_local_midnight(moment: datetime, tz: TzLike = None) -> bool:
    local = to_local(moment, tz)
    return local.hour == 0 and local.minute == 0 and local.second == 0 and local.microsecond == 0


def day_range(d: date, tz: TzLike = None) -> Tuple[datetime, datetime]:
    start = midnight_of(d, tz)
    end = midnight_of(d + timedelta(days=1), tz)
    return start, end


def parse_iso(value: object) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC. Returns None if invalid."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None
    s = value.strip()
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(s)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def pretty_day_header(d: date) -> str:
    # Example: Mon 3 Nov
    return f"{d.strftime('%a')} {d.day} {d.strftime('%b')}"


def pretty_time(moment: datetime, tz: TzLike = None) -> str:
    return to_local(moment, tz).strftime("%H:%M")
