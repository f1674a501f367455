from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, NamedTuple, Optional

from daybook.models.calendar_models import CalendarEvent, DecodeReport, ParsedIcsEvent
from daybook.utils.dates import TzLike, is_local_midnight, localize, midnight_of, to_local, utc_now


logger = logging.getLogger(__name__)

PRODID = "-//Daybook//Calendar//EN"
UID_DOMAIN = "daybook"
MAX_LINE_OCTETS = 75

_UNESCAPE_RE = re.compile(r"\\([nN,;\\])")
_UNESCAPED = {"n": "\n", "N": "\n", ",": ",", ";": ";", "\\": "\\"}


class IcsDate(NamedTuple):
    at: datetime
    all_day: bool


def _unfold_lines(text: str) -> List[str]:
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    lines: List[str] = []
    current = ""
    for line in normalized.split("\n"):
        if line[:1] in (" ", "\t") and current:
            current += line[1:]
        else:
            if current:
                lines.append(current)
            current = line
    if current:
        lines.append(current)
    return lines


def _unescape(value: str) -> str:
    return _UNESCAPE_RE.sub(lambda m: _UNESCAPED[m.group(1)], value)


def _escape(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\n")
        .replace("\n", "\\n")
    )


def parse_ics_date(value: str, tz: TzLike = None) -> Optional[IcsDate]:
    """Parse a DATE or DATE-TIME value. Returns None when the value is malformed."""
    v = value.strip()
    try:
        if len(v) == 8 and v.isdigit():
            return IcsDate(midnight_of(date(int(v[0:4]), int(v[4:6]), int(v[6:8])), tz), True)
        if len(v) >= 15 and v[8] == "T" and v[:8].isdigit() and v[9:15].isdigit():
            naive = datetime(
                int(v[0:4]), int(v[4:6]), int(v[6:8]),
                int(v[9:11]), int(v[11:13]), int(v[13:15]),
            )
            if v.endswith("Z"):
                return IcsDate(naive.replace(tzinfo=timezone.utc), False)
            return IcsDate(localize(naive, tz), False)
    except ValueError:
        return None
    return None


class _EventBuffer:
    def __init__(self) -> None:
        self.summary = ""
        self.description: Optional[str] = None
        self.location: Optional[str] = None
        self.dtstart = ""
        self.dtend = ""


def _flush(buf: _EventBuffer, report: DecodeReport, tz: TzLike, now: datetime) -> None:
    if not buf.dtstart:
        report.skipped.append(f"VEVENT {buf.summary!r} without DTSTART")
        return
    start = parse_ics_date(buf.dtstart, tz)
    if start is None:
        logger.warning("Malformed DTSTART %r; using current time", buf.dtstart)
        report.skipped.append(f"DTSTART:{buf.dtstart}")
        start = IcsDate(now, False)

    if buf.dtend:
        end = parse_ics_date(buf.dtend, tz)
        if end is None:
            logger.warning("Malformed DTEND %r; using current time", buf.dtend)
            report.skipped.append(f"DTEND:{buf.dtend}")
            end_at = now
        else:
            end_at = end.at
    elif start.all_day:
        end_at = midnight_of(to_local(start.at, tz).date() + timedelta(days=1), tz)
    else:
        end_at = start.at + timedelta(hours=1)

    report.events.append(
        ParsedIcsEvent(
            title=_unescape(buf.summary),
            description=_unescape(buf.description) if buf.description else None,
            location=_unescape(buf.location) if buf.location else None,
            start_at=start.at,
            end_at=end_at,
            all_day=start.all_day,
        )
    )


def decode_calendar_report(text: str, tz: TzLike = None, now: Optional[datetime] = None) -> DecodeReport:
    """Decode interchange text into events plus a record of what had to be skipped or patched."""
    now = now or utc_now()
    report = DecodeReport()
    buf: Optional[_EventBuffer] = None
    # VEVENTs count only inside a VCALENDAR block
    calendar_depth = 0

    for line in _unfold_lines(text):
        colon = line.find(":")
        if colon == -1:
            continue
        key = line[:colon].upper().split(";")[0]
        value = line[colon + 1:]

        if key == "BEGIN" and value.upper() == "VCALENDAR":
            calendar_depth += 1
            continue
        if key == "END" and value.upper() == "VCALENDAR":
            if buf is not None:
                _flush(buf, report, tz, now)
                buf = None
            calendar_depth = max(0, calendar_depth - 1)
            continue
        if key == "BEGIN" and value.upper() == "VEVENT":
            if calendar_depth == 0:
                report.skipped.append("VEVENT outside VCALENDAR")
                continue
            if buf is not None:
                _flush(buf, report, tz, now)
            buf = _EventBuffer()
            continue
        if key == "END" and value.upper() == "VEVENT":
            if buf is not None:
                _flush(buf, report, tz, now)
            buf = None
            continue
        if buf is None:
            continue

        if key == "SUMMARY":
            buf.summary = value
        elif key == "DESCRIPTION":
            buf.description = value
        elif key == "LOCATION":
            buf.location = value
        elif key == "DTSTART":
            buf.dtstart = value
        elif key == "DTEND":
            buf.dtend = value

    if buf is not None:
        _flush(buf, report, tz, now)
    if report.skipped:
        logger.info("Decoded %d events (%d fields skipped or patched)", len(report.events), len(report.skipped))
    return report


def decode_calendar_text(text: str, tz: TzLike = None, now: Optional[datetime] = None) -> List[ParsedIcsEvent]:
    return decode_calendar_report(text, tz=tz, now=now).events


def _format_date(d: date) -> str:
    return f"{d.year:04d}{d.month:02d}{d.day:02d}"


def _format_utc(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _all_day_bounds(event: CalendarEvent, tz: TzLike) -> tuple[date, date]:
    start_day = to_local(event.start_at, tz).date()
    end_day = to_local(event.end_at, tz).date()
    # DTEND is exclusive: an end inside a day closes after that day.
    if not is_local_midnight(event.end_at, tz):
        end_day += timedelta(days=1)
    if end_day <= start_day:
        end_day = start_day + timedelta(days=1)
    return start_day, end_day


def _fold(line: str) -> List[str]:
    if len(line.encode("utf-8")) <= MAX_LINE_OCTETS:
        return [line]
    parts: List[str] = []
    current = ""
    size = 0
    for ch in line:
        n = len(ch.encode("utf-8"))
        if size + n > MAX_LINE_OCTETS:
            parts.append(current)
            # continuation lines carry one leading space
            current = " "
            size = 1
        current += ch
        size += n
    parts.append(current)
    return parts


def encode_calendar_events(events: Iterable[CalendarEvent], tz: TzLike = None) -> str:
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
    ]
    for e in events:
        lines.append("BEGIN:VEVENT")
        lines.append(f"UID:{e.id}@{UID_DOMAIN}")
        lines.append(f"DTSTAMP:{_format_utc(e.created_at)}")
        if e.all_day:
            start_day, end_day = _all_day_bounds(e, tz)
            lines.append(f"DTSTART;VALUE=DATE:{_format_date(start_day)}")
            lines.append(f"DTEND;VALUE=DATE:{_format_date(end_day)}")
        else:
            lines.append(f"DTSTART:{_format_utc(e.start_at)}")
            lines.append(f"DTEND:{_format_utc(e.end_at)}")
        lines.append(f"SUMMARY:{_escape(e.title)}")
        if e.notes:
            lines.append(f"DESCRIPTION:{_escape(e.notes)}")
        if e.location:
            lines.append(f"LOCATION:{_escape(e.location)}")
        lines.append("END:VEVENT")
    lines.append("END:VCALENDAR")

    folded: List[str] = []
    for line in lines:
        folded.extend(_fold(line))
    return "\r\n".join(folded) + "\r\n"
