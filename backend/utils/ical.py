# backend/utils/ical.py
"""Drop window slots from an iCal feed.

Only the handful of VEVENT properties the checkout needs are read. Times
without a trailing ``Z`` are taken as naive local time of the host; no
timezone database is consulted for ``TZID`` parameters.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterator, List, Optional

import httpx

from schemas.slots import FulfillmentSlot

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(hours=2)

_FOLDED_LINE = re.compile(r"\r?\n[ \t]")
_LINE_BREAK = re.compile(r"\r?\n")


class CalendarFetchError(Exception):
    pass


@dataclass
class CalendarEvent:
    summary: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    description: Optional[str] = None
    uid: Optional[str] = None


def unescape_text(text: str) -> str:
    return text.replace("\\n", "\n").replace("\\,", ",").replace("\\\\", "\\")


def parse_ical_date(value: str) -> Optional[datetime]:
    """Parses DATE / DATE-TIME values into aware datetimes.

    ``20241221`` is local midnight, ``20241221T100000Z`` is UTC and
    ``20241221T100000`` is local wall-clock time. Returns None for values
    that cannot be read.
    """
    value = value.strip()
    try:
        if len(value) == 8:
            return datetime(int(value[0:4]), int(value[4:6]), int(value[6:8])).astimezone()

        if "T" in value:
            is_utc = value.endswith("Z")
            value = value.replace("Z", "")
            parts = (
                int(value[0:4]),
                int(value[4:6]),
                int(value[6:8]),
                int(value[9:11]),
                int(value[11:13]),
                int(value[13:15]) if value[13:15].isdigit() else 0,
            )
            if is_utc:
                return datetime(*parts, tzinfo=timezone.utc)
            return datetime(*parts).astimezone()

        parsed = datetime.fromisoformat(value)
    except (ValueError, OverflowError, OSError):
        return None

    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def iter_events(ical_text: str, prefix: str) -> Iterator[CalendarEvent]:
    # Yields matching VEVENTs one at a time as the text is scanned
    lines = _LINE_BREAK.split(_FOLDED_LINE.sub("", ical_text))

    current: Optional[CalendarEvent] = None
    for line in lines:
        if line == "BEGIN:VEVENT":
            current = CalendarEvent()
        elif line == "END:VEVENT":
            if current is not None and current.summary and current.summary.startswith(prefix):
                yield current
            current = None
        elif current is not None:
            colon = line.find(":")
            if colon <= 0:
                continue
            # DTSTART;TZID=America/Los_Angeles:20241221T100000
            key = line[:colon].split(";")[0]
            value = line[colon + 1:]

            if key == "SUMMARY":
                current.summary = unescape_text(value)
            elif key == "DTSTART":
                current.start = parse_ical_date(value)
            elif key == "DTEND":
                current.end = parse_ical_date(value)
            elif key == "DESCRIPTION":
                current.description = unescape_text(value)
            elif key == "UID":
                current.uid = value


def classify_slot_type(summary: str) -> str:
    lowered = summary.lower()
    if "pickup" in lowered and "delivery" not in lowered:
        return "pickup"
    if "delivery" in lowered and "pickup" not in lowered:
        return "delivery"
    return "both"


def format_time(dt: datetime) -> str:
    hour = dt.hour % 12 or 12
    suffix = "AM" if dt.hour < 12 else "PM"
    return f"{hour}:{dt.minute:02d} {suffix}"


def to_slot(event: CalendarEvent) -> FulfillmentSlot:
    start = event.start.astimezone(timezone.utc)
    end = (event.end or event.start + DEFAULT_WINDOW).astimezone(timezone.utc)
    slot_type = classify_slot_type(event.summary)

    return FulfillmentSlot(
        id=event.uid or f"{start.isoformat()}-{slot_type}",
        date=start.date().isoformat(),
        date_formatted=f"{start:%A, %B} {start.day}",
        start_time=format_time(start),
        end_time=format_time(end),
        start_timestamp=start,
        end_timestamp=end,
        type=slot_type,
        title=event.summary,
        description=event.description or "",
    )


def parse_slots(ical_text: str, prefix: str, now: Optional[datetime] = None) -> List[FulfillmentSlot]:
    now = now or datetime.now(timezone.utc)
    upcoming = [e for e in iter_events(ical_text, prefix) if e.start is not None and e.start > now]
    upcoming.sort(key=lambda e: e.start)
    return [to_slot(e) for e in upcoming]


async def fetch_slots(
    feed_url: str,
    prefix: str,
    *,
    now: Optional[datetime] = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 10.0,
) -> List[FulfillmentSlot]:
    # Fresh fetch on every call; callers cache at the HTTP level
    if client is None:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as owned:
            return await fetch_slots(feed_url, prefix, now=now, client=owned)

    response = await client.get(feed_url)
    if not response.is_success:
        raise CalendarFetchError(f"Failed to fetch iCal: {response.status_code}")

    slots = parse_slots(response.text, prefix, now=now)
    logger.info("Parsed %d upcoming '%s' slots from calendar feed", len(slots), prefix)
    return slots
