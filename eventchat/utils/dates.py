import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from dateutil import parser as date_parser

# Range separators that never occur inside a single ISO date ("2025-03-05").
_RANGE_SPLIT = re.compile(r"\s+(?:to|until|through)\s+|\s*[–—]\s*|\s+-\s+", re.IGNORECASE)
_TIME_RANGE_SPLIT = re.compile(r"\s*[-–—]\s*|\s+(?:to|until)\s+", re.IGNORECASE)
_TIME_RE = re.compile(r"^\s*(\d{1,2})(?::(\d{2}))?\s*([ap]\.?m\.?)?\s*$", re.IGNORECASE)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what pymongo hands back from BSON dates."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _first_of_range(text: str) -> str:
    parts = _RANGE_SPLIT.split(text.strip(), maxsplit=1)
    return parts[0].strip() if parts and parts[0].strip() else text.strip()


def parse_time(text: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parse "19:30", "7 PM" or "13:00 - 21:00" (start wins) into (hour, minute)."""
    if not text:
        return None
    first = _TIME_RANGE_SPLIT.split(str(text).strip(), maxsplit=1)[0]
    match = _TIME_RE.match(first)
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    meridiem = (match.group(3) or "").replace(".", "").lower()
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        if meridiem == "pm" and hour != 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def parse_date(text: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse a date (first day of a range) into a naive midnight datetime, or None.
    The day and month must both be stated; a missing year is the current one.
    """
    if not text:
        return None
    now = now or utcnow()
    candidate = _first_of_range(str(text))
    if not candidate:
        return None
    try:
        # Parsing against two defaults exposes any part dateutil had to fill in.
        parsed = date_parser.parse(candidate, default=datetime(now.year, 1, 1))
        check = date_parser.parse(candidate, default=datetime(now.year, 2, 2))
    except (ValueError, OverflowError):
        return None
    if (parsed.month, parsed.day) != (check.month, check.day):
        return None
    parsed = to_naive_utc(parsed)
    return datetime(parsed.year, parsed.month, parsed.day)


def combine_date_time(date_text: Optional[str], time_text: Optional[str] = None,
                      now: Optional[datetime] = None) -> Optional[datetime]:
    """Resolve an event start. The time only adjusts a real date; no date means None."""
    day = parse_date(date_text, now=now)
    if day is None:
        return None
    hm = parse_time(time_text)
    if hm:
        day = day.replace(hour=hm[0], minute=hm[1])
    return day


def calendar_stamp(value: datetime) -> str:
    return to_naive_utc(value).strftime("%Y%m%dT%H%M%SZ")


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def day_before(value: datetime) -> datetime:
    return value - timedelta(days=1)
