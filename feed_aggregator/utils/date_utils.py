"""Date parsing and formatting helpers."""

import time
from datetime import datetime
from typing import Any, Optional

import pytz
from dateutil import parser as date_parser

# Numeric timestamps above this are taken as milliseconds
_MILLISECONDS_THRESHOLD = 10 ** 11
# Shorter digit strings (years, days) go to the date parser
_MIN_EPOCH_DIGITS = 9


def utc_now() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(pytz.UTC).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert to UTC and drop tzinfo; naive values are assumed to be UTC."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(pytz.UTC).replace(tzinfo=None)
    return dt


def parse_date(value: Any) -> Optional[datetime]:
    """Parse a datetime, struct_time, epoch number or date string to naive UTC.

    Returns ``None`` for missing or unparseable values.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, time.struct_time):
        try:
            return datetime(*value[:6])
        except (ValueError, TypeError):
            return None
    if isinstance(value, (int, float)):
        return from_epoch(value)

    text = str(value).strip()
    if not text:
        return None
    if text.isdigit() and len(text) >= _MIN_EPOCH_DIGITS:
        return from_epoch(int(text))
    try:
        return to_naive_utc(date_parser.parse(text))
    except (ValueError, TypeError, OverflowError):
        return None


def from_epoch(value: float) -> Optional[datetime]:
    if value > _MILLISECONDS_THRESHOLD:
        value = value / 1000.0
    try:
        return datetime.fromtimestamp(value, tz=pytz.UTC).replace(tzinfo=None)
    except (OverflowError, OSError, ValueError):
        return None


def is_valid_date(value: Any) -> bool:
    return parse_date(value) is not None


def format_relative(dt: Optional[datetime], now: Optional[datetime] = None) -> Optional[str]:
    """Human readable distance to now, e.g. ``"3 hours ago"`` or ``"in 2 days"``."""
    if dt is None:
        return None
    now = to_naive_utc(now) if now else utc_now()
    seconds = (now - to_naive_utc(dt)).total_seconds()
    future = seconds < 0
    seconds = abs(seconds)

    if seconds < 45:
        phrase = "less than a minute"
    else:
        for unit, length in (('year', 31536000), ('month', 2592000), ('day', 86400),
                             ('hour', 3600), ('minute', 60)):
            if seconds >= length * 0.9 or unit == 'minute':
                count = max(1, int(round(seconds / length)))
                phrase = f"{count} {unit}{'s' if count != 1 else ''}"
                if unit in ('hour', 'day', 'month', 'year') and count == 1:
                    phrase = f"about 1 {unit}"
                break
    return f"in {phrase}" if future else f"{phrase} ago"
