"""
Timestamp helpers shared by the subscription and trial services.
All comparisons are done on absolute UTC instants.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

_DAY_MICROS = 86_400_000_000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """
    Accepts datetime, ISO-8601 string, or None.
    Returns an aware UTC datetime, or None when the value is missing or unreadable.
    Naive values are read as UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        # offset pushes the instant past datetime.min / datetime.max
        return None


def to_iso(value) -> Optional[str]:
    parsed = parse_timestamp(value)
    return parsed.isoformat() if parsed else None


def days_until(end: Optional[datetime], now: Optional[datetime] = None) -> int:
    """
    Whole days from now until end, rounded up and clamped at zero.
    end == now gives 0.
    """
    if end is None:
        return 0
    now = parse_timestamp(now) or utcnow()
    micros = (end - now) // timedelta(microseconds=1)
    # ceil on exact integer microseconds
    days = -(-micros // _DAY_MICROS)
    return max(0, int(days))
