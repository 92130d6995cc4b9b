"""Datetime helpers shared by the feed parser, scorer and stores."""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_feed_date(date_str: Optional[str]) -> Optional[datetime]:
    """
    Parse a feed date string.

    RSS dates are RFC 822; Atom and dc:date are ISO 8601. Returns an aware UTC
    datetime, or None when the string is empty or unparseable.
    """
    if not date_str:
        return None
    date_str = date_str.strip()
    if not date_str:
        return None

    # OverflowError: parses, but shifting to UTC leaves the datetime range
    try:
        return as_utc(parsedate_to_datetime(date_str))
    except (ValueError, TypeError, IndexError, OverflowError):
        pass

    try:
        return as_utc(datetime.fromisoformat(date_str.replace("Z", "+00:00")))
    except (ValueError, OverflowError):
        pass

    try:
        # Try without timezone
        return as_utc(datetime.fromisoformat(date_str[:19]))
    except (ValueError, OverflowError):
        return None
