"""
1.0 Timestamp Helpers
ISO-8601 parsing and formatting shared by the fetcher, engine, writer and state store.

All timestamps written by this package are UTC with millisecond precision and a
trailing "Z" (e.g. 2025-01-31T08:15:00.000Z), a valid sitemap-protocol
W3C datetime.
"""

from datetime import datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """2.0 Format a datetime as UTC ISO-8601 with milliseconds and 'Z'."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Union[str, int, float, datetime, None]) -> Optional[datetime]:
    """
    3.0 Parse a timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (with or without 'Z'), datetimes, and numeric
    epoch milliseconds (the format of state files written by the legacy
    generator). Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_timestamp(value: Union[str, int, float, datetime, None], fallback: datetime) -> str:
    """Normalize a CMS timestamp for <lastmod>, using fallback when missing or invalid."""
    parsed = parse_timestamp(value)
    return format_timestamp(parsed if parsed is not None else fallback)
