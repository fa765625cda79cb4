"""
Timestamp helpers.

Timestamps are stored as fixed-width UTC ISO strings so that string order
equals time order. Every value written to the store or placed in a cursor
goes through to_db_timestamp().
"""

from datetime import datetime, timezone
from typing import Optional, Union


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string; naive values are taken as UTC."""
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_db_timestamp(value: Union[datetime, str, None]) -> Optional[str]:
    """Normalize a datetime (or ISO string) to the canonical stored form."""
    if value is None:
        return None
    if isinstance(value, str):
        value = parse_timestamp(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='microseconds')


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return parse_timestamp(value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
