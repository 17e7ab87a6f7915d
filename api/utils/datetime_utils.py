"""
Datetime utilities for RoloDex AI services.
"""
from datetime import datetime, timezone
from typing import Optional


def make_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is timezone-aware (UTC if naive).

    Args:
        dt: A datetime object that may or may not have timezone info

    Returns:
        The same datetime with UTC timezone if it was naive,
        or the original timezone-aware datetime, or None if input was None
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (a trailing 'Z' is accepted); None if unparseable."""
    if not value:
        return None
    try:
        return make_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def format_note_date(value: Optional[str]) -> str:
    """
    Format a note timestamp for prompts, e.g. "Mar 15, 2025".

    Unparseable values are returned unchanged so the prompt still carries them.
    """
    dt = parse_iso_datetime(value)
    if dt is None:
        return value or "unknown date"
    return f"{dt.strftime('%b')} {dt.day}, {dt.year}"
