"""Time utilities shared by metadata, lineage, and event records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def datetime_to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Convert datetime to ISO format string with Z suffix."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.isoformat() + "Z"


def iso_to_datetime(iso_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO format string (with or without Z suffix) to an aware datetime."""
    if iso_str is None:
        return None
    if iso_str.endswith("Z"):
        iso_str = iso_str[:-1]
    dt = datetime.fromisoformat(iso_str)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO string with Z suffix."""
    return datetime_to_iso(utc_now())
