from __future__ import annotations

from datetime import datetime, timezone

from dateutil.parser import isoparse


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 date or datetime (``2026-10-25``, ``...T08:00:00Z``) into aware UTC."""
    if isinstance(value, datetime):
        return as_utc(value)
    return as_utc(isoparse(value))
