from __future__ import annotations

from datetime import datetime
from typing import Optional

from shared.timeutil import parse_timestamp, utcnow


def maintenance_status(next_maintenance_date: Optional[str], now: Optional[datetime] = None) -> str:
    """Badge shown next to a machine: Overdue, Due soon (3 days), Planned (7 days) or OK."""
    if not next_maintenance_date:
        return "Unknown"
    try:
        due = parse_timestamp(next_maintenance_date)
    except (ValueError, OverflowError):
        return "Unknown"
    diff_days = (due - (now or utcnow())).total_seconds() / 86400
    if diff_days < 0:
        return "Overdue"
    if diff_days <= 3:
        return "Due soon"
    if diff_days <= 7:
        return "Planned"
    return "OK"
