from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

_REPORT_DATE = re.compile(r"\d{4}-\d{2}-\d{2}(?:[T ]\S+)?")


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_report_date(value: Optional[str]) -> date:
    """
    Parse a report boundary: exactly 'YYYY-MM-DD', or an ISO-8601 datetime
    whose date part is used. Raises ValueError when malformed.
    """
    if value is None or not value.strip():
        raise ValueError("date is required")
    text = value.strip()
    if not _REPORT_DATE.fullmatch(text):
        raise ValueError(f"not a YYYY-MM-DD date: {text!r}")
    if len(text) > 10:
        # validates the time part too
        datetime.fromisoformat(text.replace("Z", "+00:00"))
    return date.fromisoformat(text[:10])


def day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    """
    Half-open UTC window covering whole days [start 00:00:00, end+1 00:00:00).

    Equivalent to an inclusive 'start 00:00:00 .. end 23:59:59' filter
    without losing sub-second timestamps at the end of the day.
    """
    return (
        datetime.combine(start, time.min),
        datetime.combine(end + timedelta(days=1), time.min),
    )


def day_label(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d")


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def cents_to_units(cents: Optional[int]) -> Optional[float]:
    """Integer cents -> currency units for JSON output."""
    if cents is None:
        return None
    return round(cents / 100, 2)
