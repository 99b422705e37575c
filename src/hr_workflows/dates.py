"""Date arithmetic shared by the workflows.

All calendar math is done on naive ``date`` values, so day counts never
drift with the server's timezone.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Callable

from hr_workflows.errors import InvalidInputError

Clock = Callable[[], datetime]

_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def today_utc(clock: Clock = utcnow) -> date:
    return clock().astimezone(timezone.utc).date()


def inclusive_day_count(start: date, end: date) -> int:
    """Number of calendar days from start to end, both included.

    >>> inclusive_day_count(date(2026, 2, 15), date(2026, 2, 17))
    3
    """
    return (end - start).days + 1


def validate_month(month: str | None) -> str:
    """Return a ``YYYY-MM`` month string, or raise InvalidInputError."""
    value = (month or "").strip()
    if not _MONTH_RE.match(value):
        raise InvalidInputError(f"Month must be in YYYY-MM format, got '{month}'")
    return value
