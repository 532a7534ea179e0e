"""Date and time-of-day normalization for session scheduling.

Sessions carry a calendar date plus ``HH:MM`` wall-clock times.  Dates
arrive as plain dates, naive datetimes, timezone-aware datetimes (JSON
clients usually send UTC instants) or ISO strings; all of them are reduced
to a local calendar date before comparison.
"""

from __future__ import annotations

import re
from datetime import date, datetime, tzinfo

from dateutil import tz
from dateutil.parser import isoparse

_TIME_RE = re.compile(r"^(\d{2}):(\d{2})$")


def business_tz(name: str) -> tzinfo:
    """Resolve an IANA timezone name, raising ``ValueError`` if unknown."""
    zone = tz.gettz(name)
    if zone is None:
        raise ValueError(f"Unknown timezone: {name}")
    return zone


def parse_date_value(raw: str) -> datetime:
    """Parse an ISO-8601 date or datetime string.

    Raises ``ValueError`` when the string is not a valid ISO date.
    """
    return isoparse(raw.strip())


def date_key(value: date | datetime | str, local_tz: tzinfo) -> date:
    """Return the local calendar date of *value*, dropping time-of-day.

    Naive datetimes and plain dates are already local.  Aware datetimes are
    converted into *local_tz* first, so an instant late in the UTC day lands
    on the next local date rather than being truncated to the UTC day.
    """
    if isinstance(value, str):
        value = parse_date_value(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(local_tz)
        return value.date()
    return value


def parse_time_of_day(value: str) -> int:
    """Convert an ``HH:MM`` 24-hour string into minutes since midnight."""
    m = _TIME_RE.match(value.strip()) if isinstance(value, str) else None
    if m is None:
        raise ValueError(f"Invalid time {value!r}: expected HH:MM")
    hours, minutes = int(m.group(1)), int(m.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time {value!r}: out of range")
    return hours * 60 + minutes


def ranges_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open interval overlap: ``[a_start, a_end)`` against ``[b_start, b_end)``.

    Ranges that only touch (one ends when the other starts) do not overlap.
    """
    return a_start < b_end and b_start < a_end
