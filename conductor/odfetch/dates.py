# ODFetch - Date/Time Handling
# SPDX-License-Identifier: Apache-2.0

"""
Date and run-time parsing for open data requests.

Forecast runs are identified by a date and a synoptic hour (00, 06, 12, 18).
Dates may be given as:
- YYYYMMDD or YYYY-MM-DD
- YYYY-MM-DD HH:MM:SS (the hour is kept as an implicit run time)
- an integer <= 0, meaning "today plus that many days"
- ranges: YYYYMMDD/to/YYYYMMDD[/by/N]
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from odfetch.errors import InvalidRequest
from odfetch.request import expand_numeric_syntax

SYNOPTIC_HOURS = (0, 6, 12, 18)


def canonical_time_to_hour(value: str) -> int:
    """Accept 0/6/12/18 and 0000/0600/1200/1800 (as int or string)."""
    text = str(value).strip()
    try:
        n = int(text)
    except ValueError:
        raise InvalidRequest(f"Invalid time value: {value!r}") from None

    if n in SYNOPTIC_HOURS:
        return n
    if n in (600, 1200, 1800):
        return n // 100
    raise InvalidRequest(
        f"time must be one of 0, 6, 12, 18 (or 0000/0600/1200/1800), got {value!r}"
    )


def expand_time_value(value: str) -> list[str]:
    """Expand time values; ``0/to/18`` keeps only synoptic hours."""
    expanded = expand_numeric_syntax(value)
    if "/to/" in value.lower():
        hours = [t for t in expanded if int(t) in SYNOPTIC_HOURS]
        if hours:
            return hours
    return expanded


def parse_date_like(value: str, now: datetime) -> tuple[date, Optional[int]]:
    """
    Parse a single date token.

    Returns the date and, for full timestamps, the hour it carries.
    """
    text = str(value).strip()

    try:
        n = int(text)
    except ValueError:
        n = None

    if n is not None:
        if n <= 0:
            return (now.date() + timedelta(days=n), None)
        if len(text) == 8:
            try:
                return (datetime.strptime(text, "%Y%m%d").date(), None)
            except ValueError:
                raise InvalidRequest(f"Invalid YYYYMMDD date: {text}") from None

    for fmt in ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"):
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        hour = parsed.hour if fmt != "%Y-%m-%d" else None
        return (parsed.date(), hour)

    raise InvalidRequest(f"Unsupported date format: {text!r}")


def expand_date_value(value: str, now: datetime) -> list[str]:
    """Expand a date token (or range) into YYYYMMDD strings."""
    tokens = str(value).split("/")
    if len(tokens) in (3, 5) and tokens[1].lower() == "to":
        start, _ = parse_date_like(tokens[0], now)
        end, _ = parse_date_like(tokens[2], now)
        by = 1
        if len(tokens) == 5:
            if tokens[3].lower() != "by":
                raise InvalidRequest(f"Invalid date range: {value!r}")
            try:
                by = int(tokens[4])
            except ValueError:
                raise InvalidRequest(f"Invalid date range step: {value!r}") from None
            if by <= 0:
                raise InvalidRequest(f"Date range step must be > 0, got {by}")
        if end < start:
            raise InvalidRequest(f"Date range end {end:%Y%m%d} < start {start:%Y%m%d}")

        out = []
        current = start
        while current <= end:
            out.append(current.strftime("%Y%m%d"))
            current += timedelta(days=by)
        return out

    d, _ = parse_date_like(value, now)
    return [d.strftime("%Y%m%d")]


def hour_from_date_value(value: str, now: datetime) -> Optional[int]:
    """Return the run hour embedded in a full timestamp, if any."""
    if "/" in str(value):
        return None
    _, hour = parse_date_like(value, now)
    return hour


def full_datetime(yyyymmdd: str, hour: int) -> datetime:
    """Combine a YYYYMMDD date and a run hour into a UTC datetime."""
    try:
        d = datetime.strptime(yyyymmdd, "%Y%m%d")
    except ValueError:
        raise InvalidRequest(f"date must be YYYYMMDD, got {yyyymmdd!r}") from None
    return d.replace(hour=hour, tzinfo=timezone.utc)


def end_step(step: str) -> Optional[int]:
    """For probability steps like "0-24" return the end portion."""
    _, _, rhs = str(step).rpartition("-")
    try:
        return int(rhs.strip())
    except ValueError:
        return None
