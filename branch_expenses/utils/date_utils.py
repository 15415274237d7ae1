"""Calendar helpers for the fixed-offset business time zone"""

import re
from datetime import date, datetime, timedelta, timezone, tzinfo

from branch_expenses.domain.exceptions import InvalidDateError

# Africa/Harare: UTC+2 all year
DEFAULT_OFFSET_MINUTES = 120

_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def business_timezone(offset_minutes: int = DEFAULT_OFFSET_MINUTES) -> tzinfo:
    """Fixed-offset tzinfo for the business calendar"""
    return timezone(timedelta(minutes=offset_minutes))


def timezone_label(offset_minutes: int = DEFAULT_OFFSET_MINUTES) -> str:
    """Human label for an offset, e.g. 'UTC+02:00'"""
    sign = "+" if offset_minutes >= 0 else "-"
    hours, minutes = divmod(abs(offset_minutes), 60)
    return f"UTC{sign}{hours:02d}:{minutes:02d}"


def today_in_business_tz(now: datetime | None = None, offset_minutes: int = DEFAULT_OFFSET_MINUTES) -> date:
    """
    Calendar day observed in the business time zone at instant `now`.

    The instant must be timezone-aware; a naive datetime is rejected rather
    than assumed to be UTC or local time.

    Example:
        2026-02-20T23:00:00+00:00 -> 2026-02-21 (01:00 at UTC+2)
    """
    if now is None:
        now = datetime.now(timezone.utc)

    if now.tzinfo is None or now.utcoffset() is None:
        raise InvalidDateError(f"Instant must be timezone-aware: {now.isoformat()}")

    return now.astimezone(business_timezone(offset_minutes)).date()


def start_of_business_day(day: date, offset_minutes: int = DEFAULT_OFFSET_MINUTES) -> datetime:
    """Midnight of `day` in the business time zone, as an aware instant"""
    return datetime(day.year, day.month, day.day, tzinfo=business_timezone(offset_minutes))


def format_date(value: date) -> str:
    """Format a calendar date as YYYY-MM-DD"""
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def days_between(from_date: date, to_date: date) -> int:
    """
    Whole calendar days from `from_date` to `to_date` (to - from).

    Positive when `to_date` is later. Datetimes are reduced to their date
    component so time of day never leaks into the result.
    """
    if isinstance(from_date, datetime):
        from_date = from_date.date()
    if isinstance(to_date, datetime):
        to_date = to_date.date()
    return (to_date - from_date).days


def parse_date_string(value: str) -> date:
    """Parse a strict YYYY-MM-DD string"""
    match = _DATE_PATTERN.match(value or "")
    if not match:
        raise InvalidDateError(f"Invalid date: {value!r}")

    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError as e:
        raise InvalidDateError(f"Invalid date: {value!r}") from e


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 timestamp that carries an explicit UTC offset"""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError) as e:
        raise InvalidDateError(f"Invalid timestamp: {value!r}") from e

    if parsed.tzinfo is None:
        raise InvalidDateError(f"Timestamp has no UTC offset: {value!r}")

    return parsed
