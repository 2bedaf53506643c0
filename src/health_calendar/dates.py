"""Calendar-day arithmetic in a configured timezone.

All range boundaries in this package are interpreted in one timezone.
Naive datetimes are taken to already be wall-clock times in that zone, and
plain ``date`` values mean the start of that day.
"""

from datetime import UTC, date, datetime, time, timedelta, tzinfo
from enum import Enum


def localize(value: date | datetime, tz: tzinfo) -> datetime:
    """Return ``value`` as an aware datetime in ``tz``."""
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=tz)
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def day_of(value: date | datetime, tz: tzinfo) -> date:
    """Calendar day containing ``value``."""
    return localize(value, tz).date()


def start_of_day(value: date | datetime, tz: tzinfo) -> datetime:
    return datetime.combine(day_of(value, tz), time.min, tzinfo=tz)


def add_days(value: date | datetime, days: int, tz: tzinfo) -> datetime:
    """Add calendar days keeping the wall-clock time (DST-safe)."""
    local = localize(value, tz)
    shifted = datetime.combine(local.date() + timedelta(days=days), local.timetz())
    return shifted.replace(tzinfo=tz)


def add_hours(value: datetime, hours: int, tz: tzinfo) -> datetime:
    """Add elapsed hours, so a DST day still yields distinct hour slots."""
    return (localize(value, tz).astimezone(UTC) + timedelta(hours=hours)).astimezone(tz)


def same_day(a: date | datetime, b: date | datetime, tz: tzinfo) -> bool:
    return day_of(a, tz) == day_of(b, tz)


def days_in_range(start: date | datetime, end: date | datetime, tz: tzinfo) -> int:
    """Number of whole calendar days from the day of ``start`` up to the day of ``end``."""
    return max((day_of(end, tz) - day_of(start, tz)).days, 0)


def iter_day_starts(start: date | datetime, end: date | datetime, tz: tzinfo) -> list[datetime]:
    """Start of every calendar day in ``[day(start), day(end))``."""
    first = day_of(start, tz)
    return [
        datetime.combine(first + timedelta(days=offset), time.min, tzinfo=tz)
        for offset in range(days_in_range(start, end, tz))
    ]


def iter_days_inclusive(start: date | datetime, end: date | datetime, tz: tzinfo) -> list[date]:
    """Every calendar day from the day of ``start`` through the day of ``end``."""
    first = day_of(start, tz)
    last = day_of(end, tz)
    return [first + timedelta(days=offset) for offset in range((last - first).days + 1)]


def month_interval(month: date | datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    """Start of the month containing ``month`` and start of the next month."""
    day = day_of(month, tz)
    first = day.replace(day=1)
    if first.month == 12:
        following = first.replace(year=first.year + 1, month=1)
    else:
        following = first.replace(month=first.month + 1)
    return (
        datetime.combine(first, time.min, tzinfo=tz),
        datetime.combine(following, time.min, tzinfo=tz),
    )


def hour_label(value: datetime) -> str:
    """Hour label in the ``7AM`` / ``12PM`` style."""
    hour12 = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour12}{suffix}"


def day_label(value: date | datetime) -> str:
    """Day label in the ``M/d`` style."""
    return f"{value.month}/{value.day}"


class TimeRange(str, Enum):
    """Quick-pick windows ending today."""

    THREE_DAYS = "3 Days"
    ONE_WEEK = "1 Week"
    TWO_WEEKS = "2 Weeks"
    ONE_MONTH = "1 Month"

    @property
    def days(self) -> int:
        return {
            TimeRange.THREE_DAYS: 3,
            TimeRange.ONE_WEEK: 7,
            TimeRange.TWO_WEEKS: 14,
            TimeRange.ONE_MONTH: 30,
        }[self]

    def window(self, today: date | datetime, tz: tzinfo) -> tuple[datetime, datetime]:
        """End-exclusive window covering the last ``days`` days including today."""
        tomorrow = add_days(start_of_day(today, tz), 1, tz)
        return add_days(tomorrow, -self.days, tz), tomorrow
