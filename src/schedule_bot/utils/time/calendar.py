"""
Calendar arithmetic used by the repeat rule codec.

Day and year steps move the wall clock (an event at 19:00 stays at 19:00
across a DST change); minute steps move the absolute time line.
"""

import calendar
from datetime import datetime, timedelta, timezone


def add_days(dt: datetime, days: int) -> datetime:
    """
    Add calendar days, keeping the local wall-clock time.

    Examples:
        >>> from zoneinfo import ZoneInfo
        >>> dt = datetime(2025, 3, 8, 19, 0, tzinfo=ZoneInfo("America/New_York"))
        >>> add_days(dt, 1).hour
        19
    """
    # Aware arithmetic with a shared tzinfo is wall-clock arithmetic
    return dt + timedelta(days=days)


def add_years(dt: datetime, years: int) -> datetime:
    """
    Add calendar years, clamping Feb 29 to Feb 28 in non-leap years.

    Examples:
        >>> add_years(datetime(2024, 2, 29, 12, 0), 1)
        datetime.datetime(2025, 2, 28, 12, 0)
        >>> add_years(datetime(2023, 6, 1), 1)
        datetime.datetime(2024, 6, 1, 0, 0)
    """
    year = dt.year + years
    day = min(dt.day, calendar.monthrange(year, dt.month)[1])
    return dt.replace(year=year, day=day)


def add_minutes(dt: datetime, minutes: int) -> datetime:
    """
    Add minutes of elapsed time, returning the result in the original zone.

    Examples:
        >>> from zoneinfo import ZoneInfo
        >>> tz = ZoneInfo("America/New_York")
        >>> dt = datetime(2025, 3, 9, 1, 30, tzinfo=tz)
        >>> add_minutes(dt, 60).hour
        3
    """
    if dt.tzinfo is None:
        return dt + timedelta(minutes=minutes)
    shifted = dt.astimezone(timezone.utc) + timedelta(minutes=minutes)
    return shifted.astimezone(dt.tzinfo)


def sunday_based_weekday(dt: datetime) -> int:
    """
    Weekday index with Sunday as 0 and Saturday as 6.

    Examples:
        >>> sunday_based_weekday(datetime(2025, 7, 27))  # a Sunday
        0
        >>> sunday_based_weekday(datetime(2025, 7, 26))  # a Saturday
        6
    """
    return (dt.weekday() + 1) % 7


def as_utc(dt: datetime) -> datetime:
    """
    Convert an aware datetime to UTC so comparisons follow elapsed time.

    Two datetimes sharing one tzinfo compare by wall clock, which puts the
    repeated hour of an autumn DST change out of order.

    Examples:
        >>> from zoneinfo import ZoneInfo
        >>> tz = ZoneInfo("America/New_York")
        >>> first = datetime(2025, 11, 2, 1, 30, tzinfo=tz)
        >>> second = datetime(2025, 11, 2, 1, 30, fold=1, tzinfo=tz)
        >>> second > first, as_utc(second) > as_utc(first)
        (False, True)
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc)
