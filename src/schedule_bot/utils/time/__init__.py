"""
Unified time management utilities for Schedule Bot.

This package provides consistent timezone handling and the calendar
arithmetic used by repeating entries.
"""

from .timezone import (
    get_system_timezone,
    get_system_now,
    ensure_timezone_aware,
    resolve_timezone,
    to_timezone,
    format_for_discord,
    TimestampStyle,
)
from .calendar import (
    add_days,
    add_years,
    add_minutes,
    as_utc,
    sunday_based_weekday,
)

__all__ = [
    "get_system_timezone",
    "get_system_now",
    "ensure_timezone_aware",
    "resolve_timezone",
    "to_timezone",
    "format_for_discord",
    "TimestampStyle",
    "add_days",
    "add_years",
    "add_minutes",
    "as_utc",
    "sunday_based_weekday",
]
