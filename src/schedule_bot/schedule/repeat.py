"""
Repeat rule codec for schedule entries.

A repeat rule is persisted as a single non-negative integer:

    bits 0-6   one flag per weekday (bit 0 = Sunday ... bit 6 = Saturday)
    bit 7      day interval mode; bits 0-6 hold the day count instead
    bit 8      yearly repeat
    bit 11     minute interval mode; bits 0-10 hold the minute count

Inside the application the integer is decoded into one of the frozen
dataclasses below and only encoded again at the persistence boundary.
Decoding checks minute interval, yearly, day interval and weekday set in
that order; the first match wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum

from ..utils.core.exceptions import MalformedRepeatRuleError
from ..utils.time import add_days, add_minutes, add_years, as_utc, sunday_based_weekday

WEEKDAY_MASK = 0b1111111
DAY_INTERVAL_FLAG = 1 << 7
YEARLY_FLAG = 1 << 8
MINUTE_INTERVAL_FLAG = 1 << 11
MINUTE_MASK = 0b11111111111
KNOWN_BITS = MINUTE_MASK | MINUTE_INTERVAL_FLAG

MAX_DAY_INTERVAL = WEEKDAY_MASK
MAX_MINUTE_INTERVAL = MINUTE_MASK


class Weekday(IntEnum):
    """Weekday numbered by its bit position in the repeat mask."""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @property
    def bit(self) -> int:
        return 1 << self.value

    @classmethod
    def of(cls, dt: datetime) -> "Weekday":
        """Weekday of a datetime."""
        return cls(sunday_based_weekday(dt))


@dataclass(frozen=True)
class NoRepeat:
    """The entry is removed after it ends."""


@dataclass(frozen=True)
class Weekdays:
    """Repeat on each of the given weekdays."""

    days: frozenset[Weekday]

    def __post_init__(self) -> None:
        if not self.days:
            raise MalformedRepeatRuleError("A weekday repeat needs at least one day")


@dataclass(frozen=True)
class DayInterval:
    """Repeat every ``days`` days."""

    days: int

    def __post_init__(self) -> None:
        if not (1 <= self.days <= MAX_DAY_INTERVAL):
            raise MalformedRepeatRuleError(
                f"Day interval must be between 1 and {MAX_DAY_INTERVAL}, got {self.days}"
            )


@dataclass(frozen=True)
class Yearly:
    """Repeat once a year on the same date."""


@dataclass(frozen=True)
class MinuteInterval:
    """Repeat every ``minutes`` minutes."""

    minutes: int

    def __post_init__(self) -> None:
        if not (1 <= self.minutes <= MAX_MINUTE_INTERVAL):
            raise MalformedRepeatRuleError(
                f"Minute interval must be between 1 and {MAX_MINUTE_INTERVAL}, got {self.minutes}"
            )


RepeatRule = NoRepeat | Weekdays | DayInterval | Yearly | MinuteInterval


def decode_repeat(repeat: int) -> RepeatRule:
    """
    Decode a persisted repeat bitmask.

    Args:
        repeat: The integer stored with the entry

    Returns:
        The matching repeat rule

    Raises:
        MalformedRepeatRuleError: If the mask does not describe a valid rule

    Examples:
        >>> decode_repeat(0)
        NoRepeat()
        >>> decode_repeat(0b10000000 | 3)
        DayInterval(days=3)
        >>> decode_repeat(1 << 11 | 90)
        MinuteInterval(minutes=90)
    """
    if repeat < 0:
        raise MalformedRepeatRuleError(f"Repeat value must be non-negative, got {repeat}", repeat)
    if repeat & ~KNOWN_BITS:
        raise MalformedRepeatRuleError(f"Repeat value {repeat} sets unknown bits", repeat)

    if repeat & MINUTE_INTERVAL_FLAG:
        minutes = repeat & MINUTE_MASK
        if minutes == 0:
            raise MalformedRepeatRuleError("Minute interval of 0 in repeat value", repeat)
        return MinuteInterval(minutes)

    # Bits 9 and 10 only carry meaning as part of a minute count
    if repeat & (MINUTE_MASK & ~(WEEKDAY_MASK | DAY_INTERVAL_FLAG | YEARLY_FLAG)):
        raise MalformedRepeatRuleError(
            f"Repeat value {repeat} sets minute bits without the minute flag", repeat
        )

    if repeat & YEARLY_FLAG:
        return Yearly()

    if repeat & DAY_INTERVAL_FLAG:
        days = repeat & WEEKDAY_MASK
        if days == 0:
            raise MalformedRepeatRuleError("Day interval of 0 in repeat value", repeat)
        return DayInterval(days)

    if repeat == 0:
        return NoRepeat()

    return Weekdays(frozenset(day for day in Weekday if repeat & day.bit))


def encode_repeat(rule: RepeatRule) -> int:
    """
    Encode a repeat rule into its persisted bitmask.

    Examples:
        >>> encode_repeat(Weekdays(frozenset({Weekday.MONDAY, Weekday.FRIDAY})))
        34
        >>> encode_repeat(Yearly())
        256
    """
    match rule:
        case NoRepeat():
            return 0
        case Weekdays(days=days):
            mask = 0
            for day in days:
                mask |= day.bit
            return mask
        case DayInterval(days=days):
            return DAY_INTERVAL_FLAG | days
        case Yearly():
            return YEARLY_FLAG
        case MinuteInterval(minutes=minutes):
            return MINUTE_INTERVAL_FLAG | minutes


def days_until_next_weekday(current: Weekday, days: frozenset[Weekday]) -> int:
    """
    Smallest positive day count that lands on one of ``days``.

    When only the current weekday is selected the answer is 7: an entry never
    repeats on the same day it ran.

    Examples:
        >>> days_until_next_weekday(Weekday.MONDAY, frozenset({Weekday.WEDNESDAY}))
        2
        >>> days_until_next_weekday(Weekday.SATURDAY, frozenset({Weekday.SUNDAY}))
        1
        >>> days_until_next_weekday(Weekday.MONDAY, frozenset({Weekday.MONDAY}))
        7
    """
    for offset in range(1, 8):
        if Weekday((current + offset) % 7) in days:
            return offset
    raise MalformedRepeatRuleError("A weekday repeat needs at least one day")


def _advance_days(dt: datetime, days: int) -> datetime:
    advanced = add_days(dt, days)
    # Whole years fix the rare case where the date step does not move forward
    while as_utc(advanced) <= as_utc(dt):
        advanced = add_years(advanced, 1)
    return advanced


def compute_next_occurrence(
    start: datetime, end: datetime, rule: RepeatRule
) -> tuple[datetime, datetime]:
    """
    Compute the start and end of the next occurrence of a repeating entry.

    Args:
        start: Current start (timezone-aware)
        end: Current end (timezone-aware)
        rule: Decoded repeat rule

    Returns:
        Tuple of (new_start, new_end), both strictly later than before

    Raises:
        MalformedRepeatRuleError: If the rule has no next occurrence or the
            result would not move forward
    """
    match rule:
        case NoRepeat():
            raise MalformedRepeatRuleError("A non-repeating entry has no next occurrence", 0)
        case MinuteInterval(minutes=minutes):
            new_start = add_minutes(start, minutes)
            new_end = add_minutes(end, minutes)
        case Yearly():
            new_start = add_years(start, 1)
            new_end = add_years(end, 1)
        case DayInterval(days=days):
            new_start = _advance_days(start, days)
            new_end = _advance_days(end, days)
        case Weekdays(days=selected):
            days = days_until_next_weekday(Weekday.of(start), selected)
            new_start = _advance_days(start, days)
            new_end = _advance_days(end, days)

    if not (as_utc(new_start) > as_utc(start) and as_utc(new_end) > as_utc(end)):
        raise MalformedRepeatRuleError(
            f"Next occurrence {new_start} - {new_end} does not follow {start} - {end}",
            encode_repeat(rule),
        )
    return new_start, new_end


_DAY_NAMES = {
    Weekday.SUNDAY: "Sunday",
    Weekday.MONDAY: "Monday",
    Weekday.TUESDAY: "Tuesday",
    Weekday.WEDNESDAY: "Wednesday",
    Weekday.THURSDAY: "Thursday",
    Weekday.FRIDAY: "Friday",
    Weekday.SATURDAY: "Saturday",
}


def describe_repeat(rule: RepeatRule) -> str:
    """
    Human readable description of a repeat rule.

    Examples:
        >>> describe_repeat(NoRepeat())
        'once'
        >>> describe_repeat(Weekdays(frozenset({Weekday.FRIDAY, Weekday.MONDAY})))
        'every Monday and Friday'
        >>> describe_repeat(DayInterval(1))
        'daily'
    """
    match rule:
        case NoRepeat():
            return "once"
        case Yearly():
            return "yearly"
        case MinuteInterval(minutes=minutes):
            if minutes % 60 == 0:
                hours = minutes // 60
                return "every hour" if hours == 1 else f"every {hours} hours"
            return f"every {minutes} minutes"
        case DayInterval(days=days):
            return "daily" if days == 1 else f"every {days} days"
        case Weekdays(days=days):
            if len(days) == 7:
                return "daily"
            names = [_DAY_NAMES[day] for day in sorted(days)]
            if len(names) == 1:
                return f"every {names[0]}"
            return "every " + ", ".join(names[:-1]) + " and " + names[-1]
