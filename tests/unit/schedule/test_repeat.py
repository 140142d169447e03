"""Tests for the repeat rule codec and next-occurrence computation."""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from schedule_bot.schedule.repeat import (
    DAY_INTERVAL_FLAG,
    MINUTE_INTERVAL_FLAG,
    YEARLY_FLAG,
    DayInterval,
    MinuteInterval,
    NoRepeat,
    RepeatRule,
    Weekday,
    Weekdays,
    Yearly,
    compute_next_occurrence,
    days_until_next_weekday,
    decode_repeat,
    describe_repeat,
    encode_repeat,
)
from schedule_bot.utils.core.exceptions import MalformedRepeatRuleError

UTC = ZoneInfo("UTC")
NEW_YORK = ZoneInfo("America/New_York")

# A Friday
FRIDAY_EVENING = datetime(2025, 7, 25, 19, 0, tzinfo=UTC)


class TestDecodeRepeat:
    """Test decoding of persisted repeat bitmasks."""

    def test_zero_is_no_repeat(self) -> None:
        """Test that 0 decodes to a one-off entry."""
        assert decode_repeat(0) == NoRepeat()

    def test_weekday_bits(self) -> None:
        """Test that low bits select weekdays with Sunday as bit 0."""
        rule = decode_repeat(Weekday.MONDAY.bit | Weekday.FRIDAY.bit)

        assert rule == Weekdays(frozenset({Weekday.MONDAY, Weekday.FRIDAY}))
        assert decode_repeat(1) == Weekdays(frozenset({Weekday.SUNDAY}))
        assert decode_repeat(1 << 6) == Weekdays(frozenset({Weekday.SATURDAY}))

    def test_day_interval(self) -> None:
        """Test that bit 7 turns the low bits into a day count."""
        assert decode_repeat(DAY_INTERVAL_FLAG | 3) == DayInterval(3)

    def test_yearly(self) -> None:
        """Test that bit 8 means yearly."""
        assert decode_repeat(YEARLY_FLAG) == Yearly()

    def test_minute_interval(self) -> None:
        """Test that bit 11 turns the low 11 bits into a minute count."""
        assert decode_repeat(MINUTE_INTERVAL_FLAG | 90) == MinuteInterval(90)
        assert decode_repeat(MINUTE_INTERVAL_FLAG | 1500) == MinuteInterval(1500)

    def test_minute_flag_has_priority(self) -> None:
        """Test that the minute flag wins even when the count sets other mode bits."""
        assert decode_repeat(MINUTE_INTERVAL_FLAG | YEARLY_FLAG) == MinuteInterval(256)

    def test_yearly_has_priority_over_day_interval_and_weekdays(self) -> None:
        """Test that bit 8 wins over bit 7 and weekday bits."""
        assert decode_repeat(YEARLY_FLAG | DAY_INTERVAL_FLAG | 3) == Yearly()
        assert decode_repeat(YEARLY_FLAG | Weekday.MONDAY.bit) == Yearly()

    @pytest.mark.parametrize(
        ("repeat", "reason"),
        [
            (-1, "negative"),
            (DAY_INTERVAL_FLAG, "day interval of 0"),
            (MINUTE_INTERVAL_FLAG, "minute interval of 0"),
            (1 << 12, "unknown bit"),
            (1 << 9, "minute bits without the minute flag"),
            (1 << 10 | Weekday.MONDAY.bit, "minute bits without the minute flag"),
        ],
    )
    def test_malformed_masks_are_rejected(self, repeat: int, reason: str) -> None:
        """Test that inconsistent masks fail loudly."""
        with pytest.raises(MalformedRepeatRuleError):
            _ = decode_repeat(repeat)

    def test_error_carries_repeat_value(self) -> None:
        """Test that the offending mask is attached to the error."""
        with pytest.raises(MalformedRepeatRuleError) as exc_info:
            _ = decode_repeat(DAY_INTERVAL_FLAG)

        assert exc_info.value.repeat == DAY_INTERVAL_FLAG
        assert exc_info.value.recoverable is False


class TestEncodeRepeat:
    """Test encoding rules back into bitmasks."""

    def test_encode_each_variant(self) -> None:
        """Test the bitmask of every rule variant."""
        assert encode_repeat(NoRepeat()) == 0
        assert encode_repeat(DayInterval(3)) == DAY_INTERVAL_FLAG | 3
        assert encode_repeat(Yearly()) == YEARLY_FLAG
        assert encode_repeat(MinuteInterval(90)) == MINUTE_INTERVAL_FLAG | 90
        assert encode_repeat(Weekdays(frozenset({Weekday.SUNDAY, Weekday.SATURDAY}))) == 0b1000001

    def test_weekday_sets_survive_decode_and_encode(self) -> None:
        """Test that every weekday-only mask re-encodes to itself."""
        for mask in range(1, 128):
            assert encode_repeat(decode_repeat(mask)) == mask

    def test_invalid_rules_cannot_be_built(self) -> None:
        """Test that rule values validate their ranges."""
        with pytest.raises(MalformedRepeatRuleError):
            _ = Weekdays(frozenset())
        with pytest.raises(MalformedRepeatRuleError):
            _ = DayInterval(0)
        with pytest.raises(MalformedRepeatRuleError):
            _ = DayInterval(128)
        with pytest.raises(MalformedRepeatRuleError):
            _ = MinuteInterval(2048)


class TestDaysUntilNextWeekday:
    """Test the weekday search."""

    def test_next_selected_day(self) -> None:
        """Test finding the closest selected day after the current one."""
        assert days_until_next_weekday(Weekday.MONDAY, frozenset({Weekday.WEDNESDAY})) == 2
        assert days_until_next_weekday(Weekday.FRIDAY, frozenset({Weekday.MONDAY})) == 3

    def test_wraps_around_the_week(self) -> None:
        """Test that Saturday to Sunday is one day."""
        assert days_until_next_weekday(Weekday.SATURDAY, frozenset({Weekday.SUNDAY})) == 1

    def test_only_current_day_selected(self) -> None:
        """Test that an entry never repeats on the day it ran."""
        assert days_until_next_weekday(Weekday.FRIDAY, frozenset({Weekday.FRIDAY})) == 7


class TestComputeNextOccurrence:
    """Test next-occurrence computation for every rule."""

    def test_day_interval_adds_exact_days(self) -> None:
        """Test that a 3-day interval moves start and end by exactly 3 days."""
        end = FRIDAY_EVENING + timedelta(hours=2)

        new_start, new_end = compute_next_occurrence(
            FRIDAY_EVENING, end, decode_repeat(DAY_INTERVAL_FLAG | 3)
        )

        assert new_start == FRIDAY_EVENING + timedelta(days=3)
        assert new_end == end + timedelta(days=3)

    def test_minute_interval_adds_exact_minutes(self) -> None:
        """Test that a 90-minute interval moves start and end by 90 minutes."""
        end = FRIDAY_EVENING + timedelta(minutes=30)

        new_start, new_end = compute_next_occurrence(
            FRIDAY_EVENING, end, decode_repeat(MINUTE_INTERVAL_FLAG | 90)
        )

        assert new_start == FRIDAY_EVENING + timedelta(minutes=90)
        assert new_end == end + timedelta(minutes=90)

    def test_yearly_adds_one_year(self) -> None:
        """Test that a yearly entry keeps its date and time."""
        new_start, new_end = compute_next_occurrence(
            FRIDAY_EVENING, FRIDAY_EVENING + timedelta(hours=1), Yearly()
        )

        assert new_start == datetime(2026, 7, 25, 19, 0, tzinfo=UTC)
        assert new_end == datetime(2026, 7, 25, 20, 0, tzinfo=UTC)

    def test_yearly_leap_day_clamps_to_feb_28(self) -> None:
        """Test that Feb 29 lands on Feb 28 in a non-leap year."""
        start = datetime(2024, 2, 29, 19, 0, tzinfo=UTC)

        new_start, new_end = compute_next_occurrence(start, start + timedelta(hours=1), Yearly())

        assert new_start == datetime(2025, 2, 28, 19, 0, tzinfo=UTC)
        assert new_end == datetime(2025, 2, 28, 20, 0, tzinfo=UTC)

    def test_no_repeat_has_no_next_occurrence(self) -> None:
        """Test that asking a one-off entry for its next occurrence fails."""
        with pytest.raises(MalformedRepeatRuleError):
            _ = compute_next_occurrence(FRIDAY_EVENING, FRIDAY_EVENING, NoRepeat())

    def test_weekday_steps_are_minimal(self) -> None:
        """Test that every step adds the smallest day count hitting a selected weekday."""
        for mask in range(1, 128):
            rule = decode_repeat(mask)
            assert isinstance(rule, Weekdays)
            start, end = FRIDAY_EVENING, FRIDAY_EVENING + timedelta(hours=1)

            for _ in range(7):
                current = Weekday.of(start)
                expected = next(
                    offset
                    for offset in range(1, 8)
                    if Weekday((current + offset) % 7) in rule.days
                )

                new_start, new_end = compute_next_occurrence(start, end, rule)

                assert new_start - start == timedelta(days=expected)
                assert new_end - end == timedelta(days=expected)
                assert Weekday.of(new_start) in rule.days
                start, end = new_start, new_end

    def test_weekday_cycle_returns_to_original_weekday(self) -> None:
        """Test that stepping once per selected day returns to the start weekday a week later."""
        rule = Weekdays(frozenset({Weekday.MONDAY, Weekday.WEDNESDAY, Weekday.FRIDAY}))
        start, end = FRIDAY_EVENING, FRIDAY_EVENING + timedelta(hours=1)

        for _ in range(len(rule.days)):
            start, end = compute_next_occurrence(start, end, rule)

        assert Weekday.of(start) is Weekday.FRIDAY
        assert start == FRIDAY_EVENING + timedelta(days=7)

    def test_single_weekday_repeats_weekly(self) -> None:
        """Test that a Friday-only entry starting on a Friday moves a full week."""
        rule = Weekdays(frozenset({Weekday.FRIDAY}))

        new_start, _ = compute_next_occurrence(FRIDAY_EVENING, FRIDAY_EVENING, rule)

        assert new_start == FRIDAY_EVENING + timedelta(days=7)

    def test_day_interval_keeps_wall_clock_across_dst(self) -> None:
        """Test that a daily entry stays at 19:00 local time across spring forward."""
        start = datetime(2025, 3, 8, 19, 0, tzinfo=NEW_YORK)

        new_start, _ = compute_next_occurrence(start, start, DayInterval(1))

        assert (new_start.day, new_start.hour, new_start.minute) == (9, 19, 0)

    def test_minute_interval_is_exact_elapsed_time_across_dst(self) -> None:
        """Test that minute repeats count real elapsed minutes across spring forward."""
        start = datetime(2025, 3, 9, 1, 30, tzinfo=NEW_YORK)

        new_start, _ = compute_next_occurrence(start, start, MinuteInterval(60))

        assert new_start.astimezone(UTC) - start.astimezone(UTC) == timedelta(minutes=60)
        assert new_start.hour == 3

    def test_minute_interval_across_dst_fall_back(self) -> None:
        """Test that minute repeats move forward through the repeated autumn hour."""
        start = datetime(2025, 11, 2, 1, 30, tzinfo=NEW_YORK)
        end = datetime(2025, 11, 2, 1, 45, tzinfo=NEW_YORK)

        new_start, new_end = compute_next_occurrence(start, end, MinuteInterval(60))

        assert new_start.astimezone(UTC) == datetime(2025, 11, 2, 6, 30, tzinfo=UTC)
        assert new_end.astimezone(UTC) == datetime(2025, 11, 2, 6, 45, tzinfo=UTC)
        assert (new_start.hour, new_start.minute) == (1, 30)
        assert new_start.utcoffset() == timedelta(hours=-5)

    def test_minute_interval_chain_through_fall_back(self) -> None:
        """Test that half-hourly steps through the autumn change each add 30 real minutes."""
        start = datetime(2025, 11, 2, 0, 30, tzinfo=NEW_YORK)
        end = start + timedelta(minutes=10)

        for _ in range(6):
            new_start, new_end = compute_next_occurrence(start, end, MinuteInterval(30))
            assert new_start.astimezone(UTC) - start.astimezone(UTC) == timedelta(minutes=30)
            assert new_end.astimezone(UTC) - end.astimezone(UTC) == timedelta(minutes=30)
            start, end = new_start, new_end


YEAR_END_STARTS = [datetime(2025, 12, day, 19, 0, tzinfo=NEW_YORK) for day in range(25, 32)]


class TestYearBoundary:
    """Test next occurrences that cross from December into January."""

    @pytest.mark.parametrize("start", YEAR_END_STARTS, ids=lambda dt: dt.strftime("%b%d"))
    def test_weekday_masks_step_forward_into_next_year(self, start: datetime) -> None:
        """Test every weekday mask from the last week of the year."""
        end = start + timedelta(hours=2)

        for mask in range(1, 128):
            rule = decode_repeat(mask)
            assert isinstance(rule, Weekdays)
            expected = days_until_next_weekday(Weekday.of(start), rule.days)

            new_start, new_end = compute_next_occurrence(start, end, rule)

            assert new_start.astimezone(UTC) > start.astimezone(UTC)
            assert new_end.astimezone(UTC) > end.astimezone(UTC)
            assert new_start.date() - start.date() == timedelta(days=expected)
            assert new_start.year == (2025 if start.day + expected <= 31 else 2026)
            assert Weekday.of(new_start) in rule.days
            assert (new_start.hour, new_start.minute) == (19, 0)

    @pytest.mark.parametrize("start", YEAR_END_STARTS, ids=lambda dt: dt.strftime("%b%d"))
    @pytest.mark.parametrize("days", [1, 2, 7, 30, 127])
    def test_day_intervals_step_forward_into_next_year(self, start: datetime, days: int) -> None:
        """Test that day intervals keep the wall clock and move strictly forward."""
        end = start + timedelta(hours=2)

        new_start, new_end = compute_next_occurrence(start, end, DayInterval(days))

        assert new_start.date() - start.date() == timedelta(days=days)
        assert new_end.date() - end.date() == timedelta(days=days)
        assert new_start.astimezone(UTC) > start.astimezone(UTC)
        assert (new_start.hour, new_start.minute) == (19, 0)

    def test_repeated_steps_are_strictly_increasing(self) -> None:
        """Test a chain of weekday steps across New Year never goes backwards."""
        rule = Weekdays(frozenset({Weekday.MONDAY, Weekday.WEDNESDAY, Weekday.FRIDAY}))
        start = datetime(2025, 12, 24, 19, 0, tzinfo=NEW_YORK)
        end = start + timedelta(hours=1)

        for _ in range(10):
            new_start, new_end = compute_next_occurrence(start, end, rule)
            assert new_start.astimezone(UTC) > start.astimezone(UTC)
            assert new_end.astimezone(UTC) > end.astimezone(UTC)
            start, end = new_start, new_end

        assert start.year == 2026
        assert Weekday.of(start) in rule.days

    def test_yearly_from_new_years_eve(self) -> None:
        """Test that a yearly entry on December 31 lands on December 31 next year."""
        start = datetime(2025, 12, 31, 23, 30, tzinfo=NEW_YORK)

        new_start, _ = compute_next_occurrence(start, start, Yearly())

        assert new_start == datetime(2026, 12, 31, 23, 30, tzinfo=NEW_YORK)


class TestDescribeRepeat:
    """Test human readable repeat descriptions."""

    @pytest.mark.parametrize(
        ("rule", "expected"),
        [
            (NoRepeat(), "once"),
            (Yearly(), "yearly"),
            (MinuteInterval(60), "every hour"),
            (MinuteInterval(120), "every 2 hours"),
            (MinuteInterval(90), "every 90 minutes"),
            (DayInterval(1), "daily"),
            (DayInterval(3), "every 3 days"),
            (Weekdays(frozenset({Weekday.TUESDAY})), "every Tuesday"),
            (Weekdays(frozenset(Weekday)), "daily"),
            (
                Weekdays(frozenset({Weekday.FRIDAY, Weekday.MONDAY, Weekday.SUNDAY})),
                "every Sunday, Monday and Friday",
            ),
        ],
    )
    def test_descriptions(self, rule: RepeatRule, expected: str) -> None:
        """Test the description of each rule."""
        assert describe_repeat(rule) == expected
