"""Tests for bank holiday resolution."""

from datetime import date

import pytest

from locum_billing.calculators.holiday_calendar import (
    HolidayCalendar,
    HolidayRule,
    InvalidHolidayPatternError,
    easter_sunday,
    nth_weekday,
    resolve_pattern,
)


class TestEaster:
    """Gregorian Easter dates."""

    @pytest.mark.parametrize(
        "year,expected",
        [
            (2023, date(2023, 4, 9)),
            (2024, date(2024, 3, 31)),
            (2025, date(2025, 4, 20)),
            (2026, date(2026, 4, 5)),
        ],
    )
    def test_easter_sunday(self, year, expected):
        assert easter_sunday(year) == expected


class TestPatterns:
    """Recurring pattern resolution."""

    def test_nth_weekday(self):
        # First Monday of May 2025
        assert nth_weekday(2025, 5, 0, 1) == date(2025, 5, 5)
        # Last Monday of August 2024
        assert nth_weekday(2024, 8, 0, -1) == date(2024, 8, 26)

    def test_named_patterns(self):
        anchor = date(2024, 1, 1)
        assert resolve_pattern("first-monday-may", anchor, 2024) == date(2024, 5, 6)
        assert resolve_pattern("last-monday-may", anchor, 2024) == date(2024, 5, 27)
        assert resolve_pattern("good-friday", anchor, 2025) == date(2025, 4, 18)
        assert resolve_pattern("easter-monday", anchor, 2025) == date(2025, 4, 21)

    def test_fixed_pattern_reuses_month_and_day(self):
        anchor = date(2020, 12, 26)
        assert resolve_pattern("fixed", anchor, 2031) == date(2031, 12, 26)
        assert resolve_pattern(None, anchor, 2031) == date(2031, 12, 26)

    def test_leap_day_falls_back_in_common_years(self):
        assert resolve_pattern("fixed", date(2024, 2, 29), 2025) == date(2025, 2, 28)

    @pytest.mark.parametrize(
        "pattern",
        ["fifth-monday-may", "first-funday-may", "first-monday-smarch", "midsummer"],
    )
    def test_unknown_pattern_rejected(self, pattern):
        with pytest.raises(InvalidHolidayPatternError):
            resolve_pattern(pattern, date(2024, 1, 1), 2024)


class TestHolidayCalendar:
    """Calendar lookups across years and regions."""

    @pytest.fixture
    def calendar(self) -> HolidayCalendar:
        return HolidayCalendar(
            [
                HolidayRule("Christmas Day", date(2024, 12, 25), "england-and-wales", True, "fixed"),
                HolidayRule("Summer Bank Holiday", date(2024, 8, 1), "england-and-wales", True,
                            "last-monday-august"),
                HolidayRule("St Andrew's Day", date(2024, 11, 30), "scotland", False),
                HolidayRule("Coronation", date(2023, 5, 8), None, False),
            ]
        )

    def test_recurring_fixed_matches_every_year(self, calendar):
        assert calendar.is_bank_holiday(date(2030, 12, 25), "england-and-wales")

    def test_recurring_pattern_ignores_anchor_day(self, calendar):
        assert calendar.is_bank_holiday(date(2025, 8, 25), "england-and-wales")
        assert not calendar.is_bank_holiday(date(2025, 8, 1), "england-and-wales")

    def test_one_off_matches_only_its_date(self, calendar):
        assert calendar.is_bank_holiday(date(2024, 11, 30), "scotland")
        assert not calendar.is_bank_holiday(date(2025, 11, 30), "scotland")

    def test_region_filtering(self, calendar):
        assert not calendar.is_bank_holiday(date(2024, 11, 30), "england-and-wales")

    def test_holiday_without_region_applies_everywhere(self, calendar):
        assert calendar.holiday_name(date(2023, 5, 8), "scotland") == "Coronation"
        assert calendar.holiday_name(date(2023, 5, 8), "england-and-wales") == "Coronation"

    def test_invalid_pattern_rejected_on_load(self):
        with pytest.raises(InvalidHolidayPatternError):
            HolidayCalendar([HolidayRule("Bad", date(2024, 1, 1), None, True, "every-tuesday")])
