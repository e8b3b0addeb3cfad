"""Tests for the rate catalog."""

from datetime import date
from decimal import Decimal

import pytest

from locum_billing.calculators.rate_catalog import (
    FALLBACK_SHIFT_TYPE,
    NotFoundError,
    RateCatalog,
    ShiftWindow,
    UnknownRoleError,
    parse_clock_minutes,
)

from tests.conftest import make_catalog


class TestBaseRates:
    def test_known_role(self, catalog):
        rate = catalog.get_base_rate("Agency Nurse")
        assert rate.pay_rate == Decimal("18.00")
        assert rate.bill_rate == Decimal("28.00")

    def test_unknown_role(self, catalog):
        with pytest.raises(UnknownRoleError) as exc_info:
            catalog.get_base_rate("Surgeon")
        assert exc_info.value.role == "Surgeon"
        assert isinstance(exc_info.value, NotFoundError)


class TestMultipliers:
    def test_ordered_by_priority_desc(self, catalog):
        names = [m.name for m in catalog.get_active_multipliers()]
        assert names == ["bank_holiday", "weekend", "night_shift", "overtime"]

    def test_equal_priority_keeps_declaration_order(self):
        catalog = make_catalog(
            multipliers=[("weekend", Decimal("1.5"), 3), ("bank_holiday", Decimal("2.0"), 3)]
        )
        names = [m.name for m in catalog.get_active_multipliers()]
        assert names == ["weekend", "bank_holiday"]

    def test_get_multiplier(self, catalog):
        assert catalog.get_multiplier("weekend").factor == Decimal("1.500")
        assert catalog.get_multiplier("sunday_premium") is None


class TestBankHolidays:
    def test_default_region_used_when_none_given(self, catalog):
        assert catalog.is_bank_holiday(date(2025, 12, 25))
        assert catalog.bank_holiday_name(date(2025, 4, 18)) == "Good Friday"

    def test_other_region_holiday(self, catalog):
        assert not catalog.is_bank_holiday(date(2024, 11, 30))
        assert catalog.is_bank_holiday(date(2024, 11, 30), "scotland")


class TestShiftWindows:
    @pytest.mark.parametrize(
        "start,end,expected",
        [
            ("08:00", "16:00", "day"),
            ("22:00", "06:00", "night"),
            ("20:00", "08:00", "night"),
            # 6h in day window, 2h in night window
            ("14:00", "22:00", "day"),
            # 2h day, 6h night
            ("18:00", "02:00", "night"),
            ("02:00", "07:00", "night"),
        ],
    )
    def test_classification(self, catalog, start, end, expected):
        assert catalog.classify_shift_window(start, end) == expected

    def test_equal_overlap_prefers_earlier_window(self, catalog):
        # 16:00-24:00 overlaps day 4h and night 4h
        assert catalog.classify_shift_window("16:00", "00:00") == "day"

    def test_fallback_when_nothing_matches(self, caplog):
        catalog = make_catalog(windows=[ShiftWindow("early", 6 * 60, 10 * 60)])
        with caplog.at_level("WARNING"):
            assert catalog.classify_shift_window("13:00", "17:00") == FALLBACK_SHIFT_TYPE
        assert "fallback" in caplog.text

    def test_parse_clock_minutes(self):
        assert parse_clock_minutes("07:30") == 450
        assert parse_clock_minutes("23:59:00") == 1439
        with pytest.raises(ValueError):
            parse_clock_minutes("25:00")


class TestLoad:
    async def test_load_active_rows_only(self, session, reference_data):
        catalog = await RateCatalog.load(session, "england-and-wales")

        assert catalog.get_base_rate("GP Locum").bill_rate == Decimal("120.00")
        with pytest.raises(UnknownRoleError):
            catalog.get_base_rate("Retired Role")
        assert [m.name for m in catalog.get_active_multipliers()][0] == "bank_holiday"
        assert catalog.is_bank_holiday(date(2026, 5, 4))  # first Monday of May
        assert catalog.classify_shift_window("21:00", "07:00") == "night"
