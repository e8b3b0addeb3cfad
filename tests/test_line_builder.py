"""Tests for invoice arithmetic."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from locum_billing.calculators.line_builder import InvoiceLineBuilder
from locum_billing.calculators.rate_calculator import RateCalculator
from locum_billing.calculators.types import AggregatedLine, ShiftInput, SourceType


class TestInvoiceLineBuilder:
    """Test rounding and totals."""

    def test_round_to_cents(self):
        """Test rounding to 2 decimal places (half up)."""
        assert InvoiceLineBuilder.round_to_cents(Decimal("10.125")) == Decimal("10.13")
        assert InvoiceLineBuilder.round_to_cents(Decimal("10.124")) == Decimal("10.12")
        assert InvoiceLineBuilder.round_to_cents(Decimal("10.135")) == Decimal("10.14")

    @pytest.mark.parametrize(
        "hours,expected",
        [
            (Decimal("7.9167"), Decimal("8.0000")),  # 7h55m
            (Decimal("7.1167"), Decimal("7.0000")),  # 7h07m
            (Decimal("7.1250"), Decimal("7.2500")),  # half way rounds up
            (Decimal("8.5000"), Decimal("8.5000")),
        ],
    )
    def test_quarter_hour_rounding(self, hours, expected):
        assert InvoiceLineBuilder.billable_hours(hours, round_to_quarter_hour=True) == expected

    def test_rounding_disabled_keeps_hours(self):
        assert InvoiceLineBuilder.billable_hours(Decimal("7.9167"), False) == Decimal("7.9167")

    def test_line_total_is_not_rounded(self):
        assert InvoiceLineBuilder.line_total(Decimal("7.3333"), Decimal("33.33")) == Decimal("244.418889")

    def test_totals_round_once(self):
        """Summing unrounded lines avoids per-line penny drift."""
        lines = [Decimal("10.0049")] * 3

        totals = InvoiceLineBuilder.compute_totals(lines, Decimal("20.00"), vat_applies=True)

        # Per-line rounding would give 3 x 10.00 = 30.00
        assert totals.subtotal == Decimal("30.01")
        assert totals.vat_amount == Decimal("6.00")
        assert totals.total == Decimal("36.01")

    def test_no_vat_when_not_registered(self):
        totals = InvoiceLineBuilder.compute_totals(
            [Decimal("100")], Decimal("20.00"), vat_applies=False
        )

        assert totals.vat_rate == Decimal("0")
        assert totals.vat_amount == Decimal("0.00")
        assert totals.total == Decimal("100.00")

    def test_empty_totals(self):
        totals = InvoiceLineBuilder.compute_totals([], Decimal("20.00"), vat_applies=True)
        assert totals.total == Decimal("0.00")


class TestLinesHash:
    def _line(self, calculator: RateCalculator, work_date: date) -> AggregatedLine:
        calc = calculator.compute_rate(
            ShiftInput(role="Agency Nurse", work_date=work_date, start_time="08:00", end_time="16:00")
        )
        return AggregatedLine(
            source_type=SourceType.SHIFT,
            source_id=uuid4(),
            work_date=work_date,
            practice_id=uuid4(),
            staff_id=uuid4(),
            staff_name="Alice Brown",
            location_name="Riverside Surgery",
            calculation=calc,
            billable_hours=Decimal("8.0000"),
            rate_used=calc.final_external_rate,
            line_total=Decimal("8.0000") * calc.final_external_rate,
        )

    def test_hash_ignores_input_order(self, catalog):
        calculator = RateCalculator(catalog)
        a = self._line(calculator, date(2024, 6, 3))
        b = self._line(calculator, date(2024, 6, 4))

        assert InvoiceLineBuilder.compute_lines_hash([a, b]) == InvoiceLineBuilder.compute_lines_hash([b, a])
        assert len(InvoiceLineBuilder.compute_lines_hash([a])) == 64

    def test_hash_changes_with_rate(self, catalog):
        calculator = RateCalculator(catalog)
        line = self._line(calculator, date(2024, 6, 3))
        before = InvoiceLineBuilder.compute_lines_hash([line])
        line.rate_used = Decimal("99.00")

        assert InvoiceLineBuilder.compute_lines_hash([line]) != before
