"""Invoice line and total builder with deterministic hashing."""

from __future__ import annotations

import hashlib
import json
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from locum_billing.calculators.types import AggregatedLine, InvoiceTotals


class InvoiceLineBuilder:
    """Money and hours arithmetic for invoices.

    Rounding:
    - Rates and costs to 2 decimals once, after all multipliers
    - Billable hours to the nearest quarter hour (when enabled)
    - Durations and line totals are kept unrounded in memory and stored
      at 4 decimals
    - Subtotal, VAT and total rounded once, at invoice level
    """

    PRECISION = Decimal("0.0001")  # 4 decimal places for stored hours and line totals
    OUTPUT_PRECISION = Decimal("0.01")  # 2 decimal places for persistence
    QUARTER_HOURS = Decimal("4")

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places."""
        return amount.quantize(InvoiceLineBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def round_internal(amount: Decimal) -> Decimal:
        """Round to the 4-decimal stored precision."""
        return amount.quantize(InvoiceLineBuilder.PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def billable_hours(hours: Decimal, round_to_quarter_hour: bool) -> Decimal:
        """Apply the billable-hours rounding policy."""
        if not round_to_quarter_hour:
            return hours
        quarters = (hours * InvoiceLineBuilder.QUARTER_HOURS).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        return InvoiceLineBuilder.round_internal(quarters / InvoiceLineBuilder.QUARTER_HOURS)

    @staticmethod
    def line_total(billable_hours: Decimal, rate_used: Decimal) -> Decimal:
        """Unrounded line amount."""
        return billable_hours * rate_used

    @staticmethod
    def compute_totals(
        line_totals: Iterable[Decimal],
        vat_rate: Decimal,
        vat_applies: bool,
    ) -> InvoiceTotals:
        """Sum line totals and add VAT, rounding only the aggregates."""
        raw_subtotal = sum(line_totals, Decimal("0"))
        subtotal = InvoiceLineBuilder.round_to_cents(raw_subtotal)
        effective_rate = vat_rate if vat_applies else Decimal("0")
        vat_amount = InvoiceLineBuilder.round_to_cents(subtotal * effective_rate / Decimal("100"))
        return InvoiceTotals(
            subtotal=subtotal,
            vat_rate=effective_rate,
            vat_amount=vat_amount,
            total=subtotal + vat_amount,
        )

    @staticmethod
    def compute_lines_hash(lines: Iterable[AggregatedLine]) -> str:
        """Deterministic hash of the rate snapshot behind an invoice.

        Lines are sorted by their canonical form so input order does not
        change the hash.
        """
        canonical = sorted(
            (line.to_canonical_dict() for line in lines),
            key=lambda d: (d["work_date"], d["source_type"], d["source_id"]),
        )
        json_str = json.dumps(canonical, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()
