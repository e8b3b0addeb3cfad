"""Shift rate calculation with a data-driven multiplier rule table."""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable

from locum_billing.calculators.line_builder import InvoiceLineBuilder
from locum_billing.calculators.rate_catalog import (
    MINUTES_PER_DAY,
    MultiplierDefinition,
    RateCatalog,
    parse_clock_minutes,
)
from locum_billing.calculators.types import AppliedMultiplier, RateCalculationResult, ShiftInput

logger = logging.getLogger(__name__)

DEFAULT_OVERTIME_THRESHOLD = Decimal("12")


class InvalidShiftTimeError(ValueError):
    """Raised when a shift's times do not give a positive duration."""

    def __init__(self, start_time: str | None, end_time: str | None, reason: str):
        self.start_time = start_time
        self.end_time = end_time
        self.reason = reason
        super().__init__(f"Invalid shift time {start_time}-{end_time}: {reason}")


class NoActiveMultipliersConfigured(UserWarning):
    """No multiplier is active; shifts are priced at base rate."""


@dataclass(frozen=True)
class ShiftContext:
    """Facts about a shift that multiplier rules look at."""

    work_date: date
    shift_type: str | None
    duration_hours: Decimal
    region: str | None
    catalog: RateCatalog
    overtime_threshold: Decimal


@dataclass(frozen=True)
class MultiplierRule:
    """One row of the precedence table.

    ``exclusive`` rules compete: only the highest-priority match applies.
    Non-exclusive rules stack on top of whichever exclusive rule won.
    ``predicate`` returns a human-readable reason when the rule matches.
    """

    name: str
    exclusive: bool
    predicate: Callable[[ShiftContext], str | None]


def _bank_holiday(ctx: ShiftContext) -> str | None:
    name = ctx.catalog.bank_holiday_name(ctx.work_date, ctx.region)
    if name is None:
        return None
    return f"Bank holiday: {name}"


def _weekend(ctx: ShiftContext) -> str | None:
    if ctx.work_date.weekday() < 5:
        return None
    return f"Weekend shift ({ctx.work_date.strftime('%A')})"


def _night_shift(ctx: ShiftContext) -> str | None:
    if ctx.shift_type != "night":
        return None
    return "Night shift window"


def _overtime(ctx: ShiftContext) -> str | None:
    if ctx.duration_hours <= ctx.overtime_threshold:
        return None
    shown = InvoiceLineBuilder.round_internal(ctx.duration_hours)
    return f"Duration {shown}h exceeds {ctx.overtime_threshold}h"


# Declaration order breaks priority ties.
MULTIPLIER_RULES: tuple[MultiplierRule, ...] = (
    MultiplierRule("bank_holiday", exclusive=True, predicate=_bank_holiday),
    MultiplierRule("weekend", exclusive=True, predicate=_weekend),
    MultiplierRule("night_shift", exclusive=True, predicate=_night_shift),
    MultiplierRule("overtime", exclusive=False, predicate=_overtime),
)


def shift_duration_hours(start_time: str, end_time: str) -> Decimal:
    """Hours between two clock times; an earlier end time means the next day.

    The result is not rounded; round only when persisting or displaying.

    Raises:
        InvalidShiftTimeError: If a time is malformed or the duration is zero
    """
    try:
        start = parse_clock_minutes(start_time)
        end = parse_clock_minutes(end_time)
    except (ValueError, AttributeError) as exc:
        raise InvalidShiftTimeError(start_time, end_time, f"unparseable time ({exc})") from exc

    if end < start:
        end += MINUTES_PER_DAY
    minutes = end - start
    if minutes <= 0:
        raise InvalidShiftTimeError(start_time, end_time, "duration must be positive")

    # Unquantized: 20 minutes is 0.333...h, not 0.3333h
    return Decimal(minutes) / Decimal(60)


class RateCalculator:
    """Computes pay (internal) and bill (external) rates for shifts.

    Pipeline (stable order per shift):
    1) Look up base rate for the role (UnknownRoleError if absent)
    2) Compute duration, wrapping overnight shifts
    3) Evaluate the rule table; keep one exclusive match plus overtime
    4) Multiply base rates by matched factors, round final rates once
    5) Cost = final rate x duration, rounded to cents

    Stateless over the catalog: safe to call concurrently.
    """

    def __init__(
        self,
        catalog: RateCatalog,
        overtime_threshold: Decimal = DEFAULT_OVERTIME_THRESHOLD,
        rules: tuple[MultiplierRule, ...] = MULTIPLIER_RULES,
    ):
        self.catalog = catalog
        self.overtime_threshold = overtime_threshold
        self.rules = rules

    def compute_rate(self, shift: ShiftInput) -> RateCalculationResult:
        """Price a shift with clock times."""
        base = self.catalog.get_base_rate(shift.role)
        duration = shift_duration_hours(shift.start_time, shift.end_time)
        shift_type = self.catalog.classify_shift_window(shift.start_time, shift.end_time)
        return self._price(
            role=shift.role,
            work_date=shift.work_date,
            start_time=shift.start_time,
            end_time=shift.end_time,
            shift_type=shift_type,
            duration=duration,
            region=shift.region,
            base_pay=base.pay_rate,
            base_bill=base.bill_rate,
        )

    def compute_rate_for_hours(
        self,
        role: str,
        work_date: date,
        hours: Decimal,
        region: str | None = None,
    ) -> RateCalculationResult:
        """Price a block of hours with no clock times (timesheet day).

        Time-of-day rules never match because there is no shift type.
        """
        base = self.catalog.get_base_rate(role)
        if hours <= 0:
            raise InvalidShiftTimeError(None, None, f"hours must be positive, got {hours}")
        return self._price(
            role=role,
            work_date=work_date,
            start_time=None,
            end_time=None,
            shift_type=None,
            duration=hours,
            region=region,
            base_pay=base.pay_rate,
            base_bill=base.bill_rate,
        )

    def select_multipliers(self, ctx: ShiftContext) -> list[AppliedMultiplier]:
        """Return matched multipliers in application order."""
        matched: list[tuple[MultiplierDefinition, MultiplierRule, int, str]] = []
        for index, rule in enumerate(self.rules):
            definition = self.catalog.get_multiplier(rule.name)
            if definition is None:
                continue
            reason = rule.predicate(ctx)
            if reason is None:
                continue
            matched.append((definition, rule, index, reason))

        def order(item: tuple[MultiplierDefinition, MultiplierRule, int, str]) -> tuple[int, int]:
            return (-item[0].priority, item[2])

        exclusive = [m for m in matched if m[1].exclusive]
        chosen = [m for m in matched if not m[1].exclusive]
        if exclusive:
            chosen.append(min(exclusive, key=order))
        chosen.sort(key=order)

        return [
            AppliedMultiplier(
                name=definition.name,
                factor=definition.factor,
                reason=reason,
                priority=definition.priority,
            )
            for definition, _, _, reason in chosen
        ]

    def _price(
        self,
        *,
        role: str,
        work_date: date,
        start_time: str | None,
        end_time: str | None,
        shift_type: str | None,
        duration: Decimal,
        region: str | None,
        base_pay: Decimal,
        base_bill: Decimal,
    ) -> RateCalculationResult:
        notes: list[str] = []
        if not self.catalog.get_active_multipliers():
            message = f"No active multipliers configured; pricing {role} on {work_date} at base rate"
            warnings.warn(message, NoActiveMultipliersConfigured, stacklevel=3)
            logger.warning(message)
            notes.append(message)

        ctx = ShiftContext(
            work_date=work_date,
            shift_type=shift_type,
            duration_hours=duration,
            region=region,
            catalog=self.catalog,
            overtime_threshold=self.overtime_threshold,
        )
        applied = self.select_multipliers(ctx)

        # Full precision until the final rate
        pay = Decimal(base_pay)
        bill = Decimal(base_bill)
        for multiplier in applied:
            pay *= multiplier.factor
            bill *= multiplier.factor

        final_pay = InvoiceLineBuilder.round_to_cents(pay)
        final_bill = InvoiceLineBuilder.round_to_cents(bill)

        return RateCalculationResult(
            role=role,
            work_date=work_date,
            start_time=start_time,
            end_time=end_time,
            shift_type=shift_type,
            duration_hours=duration,
            base_internal_rate=InvoiceLineBuilder.round_to_cents(Decimal(base_pay)),
            base_external_rate=InvoiceLineBuilder.round_to_cents(Decimal(base_bill)),
            applied_multipliers=tuple(applied),
            final_internal_rate=final_pay,
            final_external_rate=final_bill,
            total_internal_cost=InvoiceLineBuilder.round_to_cents(final_pay * duration),
            total_external_cost=InvoiceLineBuilder.round_to_cents(final_bill * duration),
            warnings=tuple(notes),
        )
