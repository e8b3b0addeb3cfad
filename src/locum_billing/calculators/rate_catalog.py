"""Rate catalog: base rates, multipliers, bank holidays and shift windows.

The catalog is loaded once from the database and then answers lookups
without further I/O, so the rate calculator built on top of it stays a
pure function.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from locum_billing.calculators.holiday_calendar import HolidayCalendar, HolidayRule
from locum_billing.models import BankHoliday, RateMultiplier, RoleBaseRate, ShiftTimeWindow

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60

# Shift type used when no configured window overlaps the shift at all.
FALLBACK_SHIFT_TYPE = "day"


class NotFoundError(LookupError):
    """Raised when a catalog entry does not exist or is inactive."""


class UnknownRoleError(NotFoundError):
    """Raised when no active base rate is configured for a role."""

    def __init__(self, role: str):
        self.role = role
        super().__init__(f"No active base rate configured for role '{role}'")


def parse_clock_minutes(value: str | time) -> int:
    """Minutes after midnight for 'HH:MM' / 'HH:MM:SS' strings or time objects.

    Raises:
        ValueError: If the value is not a valid clock time
    """
    if isinstance(value, time):
        parsed = value
    else:
        parsed = time.fromisoformat(value.strip())
    return parsed.hour * 60 + parsed.minute


@dataclass(frozen=True)
class BaseRate:
    """Unmultiplied pay and bill rate for a role."""

    role: str
    pay_rate: Decimal
    bill_rate: Decimal


@dataclass(frozen=True)
class MultiplierDefinition:
    """Active multiplier as configured."""

    name: str
    factor: Decimal
    priority: int
    description: str | None = None


@dataclass(frozen=True)
class ShiftWindow:
    """A shift-type window in minutes after midnight; may wrap past midnight."""

    shift_type: str
    start_minute: int
    end_minute: int

    def occurrences(self) -> list[tuple[int, int]]:
        """Window intervals on the previous, current and next day."""
        end = self.end_minute
        if end <= self.start_minute:
            end += MINUTES_PER_DAY
        return [
            (self.start_minute + offset, end + offset)
            for offset in (-MINUTES_PER_DAY, 0, MINUTES_PER_DAY)
        ]

    def overlap_minutes(self, start: int, end: int) -> int:
        total = 0
        for w_start, w_end in self.occurrences():
            total += max(0, min(end, w_end) - max(start, w_start))
        return total


class RateCatalog:
    """Read-only reference data for rate calculation.

    Lookups:
    - get_base_rate(role): base pay/bill rate, UnknownRoleError if absent
    - get_active_multipliers(): active multipliers, priority descending
    - is_bank_holiday(date, region): explicit dates and recurring patterns
    - classify_shift_window(start, end): best-overlapping window, or
      FALLBACK_SHIFT_TYPE when nothing overlaps
    """

    def __init__(
        self,
        base_rates: list[BaseRate],
        multipliers: list[MultiplierDefinition],
        holidays: list[HolidayRule],
        windows: list[ShiftWindow],
        default_region: str | None = None,
    ):
        self._base_rates = {rate.role: rate for rate in base_rates}
        # Stable sort keeps declaration order among equal priorities
        self._multipliers = tuple(sorted(multipliers, key=lambda m: -m.priority))
        self._calendar = HolidayCalendar(holidays)
        self._windows = tuple(windows)
        self.default_region = default_region

    @classmethod
    async def load(cls, session: AsyncSession, default_region: str | None = None) -> RateCatalog:
        """Load active reference data from the database."""
        rate_rows = await session.execute(select(RoleBaseRate).where(RoleBaseRate.is_active.is_(True)))
        base_rates = [
            BaseRate(
                role=row.role,
                pay_rate=row.worker_pay_rate_min,
                bill_rate=row.client_bill_rate_min,
            )
            for row in rate_rows.scalars().all()
        ]

        multiplier_rows = await session.execute(
            select(RateMultiplier)
            .where(RateMultiplier.is_active.is_(True))
            .order_by(RateMultiplier.priority.desc(), RateMultiplier.name)
        )
        multipliers = [
            MultiplierDefinition(
                name=row.name,
                factor=row.multiplier,
                priority=row.priority,
                description=row.description,
            )
            for row in multiplier_rows.scalars().all()
        ]

        holiday_rows = await session.execute(select(BankHoliday).order_by(BankHoliday.holiday_date))
        holidays = [
            HolidayRule(
                name=row.name,
                holiday_date=row.holiday_date,
                region=row.region,
                is_recurring=row.is_recurring,
                recurring_pattern=row.recurring_pattern,
            )
            for row in holiday_rows.scalars().all()
        ]

        window_rows = await session.execute(
            select(ShiftTimeWindow)
            .where(ShiftTimeWindow.is_active.is_(True))
            .order_by(ShiftTimeWindow.start_time, ShiftTimeWindow.shift_type)
        )
        windows = [
            ShiftWindow(
                shift_type=row.shift_type,
                start_minute=parse_clock_minutes(row.start_time),
                end_minute=parse_clock_minutes(row.end_time),
            )
            for row in window_rows.scalars().all()
        ]

        return cls(base_rates, multipliers, holidays, windows, default_region=default_region)

    def get_base_rate(self, role: str) -> BaseRate:
        """Get the base rate for a role.

        Raises:
            UnknownRoleError: If the role is unknown or inactive
        """
        rate = self._base_rates.get(role)
        if rate is None:
            raise UnknownRoleError(role)
        return rate

    def get_active_multipliers(self) -> tuple[MultiplierDefinition, ...]:
        return self._multipliers

    def get_multiplier(self, name: str) -> MultiplierDefinition | None:
        for multiplier in self._multipliers:
            if multiplier.name == name:
                return multiplier
        return None

    def is_bank_holiday(self, day: date, region: str | None = None) -> bool:
        return self._calendar.is_bank_holiday(day, region or self.default_region)

    def bank_holiday_name(self, day: date, region: str | None = None) -> str | None:
        return self._calendar.holiday_name(day, region or self.default_region)

    def classify_shift_window(self, start_time: str | time, end_time: str | time) -> str:
        """Classify a shift by the window it overlaps most.

        Ties go to the window starting earlier, then to shift type name.
        """
        start = parse_clock_minutes(start_time)
        end = parse_clock_minutes(end_time)
        if end <= start:
            end += MINUTES_PER_DAY

        best: tuple[int, int, str] | None = None
        for window in self._windows:
            overlap = window.overlap_minutes(start, end)
            if overlap <= 0:
                continue
            key = (-overlap, window.start_minute, window.shift_type)
            if best is None or key < best:
                best = key

        if best is None:
            logger.warning(
                "No shift window matches %s-%s; using fallback shift type '%s'",
                start_time,
                end_time,
                FALLBACK_SHIFT_TYPE,
            )
            return FALLBACK_SHIFT_TYPE
        return best[2]
