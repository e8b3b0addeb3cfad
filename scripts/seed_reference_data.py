"""Seed script for rate reference data.

Run with:
    python scripts/seed_reference_data.py

This creates the standard rate multipliers, the day/night shift windows and
the recurring England & Wales bank holidays. Existing rows are left alone,
so the script can be run repeatedly.
"""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from locum_billing.database import get_session
from locum_billing.models import BankHoliday, RateMultiplier, ShiftTimeWindow

REGION = "england-and-wales"

MULTIPLIERS = [
    ("bank_holiday", Decimal("2.000"), 4, "Bank holiday shifts (double time)"),
    ("weekend", Decimal("1.500"), 3, "Saturday and Sunday shifts"),
    ("night_shift", Decimal("1.200"), 2, "Shifts mostly inside the night window"),
    ("overtime", Decimal("1.250"), 1, "Shifts longer than the overtime threshold"),
]

SHIFT_WINDOWS = [
    ("day", "08:00", "20:00", "Standard day shift"),
    ("night", "20:00", "08:00", "Night shift, spans midnight"),
]

# Anchor dates only matter for fixed holidays (month/day reused every year)
BANK_HOLIDAYS = [
    ("New Year's Day", date(2024, 1, 1), "fixed"),
    ("Good Friday", date(2024, 3, 29), "good-friday"),
    ("Easter Monday", date(2024, 4, 1), "easter-monday"),
    ("Early May Bank Holiday", date(2024, 5, 6), "first-monday-may"),
    ("Spring Bank Holiday", date(2024, 5, 27), "last-monday-may"),
    ("Summer Bank Holiday", date(2024, 8, 26), "last-monday-august"),
    ("Christmas Day", date(2024, 12, 25), "fixed"),
    ("Boxing Day", date(2024, 12, 26), "fixed"),
]


async def seed_multipliers(session: AsyncSession) -> None:
    """Create the four standard multipliers."""
    for name, factor, priority, description in MULTIPLIERS:
        result = await session.execute(select(RateMultiplier).where(RateMultiplier.name == name))
        if result.scalar_one_or_none() is not None:
            print(f"Multiplier {name} already exists, skipping...")
            continue
        session.add(
            RateMultiplier(
                name=name,
                multiplier=factor,
                priority=priority,
                description=description,
                is_active=True,
            )
        )
        print(f"Created multiplier {name} x{factor} (priority {priority})")


async def seed_shift_windows(session: AsyncSession) -> None:
    """Create day and night shift windows."""
    for shift_type, start_time, end_time, description in SHIFT_WINDOWS:
        result = await session.execute(
            select(ShiftTimeWindow).where(ShiftTimeWindow.shift_type == shift_type)
        )
        if result.scalar_one_or_none() is not None:
            print(f"Shift window {shift_type} already exists, skipping...")
            continue
        session.add(
            ShiftTimeWindow(
                shift_type=shift_type,
                start_time=start_time,
                end_time=end_time,
                description=description,
                is_active=True,
            )
        )
        print(f"Created shift window {shift_type} {start_time}-{end_time}")


async def seed_bank_holidays(session: AsyncSession) -> None:
    """Create recurring England & Wales bank holidays."""
    for name, anchor, pattern in BANK_HOLIDAYS:
        result = await session.execute(
            select(BankHoliday).where(
                BankHoliday.name == name,
                BankHoliday.region == REGION,
                BankHoliday.is_recurring.is_(True),
            )
        )
        if result.scalar_one_or_none() is not None:
            print(f"Bank holiday {name} already exists, skipping...")
            continue
        session.add(
            BankHoliday(
                name=name,
                holiday_date=anchor,
                region=REGION,
                is_recurring=True,
                recurring_pattern=pattern,
            )
        )
        print(f"Created bank holiday {name} ({pattern})")


async def main() -> None:
    """Run all seed functions."""
    async with get_session() as session:
        await seed_multipliers(session)
        await seed_shift_windows(session)
        await seed_bank_holidays(session)
        print("\nSeed complete!")


if __name__ == "__main__":
    asyncio.run(main())
