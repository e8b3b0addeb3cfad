"""Pytest fixtures for billing engine tests."""

from __future__ import annotations

import itertools
from datetime import date, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from locum_billing.calculators.holiday_calendar import HolidayRule
from locum_billing.calculators.rate_catalog import (
    BaseRate,
    MultiplierDefinition,
    RateCatalog,
    ShiftWindow,
)
from locum_billing.config import BillingConfig
from locum_billing.models import (
    BankHoliday,
    Base,
    BillingPeriod,
    Practice,
    RateMultiplier,
    RoleBaseRate,
    Shift,
    ShiftTimeWindow,
    StaffMember,
    Timesheet,
)

# In-memory SQLite shared by every session of a test (StaticPool)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Week of Monday 3 June 2024 to Sunday 9 June 2024
WEEK_START = date(2024, 6, 3)
WEEK_END = date(2024, 6, 9)
# One-off holiday on the Wednesday of that week
MIDWEEK_HOLIDAY = date(2024, 6, 5)

_shift_refs = itertools.count(1)

STANDARD_MULTIPLIERS = [
    ("bank_holiday", Decimal("2.000"), 4),
    ("weekend", Decimal("1.500"), 3),
    ("night_shift", Decimal("1.200"), 2),
    ("overtime", Decimal("1.250"), 1),
]


def make_catalog(
    multipliers: list[tuple[str, Decimal, int]] | None = None,
    holidays: list[HolidayRule] | None = None,
    windows: list[ShiftWindow] | None = None,
) -> RateCatalog:
    """Build an in-memory catalog with the standard reference data."""
    if multipliers is None:
        multipliers = STANDARD_MULTIPLIERS
    if holidays is None:
        holidays = [
            HolidayRule("Christmas Day", date(2024, 12, 25), "england-and-wales", True, "fixed"),
            HolidayRule("Good Friday", date(2024, 3, 29), "england-and-wales", True, "good-friday"),
            HolidayRule("Summer Bank Holiday", date(2024, 8, 26), "england-and-wales", False),
            HolidayRule("St Andrew's Day", date(2024, 11, 30), "scotland", False),
        ]
    if windows is None:
        windows = [
            ShiftWindow("day", 8 * 60, 20 * 60),
            ShiftWindow("night", 20 * 60, 8 * 60),
        ]
    return RateCatalog(
        base_rates=[
            BaseRate("Agency Nurse", Decimal("18.00"), Decimal("28.00")),
            BaseRate("GP Locum", Decimal("85.00"), Decimal("120.00")),
        ],
        multipliers=[MultiplierDefinition(n, f, p) for n, f, p in multipliers],
        holidays=holidays,
        windows=windows,
        default_region="england-and-wales",
    )


@pytest.fixture
def catalog() -> RateCatalog:
    return make_catalog()


@pytest.fixture
def billing_config() -> BillingConfig:
    return BillingConfig()


@pytest.fixture
async def engine():
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def reference_data(session: AsyncSession) -> None:
    """Rate cards, multipliers, shift windows and bank holidays."""
    session.add_all(
        [
            RoleBaseRate(
                role="Agency Nurse",
                worker_pay_rate_min=Decimal("18.00"),
                worker_pay_rate_max=Decimal("25.00"),
                client_bill_rate_min=Decimal("28.00"),
                client_bill_rate_max=Decimal("40.00"),
            ),
            RoleBaseRate(
                role="GP Locum",
                worker_pay_rate_min=Decimal("85.00"),
                worker_pay_rate_max=Decimal("100.00"),
                client_bill_rate_min=Decimal("120.00"),
                client_bill_rate_max=Decimal("140.00"),
            ),
            RoleBaseRate(
                role="Retired Role",
                worker_pay_rate_min=Decimal("10.00"),
                worker_pay_rate_max=Decimal("10.00"),
                client_bill_rate_min=Decimal("15.00"),
                client_bill_rate_max=Decimal("15.00"),
                is_active=False,
            ),
        ]
    )
    for name, factor, priority in STANDARD_MULTIPLIERS:
        session.add(RateMultiplier(name=name, multiplier=factor, priority=priority))
    session.add_all(
        [
            ShiftTimeWindow(shift_type="day", start_time="08:00", end_time="20:00"),
            ShiftTimeWindow(shift_type="night", start_time="20:00", end_time="08:00"),
            BankHoliday(
                name="Christmas Day",
                holiday_date=date(2024, 12, 25),
                is_recurring=True,
                recurring_pattern="fixed",
            ),
            BankHoliday(
                name="Early May Bank Holiday",
                holiday_date=date(2024, 5, 6),
                is_recurring=True,
                recurring_pattern="first-monday-may",
            ),
            BankHoliday(name="Midweek Holiday", holiday_date=MIDWEEK_HOLIDAY),
        ]
    )
    await session.commit()


@pytest.fixture
async def practice(session: AsyncSession) -> Practice:
    practice = Practice(
        name="Riverside Surgery",
        facility_type="gp_practice",
        address="1 River Lane, Leeds",
        postcode="LS1 1AA",
        billing_contact_email="accounts@riverside.example",
        vat_number="GB111222333",
        region="england-and-wales",
    )
    session.add(practice)
    await session.commit()
    return practice


@pytest.fixture
async def care_home(session: AsyncSession) -> Practice:
    care_home = Practice(
        name="Hillview Care Home",
        facility_type="care_home",
        address="5 Hill Road, York",
        postcode="YO1 2BB",
        region="england-and-wales",
        payment_terms_days=14,
    )
    session.add(care_home)
    await session.commit()
    return care_home


@pytest.fixture
async def nurse(session: AsyncSession) -> StaffMember:
    nurse = StaffMember(
        full_name="Alice Brown",
        role="Agency Nurse",
        address="10 Park Street, Leeds",
        postcode="LS2 3CC",
        email="alice@example.com",
        payroll_reference="PR-001",
        ni_number="QQ123456C",
        vat_registered=False,
    )
    session.add(nurse)
    await session.commit()
    return nurse


@pytest.fixture
async def gp(session: AsyncSession) -> StaffMember:
    gp = StaffMember(
        full_name="Ben Carter",
        role="GP Locum",
        payroll_reference="PR-002",
        vat_registered=True,
        vat_number="GB999888777",
    )
    session.add(gp)
    await session.commit()
    return gp


@pytest.fixture
async def period(session: AsyncSession) -> BillingPeriod:
    period = BillingPeriod(
        period_name="Week 23 2024",
        start_date=WEEK_START,
        end_date=WEEK_END,
        status="open",
    )
    session.add(period)
    await session.commit()
    return period


async def add_shift(
    session: AsyncSession,
    practice: Practice,
    staff: StaffMember | None,
    shift_date: date,
    start_time: str = "08:00",
    end_time: str = "16:00",
    *,
    role: str | None = None,
    status: str = "completed",
    shift_ref: str | None = None,
) -> Shift:
    """Insert and commit a shift."""
    shift = Shift(
        shift_ref=shift_ref or f"SH-{next(_shift_refs):05d}",
        practice_id=practice.practice_id,
        staff_id=staff.staff_id if staff else None,
        role=role or (staff.role if staff else "Agency Nurse"),
        shift_date=shift_date,
        start_time=start_time,
        end_time=end_time,
        status=status,
    )
    session.add(shift)
    await session.commit()
    return shift


async def add_timesheet(
    session: AsyncSession,
    practice: Practice,
    staff: StaffMember,
    daily_hours: dict[str, str],
    *,
    week_start: date = WEEK_START,
    status: str = "approved",
) -> Timesheet:
    """Insert and commit a weekly timesheet."""
    timesheet = Timesheet(
        staff_id=staff.staff_id,
        practice_id=practice.practice_id,
        week_start=week_start,
        week_end=week_start + timedelta(days=6),
        daily_hours=daily_hours,
        total_hours=sum((Decimal(h) for h in daily_hours.values()), Decimal("0")),
        status=status,
    )
    session.add(timesheet)
    await session.commit()
    return timesheet
