"""Tests for billing period lifecycle."""

from datetime import date
from decimal import Decimal

import pytest

from locum_billing.config import BillingConfig
from locum_billing.services.billing_period_service import (
    AlreadyClosedError,
    BillingPeriodNotFoundError,
    BillingPeriodService,
    InvalidPeriodError,
    OverlappingPeriodError,
    UnresolvedShiftErrorsError,
)
from locum_billing.services.invoice_generator import InvoiceGenerator
from locum_billing.services.state_machine import InvalidTransitionError

from tests.conftest import WEEK_END, WEEK_START, add_shift


class TestCreatePeriod:
    async def test_create(self, session, billing_config):
        service = BillingPeriodService(session, billing_config)
        period = await service.create_period(WEEK_START, WEEK_END)

        assert period.status == "open"
        assert period.client_invoices_generated is False
        assert period.payroll_invoices_generated is False
        assert period.period_name == "2024-06-03 to 2024-06-09"

    async def test_monthly_name(self, session, billing_config):
        period = await BillingPeriodService(session, billing_config).create_period(
            date(2024, 2, 1), date(2024, 2, 29)
        )
        assert period.period_name == "February 2024"

    async def test_start_after_end_rejected(self, session, billing_config):
        with pytest.raises(InvalidPeriodError):
            await BillingPeriodService(session, billing_config).create_period(WEEK_END, WEEK_START)

    async def test_overlap_rejected(self, session, billing_config):
        service = BillingPeriodService(session, billing_config)
        existing = await service.create_period(WEEK_START, WEEK_END)

        with pytest.raises(OverlappingPeriodError) as exc_info:
            await service.create_period(date(2024, 6, 9), date(2024, 6, 15))
        assert exc_info.value.existing_period_id == existing.billing_period_id

    async def test_adjacent_periods_allowed(self, session, billing_config):
        service = BillingPeriodService(session, billing_config)
        await service.create_period(WEEK_START, WEEK_END)
        await service.create_period(date(2024, 6, 10), date(2024, 6, 16))

        assert len(await service.list_periods()) == 2


class TestNextPeriod:
    async def test_first_weekly_period_starts_on_monday(self, session):
        service = BillingPeriodService(session, BillingConfig(billing_frequency="weekly"))
        period = await service.create_next_period(today=date(2024, 6, 6))

        assert period.start_date == date(2024, 6, 3)
        assert period.end_date == date(2024, 6, 9)

    async def test_follows_latest_period(self, session):
        service = BillingPeriodService(session, BillingConfig(billing_frequency="fortnightly"))
        await service.create_period(WEEK_START, WEEK_END)
        period = await service.create_next_period()

        assert period.start_date == date(2024, 6, 10)
        assert period.end_date == date(2024, 6, 23)

    async def test_monthly(self, session):
        service = BillingPeriodService(session, BillingConfig(billing_frequency="monthly"))
        first = await service.create_next_period(today=date(2024, 1, 17))
        second = await service.create_next_period()

        assert (first.start_date, first.end_date) == (date(2024, 1, 1), date(2024, 1, 31))
        assert (second.start_date, second.end_date) == (date(2024, 2, 1), date(2024, 2, 29))


class TestLookup:
    async def test_find_period_for_date(self, session, period, billing_config):
        service = BillingPeriodService(session, billing_config)

        found = await service.find_period_for_date(date(2024, 6, 5))
        assert found.billing_period_id == period.billing_period_id
        assert await service.find_period_for_date(date(2024, 6, 10)) is None

    async def test_missing_period(self, session, billing_config):
        from uuid import uuid4

        with pytest.raises(BillingPeriodNotFoundError):
            await BillingPeriodService(session, billing_config).get_period(uuid4())


class TestClosePeriod:
    async def test_close_freezes_totals_and_flags(
        self, session, reference_data, period, practice, nurse, billing_config
    ):
        await add_shift(session, practice, nurse, date(2024, 6, 3), "08:00", "16:00")
        await InvoiceGenerator(session, billing_config).generate(period.billing_period_id, "client")

        closed = await BillingPeriodService(session, billing_config).close_period(
            period.billing_period_id
        )

        assert closed.status == "closed"
        assert closed.closed_at is not None
        assert closed.client_invoices_generated is True
        assert closed.payroll_invoices_generated is False
        assert closed.total_shifts == 1
        assert closed.total_hours == Decimal("8.00")
        # 8h x 28.00 + 20% VAT
        assert closed.total_client_amount == Decimal("268.80")
        assert closed.total_payroll_amount == Decimal("0.00")

    async def test_close_twice(self, session, reference_data, period, billing_config):
        service = BillingPeriodService(session, billing_config)
        await service.close_period(period.billing_period_id)

        with pytest.raises(AlreadyClosedError):
            await service.close_period(period.billing_period_id)

    async def test_close_refused_with_unresolved_errors(
        self, session, reference_data, period, practice, nurse, billing_config
    ):
        await add_shift(session, practice, nurse, date(2024, 6, 4), "08:00", "16:00", role="Surgeon")

        with pytest.raises(UnresolvedShiftErrorsError) as exc_info:
            await BillingPeriodService(session, billing_config).close_period(
                period.billing_period_id
            )

        # Reported once per invoice type
        assert len(exc_info.value.errors) == 2
        assert exc_info.value.errors[0]["error_type"] == "UnknownRoleError"


class TestReopenPeriod:
    async def test_reopen_requires_reason(self, session, reference_data, period, billing_config):
        service = BillingPeriodService(session, billing_config)
        await service.close_period(period.billing_period_id)

        with pytest.raises(InvalidTransitionError):
            await service.reopen_period(period.billing_period_id, reason="  ")

    async def test_reopen_closed_period(self, session, reference_data, period, billing_config):
        service = BillingPeriodService(session, billing_config)
        await service.close_period(period.billing_period_id)

        reopened = await service.reopen_period(period.billing_period_id, reason="Late timesheet")

        assert reopened.status == "open"
        assert reopened.closed_at is None
        assert reopened.reopened_count == 1
        assert "Late timesheet" in reopened.notes

    async def test_reopen_open_period_rejected(self, session, period, billing_config):
        with pytest.raises(InvalidTransitionError):
            await BillingPeriodService(session, billing_config).reopen_period(
                period.billing_period_id, reason="Oops"
            )
