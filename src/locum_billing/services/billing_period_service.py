"""Billing period lifecycle: creation, lookup, totals, close and reopen."""

from __future__ import annotations

import calendar
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from locum_billing.calculators.line_builder import InvoiceLineBuilder
from locum_billing.calculators.types import InvoiceType
from locum_billing.config import BillingConfig, get_settings
from locum_billing.models import BillingPeriod, Invoice
from locum_billing.models.base import utcnow
from locum_billing.services.state_machine import (
    BillingPeriodStateMachine,
    BillingPeriodStatus,
    InvalidTransitionError,
    InvoiceStatus,
)

logger = logging.getLogger(__name__)


class BillingPeriodNotFoundError(LookupError):
    """Raised when a billing period does not exist."""

    def __init__(self, billing_period_id: UUID):
        self.billing_period_id = billing_period_id
        super().__init__(f"Billing period {billing_period_id} not found")


class InvalidPeriodError(ValueError):
    """Raised when a period's dates are unusable."""

    def __init__(self, start_date: date, end_date: date, reason: str):
        self.start_date = start_date
        self.end_date = end_date
        self.reason = reason
        super().__init__(f"Invalid billing period {start_date}..{end_date}: {reason}")


class OverlappingPeriodError(Exception):
    """Raised when a new period would overlap an existing one."""

    def __init__(self, start_date: date, end_date: date, existing_period_id: UUID):
        self.start_date = start_date
        self.end_date = end_date
        self.existing_period_id = existing_period_id
        super().__init__(
            f"Billing period {start_date}..{end_date} overlaps existing period "
            f"{existing_period_id}"
        )


class AlreadyClosedError(Exception):
    """Raised when closing a period that is already closed."""

    def __init__(self, billing_period_id: UUID):
        self.billing_period_id = billing_period_id
        super().__init__(f"Billing period {billing_period_id} is already closed")


class UnresolvedShiftErrorsError(Exception):
    """Raised when a period still has items that cannot be priced."""

    def __init__(self, billing_period_id: UUID, errors: list[dict[str, Any]]):
        self.billing_period_id = billing_period_id
        self.errors = errors
        super().__init__(
            f"Billing period {billing_period_id} has {len(errors)} unresolved item error(s)"
        )


class BillingPeriodService:
    """Service for managing billing periods.

    Operations:
    - create_period / create_next_period: open a new date range
    - find_period_for_date: containment lookup
    - refresh_totals: recompute aggregates from non-cancelled invoices
    - close_period: freeze totals and flags (open → closed)
    - reopen_period: administrative override (closed → open)
    """

    def __init__(self, session: AsyncSession, config: BillingConfig | None = None):
        self.session = session
        self.config = config or get_settings().billing

    async def create_period(
        self,
        start_date: date,
        end_date: date,
        period_name: str | None = None,
        notes: str | None = None,
    ) -> BillingPeriod:
        """Create an open period.

        Raises:
            InvalidPeriodError: If start is after end
            OverlappingPeriodError: If any existing period shares a day
        """
        if start_date > end_date:
            raise InvalidPeriodError(start_date, end_date, "start date is after end date")

        result = await self.session.execute(
            select(BillingPeriod.billing_period_id)
            .where(
                BillingPeriod.start_date <= end_date,
                BillingPeriod.end_date >= start_date,
            )
            .limit(1)
        )
        existing = result.scalar_one_or_none()
        if existing is not None:
            raise OverlappingPeriodError(start_date, end_date, existing)

        period = BillingPeriod(
            period_name=period_name or self._default_name(start_date, end_date),
            start_date=start_date,
            end_date=end_date,
            status=BillingPeriodStatus.OPEN.value,
            notes=notes,
        )
        self.session.add(period)
        await self.session.flush()
        logger.info("Created billing period %s (%s..%s)", period.period_name, start_date, end_date)
        return period

    async def create_next_period(self, today: date | None = None) -> BillingPeriod:
        """Create the period that follows the latest one for the billing frequency."""
        result = await self.session.execute(
            select(BillingPeriod).order_by(BillingPeriod.end_date.desc()).limit(1)
        )
        latest = result.scalar_one_or_none()
        frequency = self.config.billing_frequency

        if latest is not None:
            start = latest.end_date + timedelta(days=1)
        else:
            today = today or date.today()
            if frequency == "monthly":
                start = today.replace(day=1)
            else:
                start = today - timedelta(days=today.weekday())

        if frequency == "weekly":
            end = start + timedelta(days=6)
        elif frequency == "fortnightly":
            end = start + timedelta(days=13)
        else:
            end = start.replace(day=calendar.monthrange(start.year, start.month)[1])

        return await self.create_period(start, end)

    async def get_period(self, billing_period_id: UUID) -> BillingPeriod:
        period = await self.session.get(BillingPeriod, billing_period_id)
        if period is None:
            raise BillingPeriodNotFoundError(billing_period_id)
        return period

    async def get_period_for_update(self, billing_period_id: UUID) -> BillingPeriod:
        """Load a period with a row lock held until the transaction ends."""
        result = await self.session.execute(
            select(BillingPeriod)
            .where(BillingPeriod.billing_period_id == billing_period_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        period = result.scalar_one_or_none()
        if period is None:
            raise BillingPeriodNotFoundError(billing_period_id)
        return period

    async def find_period_for_date(self, day: date) -> BillingPeriod | None:
        result = await self.session.execute(
            select(BillingPeriod).where(
                BillingPeriod.start_date <= day,
                BillingPeriod.end_date >= day,
            )
        )
        return result.scalar_one_or_none()

    async def list_periods(self, status: str | None = None) -> list[BillingPeriod]:
        stmt = select(BillingPeriod).order_by(BillingPeriod.start_date.desc())
        if status is not None:
            stmt = stmt.where(BillingPeriod.status == status)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def active_invoices(self, billing_period_id: UUID) -> list[Invoice]:
        """Non-cancelled invoices of a period, with line items loaded."""
        result = await self.session.execute(
            select(Invoice)
            .where(
                Invoice.billing_period_id == billing_period_id,
                Invoice.status != InvoiceStatus.CANCELLED.value,
            )
            .order_by(Invoice.invoice_number)
        )
        return list(result.scalars().all())

    async def refresh_totals(self, period: BillingPeriod) -> BillingPeriod:
        """Recompute period aggregates from its non-cancelled invoices.

        Client and payroll lines for the same item carry the same billable
        hours, so shifts and hours count each source once.
        """
        invoices = await self.active_invoices(period.billing_period_id)

        client_amount = Decimal("0")
        payroll_amount = Decimal("0")
        sources: dict[tuple[str, UUID | None, date], Decimal] = {}
        for invoice in invoices:
            if invoice.invoice_type == InvoiceType.CLIENT.value:
                client_amount += invoice.total_amount
            else:
                payroll_amount += invoice.total_amount
            for item in invoice.line_items:
                source_id = item.shift_id or item.timesheet_id
                sources.setdefault((item.source_type, source_id, item.shift_date), item.billable_hours)

        period.total_shifts = len(sources)
        period.total_hours = InvoiceLineBuilder.round_to_cents(sum(sources.values(), Decimal("0")))
        period.total_client_amount = InvoiceLineBuilder.round_to_cents(client_amount)
        period.total_payroll_amount = InvoiceLineBuilder.round_to_cents(payroll_amount)
        return period

    async def close_period(
        self,
        billing_period_id: UUID,
        closed_by: UUID | None = None,
    ) -> BillingPeriod:
        """Close a period, freezing its totals and generated flags.

        Raises:
            AlreadyClosedError: If the period is already closed
            UnresolvedShiftErrorsError: If unbilled items still fail to price
        """
        # Import here to avoid circular imports
        from locum_billing.services.invoice_aggregator import InvoiceAggregator

        period = await self.get_period_for_update(billing_period_id)
        if period.status == BillingPeriodStatus.CLOSED.value:
            raise AlreadyClosedError(billing_period_id)

        aggregator = InvoiceAggregator(self.session, self.config)
        errors: list[dict[str, Any]] = []
        for invoice_type in InvoiceType:
            preview = await aggregator.aggregate_period(period, invoice_type)
            errors.extend({**e.to_dict(), "invoice_type": invoice_type.value} for e in preview.errors)
        if errors:
            raise UnresolvedShiftErrorsError(billing_period_id, errors)

        BillingPeriodStateMachine.validate_transition(period.status, BillingPeriodStatus.CLOSED.value)

        invoices = await self.active_invoices(billing_period_id)
        for invoice_type in InvoiceType:
            period.set_generated(
                invoice_type.value,
                any(inv.invoice_type == invoice_type.value for inv in invoices),
            )
        await self.refresh_totals(period)

        period.status = BillingPeriodStatus.CLOSED.value
        period.pending_errors = []
        period.closed_at = utcnow()
        period.closed_by = closed_by
        await self.session.flush()

        logger.info(
            "Closed billing period %s: %d items, client %s, payroll %s",
            period.period_name,
            period.total_shifts,
            period.total_client_amount,
            period.total_payroll_amount,
        )
        return period

    async def reopen_period(
        self,
        billing_period_id: UUID,
        reason: str,
        actor: UUID | None = None,
    ) -> BillingPeriod:
        """Administrative override: reopen a closed period.

        Raises:
            InvalidTransitionError: If the period is open or no reason is given
        """
        period = await self.get_period_for_update(billing_period_id)
        if not reason or not reason.strip():
            raise InvalidTransitionError(
                period.status, BillingPeriodStatus.OPEN.value, "Reopen requires a reason"
            )
        BillingPeriodStateMachine.validate_transition(
            period.status, BillingPeriodStatus.OPEN.value, override=True
        )

        period.status = BillingPeriodStatus.OPEN.value
        period.closed_at = None
        period.closed_by = None
        period.reopened_count += 1
        note = f"Reopened: {reason.strip()}"
        period.notes = f"{period.notes}\n{note}" if period.notes else note
        await self.session.flush()

        logger.info(
            "Reopened billing period %s (actor=%s): %s", period.period_name, actor, reason.strip()
        )
        return period

    @staticmethod
    def _default_name(start_date: date, end_date: date) -> str:
        if start_date.day == 1 and end_date == start_date.replace(
            day=calendar.monthrange(start_date.year, start_date.month)[1]
        ):
            return start_date.strftime("%B %Y")
        return f"{start_date.isoformat()} to {end_date.isoformat()}"
