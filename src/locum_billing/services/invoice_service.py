"""Invoice lookup, status transitions and cancellation."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from locum_billing.config import BillingConfig, get_settings
from locum_billing.models import Invoice
from locum_billing.models.base import utcnow
from locum_billing.services.billing_period_service import BillingPeriodService
from locum_billing.services.claim_service import ClaimService
from locum_billing.services.invoice_generator import PeriodClosedError
from locum_billing.services.state_machine import (
    BillingPeriodStateMachine,
    InvalidTransitionError,
    InvoiceStateMachine,
    InvoiceStatus,
)

logger = logging.getLogger(__name__)


class InvoiceNotFoundError(LookupError):
    """Raised when an invoice does not exist."""

    def __init__(self, invoice_id: UUID):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice {invoice_id} not found")


class InvoiceService:
    """Service for invoices after generation.

    Invoices and their lines are never edited; the only changes are
    status transitions. Corrections are a cancellation followed by a new
    generation run.
    """

    def __init__(self, session: AsyncSession, config: BillingConfig | None = None):
        self.session = session
        self.config = config or get_settings().billing
        self.periods = BillingPeriodService(session, self.config)
        self.claims = ClaimService(session)

    async def get_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice:
        stmt = select(Invoice).where(Invoice.invoice_id == invoice_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    async def list_for_period(
        self,
        billing_period_id: UUID,
        invoice_type: str | None = None,
    ) -> list[Invoice]:
        stmt = (
            select(Invoice)
            .where(Invoice.billing_period_id == billing_period_id)
            .order_by(Invoice.invoice_number)
        )
        if invoice_type is not None:
            stmt = stmt.where(Invoice.invoice_type == invoice_type)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def transition_status(self, invoice_id: UUID, to_status: str) -> Invoice:
        """Move an invoice along its lifecycle (sent, paid, overdue).

        Cancellation has side effects and goes through ``cancel_invoice``.

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        invoice = await self.get_invoice(invoice_id, for_update=True)
        if to_status == InvoiceStatus.CANCELLED:
            raise InvalidTransitionError(
                invoice.status, to_status, "Use cancel_invoice to cancel an invoice"
            )
        InvoiceStateMachine.validate_transition(invoice.status, to_status)

        if to_status == InvoiceStatus.SENT:
            invoice.sent_at = utcnow()
        elif to_status == InvoiceStatus.PAID:
            invoice.paid_at = utcnow()
        invoice.status = InvoiceStatus(to_status).value
        await self.session.flush()
        return invoice

    async def cancel_invoice(self, invoice_id: UUID, reason: str) -> Invoice:
        """Cancel an invoice and release its items for re-billing.

        Raises:
            InvalidTransitionError: If the invoice cannot be cancelled or no reason is given
            PeriodClosedError: If the invoice's period is closed
        """
        invoice = await self.get_invoice(invoice_id, for_update=True)
        if not reason or not reason.strip():
            raise InvalidTransitionError(
                invoice.status, InvoiceStatus.CANCELLED.value, "Cancellation requires a reason"
            )
        InvoiceStateMachine.validate_transition(invoice.status, InvoiceStatus.CANCELLED)

        period = await self.periods.get_period_for_update(invoice.billing_period_id)
        if not BillingPeriodStateMachine.can_generate(period.status):
            raise PeriodClosedError(period.billing_period_id)

        released = await self.claims.release_claims_for_invoice(invoice.invoice_id)
        invoice.status = InvoiceStatus.CANCELLED.value
        invoice.cancelled_at = utcnow()
        invoice.cancellation_reason = reason.strip()
        await self.session.flush()

        remaining = await self.list_for_period(period.billing_period_id, invoice.invoice_type)
        if not any(InvoiceStateMachine.is_active(inv.status) for inv in remaining):
            period.set_generated(invoice.invoice_type, False)
        await self.periods.refresh_totals(period)
        await self.session.flush()

        logger.info(
            "Cancelled invoice %s (%d item(s) released): %s",
            invoice.invoice_number,
            released,
            invoice.cancellation_reason,
        )
        return invoice
