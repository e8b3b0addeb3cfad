"""Billing claims: the guard against billing a shift twice."""

from __future__ import annotations

from datetime import date
from typing import Iterable
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from locum_billing.calculators.types import AggregatedLine, InvoiceType
from locum_billing.database import RetryableConflict
from locum_billing.models import BillingClaim, InvoiceLineItem


class ClaimConflictError(RetryableConflict):
    """Raised when another transaction claimed one of the same items first."""

    def __init__(self, billing_period_id: UUID, invoice_type: str):
        self.billing_period_id = billing_period_id
        self.invoice_type = invoice_type
        super().__init__(
            f"Items in billing period {billing_period_id} were claimed concurrently "
            f"for {invoice_type} invoicing"
        )


class ClaimService:
    """Service for claiming billable items during invoice generation.

    When invoices are generated:
    1. Every priced line is claimed for the invoice type before any invoice
       row is written; the unique key rejects concurrent claims
    2. Claims are linked to the invoice line items once those exist
    3. Cancelling an invoice releases its claims for re-billing
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def claimed_keys(
        self,
        invoice_type: InvoiceType | str,
        start_date: date,
        end_date: date,
    ) -> set[tuple[str, UUID, date]]:
        """Keys of items already claimed for this invoice type in a date range."""
        result = await self.session.execute(
            select(BillingClaim.source_type, BillingClaim.source_id, BillingClaim.work_date).where(
                BillingClaim.invoice_type == InvoiceType(invoice_type).value,
                BillingClaim.work_date >= start_date,
                BillingClaim.work_date <= end_date,
            )
        )
        return {(row[0], row[1], row[2]) for row in result.all()}

    async def claim_lines(
        self,
        billing_period_id: UUID,
        invoice_type: InvoiceType | str,
        lines: Iterable[AggregatedLine],
    ) -> dict[tuple[str, UUID, date], BillingClaim]:
        """Insert claim rows for lines; flushes so conflicts surface now.

        Raises:
            ClaimConflictError: If any line is already claimed
        """
        invoice_type = InvoiceType(invoice_type).value
        claims: dict[tuple[str, UUID, date], BillingClaim] = {}
        for line in lines:
            claim = BillingClaim(
                source_type=line.source_type.value,
                source_id=line.source_id,
                work_date=line.work_date,
                invoice_type=invoice_type,
                billing_period_id=billing_period_id,
            )
            self.session.add(claim)
            claims[line.claim_key] = claim

        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ClaimConflictError(billing_period_id, invoice_type) from exc
        return claims

    def attach_line_items(
        self,
        claims: dict[tuple[str, UUID, date], BillingClaim],
        line_items: Iterable[tuple[tuple[str, UUID, date], InvoiceLineItem]],
    ) -> None:
        """Point each claim at the line item that billed it."""
        for key, line_item in line_items:
            claims[key].invoice_line_item_id = line_item.invoice_line_item_id

    async def release_claims_for_invoice(self, invoice_id: UUID) -> int:
        """Delete claims held by an invoice's line items (for cancellation).

        Returns count of released claims.
        """
        line_ids = select(InvoiceLineItem.invoice_line_item_id).where(
            InvoiceLineItem.invoice_id == invoice_id
        )
        result = await self.session.execute(
            delete(BillingClaim)
            .where(BillingClaim.invoice_line_item_id.in_(line_ids))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

