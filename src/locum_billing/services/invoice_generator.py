"""Invoice generation: numbering, totals and atomic persistence."""

from __future__ import annotations

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import Any, AsyncIterator
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from locum_billing.calculators.line_builder import InvoiceLineBuilder
from locum_billing.calculators.rate_catalog import RateCatalog
from locum_billing.calculators.types import (
    AggregatedLine,
    AggregationResult,
    InvoiceType,
    RecipientGroup,
    SourceType,
)
from locum_billing.config import BillingConfig, get_settings
from locum_billing.database import RetryableConflict, acquire_advisory_xact_lock, run_in_transaction
from locum_billing.models import (
    BillingPeriod,
    Invoice,
    InvoiceCounter,
    InvoiceLineItem,
    Practice,
    RateCalculationLog,
    StaffMember,
)
from locum_billing.services.billing_period_service import BillingPeriodService
from locum_billing.services.claim_service import ClaimService
from locum_billing.services.invoice_aggregator import InvoiceAggregator
from locum_billing.services.rate_log_service import RateLogService
from locum_billing.services.state_machine import BillingPeriodStateMachine, InvoiceStatus

logger = logging.getLogger(__name__)


class AlreadyGeneratedError(Exception):
    """Raised when invoices of this type were already generated for the period."""

    def __init__(self, billing_period_id: UUID, invoice_type: str):
        self.billing_period_id = billing_period_id
        self.invoice_type = invoice_type
        super().__init__(
            f"{invoice_type.capitalize()} invoices already generated for billing period "
            f"{billing_period_id}"
        )


class NotYetGeneratedError(Exception):
    """Raised when a supplementary run is requested before the first run."""

    def __init__(self, billing_period_id: UUID, invoice_type: str):
        self.billing_period_id = billing_period_id
        self.invoice_type = invoice_type
        super().__init__(
            f"No {invoice_type} invoices generated yet for billing period {billing_period_id}; "
            "run a normal generation first"
        )


class PeriodClosedError(Exception):
    """Raised when invoices are generated or cancelled in a closed period."""

    def __init__(self, billing_period_id: UUID):
        self.billing_period_id = billing_period_id
        super().__init__(f"Billing period {billing_period_id} is closed")


class CounterConflictError(RetryableConflict):
    """Raised when two transactions create the same invoice counter row."""

    def __init__(self, invoice_type: str):
        self.invoice_type = invoice_type
        super().__init__(f"Invoice counter for '{invoice_type}' was created concurrently")


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


# One registry per event loop: asyncio locks cannot be shared across loops.
_lock_registries: weakref.WeakKeyDictionary[
    asyncio.AbstractEventLoop, dict[str, _LockEntry]
] = weakref.WeakKeyDictionary()


def active_generation_locks() -> int:
    """Number of period/type locks held or awaited in the running loop."""
    return len(_lock_registries.get(asyncio.get_running_loop(), {}))


@asynccontextmanager
async def generation_lock(
    billing_period_id: UUID, invoice_type: InvoiceType | str
) -> AsyncIterator[None]:
    """In-process lock serialising generation for one period and invoice type.

    The registry entry is dropped once no caller holds or awaits the lock.
    """
    registry = _lock_registries.setdefault(asyncio.get_running_loop(), {})
    key = f"{billing_period_id}:{InvoiceType(invoice_type).value}"
    entry = registry.get(key)
    if entry is None:
        entry = registry[key] = _LockEntry()
    entry.users += 1
    try:
        async with entry.lock:
            yield
    finally:
        entry.users -= 1
        if entry.users == 0:
            del registry[key]


class InvoiceGenerator:
    """Turns an aggregation into persisted invoices.

    Within the caller's transaction:
    1. Take the advisory lock (PostgreSQL) and the period row lock
    2. Check the generated flag (AlreadyGeneratedError on a repeat)
    3. Aggregate unbilled items and claim them
    4. Allocate sequential numbers from the locked counter row
    5. Write rate logs, invoices and line items, then set the flag

    Nothing is visible to other transactions until the caller commits,
    and a failure at any step rolls back every row written here.
    Use ``generate_invoices`` to also hold the in-process lock across
    the commit.
    """

    def __init__(
        self,
        session: AsyncSession,
        config: BillingConfig | None = None,
        catalog: RateCatalog | None = None,
    ):
        self.session = session
        self.config = config or get_settings().billing
        self.catalog = catalog
        self.periods = BillingPeriodService(session, self.config)
        self.claims = ClaimService(session)
        self.rate_logs = RateLogService(session)

    async def generate(
        self,
        billing_period_id: UUID,
        invoice_type: InvoiceType | str,
        *,
        invoice_date: date | None = None,
        generated_by: UUID | None = None,
        supplementary: bool = False,
    ) -> list[Invoice]:
        """Generate one invoice per recipient for a period and invoice type.

        Returns the new invoices in number order; empty if nothing is
        billable, in which case the generated flag is left unset.

        Raises:
            BillingPeriodNotFoundError: If the period does not exist
            PeriodClosedError: If the period is closed
            AlreadyGeneratedError: If this type was already generated
            NotYetGeneratedError: If ``supplementary`` precedes a first run
            ClaimConflictError: If a concurrent run claimed the same items
        """
        invoice_type = InvoiceType(invoice_type)
        await acquire_advisory_xact_lock(self.session, f"{billing_period_id}:{invoice_type.value}")

        period = await self.periods.get_period_for_update(billing_period_id)
        if not BillingPeriodStateMachine.can_generate(period.status):
            raise PeriodClosedError(billing_period_id)
        if supplementary:
            if not period.is_generated(invoice_type.value):
                raise NotYetGeneratedError(billing_period_id, invoice_type.value)
        elif period.is_generated(invoice_type.value):
            raise AlreadyGeneratedError(billing_period_id, invoice_type.value)

        aggregator = InvoiceAggregator(self.session, self.config, self.catalog)
        aggregation = await aggregator.aggregate_period(period, invoice_type)
        self._record_pending_errors(period, aggregation)

        if aggregation.line_count == 0:
            await self.session.flush()
            logger.info(
                "Nothing to invoice for billing period %s (%s)",
                period.period_name,
                invoice_type.value,
            )
            return []

        claims = await self.claims.claim_lines(
            billing_period_id, invoice_type, aggregation.all_lines()
        )
        logs = await self._write_rate_logs(aggregation)
        counter = await self._lock_counter(invoice_type)
        recipients = await self._load_recipients(invoice_type, aggregation)

        invoice_date = invoice_date or date.today()
        invoices: list[Invoice] = []
        placed: list[tuple[tuple[str, UUID, date], InvoiceLineItem]] = []
        for group in aggregation.ordered_groups():
            invoice_number = f"{self.config.prefix_for(invoice_type.value)}{counter.next_number}"
            counter.next_number += 1

            invoice = self._build_invoice(
                invoice_number=invoice_number,
                invoice_type=invoice_type,
                period=period,
                group=group,
                recipient=recipients[group.recipient_id],
                invoice_date=invoice_date,
                generated_by=generated_by,
            )
            for line_number, line in enumerate(group.lines, start=1):
                item = self._build_line_item(invoice_type, line_number, line, logs[line.claim_key])
                invoice.line_items.append(item)
                placed.append((line.claim_key, item))

            self.session.add(invoice)
            invoices.append(invoice)

        await self.session.flush()
        self.claims.attach_line_items(claims, placed)

        period.set_generated(invoice_type.value, True)
        await self.session.flush()
        await self.periods.refresh_totals(period)
        await self.session.flush()

        logger.info(
            "Generated %d %s invoice(s) %s..%s for billing period %s (%d lines%s)",
            len(invoices),
            invoice_type.value,
            invoices[0].invoice_number,
            invoices[-1].invoice_number,
            period.period_name,
            aggregation.line_count,
            ", supplementary" if supplementary else "",
        )
        return invoices

    def _record_pending_errors(self, period: BillingPeriod, aggregation: AggregationResult) -> None:
        kept = [
            e for e in (period.pending_errors or [])
            if e.get("invoice_type") != aggregation.invoice_type.value
        ]
        kept.extend(
            {**e.to_dict(), "invoice_type": aggregation.invoice_type.value}
            for e in aggregation.errors
        )
        period.pending_errors = kept

    async def _write_rate_logs(
        self, aggregation: AggregationResult
    ) -> dict[tuple[str, UUID, date], RateCalculationLog]:
        logs: dict[tuple[str, UUID, date], RateCalculationLog] = {}
        for line in aggregation.all_lines():
            is_shift = line.source_type == SourceType.SHIFT
            logs[line.claim_key] = await self.rate_logs.record(
                line.calculation,
                shift_id=line.source_id if is_shift else None,
                timesheet_id=None if is_shift else line.source_id,
                flush=False,
            )
        await self.session.flush()
        return logs

    async def _lock_counter(self, invoice_type: InvoiceType) -> InvoiceCounter:
        """Load the counter row FOR UPDATE, creating it on first use."""
        result = await self.session.execute(
            select(InvoiceCounter)
            .where(InvoiceCounter.invoice_type == invoice_type.value)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        counter = result.scalar_one_or_none()
        if counter is not None:
            return counter

        counter = InvoiceCounter(
            invoice_type=invoice_type.value,
            next_number=self.config.first_number_for(invoice_type.value),
        )
        self.session.add(counter)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise CounterConflictError(invoice_type.value) from exc
        return counter

    async def _load_recipients(
        self, invoice_type: InvoiceType, aggregation: AggregationResult
    ) -> dict[UUID, Practice | StaffMember]:
        ids = list(aggregation.groups)
        if invoice_type == InvoiceType.CLIENT:
            result = await self.session.execute(select(Practice).where(Practice.practice_id.in_(ids)))
            return {p.practice_id: p for p in result.scalars().all()}
        result = await self.session.execute(select(StaffMember).where(StaffMember.staff_id.in_(ids)))
        return {s.staff_id: s for s in result.scalars().all()}

    def _build_invoice(
        self,
        *,
        invoice_number: str,
        invoice_type: InvoiceType,
        period: BillingPeriod,
        group: RecipientGroup,
        recipient: Practice | StaffMember,
        invoice_date: date,
        generated_by: UUID | None,
    ) -> Invoice:
        fields: dict[str, Any]
        if isinstance(recipient, Practice):
            vat_applies = self.config.vat_registered
            terms = recipient.payment_terms_days
            fields = dict(
                recipient_type="practice",
                recipient_address=recipient.address,
                recipient_postcode=recipient.postcode,
                recipient_vat_number=recipient.vat_number,
                recipient_email=recipient.billing_contact_email,
                is_self_billed=False,
                self_billing_reference=None,
            )
        else:
            vat_applies = recipient.vat_registered
            terms = None
            fields = dict(
                recipient_type="staff",
                recipient_address=recipient.address,
                recipient_postcode=recipient.postcode,
                recipient_vat_number=recipient.vat_number,
                recipient_email=recipient.email,
                is_self_billed=True,
                self_billing_reference=recipient.payroll_reference or f"SB-{invoice_number}",
            )
        if terms is None:
            terms = self.config.payment_terms_days

        totals = InvoiceLineBuilder.compute_totals(
            (line.line_total for line in group.lines),
            self.config.vat_rate,
            vat_applies,
        )
        return Invoice(
            invoice_number=invoice_number,
            invoice_type=invoice_type.value,
            status=InvoiceStatus.DRAFT.value,
            billing_period_id=period.billing_period_id,
            recipient_id=group.recipient_id,
            recipient_name=group.recipient_name,
            invoice_date=invoice_date,
            due_date=invoice_date + timedelta(days=terms),
            period_start=period.start_date,
            period_end=period.end_date,
            subtotal_amount=totals.subtotal,
            vat_rate=totals.vat_rate,
            vat_amount=totals.vat_amount,
            total_amount=totals.total,
            rates_fingerprint=InvoiceLineBuilder.compute_lines_hash(group.lines),
            generated_by=generated_by,
            line_items=[],
            **fields,
        )

    @staticmethod
    def _build_line_item(
        invoice_type: InvoiceType,
        line_number: int,
        line: AggregatedLine,
        log: RateCalculationLog,
    ) -> InvoiceLineItem:
        calc = line.calculation
        is_shift = line.source_type == SourceType.SHIFT
        self_billed = invoice_type == InvoiceType.PAYROLL
        return InvoiceLineItem(
            line_number=line_number,
            source_type=line.source_type.value,
            shift_id=line.source_id if is_shift else None,
            timesheet_id=None if is_shift else line.source_id,
            shift_ref=line.shift_ref,
            staff_id=line.staff_id,
            staff_name=line.staff_name,
            staff_payroll_reference=line.staff_payroll_reference if self_billed else None,
            staff_ni_number=line.staff_ni_number if self_billed else None,
            practice_id=line.practice_id,
            location_name=line.location_name,
            location_type=line.location_type,
            shift_date=line.work_date,
            role=calc.role,
            start_time=calc.start_time,
            end_time=calc.end_time,
            total_hours=InvoiceLineBuilder.round_internal(calc.duration_hours),
            billable_hours=InvoiceLineBuilder.round_internal(line.billable_hours),
            internal_rate=calc.final_internal_rate,
            external_rate=calc.final_external_rate,
            rate_used=line.rate_used,
            applied_multipliers=calc.multiplier_names,
            rate_calculation_log_id=log.rate_calculation_log_id,
            line_total=InvoiceLineBuilder.round_internal(line.line_total),
        )


async def generate_invoices(
    factory: async_sessionmaker[AsyncSession],
    billing_period_id: UUID,
    invoice_type: InvoiceType | str,
    config: BillingConfig | None = None,
    **options: Any,
) -> list[Invoice]:
    """Generate and commit in one transaction, serialised per period and type.

    The in-process lock is held until the commit finishes, so a second
    caller in this process always sees the first caller's flag.
    """
    async def operation(session: AsyncSession) -> list[Invoice]:
        return await InvoiceGenerator(session, config).generate(
            billing_period_id, invoice_type, **options
        )

    async with generation_lock(billing_period_id, invoice_type):
        return await run_in_transaction(factory, operation)
