"""Collects unbilled shifts and timesheet days for a billing period."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from locum_billing.calculators.line_builder import InvoiceLineBuilder
from locum_billing.calculators.rate_calculator import InvalidShiftTimeError, RateCalculator
from locum_billing.calculators.rate_catalog import RateCatalog, UnknownRoleError
from locum_billing.calculators.types import (
    AggregatedLine,
    AggregationResult,
    InvoiceType,
    LineError,
    RateCalculationResult,
    RecipientGroup,
    ShiftInput,
    SourceType,
)
from locum_billing.config import BillingConfig, get_settings
from locum_billing.models import WEEKDAYS, BillingPeriod, Practice, Shift, StaffMember, Timesheet
from locum_billing.services.billing_period_service import BillingPeriodNotFoundError
from locum_billing.services.claim_service import ClaimService

logger = logging.getLogger(__name__)

# Shifts are read a week at a time so large periods never load in one query
CHUNK_DAYS = 7

BILLABLE_SHIFT_STATUS = "completed"
BILLABLE_TIMESHEET_STATUS = "approved"


class InvoiceAggregator:
    """Groups not-yet-invoiced items in a period by invoice recipient.

    - Client invoices group by practice and bill at the external rate
    - Payroll invoices group by staff member and pay at the internal rate
    - Billable-hours rounding is applied here, identically for both types,
      so client and payroll invoices reconcile to the same hours
    - Items that cannot be priced are reported in ``errors`` and skipped;
      they never abort the rest of the period
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
        self.claims = ClaimService(session)

    async def aggregate(
        self,
        billing_period_id: UUID,
        invoice_type: InvoiceType | str,
    ) -> AggregationResult:
        """Aggregate unbilled items for a period (read-only)."""
        period = await self.session.get(BillingPeriod, billing_period_id)
        if period is None:
            raise BillingPeriodNotFoundError(billing_period_id)
        return await self.aggregate_period(period, invoice_type)

    async def aggregate_period(
        self,
        period: BillingPeriod,
        invoice_type: InvoiceType | str,
    ) -> AggregationResult:
        """Aggregate unbilled items for an already-loaded period."""
        invoice_type = InvoiceType(invoice_type)
        calculator = await self._calculator()
        claimed = await self.claims.claimed_keys(invoice_type, period.start_date, period.end_date)

        result = AggregationResult(
            billing_period_id=period.billing_period_id,
            invoice_type=invoice_type,
        )

        chunk_start = period.start_date
        while chunk_start <= period.end_date:
            chunk_end = min(chunk_start + timedelta(days=CHUNK_DAYS - 1), period.end_date)
            await self._collect_shifts(calculator, invoice_type, chunk_start, chunk_end, claimed, result)
            chunk_start = chunk_end + timedelta(days=1)

        await self._collect_timesheets(calculator, invoice_type, period, claimed, result)

        for group in result.groups.values():
            group.lines.sort(
                key=lambda line: (
                    line.work_date,
                    line.calculation.start_time or "",
                    line.shift_ref or "",
                    str(line.source_id),
                )
            )

        if result.errors:
            logger.warning(
                "Billing period %s (%s): %d item(s) could not be priced",
                period.billing_period_id,
                invoice_type.value,
                len(result.errors),
            )
        return result

    async def _calculator(self) -> RateCalculator:
        if self.catalog is None:
            self.catalog = await RateCatalog.load(self.session, self.config.default_region)
        return RateCalculator(self.catalog, self.config.overtime_threshold_hours)

    async def _collect_shifts(
        self,
        calculator: RateCalculator,
        invoice_type: InvoiceType,
        start: date,
        end: date,
        claimed: set[tuple[str, UUID, date]],
        result: AggregationResult,
    ) -> None:
        rows = await self.session.execute(
            select(Shift, Practice, StaffMember)
            .join(Practice, Shift.practice_id == Practice.practice_id)
            .join(StaffMember, Shift.staff_id == StaffMember.staff_id)
            .where(
                Shift.status == BILLABLE_SHIFT_STATUS,
                Shift.shift_date >= start,
                Shift.shift_date <= end,
            )
            .order_by(Shift.shift_date, Shift.start_time, Shift.shift_ref)
        )

        for shift, practice, staff in rows.all():
            key = (SourceType.SHIFT.value, shift.shift_id, shift.shift_date)
            if key in claimed:
                continue
            try:
                calculation = calculator.compute_rate(
                    ShiftInput(
                        role=shift.role,
                        work_date=shift.shift_date,
                        start_time=shift.start_time,
                        end_time=shift.end_time,
                        region=practice.region,
                        shift_id=shift.shift_id,
                    )
                )
            except (UnknownRoleError, InvalidShiftTimeError) as exc:
                self._record_error(result, SourceType.SHIFT, shift.shift_id, shift.shift_date, exc)
                continue

            self._add_line(
                result,
                invoice_type,
                source_type=SourceType.SHIFT,
                source_id=shift.shift_id,
                shift_ref=shift.shift_ref,
                practice=practice,
                staff=staff,
                calculation=calculation,
            )

    async def _collect_timesheets(
        self,
        calculator: RateCalculator,
        invoice_type: InvoiceType,
        period: BillingPeriod,
        claimed: set[tuple[str, UUID, date]],
        result: AggregationResult,
    ) -> None:
        rows = await self.session.execute(
            select(Timesheet, Practice, StaffMember)
            .join(Practice, Timesheet.practice_id == Practice.practice_id)
            .join(StaffMember, Timesheet.staff_id == StaffMember.staff_id)
            .where(
                Timesheet.status == BILLABLE_TIMESHEET_STATUS,
                Timesheet.week_start <= period.end_date,
                Timesheet.week_end >= period.start_date,
            )
            .order_by(Timesheet.week_start, Timesheet.timesheet_id)
        )

        for timesheet, practice, staff in rows.all():
            # Day names map to calendar weekdays; week_start need not be a Monday
            days = min((timesheet.week_end - timesheet.week_start).days + 1, len(WEEKDAYS))
            for offset in range(days):
                work_date = timesheet.week_start + timedelta(days=offset)
                if not period.contains(work_date):
                    continue
                raw_hours = (timesheet.daily_hours or {}).get(WEEKDAYS[work_date.weekday()])
                if raw_hours in (None, ""):
                    continue
                key = (SourceType.TIMESHEET.value, timesheet.timesheet_id, work_date)
                if key in claimed:
                    continue

                try:
                    hours = Decimal(str(raw_hours))
                except InvalidOperation:
                    self._record_error(
                        result,
                        SourceType.TIMESHEET,
                        timesheet.timesheet_id,
                        work_date,
                        InvalidShiftTimeError(None, None, f"unparseable hours '{raw_hours}'"),
                    )
                    continue
                if hours == 0:
                    continue

                try:
                    calculation = calculator.compute_rate_for_hours(
                        role=staff.role,
                        work_date=work_date,
                        hours=hours,
                        region=practice.region,
                    )
                except (UnknownRoleError, InvalidShiftTimeError) as exc:
                    self._record_error(result, SourceType.TIMESHEET, timesheet.timesheet_id, work_date, exc)
                    continue

                self._add_line(
                    result,
                    invoice_type,
                    source_type=SourceType.TIMESHEET,
                    source_id=timesheet.timesheet_id,
                    shift_ref=None,
                    practice=practice,
                    staff=staff,
                    calculation=calculation,
                )

    def _add_line(
        self,
        result: AggregationResult,
        invoice_type: InvoiceType,
        *,
        source_type: SourceType,
        source_id: UUID,
        shift_ref: str | None,
        practice: Practice,
        staff: StaffMember,
        calculation: RateCalculationResult,
    ) -> None:
        billable = InvoiceLineBuilder.billable_hours(
            calculation.duration_hours, self.config.round_to_quarter_hour
        )
        if invoice_type == InvoiceType.CLIENT:
            rate_used = calculation.final_external_rate
            recipient_id, recipient_name = practice.practice_id, practice.name
        else:
            rate_used = calculation.final_internal_rate
            recipient_id, recipient_name = staff.staff_id, staff.full_name

        line = AggregatedLine(
            source_type=source_type,
            source_id=source_id,
            work_date=calculation.work_date,
            practice_id=practice.practice_id,
            staff_id=staff.staff_id,
            staff_name=staff.full_name,
            location_name=practice.name,
            calculation=calculation,
            billable_hours=billable,
            rate_used=rate_used,
            line_total=InvoiceLineBuilder.line_total(billable, rate_used),
            shift_ref=shift_ref,
            location_type=practice.facility_type,
            staff_payroll_reference=staff.payroll_reference,
            staff_ni_number=staff.ni_number,
        )

        group = result.groups.get(recipient_id)
        if group is None:
            group = RecipientGroup(recipient_id=recipient_id, recipient_name=recipient_name)
            result.groups[recipient_id] = group
        group.lines.append(line)

    @staticmethod
    def _record_error(
        result: AggregationResult,
        source_type: SourceType,
        source_id: UUID,
        work_date: date,
        exc: Exception,
    ) -> None:
        logger.warning("Skipping %s %s on %s: %s", source_type.value, source_id, work_date, exc)
        result.errors.append(
            LineError(
                source_type=source_type,
                source_id=source_id,
                work_date=work_date,
                error_type=type(exc).__name__,
                message=str(exc),
            )
        )
