"""Append-only audit log of rate calculations."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from locum_billing.calculators.line_builder import InvoiceLineBuilder
from locum_billing.calculators.types import RateCalculationResult
from locum_billing.models import RateCalculationLog, Shift


class ShiftNotFoundError(LookupError):
    """Raised when a calculation is logged against a shift that does not exist."""

    def __init__(self, shift_id: UUID):
        self.shift_id = shift_id
        super().__init__(f"Shift {shift_id} not found")


class RateLogService:
    """Writes one RateCalculationLog row per computation.

    Rows are never updated; recomputing a shift adds a new row.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        result: RateCalculationResult,
        shift_id: UUID | None = None,
        timesheet_id: UUID | None = None,
        flush: bool = True,
    ) -> RateCalculationLog:
        """Add a log row; pass flush=False when writing many rows in a batch."""
        entry = RateCalculationLog(
            shift_id=shift_id,
            timesheet_id=timesheet_id,
            role=result.role,
            shift_date=result.work_date,
            start_time=result.start_time,
            end_time=result.end_time,
            shift_type=result.shift_type,
            duration_hours=InvoiceLineBuilder.round_internal(result.duration_hours),
            base_internal_rate=result.base_internal_rate,
            base_external_rate=result.base_external_rate,
            applied_multipliers=[m.to_dict() for m in result.applied_multipliers],
            final_internal_rate=result.final_internal_rate,
            final_external_rate=result.final_external_rate,
            total_internal_cost=result.total_internal_cost,
            total_external_cost=result.total_external_cost,
            fingerprint=result.fingerprint,
        )
        self.session.add(entry)
        if flush:
            await self.session.flush()
        return entry

    async def require_shift(self, shift_id: UUID) -> Shift:
        shift = await self.session.get(Shift, shift_id)
        if shift is None:
            raise ShiftNotFoundError(shift_id)
        return shift

    async def list_for_shift(self, shift_id: UUID) -> list[RateCalculationLog]:
        """All calculations recorded for a shift, oldest first."""
        result = await self.session.execute(
            select(RateCalculationLog)
            .where(RateCalculationLog.shift_id == shift_id)
            .order_by(RateCalculationLog.calculated_at, RateCalculationLog.rate_calculation_log_id)
        )
        return list(result.scalars().all())
