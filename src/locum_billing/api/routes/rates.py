"""Rate calculation endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from locum_billing.api.dependencies import Billing, DbSession
from locum_billing.api.schemas import (
    AppliedMultiplierResponse,
    ErrorResponse,
    RateCalculationLogResponse,
    RateCalculationRequest,
    RateCalculationResponse,
)
from locum_billing.calculators import RateCalculator, RateCatalog
from locum_billing.calculators.line_builder import InvoiceLineBuilder
from locum_billing.calculators.types import RateCalculationResult, ShiftInput
from locum_billing.services.rate_log_service import RateLogService

router = APIRouter(prefix="/rates", tags=["rates"])


def _to_response(
    result: RateCalculationResult,
    log_id: UUID | None = None,
) -> RateCalculationResponse:
    return RateCalculationResponse(
        role=result.role,
        shift_date=result.work_date,
        start_time=result.start_time,
        end_time=result.end_time,
        shift_type=result.shift_type,
        duration_hours=InvoiceLineBuilder.round_internal(result.duration_hours),
        base_internal_rate=result.base_internal_rate,
        base_external_rate=result.base_external_rate,
        applied_multipliers=[
            AppliedMultiplierResponse(
                name=m.name, multiplier=m.factor, reason=m.reason, priority=m.priority
            )
            for m in result.applied_multipliers
        ],
        final_internal_rate=result.final_internal_rate,
        final_external_rate=result.final_external_rate,
        total_internal_cost=result.total_internal_cost,
        total_external_cost=result.total_external_cost,
        fingerprint=result.fingerprint,
        warnings=list(result.warnings),
        rate_calculation_log_id=log_id,
    )


@router.post(
    "/calculate",
    response_model=RateCalculationResponse,
    status_code=status.HTTP_200_OK,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def calculate_rate(
    db: DbSession,
    billing: Billing,
    payload: RateCalculationRequest,
) -> RateCalculationResponse:
    """Price a shift. With ``persist`` the result is written to the audit log."""
    catalog = await RateCatalog.load(db, billing.default_region)
    calculator = RateCalculator(catalog, billing.overtime_threshold_hours)
    result = calculator.compute_rate(
        ShiftInput(
            role=payload.role,
            work_date=payload.shift_date,
            start_time=payload.start_time,
            end_time=payload.end_time,
            region=payload.region,
            shift_id=payload.shift_id,
        )
    )

    log_id = None
    if payload.persist:
        logs = RateLogService(db)
        if payload.shift_id is not None:
            await logs.require_shift(payload.shift_id)
        entry = await logs.record(result, shift_id=payload.shift_id)
        await db.commit()
        log_id = entry.rate_calculation_log_id

    return _to_response(result, log_id)


@router.get("/logs", response_model=list[RateCalculationLogResponse])
async def list_rate_logs(
    db: DbSession,
    shift_id: Annotated[UUID, Query()],
) -> list[RateCalculationLogResponse]:
    """List recorded calculations for a shift, oldest first."""
    entries = await RateLogService(db).list_for_shift(shift_id)
    return [RateCalculationLogResponse.model_validate(e) for e in entries]
