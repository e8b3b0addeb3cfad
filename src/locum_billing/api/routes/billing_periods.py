"""Billing period endpoints: lifecycle, preview and invoice generation."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from locum_billing.api.dependencies import Billing, DbSession, SessionFactory
from locum_billing.api.schemas import (
    AggregatedLineResponse,
    AggregationResponse,
    BillingPeriodCreate,
    BillingPeriodResponse,
    ClosePeriodRequest,
    ErrorResponse,
    GenerateInvoicesRequest,
    InvoiceResponse,
    RecipientPreview,
    ReopenPeriodRequest,
)
from locum_billing.calculators.line_builder import InvoiceLineBuilder
from locum_billing.calculators.types import InvoiceType
from locum_billing.services.billing_period_service import BillingPeriodService
from locum_billing.services.invoice_aggregator import InvoiceAggregator
from locum_billing.services.invoice_generator import generate_invoices
from locum_billing.services.invoice_service import InvoiceService

router = APIRouter(prefix="/billing-periods", tags=["billing-periods"])


# ============================================================================
# Billing Period CRUD
# ============================================================================


@router.post(
    "",
    response_model=BillingPeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_billing_period(
    db: DbSession,
    billing: Billing,
    payload: BillingPeriodCreate,
) -> BillingPeriodResponse:
    """Create an open billing period."""
    period = await BillingPeriodService(db, billing).create_period(
        payload.start_date,
        payload.end_date,
        period_name=payload.period_name,
        notes=payload.notes,
    )
    await db.commit()
    return BillingPeriodResponse.model_validate(period)


@router.post(
    "/next",
    response_model=BillingPeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def create_next_billing_period(db: DbSession, billing: Billing) -> BillingPeriodResponse:
    """Create the period after the latest one, per the billing frequency."""
    period = await BillingPeriodService(db, billing).create_next_period()
    await db.commit()
    return BillingPeriodResponse.model_validate(period)


@router.get("", response_model=list[BillingPeriodResponse])
async def list_billing_periods(
    db: DbSession,
    billing: Billing,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[BillingPeriodResponse]:
    """List billing periods, newest first."""
    periods = await BillingPeriodService(db, billing).list_periods(status_filter)
    return [BillingPeriodResponse.model_validate(p) for p in periods]


@router.get(
    "/{billing_period_id}",
    response_model=BillingPeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_billing_period(
    db: DbSession,
    billing: Billing,
    billing_period_id: Annotated[UUID, Path()],
) -> BillingPeriodResponse:
    period = await BillingPeriodService(db, billing).get_period(billing_period_id)
    return BillingPeriodResponse.model_validate(period)


# ============================================================================
# Billing Period State Transitions
# ============================================================================


@router.post(
    "/{billing_period_id}/close",
    response_model=BillingPeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def close_billing_period(
    db: DbSession,
    billing: Billing,
    billing_period_id: Annotated[UUID, Path()],
    payload: ClosePeriodRequest | None = None,
) -> BillingPeriodResponse:
    """Close a period. Refused while unbilled items still fail to price."""
    period = await BillingPeriodService(db, billing).close_period(
        billing_period_id,
        closed_by=payload.closed_by if payload else None,
    )
    await db.commit()
    return BillingPeriodResponse.model_validate(period)


@router.post(
    "/{billing_period_id}/reopen",
    response_model=BillingPeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reopen_billing_period(
    db: DbSession,
    billing: Billing,
    billing_period_id: Annotated[UUID, Path()],
    payload: ReopenPeriodRequest,
) -> BillingPeriodResponse:
    """Administrative override: reopen a closed period."""
    period = await BillingPeriodService(db, billing).reopen_period(
        billing_period_id, payload.reason, actor=payload.actor
    )
    await db.commit()
    return BillingPeriodResponse.model_validate(period)


# ============================================================================
# Aggregation and Generation
# ============================================================================


@router.get(
    "/{billing_period_id}/aggregate",
    response_model=AggregationResponse,
    responses={404: {"model": ErrorResponse}},
)
async def preview_aggregation(
    db: DbSession,
    billing: Billing,
    billing_period_id: Annotated[UUID, Path()],
    invoice_type: Annotated[InvoiceType, Query()] = InvoiceType.CLIENT,
) -> AggregationResponse:
    """Show what a generation run would bill, without writing anything."""
    result = await InvoiceAggregator(db, billing).aggregate(billing_period_id, invoice_type)
    return AggregationResponse(
        billing_period_id=billing_period_id,
        invoice_type=invoice_type.value,
        line_count=result.line_count,
        recipients=[
            RecipientPreview(
                recipient_id=group.recipient_id,
                recipient_name=group.recipient_name,
                billable_hours=InvoiceLineBuilder.round_internal(group.billable_hours),
                line_total=InvoiceLineBuilder.round_internal(group.line_total),
                lines=[
                    AggregatedLineResponse(
                        source_type=line.source_type.value,
                        source_id=line.source_id,
                        work_date=line.work_date,
                        staff_name=line.staff_name,
                        location_name=line.location_name,
                        shift_ref=line.shift_ref,
                        billable_hours=InvoiceLineBuilder.round_internal(line.billable_hours),
                        rate_used=line.rate_used,
                        line_total=InvoiceLineBuilder.round_internal(line.line_total),
                        applied_multipliers=line.calculation.multiplier_names,
                    )
                    for line in group.lines
                ],
            )
            for group in result.ordered_groups()
        ],
        errors=[e.to_dict() for e in result.errors],
    )


@router.post(
    "/{billing_period_id}/invoices/{invoice_type}",
    response_model=list[InvoiceResponse],
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def generate_period_invoices(
    factory: SessionFactory,
    billing: Billing,
    billing_period_id: Annotated[UUID, Path()],
    invoice_type: Annotated[InvoiceType, Path()],
    payload: GenerateInvoicesRequest | None = None,
) -> list[InvoiceResponse]:
    """Generate one invoice per recipient for the period and type."""
    payload = payload or GenerateInvoicesRequest()
    invoices = await generate_invoices(
        factory,
        billing_period_id,
        invoice_type,
        billing,
        invoice_date=payload.invoice_date,
        generated_by=payload.generated_by,
        supplementary=payload.supplementary,
    )
    return [InvoiceResponse.model_validate(inv) for inv in invoices]


@router.get(
    "/{billing_period_id}/invoices",
    response_model=list[InvoiceResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_period_invoices(
    db: DbSession,
    billing: Billing,
    billing_period_id: Annotated[UUID, Path()],
    invoice_type: Annotated[InvoiceType | None, Query()] = None,
) -> list[InvoiceResponse]:
    await BillingPeriodService(db, billing).get_period(billing_period_id)
    invoices = await InvoiceService(db, billing).list_for_period(
        billing_period_id, invoice_type.value if invoice_type else None
    )
    return [InvoiceResponse.model_validate(inv) for inv in invoices]
