"""Invoice endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from locum_billing.api.dependencies import Billing, DbSession
from locum_billing.api.schemas import (
    CancelInvoiceRequest,
    ErrorResponse,
    InvoiceDetailResponse,
    InvoiceResponse,
    InvoiceStatusRequest,
)
from locum_billing.services.invoice_service import InvoiceService

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.get(
    "/{invoice_id}",
    response_model=InvoiceDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_invoice(
    db: DbSession,
    billing: Billing,
    invoice_id: Annotated[UUID, Path()],
) -> InvoiceDetailResponse:
    """Get an invoice with its line items."""
    invoice = await InvoiceService(db, billing).get_invoice(invoice_id)
    return InvoiceDetailResponse.model_validate(invoice)


@router.post(
    "/{invoice_id}/status",
    response_model=InvoiceResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_invoice_status(
    db: DbSession,
    billing: Billing,
    invoice_id: Annotated[UUID, Path()],
    payload: InvoiceStatusRequest,
) -> InvoiceResponse:
    """Mark an invoice sent, paid or overdue."""
    invoice = await InvoiceService(db, billing).transition_status(invoice_id, payload.status)
    await db.commit()
    return InvoiceResponse.model_validate(invoice)


@router.post(
    "/{invoice_id}/cancel",
    response_model=InvoiceResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def cancel_invoice(
    db: DbSession,
    billing: Billing,
    invoice_id: Annotated[UUID, Path()],
    payload: CancelInvoiceRequest,
) -> InvoiceResponse:
    """Cancel an invoice so its items can be billed again."""
    invoice = await InvoiceService(db, billing).cancel_invoice(invoice_id, payload.reason)
    await db.commit()
    return InvoiceResponse.model_validate(invoice)
