"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Error body returned for domain errors."""

    detail: str
    code: str


# ============================================================================
# Rate schemas
# ============================================================================


class RateCalculationRequest(BaseModel):
    """Schema for pricing a single shift."""

    role: str
    shift_date: date
    start_time: str = Field(pattern=r"^\d{2}:\d{2}(:\d{2})?$")
    end_time: str = Field(pattern=r"^\d{2}:\d{2}(:\d{2})?$")
    region: str | None = None
    shift_id: UUID | None = None
    persist: bool = False


class AppliedMultiplierResponse(BaseModel):
    name: str
    multiplier: Decimal
    reason: str
    priority: int


class RateCalculationResponse(BaseModel):
    """Schema for a computed rate."""

    role: str
    shift_date: date
    start_time: str | None
    end_time: str | None
    shift_type: str | None
    duration_hours: Decimal
    base_internal_rate: Decimal
    base_external_rate: Decimal
    applied_multipliers: list[AppliedMultiplierResponse]
    final_internal_rate: Decimal
    final_external_rate: Decimal
    total_internal_cost: Decimal
    total_external_cost: Decimal
    fingerprint: str
    warnings: list[str] = []
    rate_calculation_log_id: UUID | None = None


class RateCalculationLogResponse(BaseModel):
    """Schema for a stored rate calculation."""

    model_config = ConfigDict(from_attributes=True)

    rate_calculation_log_id: UUID
    shift_id: UUID | None = None
    timesheet_id: UUID | None = None
    role: str
    shift_date: date
    start_time: str | None = None
    end_time: str | None = None
    shift_type: str | None = None
    duration_hours: Decimal
    applied_multipliers: list[dict[str, Any]]
    final_internal_rate: Decimal
    final_external_rate: Decimal
    total_internal_cost: Decimal
    total_external_cost: Decimal
    fingerprint: str
    calculated_at: datetime


# ============================================================================
# Billing period schemas
# ============================================================================


class BillingPeriodCreate(BaseModel):
    """Schema for creating a billing period."""

    start_date: date
    end_date: date
    period_name: str | None = None
    notes: str | None = None


class BillingPeriodResponse(BaseModel):
    """Schema for billing period response."""

    model_config = ConfigDict(from_attributes=True)

    billing_period_id: UUID
    period_name: str
    start_date: date
    end_date: date
    status: str
    client_invoices_generated: bool
    payroll_invoices_generated: bool
    total_shifts: int
    total_hours: Decimal
    total_client_amount: Decimal
    total_payroll_amount: Decimal
    pending_errors: list[dict[str, Any]]
    notes: str | None = None
    closed_at: datetime | None = None
    closed_by: UUID | None = None
    reopened_count: int


class ClosePeriodRequest(BaseModel):
    closed_by: UUID | None = None


class ReopenPeriodRequest(BaseModel):
    reason: str = Field(min_length=1)
    actor: UUID | None = None


class GenerateInvoicesRequest(BaseModel):
    """Schema for an invoice generation run."""

    invoice_date: date | None = None
    generated_by: UUID | None = None
    supplementary: bool = False


class AggregatedLineResponse(BaseModel):
    source_type: str
    source_id: UUID
    work_date: date
    staff_name: str
    location_name: str
    shift_ref: str | None = None
    billable_hours: Decimal
    rate_used: Decimal
    line_total: Decimal
    applied_multipliers: list[str]


class RecipientPreview(BaseModel):
    recipient_id: UUID
    recipient_name: str
    billable_hours: Decimal
    line_total: Decimal
    lines: list[AggregatedLineResponse]


class AggregationResponse(BaseModel):
    """Dry-run preview of what a generation run would bill."""

    billing_period_id: UUID
    invoice_type: str
    line_count: int
    recipients: list[RecipientPreview]
    errors: list[dict[str, Any]]


# ============================================================================
# Invoice schemas
# ============================================================================


class InvoiceLineItemResponse(BaseModel):
    """Schema for invoice line item response."""

    model_config = ConfigDict(from_attributes=True)

    invoice_line_item_id: UUID
    line_number: int
    source_type: str
    shift_id: UUID | None = None
    timesheet_id: UUID | None = None
    shift_ref: str | None = None
    staff_name: str
    staff_payroll_reference: str | None = None
    staff_ni_number: str | None = None
    location_name: str | None = None
    location_type: str | None = None
    shift_date: date
    role: str
    start_time: str | None = None
    end_time: str | None = None
    total_hours: Decimal
    billable_hours: Decimal
    internal_rate: Decimal
    external_rate: Decimal
    rate_used: Decimal
    applied_multipliers: list[str]
    line_total: Decimal


class InvoiceResponse(BaseModel):
    """Schema for invoice response."""

    model_config = ConfigDict(from_attributes=True)

    invoice_id: UUID
    invoice_number: str
    invoice_type: str
    status: str
    billing_period_id: UUID
    recipient_type: str
    recipient_id: UUID
    recipient_name: str
    recipient_address: str | None = None
    recipient_postcode: str | None = None
    recipient_vat_number: str | None = None
    invoice_date: date
    due_date: date
    period_start: date
    period_end: date
    subtotal_amount: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    is_self_billed: bool
    self_billing_reference: str | None = None
    rates_fingerprint: str
    sent_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None


class InvoiceDetailResponse(InvoiceResponse):
    """Invoice with its line items."""

    line_items: list[InvoiceLineItemResponse]


class InvoiceStatusRequest(BaseModel):
    status: str


class CancelInvoiceRequest(BaseModel):
    reason: str = Field(min_length=1)
