"""Billing services."""

from locum_billing.services.billing_period_service import (
    AlreadyClosedError,
    BillingPeriodNotFoundError,
    BillingPeriodService,
    InvalidPeriodError,
    OverlappingPeriodError,
    UnresolvedShiftErrorsError,
)
from locum_billing.services.claim_service import ClaimConflictError, ClaimService
from locum_billing.services.invoice_aggregator import InvoiceAggregator
from locum_billing.services.invoice_generator import (
    AlreadyGeneratedError,
    InvoiceGenerator,
    NotYetGeneratedError,
    PeriodClosedError,
    generate_invoices,
)
from locum_billing.services.invoice_service import InvoiceNotFoundError, InvoiceService
from locum_billing.services.rate_log_service import RateLogService, ShiftNotFoundError
from locum_billing.services.state_machine import (
    BillingPeriodStateMachine,
    BillingPeriodStatus,
    InvalidTransitionError,
    InvoiceStateMachine,
    InvoiceStatus,
)

__all__ = [
    "AlreadyClosedError",
    "AlreadyGeneratedError",
    "BillingPeriodNotFoundError",
    "BillingPeriodService",
    "BillingPeriodStateMachine",
    "BillingPeriodStatus",
    "ClaimConflictError",
    "ClaimService",
    "InvalidPeriodError",
    "InvalidTransitionError",
    "InvoiceAggregator",
    "InvoiceGenerator",
    "InvoiceNotFoundError",
    "InvoiceService",
    "InvoiceStateMachine",
    "InvoiceStatus",
    "NotYetGeneratedError",
    "OverlappingPeriodError",
    "PeriodClosedError",
    "RateLogService",
    "ShiftNotFoundError",
    "UnresolvedShiftErrorsError",
    "generate_invoices",
]
