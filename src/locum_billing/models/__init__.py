"""SQLAlchemy ORM models for the billing engine."""

from locum_billing.models.base import Base, TimestampMixin, UpdatedAtMixin
from locum_billing.models.invoicing import (
    BillingClaim,
    BillingPeriod,
    Invoice,
    InvoiceCounter,
    InvoiceLineItem,
)
from locum_billing.models.rates import (
    BankHoliday,
    RateCalculationLog,
    RateMultiplier,
    RoleBaseRate,
    ShiftTimeWindow,
)
from locum_billing.models.sources import WEEKDAYS, Practice, Shift, StaffMember, Timesheet

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UpdatedAtMixin",
    # Rates
    "RoleBaseRate",
    "RateMultiplier",
    "BankHoliday",
    "ShiftTimeWindow",
    "RateCalculationLog",
    # Sources
    "Practice",
    "StaffMember",
    "Shift",
    "Timesheet",
    "WEEKDAYS",
    # Invoicing
    "BillingPeriod",
    "InvoiceCounter",
    "Invoice",
    "InvoiceLineItem",
    "BillingClaim",
]
