"""Rate calculation and invoice arithmetic."""

from locum_billing.calculators.line_builder import InvoiceLineBuilder
from locum_billing.calculators.rate_calculator import (
    InvalidShiftTimeError,
    NoActiveMultipliersConfigured,
    RateCalculator,
)
from locum_billing.calculators.rate_catalog import (
    FALLBACK_SHIFT_TYPE,
    NotFoundError,
    RateCatalog,
    UnknownRoleError,
)

__all__ = [
    "FALLBACK_SHIFT_TYPE",
    "InvalidShiftTimeError",
    "InvoiceLineBuilder",
    "NoActiveMultipliersConfigured",
    "NotFoundError",
    "RateCalculator",
    "RateCatalog",
    "UnknownRoleError",
]
