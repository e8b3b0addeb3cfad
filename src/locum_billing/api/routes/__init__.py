"""API routes."""

from locum_billing.api.routes.billing_periods import router as billing_periods_router
from locum_billing.api.routes.health import router as health_router
from locum_billing.api.routes.invoices import router as invoices_router
from locum_billing.api.routes.rates import router as rates_router

__all__ = ["billing_periods_router", "health_router", "invoices_router", "rates_router"]
