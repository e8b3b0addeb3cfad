"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from locum_billing import __version__
from locum_billing.api.routes import (
    billing_periods_router,
    health_router,
    invoices_router,
    rates_router,
)
from locum_billing.calculators.holiday_calendar import InvalidHolidayPatternError
from locum_billing.calculators.rate_calculator import InvalidShiftTimeError
from locum_billing.calculators.rate_catalog import NotFoundError
from locum_billing.config import configure_logging
from locum_billing.database import RetryableConflict, dispose_db, init_db
from locum_billing.services.billing_period_service import (
    AlreadyClosedError,
    BillingPeriodNotFoundError,
    InvalidPeriodError,
    OverlappingPeriodError,
    UnresolvedShiftErrorsError,
)
from locum_billing.services.invoice_generator import (
    AlreadyGeneratedError,
    NotYetGeneratedError,
    PeriodClosedError,
)
from locum_billing.services.invoice_service import InvoiceNotFoundError
from locum_billing.services.rate_log_service import ShiftNotFoundError
from locum_billing.services.state_machine import InvalidTransitionError

logger = logging.getLogger(__name__)

# Domain error → (HTTP status, error code)
ERROR_RESPONSES: dict[type[Exception], tuple[int, str]] = {
    NotFoundError: (status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    BillingPeriodNotFoundError: (status.HTTP_404_NOT_FOUND, "BILLING_PERIOD_NOT_FOUND"),
    InvoiceNotFoundError: (status.HTTP_404_NOT_FOUND, "INVOICE_NOT_FOUND"),
    ShiftNotFoundError: (status.HTTP_404_NOT_FOUND, "SHIFT_NOT_FOUND"),
    AlreadyGeneratedError: (status.HTTP_409_CONFLICT, "ALREADY_GENERATED"),
    NotYetGeneratedError: (status.HTTP_409_CONFLICT, "NOT_YET_GENERATED"),
    AlreadyClosedError: (status.HTTP_409_CONFLICT, "ALREADY_CLOSED"),
    PeriodClosedError: (status.HTTP_409_CONFLICT, "PERIOD_CLOSED"),
    OverlappingPeriodError: (status.HTTP_409_CONFLICT, "OVERLAPPING_PERIOD"),
    UnresolvedShiftErrorsError: (status.HTTP_409_CONFLICT, "UNRESOLVED_SHIFT_ERRORS"),
    InvalidTransitionError: (status.HTTP_409_CONFLICT, "INVALID_TRANSITION"),
    RetryableConflict: (status.HTTP_409_CONFLICT, "CONCURRENT_UPDATE"),
    InvalidShiftTimeError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_SHIFT_TIME"),
    InvalidPeriodError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_PERIOD"),
    InvalidHolidayPatternError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_HOLIDAY_PATTERN"),
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    configure_logging()
    init_db()
    yield
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Locum Billing API",
        description="Shift rate calculation and self-billing invoice engine",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    async def domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Translate domain errors into JSON error bodies."""
        for error_type in type(exc).__mro__:
            if error_type in ERROR_RESPONSES:
                status_code, code = ERROR_RESPONSES[error_type]
                break
        else:
            status_code, code = status.HTTP_400_BAD_REQUEST, "BAD_REQUEST"

        content: dict = {"detail": str(exc), "code": code}
        if isinstance(exc, UnresolvedShiftErrorsError):
            content["errors"] = exc.errors
        return JSONResponse(status_code=status_code, content=content)

    for error_type in ERROR_RESPONSES:
        app.add_exception_handler(error_type, domain_exception_handler)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(rates_router, prefix="/api/v1")
    app.include_router(billing_periods_router, prefix="/api/v1")
    app.include_router(invoices_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
