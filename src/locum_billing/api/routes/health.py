"""Health and readiness probes."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from locum_billing.api.dependencies import DbSession
from locum_billing.models import RateMultiplier, RoleBaseRate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str


class ReadinessResponse(BaseModel):
    """Whether the rate catalog has enough data to price shifts."""

    status: str
    active_roles: int
    active_multipliers: int


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """API and database connectivity."""
    db_status = "unhealthy"
    try:
        await db.execute(text("SELECT 1"))
        db_status = "healthy"
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Database health check failed: %s", exc)

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(db: DbSession, response: Response) -> ReadinessResponse:
    """Ready once at least one active role rate is configured.

    Missing multipliers do not block readiness; shifts then price at base rate.
    """
    roles = await db.scalar(
        select(func.count()).select_from(RoleBaseRate).where(RoleBaseRate.is_active.is_(True))
    )
    multipliers = await db.scalar(
        select(func.count()).select_from(RateMultiplier).where(RateMultiplier.is_active.is_(True))
    )
    ready = bool(roles)
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif not multipliers:
        logger.warning("No active rate multipliers configured")

    return ReadinessResponse(
        status="ready" if ready else "not_ready",
        active_roles=roles or 0,
        active_multipliers=multipliers or 0,
    )


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
