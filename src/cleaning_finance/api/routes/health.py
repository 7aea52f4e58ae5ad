"""Health and readiness endpoints.

``/health`` reports the engine version and whether tenant configuration can
be read. ``/ready`` fails until the schema is reachable, so a deployment is
not routed traffic before migrations have run.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from cleaning_finance import __version__
from cleaning_finance.api.dependencies import DbSession
from cleaning_finance.models import Tenant, TenantSettings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Engine status."""

    status: str
    version: str
    timestamp: datetime
    database: str
    active_tenants: int | None = None
    configured_tenants: int | None = None


async def _count_tenants(db: DbSession) -> tuple[int, int]:
    active = await db.scalar(
        select(func.count()).select_from(Tenant).where(Tenant.status == "active")
    )
    configured = await db.scalar(select(func.count()).select_from(TenantSettings))
    return int(active or 0), int(configured or 0)


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """Database reachability and tenant configuration counts."""
    try:
        active, configured = await _count_tenants(db)
    except SQLAlchemyError:
        logger.warning("Health check could not read tenant configuration", exc_info=True)
        return HealthResponse(
            status="degraded",
            version=__version__,
            timestamp=datetime.now(timezone.utc),
            database="unhealthy",
        )

    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        database="healthy",
        active_tenants=active,
        configured_tenants=configured,
    )


@router.get("/ready")
async def readiness_check(db: DbSession) -> dict[str, str]:
    try:
        await _count_tenants(db)
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tenant configuration is not reachable",
        )
    return {"status": "ready", "version": __version__}


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
