"""Health check endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from seedgraph.core.database import get_db
from seedgraph.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: Literal["ok", "degraded", "unhealthy"]
    database: Literal["connected", "disconnected"] | None = None
    catalog_access: bool | None = None


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic liveness check."""
    logger.debug("health.check_started")
    return HealthResponse(status="ok")


@router.get("/health/ready", response_model=HealthResponse)
async def readiness_check(
    db: AsyncSession = Depends(get_db),
) -> HealthResponse:
    """Readiness check including database and catalog connectivity.

    The relationship analyzer reads ``information_schema``; a connection that
    works but cannot see the catalog reports ``degraded``.

    Args:
        db: Database session dependency.

    Returns:
        Health status with database state.
    """
    logger.debug("health.readiness_check_started")

    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(
            "health.database_disconnected",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return HealthResponse(status="unhealthy", database="disconnected")

    try:
        await db.execute(text("SELECT 1 FROM information_schema.tables LIMIT 1"))
    except Exception as e:
        logger.warning(
            "health.catalog_unavailable",
            error=str(e),
            error_type=type(e).__name__,
        )
        return HealthResponse(status="degraded", database="connected", catalog_access=False)

    logger.info("health.database_connected")
    return HealthResponse(status="ok", database="connected", catalog_access=True)
