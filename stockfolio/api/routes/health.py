"""Health check endpoints."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from stockfolio.core.config import settings
from stockfolio.core.exceptions import AppException
from stockfolio.core.logging import get_logger
from stockfolio.database.connection import ping
from stockfolio.database.session import DbSession
from stockfolio.schemas.common import HealthResponse


router = APIRouter(prefix="/health")

logger = get_logger("health")


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the API and its database.",
)
async def health_check() -> HealthResponse:
    checks = {"database": await ping()}

    return HealthResponse(
        status="healthy" if all(checks.values()) else "unhealthy",
        version=settings.app_version,
        timestamp=datetime.now(UTC),
        checks=checks,
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the API is ready to accept traffic.",
)
async def readiness_check(db: DbSession) -> dict:
    """
    Kubernetes-style readiness check.

    Returns 503 until the database answers.
    """
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"Readiness check failed: {e}")
        raise AppException(
            message="Database not ready",
            error_code="NOT_READY",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    return {"success": True, "status": "ready"}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the API process is alive.",
)
async def liveness_check() -> dict:
    return {"success": True, "status": "alive"}
