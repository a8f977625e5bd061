"""Common schemas and error responses."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    success: bool = Field(default=False)
    error: str = Field(..., description="Error code", examples=["INVALID_SYMBOL"])
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Additional error details"
    )

    model_config = {
        "json_schema_extra": {
            "example": {"success": False, "error": "NOT_FOUND", "message": "Symbol not found at market data provider"}
        }
    }


class HealthResponse(BaseModel):
    """Health check response."""

    success: bool = True
    status: str = Field(..., description="Overall health status", examples=["healthy", "unhealthy"])
    version: str = Field(..., description="Application version")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    checks: Dict[str, bool] = Field(default_factory=dict, description="Individual service health checks")
