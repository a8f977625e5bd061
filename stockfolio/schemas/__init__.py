"""Pydantic request and response schemas."""

from .common import ErrorResponse, HealthResponse
from .portfolio import PortfolioResponse, PositionResponse
from .stocks import CycleResponse, PositionCreateRequest, SearchResponse


__all__ = [
    "CycleResponse",
    "ErrorResponse",
    "HealthResponse",
    "PortfolioResponse",
    "PositionCreateRequest",
    "PositionResponse",
    "SearchResponse",
]
