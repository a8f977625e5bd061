"""Stock request and response schemas."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from stockfolio.domain.positions import MAX_POSITION_QUANTITY


class PositionCreateRequest(BaseModel):
    """Buy ``quantity`` shares at ``buyPrice``; merged into any existing position."""

    model_config = ConfigDict(populate_by_name=True)

    quantity: int = Field(..., gt=0, le=MAX_POSITION_QUANTITY, description="Number of shares")
    buy_price: Decimal = Field(..., gt=0, alias="buyPrice", description="Price paid per share")


class SearchResult(BaseModel):
    symbol: str
    name: Optional[str] = None
    exchange: Optional[str] = None
    id: Optional[int] = None
    sector: Optional[str] = None
    type: Optional[str] = None


class SearchResponse(BaseModel):
    success: bool = True
    source: Literal["database", "yahoo"]
    results: List[SearchResult] = Field(default_factory=list)


class CycleStats(BaseModel):
    total: int
    successful: int
    failed: int


class CycleResponse(BaseModel):
    """Result of a batched refresh cycle."""

    success: bool = True
    message: str
    stats: CycleStats
    results: List[Dict[str, Any]] = Field(default_factory=list)
    cancelled: bool = False
