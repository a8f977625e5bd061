"""Portfolio response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class StockIdentity(BaseModel):
    id: int
    symbol: str
    name: str
    exchange: str


class PositionResponse(BaseModel):
    """One holding, valued at the latest real-time price when one exists."""

    stock: StockIdentity
    quantity: int
    buy_price: str
    invested: str
    current_price: Optional[str] = None
    price_updated_at: Optional[datetime] = None
    current_value: Optional[str] = None
    gain: Optional[str] = None
    gain_percent: Optional[str] = None
    added_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PortfolioSummaryResponse(BaseModel):
    invested: str
    current_value: str
    gain: str
    gain_percent: str
    positions: int


class PortfolioResponse(BaseModel):
    success: bool = True
    positions: List[PositionResponse] = Field(default_factory=list)
    summary: PortfolioSummaryResponse
