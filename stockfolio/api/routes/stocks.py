"""Stock refresh, search and position routes.

Static paths (``/search``, ``/update-*``) are declared before ``/{symbol}``
so they are never captured as a symbol.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, Query, Request

from stockfolio.api.dependencies import (
    get_current_app_user,
    get_ledger,
    get_orchestrator,
    get_quote_source,
    require_user,
)
from stockfolio.core.logging import get_logger
from stockfolio.core.security import TokenData
from stockfolio.domain.snapshots import SnapshotCategory
from stockfolio.schemas.stocks import CycleResponse, PositionCreateRequest, SearchResponse
from stockfolio.services.data_providers import RemoteQuoteSource
from stockfolio.services.ledger import PortfolioLedger
from stockfolio.services.refresh import CATEGORY_LABELS, CycleReport, RefreshOrchestrator
from stockfolio.services.search import search_stocks


router = APIRouter(prefix="/stocks")

logger = get_logger("api.stocks")

DISCONNECT_POLL_SECONDS = 0.5


async def _watch_disconnect(request: Request, cancel_event: asyncio.Event) -> None:
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.info(f"Client disconnected from {request.url.path}, cancelling cycle")
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


@asynccontextmanager
async def cancel_on_disconnect(request: Request) -> AsyncIterator[asyncio.Event]:
    """Event that is set once the client goes away."""
    cancel_event = asyncio.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel_event))
    try:
        yield cancel_event
    finally:
        watcher.cancel()
        await asyncio.gather(watcher, return_exceptions=True)


def _cycle_response(report: CycleReport, message: str) -> CycleResponse:
    return CycleResponse(
        message=message,
        stats={"total": report.total, "successful": report.successful, "failed": report.failed},
        results=[r.to_dict() for r in report.results],
        cancelled=report.cancelled,
    )


def _position_to_wire(position: dict[str, Any]) -> dict[str, Any]:
    return {
        key: str(value) if isinstance(value, Decimal) else value
        for key, value in position.items()
    }


# =============================================================================
# Search
# =============================================================================


@router.get("/search", response_model=SearchResponse)
async def search(
    q: str = Query(default="", description="Name or symbol fragment"),
    user: TokenData = Depends(require_user),
    source: RemoteQuoteSource = Depends(get_quote_source),
) -> SearchResponse:
    """Stored instruments first; provider search only when none match."""
    result = await search_stocks(q, source)
    return SearchResponse(**result)


# =============================================================================
# Refresh cycles
# =============================================================================


@router.post("/update-realtime", response_model=CycleResponse)
async def update_realtime(
    request: Request,
    user: TokenData = Depends(require_user),
    orchestrator: RefreshOrchestrator = Depends(get_orchestrator),
) -> CycleResponse:
    async with cancel_on_disconnect(request) as cancel_event:
        report = await orchestrator.run_realtime_cycle(cancel_event)
    return _cycle_response(
        report, f"Updated {report.successful}/{report.total} stocks successfully"
    )


@router.get("/update-intraday")
async def intraday_status(
    user: TokenData = Depends(require_user),
    orchestrator: RefreshOrchestrator = Depends(get_orchestrator),
) -> dict:
    status = await orchestrator.check_intraday_status()
    return {"success": True, **status.to_dict()}


@router.post("/update-intraday")
async def update_intraday(
    request: Request,
    user: TokenData = Depends(require_user),
    orchestrator: RefreshOrchestrator = Depends(get_orchestrator),
) -> dict:
    async with cancel_on_disconnect(request) as cancel_event:
        result = await orchestrator.run_intraday_gate(cancel_event)
    return {"success": True, **result.to_dict()}


async def _run_category(
    request: Request,
    orchestrator: RefreshOrchestrator,
    category: SnapshotCategory,
) -> CycleResponse:
    async with cancel_on_disconnect(request) as cancel_event:
        report = await orchestrator.run_category_cycle(category, cancel_event)
    return _cycle_response(
        report,
        f"{CATEGORY_LABELS[category]} updated for {report.successful}/{report.total} stocks",
    )


@router.post("/update-fundamental-data", response_model=CycleResponse)
async def update_fundamental_data(
    request: Request,
    user: TokenData = Depends(require_user),
    orchestrator: RefreshOrchestrator = Depends(get_orchestrator),
) -> CycleResponse:
    return await _run_category(request, orchestrator, SnapshotCategory.FUNDAMENTALS)


@router.post("/update-financial-data", response_model=CycleResponse)
async def update_financial_data(
    request: Request,
    user: TokenData = Depends(require_user),
    orchestrator: RefreshOrchestrator = Depends(get_orchestrator),
) -> CycleResponse:
    return await _run_category(request, orchestrator, SnapshotCategory.FINANCIALS)


@router.post("/update-statistics", response_model=CycleResponse)
async def update_statistics(
    request: Request,
    user: TokenData = Depends(require_user),
    orchestrator: RefreshOrchestrator = Depends(get_orchestrator),
) -> CycleResponse:
    return await _run_category(request, orchestrator, SnapshotCategory.STATISTICS)


@router.post("/update-analyst-ratings", response_model=CycleResponse)
async def update_analyst_ratings(
    request: Request,
    user: TokenData = Depends(require_user),
    orchestrator: RefreshOrchestrator = Depends(get_orchestrator),
) -> CycleResponse:
    return await _run_category(request, orchestrator, SnapshotCategory.RATINGS)


@router.post("/update-monthly-data")
async def update_monthly_data(
    request: Request,
    user: TokenData = Depends(require_user),
    orchestrator: RefreshOrchestrator = Depends(get_orchestrator),
) -> dict:
    """All four monthly categories, one after another."""
    async with cancel_on_disconnect(request) as cancel_event:
        report = await orchestrator.run_monthly_cycles(cancel_event)
    return {
        "success": True,
        "message": f"Monthly data update completed ({report.success_rate} success)",
        **report.to_dict(),
    }


# =============================================================================
# Single symbol
# =============================================================================


@router.get("/{symbol}")
async def get_stock(
    symbol: str,
    user: TokenData = Depends(require_user),
    orchestrator: RefreshOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Fetch everything for one symbol now and return the stored result."""
    result = await orchestrator.refresh_symbol(symbol)
    instrument = result.instrument
    return {
        "success": True,
        "message": (
            f"Stock {instrument['symbol']} created successfully"
            if result.created
            else f"Stock {instrument['symbol']} updated successfully"
        ),
        "stock_id": instrument["id"],
        "data": {"stock": instrument, **result.snapshots},
    }


@router.post("/{symbol}")
async def add_stock_to_portfolio(
    symbol: str,
    payload: PositionCreateRequest,
    app_user: dict = Depends(get_current_app_user),
    orchestrator: RefreshOrchestrator = Depends(get_orchestrator),
    ledger: PortfolioLedger = Depends(get_ledger),
) -> dict:
    instrument = await orchestrator.ensure_instrument(symbol)
    position = await ledger.add_position(
        app_user["id"], instrument["id"], payload.quantity, payload.buy_price
    )
    return {
        "success": True,
        "message": f"{instrument['symbol']} added to portfolio",
        "stock_id": instrument["id"],
        "data": _position_to_wire(position),
    }
