"""Portfolio API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from stockfolio.api.dependencies import get_current_app_user, get_ledger, get_orchestrator
from stockfolio.core.exceptions import NotFoundError
from stockfolio.schemas.portfolio import PortfolioResponse
from stockfolio.services.ledger import PortfolioLedger
from stockfolio.services.refresh import RefreshOrchestrator


router = APIRouter(prefix="/portfolio")


@router.get("", response_model=PortfolioResponse)
async def get_portfolio(
    app_user: dict = Depends(get_current_app_user),
    ledger: PortfolioLedger = Depends(get_ledger),
) -> PortfolioResponse:
    portfolio = await ledger.get_portfolio(app_user["id"])
    return PortfolioResponse(**portfolio)


@router.delete("/{symbol}")
async def remove_from_portfolio(
    symbol: str,
    app_user: dict = Depends(get_current_app_user),
    orchestrator: RefreshOrchestrator = Depends(get_orchestrator),
    ledger: PortfolioLedger = Depends(get_ledger),
) -> dict:
    normalized = orchestrator.validate(symbol)
    instrument = await orchestrator.store.get_instrument_by_symbol(normalized)
    if instrument is None:
        raise NotFoundError(message=f"Stock {normalized} not found", details={"symbol": normalized})

    removed = await ledger.remove_position(app_user["id"], instrument["id"])
    return {
        "success": True,
        "removed": removed,
        "message": (
            f"{normalized} removed from portfolio" if removed else f"{normalized} was not in portfolio"
        ),
    }
