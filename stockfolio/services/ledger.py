"""Portfolio ledger: one weighted-average position per (user, instrument)."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from stockfolio.core.exceptions import InvalidInputError
from stockfolio.core.logging import get_logger
from stockfolio.domain.positions import MAX_POSITION_QUANTITY, MONEY_QUANTUM, quantize_price, summarize
from stockfolio.repositories import positions_orm


logger = get_logger("services.ledger")


def _to_price(value: Any) -> Decimal:
    try:
        price = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidInputError(message="Buy price must be a number", details={"buy_price": str(value)})
    if not price.is_finite() or price <= 0:
        raise InvalidInputError(message="Buy price must be positive", details={"buy_price": str(value)})
    if quantize_price(price) <= 0:
        raise InvalidInputError(
            message="Buy price rounds to zero at four decimal places",
            details={"buy_price": str(value)},
        )
    return price


def _money(value: Decimal) -> str:
    return str(value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP))


def _with_valuation(position: dict[str, Any]) -> dict[str, Any]:
    quantity = position["quantity"]
    buy_price = Decimal(position["buy_price"])
    current = position.get("current_price")

    invested = Decimal(quantity) * buy_price
    row = {
        "stock": position["stock"],
        "quantity": quantity,
        "buy_price": str(buy_price),
        "invested": _money(invested),
        "current_price": str(current) if current is not None else None,
        "price_updated_at": position.get("price_updated_at"),
        "current_value": None,
        "gain": None,
        "gain_percent": None,
        "added_at": position.get("added_at"),
        "updated_at": position.get("updated_at"),
    }
    if current is not None:
        value = Decimal(quantity) * Decimal(current)
        gain = value - invested
        row["current_value"] = _money(value)
        row["gain"] = _money(gain)
        row["gain_percent"] = _money(gain / invested * 100) if invested else "0.00"
    return row


class PortfolioLedger:
    """Thin policy layer over the positions repository."""

    def __init__(self, repository: Any = positions_orm):
        self.repo = repository

    async def add_position(
        self,
        user_id: int,
        instrument_id: int,
        quantity: int,
        buy_price: Decimal | float | str,
    ) -> dict[str, Any]:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidInputError(
                message="Quantity must be a positive whole number",
                details={"quantity": quantity},
            )
        if quantity > MAX_POSITION_QUANTITY:
            raise InvalidInputError(
                message=f"Quantity cannot exceed {MAX_POSITION_QUANTITY}",
                details={"quantity": quantity},
            )
        price = _to_price(buy_price)

        position = await self.repo.merge_position(user_id, instrument_id, quantity, price)
        logger.info(
            f"User {user_id} added {quantity} of instrument {instrument_id} @ {price}; "
            f"now {position['quantity']} @ {position['buy_price']}"
        )
        return position

    async def get_portfolio(self, user_id: int) -> dict[str, Any]:
        positions = await self.repo.list_positions(user_id)
        summary = summarize(
            (
                p["quantity"],
                Decimal(p["buy_price"]),
                Decimal(p["current_price"]) if p.get("current_price") is not None else None,
            )
            for p in positions
        )
        return {
            "positions": [_with_valuation(p) for p in positions],
            "summary": summary.to_dict(),
        }

    async def remove_position(self, user_id: int, instrument_id: int) -> bool:
        removed = await self.repo.delete_position(user_id, instrument_id)
        if removed:
            logger.info(f"User {user_id} removed instrument {instrument_id}")
        return removed


_ledger: PortfolioLedger | None = None


def get_portfolio_ledger() -> PortfolioLedger:
    global _ledger
    if _ledger is None:
        _ledger = PortfolioLedger()
    return _ledger
