"""Position cost-basis math."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable


PRICE_QUANTUM = Decimal("0.0001")
MONEY_QUANTUM = Decimal("0.01")
# user_positions.quantity is a 32-bit INTEGER
MAX_POSITION_QUANTITY = 2**31 - 1


def quantize_price(value: Decimal) -> Decimal:
    return value.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


def weighted_average_cost(
    existing_quantity: int,
    existing_price: Decimal,
    added_quantity: int,
    added_price: Decimal,
) -> tuple[int, Decimal]:
    """
    Merge a buy into an existing position.

    Returns ``(total_quantity, average_price)``. 10 @ 200 plus 10 @ 100 is
    20 @ 150.
    """
    total_quantity = existing_quantity + added_quantity
    total_cost = Decimal(existing_quantity) * Decimal(existing_price) + Decimal(added_quantity) * Decimal(added_price)
    return total_quantity, quantize_price(total_cost / Decimal(total_quantity))


@dataclass(frozen=True)
class PortfolioSummary:
    invested: Decimal
    current_value: Decimal
    gain: Decimal
    gain_percent: Decimal
    positions: int

    def to_dict(self) -> dict:
        return {
            "invested": str(self.invested),
            "current_value": str(self.current_value),
            "gain": str(self.gain),
            "gain_percent": str(self.gain_percent),
            "positions": self.positions,
        }


def summarize(holdings: Iterable[tuple[int, Decimal, Decimal | None]]) -> PortfolioSummary:
    """
    Totals over ``(quantity, buy_price, current_price)`` tuples.

    A holding without a current price is valued at cost.
    """
    invested = Decimal("0")
    current = Decimal("0")
    count = 0
    for quantity, buy_price, current_price in holdings:
        cost = Decimal(quantity) * Decimal(buy_price)
        invested += cost
        current += Decimal(quantity) * Decimal(current_price) if current_price is not None else cost
        count += 1

    gain = current - invested
    gain_percent = (gain / invested * 100) if invested else Decimal("0")
    return PortfolioSummary(
        invested=invested.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP),
        current_value=current.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP),
        gain=gain.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP),
        gain_percent=gain_percent.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP),
        positions=count,
    )
