"""Exchange-suffixed symbol rules (``RELIANCE.NS``, ``SBIN.BO``)."""

from __future__ import annotations

import re
from typing import Iterable

from stockfolio.core.exceptions import InvalidSymbolError


DEFAULT_SUFFIX = "NS"
SUPPORTED_SUFFIXES = ("NS", "BO")

EXCHANGES = {"NS": "NSE", "BO": "BSE"}


def _symbol_pattern(suffixes: Iterable[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(s) for s in suffixes)
    return re.compile(rf"^[A-Z0-9]{{1,10}}\.({alternatives})$")


def normalize_symbol(
    raw: str,
    default_suffix: str = DEFAULT_SUFFIX,
    suffixes: Iterable[str] = SUPPORTED_SUFFIXES,
) -> str:
    """Uppercase and trim; append the default suffix unless one is present."""
    symbol = (raw or "").strip().upper()
    if any(symbol.endswith(f".{suffix}") for suffix in suffixes):
        return symbol
    return f"{symbol}.{default_suffix}"


def is_valid_symbol(symbol: str, suffixes: Iterable[str] = SUPPORTED_SUFFIXES) -> bool:
    return bool(_symbol_pattern(suffixes).match(symbol or ""))


def validate_symbol(
    raw: str,
    default_suffix: str = DEFAULT_SUFFIX,
    suffixes: Iterable[str] = SUPPORTED_SUFFIXES,
) -> str:
    """
    Normalize ``raw`` and check it against the exchange-suffix pattern.

    Raises InvalidSymbolError before any network or storage call is made.
    """
    suffixes = tuple(suffixes)
    symbol = normalize_symbol(raw, default_suffix, suffixes)
    if not is_valid_symbol(symbol, suffixes):
        raise InvalidSymbolError(
            message=f"Invalid stock symbol format: {raw!r}",
            details={"symbol": raw, "normalized": symbol},
        )
    return symbol


def exchange_for_symbol(symbol: str) -> str:
    """``NSE`` for ``.NS`` symbols, ``BSE`` for ``.BO``; NSE otherwise."""
    _, _, suffix = symbol.upper().rpartition(".")
    return EXCHANGES.get(suffix, "NSE")


def has_supported_suffix(symbol: str, suffixes: Iterable[str] = SUPPORTED_SUFFIXES) -> bool:
    upper = (symbol or "").upper()
    return any(upper.endswith(f".{suffix}") for suffix in suffixes)

