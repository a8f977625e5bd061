"""Stock search - local-first with Yahoo fallback.

SEARCH STRATEGY:
1. Name/symbol substring match against known instruments
2. Only when nothing is stored locally, ask the provider and keep NSE/BSE hits

Provider failures never fail the request; the caller just gets no results.
"""

from __future__ import annotations

from typing import Any

from stockfolio.core.config import settings
from stockfolio.core.exceptions import ExternalServiceError, InvalidInputError, QuoteNotFoundError
from stockfolio.core.logging import get_logger
from stockfolio.domain.symbols import has_supported_suffix
from stockfolio.repositories import instruments_orm
from stockfolio.services.data_providers.base import RemoteQuoteSource


logger = get_logger("services.search")


async def search_stocks(
    query: str,
    source: RemoteQuoteSource,
    limit: int | None = None,
    repository: Any = instruments_orm,
) -> dict[str, Any]:
    """
    Returns ``{"source": "database" | "yahoo", "results": [...]}``.

    Raises InvalidInputError for a blank query.
    """
    query = (query or "").strip()
    if not query:
        raise InvalidInputError(message="Search query is required", details={"q": query})
    limit = limit or settings.search_max_results

    rows = await repository.search_instruments(query, limit)
    if rows:
        return {
            "source": "database",
            "results": [
                {
                    "id": row["id"],
                    "symbol": row["symbol"],
                    "name": row["name"],
                    "exchange": row["exchange"],
                    "sector": row.get("sector"),
                }
                for row in rows
            ],
        }

    try:
        candidates = await source.search(query)
    except (ExternalServiceError, QuoteNotFoundError) as e:
        logger.warning(f"Provider search failed for {query!r}: {e.message}")
        return {"source": "yahoo", "results": []}

    suffixes = settings.supported_exchange_suffixes
    results = [
        {
            "symbol": c.symbol,
            "name": c.name,
            "exchange": c.exchange,
            "type": c.type_display or c.quote_type,
        }
        for c in candidates
        if has_supported_suffix(c.symbol, suffixes)
    ]
    return {"source": "yahoo", "results": results[:limit]}
