"""Tests for local-first stock search."""

from __future__ import annotations

import pytest

from fakes import FakeQuoteSource
from stockfolio.core.exceptions import InvalidInputError, ProviderRateLimitedError
from stockfolio.domain.records import CandidateRecord
from stockfolio.services.search import search_stocks


@pytest.fixture
def repo(mocker):
    repo = mocker.Mock()
    repo.search_instruments = mocker.AsyncMock(return_value=[])
    return repo


class TestSearchStocks:
    """Tests for search_stocks."""

    async def test_blank_query_is_rejected(self, repo, fake_source: FakeQuoteSource):
        with pytest.raises(InvalidInputError):
            await search_stocks("   ", fake_source, repository=repo)

        repo.search_instruments.assert_not_awaited()

    async def test_stored_matches_skip_provider(self, repo, fake_source: FakeQuoteSource, mocker):
        repo.search_instruments.return_value = [
            {"id": 1, "symbol": "RELIANCE.NS", "name": "Reliance Industries", "exchange": "NSE", "sector": "Energy"},
        ]
        spy = mocker.spy(fake_source, "search")

        result = await search_stocks("reli", fake_source, repository=repo)

        assert result["source"] == "database"
        assert result["results"][0]["symbol"] == "RELIANCE.NS"
        repo.search_instruments.assert_awaited_once_with("reli", 10)
        spy.assert_not_called()

    async def test_provider_hits_keep_indian_exchanges_only(self, repo, fake_source: FakeQuoteSource):
        fake_source.candidates = [
            CandidateRecord(symbol="TATAMOTORS.NS", name="Tata Motors", exchange="NSE", type_display="Equity"),
            CandidateRecord(symbol="TTM", name="Tata Motors ADR", exchange="NYSE", quote_type="EQUITY"),
            CandidateRecord(symbol="TATASTEEL.BO", name="Tata Steel", exchange="BSE", quote_type="EQUITY"),
        ]

        result = await search_stocks("tata", fake_source, repository=repo)

        assert result["source"] == "yahoo"
        assert result["results"] == [
            {"symbol": "TATAMOTORS.NS", "name": "Tata Motors", "exchange": "NSE", "type": "Equity"},
            {"symbol": "TATASTEEL.BO", "name": "Tata Steel", "exchange": "BSE", "type": "EQUITY"},
        ]

    async def test_limit_caps_provider_results(self, repo, fake_source: FakeQuoteSource):
        fake_source.candidates = [CandidateRecord(symbol=f"S{i}.NS") for i in range(5)]

        result = await search_stocks("s", fake_source, limit=2, repository=repo)

        assert [r["symbol"] for r in result["results"]] == ["S0.NS", "S1.NS"]

    async def test_provider_failure_returns_empty(self, repo, fake_source: FakeQuoteSource):
        fake_source.candidates = ProviderRateLimitedError()

        result = await search_stocks("infy", fake_source, repository=repo)

        assert result == {"source": "yahoo", "results": []}
