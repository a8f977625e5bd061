"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
from typing import Generator

# No background jobs during tests
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "text")

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fakes import FakeQuoteSource, FakeStore, RecordingSleep


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Drop process-wide engine and service singletons around each test."""
    import stockfolio.database.connection as db_conn
    import stockfolio.jobs.activity as activity
    import stockfolio.jobs.scheduler as scheduler
    import stockfolio.repositories.store as store
    import stockfolio.services.data_providers as data_providers
    import stockfolio.services.ledger as ledger
    import stockfolio.services.refresh as refresh

    def _reset():
        db_conn._engine = None
        db_conn._session_factory = None
        data_providers._instance = None
        store._store = None
        refresh._orchestrator = None
        ledger._ledger = None
        activity._tracker = None
        scheduler._scheduler = None

    _reset()
    yield
    _reset()


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fake_source() -> FakeQuoteSource:
    return FakeQuoteSource()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def orchestrator(fake_store: FakeStore, fake_source: FakeQuoteSource, recording_sleep: RecordingSleep):
    from stockfolio.services.refresh import RefreshOrchestrator

    return RefreshOrchestrator(fake_store, fake_source, sleep=recording_sleep)


@pytest.fixture
def app() -> FastAPI:
    from stockfolio.api.app import create_api_app

    return create_api_app()


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Test client; the lifespan runs with the scheduler disabled."""
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_token() -> str:
    from stockfolio.core.security import create_access_token

    return create_access_token("user_2abc", email="investor@example.com", name="investor")


@pytest.fixture
def auth_headers(auth_token: str) -> dict:
    return {"Authorization": f"Bearer {auth_token}"}
