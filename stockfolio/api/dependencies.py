"""API dependencies for authentication and service access."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, Header

from stockfolio.core.exceptions import AuthenticationError
from stockfolio.core.logging import get_logger
from stockfolio.core.security import TokenData, decode_access_token
from stockfolio.jobs.activity import get_session_tracker
from stockfolio.jobs.scheduler import get_scheduler
from stockfolio.repositories import users_orm
from stockfolio.services.data_providers import RemoteQuoteSource
from stockfolio.services.data_providers import get_quote_source as _get_quote_source
from stockfolio.services.ledger import PortfolioLedger, get_portfolio_ledger
from stockfolio.services.refresh import RefreshOrchestrator, get_refresh_orchestrator


logger = get_logger("api.dependencies")

__all__ = [
    "get_current_app_user",
    "get_ledger",
    "get_orchestrator",
    "get_quote_source",
    "require_user",
]


def _extract_token(authorization: str | None) -> str | None:
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token:
            return token.strip()
    return None


async def require_user(
    authorization: str | None = Header(default=None),
) -> TokenData:
    """
    Require a valid identity provider token.

    The first request of a user who was idle schedules an immediate
    intraday check, so their portfolio is fresh without waiting for the
    next interval.
    """
    token = _extract_token(authorization)
    if not token:
        raise AuthenticationError(
            message="Authentication required",
            error_code="MISSING_CREDENTIALS",
        )

    token_data = decode_access_token(token)

    if get_session_tracker().touch(token_data.sub):
        if get_scheduler().trigger_intraday_gate():
            logger.info(f"User {token_data.sub} became active, intraday check scheduled")

    return token_data


async def get_current_app_user(
    user: TokenData = Depends(require_user),
) -> dict[str, Any]:
    """Local user row for the token subject, created on first sight."""
    return await users_orm.get_or_create_user(user.sub, email=user.email, username=user.name)


def get_orchestrator() -> RefreshOrchestrator:
    return get_refresh_orchestrator()


def get_ledger() -> PortfolioLedger:
    return get_portfolio_ledger()


def get_quote_source() -> RemoteQuoteSource:
    return _get_quote_source()
