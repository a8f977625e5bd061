"""Stockfolio API entry point."""

from __future__ import annotations

import uvicorn

from stockfolio.core.config import settings


if __name__ == "__main__":
    uvicorn.run(
        "stockfolio.api.app:create_api_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_config=None,
    )
