"""Structured logging configuration with request ID tracking."""

from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import settings


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class StructuredFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if settings.debug:
            log_data["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for local development."""

    def format(self, record: logging.LogRecord) -> str:
        request_id = request_id_var.get()
        rid = f"[{request_id[:8]}] " if request_id else ""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        line = f"{timestamp} {record.levelname:8} {rid}{record.name}: {record.getMessage()}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


class SensitiveDataFilter(logging.Filter):
    """Redact bearer tokens and secrets from log messages."""

    SENSITIVE_KEYS = (
        "authorization",
        "token",
        "access_token",
        "secret",
        "auth_secret",
        "password",
    )

    _BEARER = re.compile(r"(bearer\s+)[A-Za-z0-9\-_\.=]+", re.IGNORECASE)

    def filter(self, record: logging.LogRecord) -> bool:
        text = str(record.msg)
        lowered = text.lower()
        if "bearer" in lowered:
            text = self._BEARER.sub(r"\1[REDACTED]", text)
        for key in self.SENSITIVE_KEYS:
            if key in lowered:
                text = re.sub(
                    rf"({key}['\"]?\s*[=:]\s*['\"]?)[^\s,'\"}}\]]+",
                    r"\1[REDACTED]",
                    text,
                    flags=re.IGNORECASE,
                )
        record.msg = text
        return True


def setup_logging() -> None:
    """Configure application logging."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, settings.log_level))

    if settings.log_format == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(TextFormatter())

    handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(handler)

    # Noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("yfinance").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the stockfolio prefix."""
    return logging.getLogger(f"stockfolio.{name}")
