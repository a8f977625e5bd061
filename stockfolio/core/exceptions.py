"""Custom exceptions and centralized exception handlers."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .logging import get_logger


logger = get_logger("error")


class AppException(Exception):
    """Base application exception with structured error response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.status_code = status_code or self.status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the API error envelope."""
        return {
            "success": False,
            "error": self.error_code,
            "message": self.message,
            **({"details": self.details} if self.details else {}),
        }


class InvalidSymbolError(AppException):
    """Malformed symbol or unsupported exchange suffix."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "INVALID_SYMBOL"
    message = "Invalid stock symbol"


class InvalidInputError(AppException):
    """Missing or out-of-range request input."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "INVALID_INPUT"
    message = "Invalid input"


class AuthenticationError(AppException):
    """Authentication failed."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "AUTHENTICATION_FAILED"
    message = "Authentication required"


class NotFoundError(AppException):
    """Resource not found."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    message = "Resource not found"


class NoDataError(NotFoundError):
    """Provider answered but returned no usable price."""

    error_code = "NO_DATA"
    message = "No market data available for symbol"


class ExternalServiceError(AppException):
    """Market data provider failure."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "EXTERNAL_SERVICE_ERROR"
    message = "External service temporarily unavailable"


# Provider-origin errors. Inside refresh cycles these become per-symbol failures.


class ProviderError(ExternalServiceError):
    """Unclassified provider failure."""


class ProviderRateLimitedError(ProviderError):
    """Provider throttled us, or the local limiter timed out."""

    error_code = "RATE_LIMITED"
    message = "Market data provider rate limit reached"


class QuoteNotFoundError(NotFoundError):
    """Provider has no data for a validated symbol."""

    message = "Symbol not found at market data provider"


class StorageError(AppException):
    """Persistent store failure. Fatal for the enclosing refresh cycle."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "STORAGE_FAILURE"
    message = "Storage operation failed"


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def register_exception_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers."""

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning(f"{request.method} {request.url.path} failed: {exc.error_code} {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers={"X-Request-ID": _request_id(request)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
            for err in exc.errors()
        ]
        error = InvalidInputError(
            message=errors[0]["message"] if errors else "Invalid input",
            details={"errors": errors},
        )
        return JSONResponse(
            status_code=error.status_code,
            content=error.to_dict(),
            headers={"X-Request-ID": _request_id(request)},
        )

    @app.exception_handler(SQLAlchemyError)
    async def storage_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.exception(f"Database error on {request.method} {request.url.path}")
        error = StorageError()
        return JSONResponse(
            status_code=error.status_code,
            content=error.to_dict(),
            headers={"X-Request-ID": _request_id(request)},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled exception",
            extra={
                "request_id": _request_id(request),
                "path": request.url.path,
                "method": request.method,
            },
        )

        from .config import settings

        message = str(exc) if settings.debug else "An unexpected error occurred"

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "INTERNAL_ERROR", "message": message},
            headers={"X-Request-ID": _request_id(request)},
        )
