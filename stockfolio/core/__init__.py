"""Core infrastructure: settings, security, logging, exceptions."""

from .config import Settings, get_settings, settings
from .exceptions import (
    AppException,
    AuthenticationError,
    ExternalServiceError,
    InvalidInputError,
    InvalidSymbolError,
    NoDataError,
    NotFoundError,
    ProviderError,
    ProviderRateLimitedError,
    QuoteNotFoundError,
    StorageError,
    register_exception_handlers,
)
from .logging import get_logger, request_id_var, setup_logging


__all__ = [
    "AppException",
    "AuthenticationError",
    "ExternalServiceError",
    "InvalidInputError",
    "InvalidSymbolError",
    "NoDataError",
    "NotFoundError",
    "ProviderError",
    "ProviderRateLimitedError",
    "QuoteNotFoundError",
    "Settings",
    "StorageError",
    "get_logger",
    "get_settings",
    "register_exception_handlers",
    "request_id_var",
    "settings",
    "setup_logging",
]
