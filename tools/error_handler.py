"""Structured error types and response formatting."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from schemas.response_schemas import ErrorResponse

logger = logging.getLogger(__name__)

PATH_PATTERN = re.compile(r"([A-Za-z]:\\[^:\n]+|/[^:\n]+)")
TRACEBACK_PATTERN = re.compile(r"Traceback \(most recent call last\):.*", re.DOTALL)


@dataclass
class MarketCacheError(Exception):
    """Base error for all structured cache and market-data failures."""

    error_category: str
    message: str
    failed_step: Optional[str] = None

    def __str__(self) -> str:
        return self.message


class ValidationError(MarketCacheError):
    def __init__(self, message: str, failed_step: Optional[str] = None):
        super().__init__(error_category="VALIDATION_ERROR", message=message, failed_step=failed_step)


class DataError(MarketCacheError):
    def __init__(self, message: str, failed_step: Optional[str] = None):
        super().__init__(error_category="DATA_ERROR", message=message, failed_step=failed_step)


class NetworkError(MarketCacheError):
    def __init__(self, message: str, failed_step: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(error_category="NETWORK_ERROR", message=message, failed_step=failed_step)
        self.status_code = status_code


class ConfigurationError(MarketCacheError):
    def __init__(self, message: str, failed_step: Optional[str] = None):
        super().__init__(error_category="CONFIGURATION_ERROR", message=message, failed_step=failed_step)


class UnknownError(MarketCacheError):
    def __init__(self, message: str, failed_step: Optional[str] = None):
        super().__init__(error_category="UNKNOWN_ERROR", message=message, failed_step=failed_step)


def sanitize_error_message(raw_message: str) -> str:
    """Remove stack traces and filesystem paths from error text."""
    without_traceback = TRACEBACK_PATTERN.sub("", raw_message).strip()
    without_paths = PATH_PATTERN.sub("[path]", without_traceback)
    return without_paths.strip() or "An internal error occurred."


def format_error_response(exc: Exception, failed_step: Optional[str] = None) -> ErrorResponse:
    """Convert exception into a safe API error payload."""
    if isinstance(exc, MarketCacheError):
        category = exc.error_category
        failed = exc.failed_step or failed_step
        message = sanitize_error_message(exc.message)

        # Expected domain errors should not emit full stack traces.
        logger.warning(
            "Request failure category=%s failed_step=%s message=%s",
            category,
            failed,
            message,
        )
    else:
        category = "UNKNOWN_ERROR"
        failed = failed_step
        message = sanitize_error_message(str(exc))

        logger.exception(
            "Request failure category=%s failed_step=%s",
            category,
            failed,
            exc_info=exc,
        )

    return ErrorResponse(
        error_category=category,
        failed_step=failed,
        error_message=message,
    )
