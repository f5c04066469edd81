"""
Error types for the deep_research_tool package.

Every error carries an explicit ``kind`` tag that is set where the failure is
first classified (usually where an HTTP status code is inspected). Catch sites
such as the rate-limited queue branch on ``kind`` instead of re-inspecting
status codes or exception classes.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    RATE_LIMIT = "rate_limit"
    UPSTREAM = "upstream"
    TIMEOUT = "timeout"
    CONFIGURATION = "configuration"
    VALIDATION = "validation"


RATE_LIMIT_STATUS = 429


class AppError(Exception):
    """Base class for all errors raised by this package."""

    kind: ErrorKind = ErrorKind.UPSTREAM

    def __init__(self, message: str, status_code: int = 500, is_operational: bool = True):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.is_operational = is_operational


class ApiError(AppError):
    """A failed call to an external API."""

    def __init__(
        self,
        message: str,
        service: str,
        status_code: int = 500,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(f"{service} API Error: {message}", status_code)
        self.service = service
        self.original_error = original_error
        self.kind = ErrorKind.RATE_LIMIT if status_code == RATE_LIMIT_STATUS else ErrorKind.UPSTREAM


class FirecrawlError(ApiError):
    def __init__(self, message: str, status_code: int = 500, original_error: Optional[BaseException] = None):
        super().__init__(message, "Firecrawl", status_code, original_error)


class OpenAIError(ApiError):
    def __init__(self, message: str, status_code: int = 500, original_error: Optional[BaseException] = None):
        super().__init__(message, "OpenAI", status_code, original_error)


class TaskTimeoutError(AppError):
    """A task did not settle within its allotted time.

    The underlying work is not cancelled; it may still be running.
    """

    kind = ErrorKind.TIMEOUT

    def __init__(self, timeout_ms: float, message: Optional[str] = None):
        super().__init__(message or f"Task timed out after {timeout_ms:g}ms", status_code=504)
        self.timeout_ms = timeout_ms


class ConfigurationError(AppError):
    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str):
        super().__init__(f"Configuration Error: {message}", status_code=500)


class ValidationError(AppError):
    kind = ErrorKind.VALIDATION

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


def is_rate_limit_error(error: BaseException) -> bool:
    """Return True if ``error`` is tagged as an upstream rate-limit rejection."""
    return getattr(error, "kind", None) is ErrorKind.RATE_LIMIT


def wrap_api_error(error: BaseException, service: str) -> ApiError:
    """
    Convert an arbitrary exception raised while talking to ``service`` into
    the matching ApiError subclass. Already-typed errors are returned as-is.

    Callers are expected to ``raise wrap_api_error(e, "...") from e``.
    """
    if isinstance(error, ApiError):
        return error

    message = str(error) or error.__class__.__name__
    if service == "Firecrawl":
        return FirecrawlError(message, 500, error)
    if service == "OpenAI":
        return OpenAIError(message, 500, error)
    return ApiError(message, service, 500, error)
