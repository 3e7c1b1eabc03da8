"""
Error types for the unleash-lite client.

Provides structured error handling with categories for better error management.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Categories of errors for classification."""

    AUTH = "auth"
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"
    UNKNOWN = "unknown"


class UnleashError(Exception):
    """Base exception for all unleash-lite errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.status_code = status_code
        self.retryable = retryable

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, category={self.category})"


class ValidationError(UnleashError):
    """Raised when client configuration is invalid."""

    def __init__(self, message: str = "Validation error"):
        super().__init__(message, category=ErrorCategory.VALIDATION)


class InvalidCredentialError(ValidationError):
    """Raised when an API token cannot be parsed."""

    def __init__(self, message: str = "could not parse authorization token"):
        super().__init__(message)


class InvalidTagError(ValidationError):
    """Raised when an entity tag cannot be parsed."""

    def __init__(self, message: str = "could not parse etag"):
        super().__init__(message)


class RemoteError(UnleashError):
    """Raised when a call to the feature server fails."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        status_code: Optional[int] = None,
        retryable: bool = False,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, category, status_code, retryable)
        self.cause = cause


class NetworkError(RemoteError):
    """Raised when a transport error or timeout occurs."""

    def __init__(self, message: str = "Network error", cause: Optional[BaseException] = None):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            retryable=True,
            cause=cause,
        )


class AuthenticationError(RemoteError):
    """Raised when authentication fails (401/403)."""

    def __init__(self, message: str = "Authentication failed", status_code: int = 401):
        super().__init__(
            message,
            category=ErrorCategory.AUTH,
            status_code=status_code,
        )


class RateLimitError(RemoteError):
    """Raised when rate limited (429)."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.RATE_LIMIT,
            status_code=429,
            retryable=True,
        )
        self.retry_after = retry_after


class NotFoundError(RemoteError):
    """Raised when the endpoint is not found (404)."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(
            message,
            category=ErrorCategory.NOT_FOUND,
            status_code=404,
        )


class InternalError(RemoteError):
    """Raised when the server fails (5xx)."""

    def __init__(self, message: str = "Internal server error", status_code: int = 500):
        super().__init__(
            message,
            category=ErrorCategory.INTERNAL,
            status_code=status_code,
            retryable=True,
        )


@dataclass(frozen=True)
class HydrationWarning:
    """A non-fatal problem found while loading a feature dataset."""

    message: str
    feature: Optional[str] = None

    def __str__(self) -> str:
        if self.feature:
            return f"{self.feature}: {self.message}"
        return self.message


def classify_error(error: BaseException, status_code: Optional[int] = None) -> RemoteError:
    """
    Classify an exception into a RemoteError.

    Args:
        error: The original exception
        status_code: Optional HTTP status code

    Returns:
        A classified RemoteError with ``cause`` set to the original exception
    """
    if isinstance(error, RemoteError):
        return error

    message = str(error) or error.__class__.__name__

    classified: RemoteError
    if status_code:
        if status_code in (401, 403):
            classified = AuthenticationError(message, status_code)
        elif status_code == 404:
            classified = NotFoundError(message)
        elif status_code == 429:
            classified = RateLimitError(message)
        elif 500 <= status_code < 600:
            classified = InternalError(message, status_code)
        else:
            category = ErrorCategory.VALIDATION if status_code == 400 else ErrorCategory.UNKNOWN
            classified = RemoteError(message, category=category, status_code=status_code)
    else:
        network_indicators = [
            "connection",
            "timeout",
            "timed out",
            "econnrefused",
            "enotfound",
            "network",
            "dns",
        ]
        lowered = f"{error.__class__.__name__} {message}".lower()
        if any(indicator in lowered for indicator in network_indicators):
            classified = NetworkError(message)
        else:
            classified = RemoteError(message)

    classified.cause = error
    return classified
