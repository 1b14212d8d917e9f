"""
Shared error handling for the GitHub Backend API.

Every failure leaves the service as an ``ErrorResponse`` body carrying a
short greppable ``code`` and a timestamp.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    error: str
    message: str
    status: Optional[int] = None
    timestamp: str = Field(default_factory=utc_timestamp)
    details: Optional[Dict[str, Any]] = None


class ProxyError(Exception):
    """Base exception for the proxy."""

    code = "PROXY_ERROR"
    error = "Error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        upstream_status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.upstream_status = upstream_status
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            error=self.error,
            message=self.message,
            status=self.upstream_status,
            details=self.details or None,
        )


class UnauthorizedError(ProxyError):
    """Missing or wrong credential. The message never says which check failed."""

    code = "UNAUTHORIZED"
    error = "Unauthorized: Invalid credentials"
    status_code = 401

    def __init__(self, message: str = "Provide password via x-password header/query or API key via x-api-key header/query"):
        super().__init__(message)


class ConfigurationError(ProxyError):
    """The upstream client is not configured."""

    code = "CONFIGURATION_ERROR"
    error = "GitHub token not configured"
    status_code = 500

    def __init__(self, message: str = "Set ACESS_TOKEN to enable GitHub API access"):
        super().__init__(message)


class ValidationError(ProxyError):
    """Validation-related errors."""

    code = "VALIDATION_ERROR"
    error = "Validation Error"
    status_code = 400


class UpstreamError(ProxyError):
    """The GitHub API reported a failure or could not be reached."""

    code = "UPSTREAM_ERROR"
    error = "GitHub API Error"

    def __init__(self, message: str, status: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            status_code=status or 500,
            upstream_status=status,
            details=details,
        )


class NotFoundError(ProxyError):
    """No route matches the request."""

    code = "NOT_FOUND"
    error = "Endpoint not found"
    status_code = 404

    def __init__(self, method: str, path: str):
        super().__init__(
            f"The endpoint {method} {path} does not exist",
            details={"available_endpoints": "/"},
        )


class PayloadTooLargeError(ProxyError):
    """Request body above the configured cap."""

    code = "PAYLOAD_TOO_LARGE"
    error = "Payload Too Large"
    status_code = 413


class RateLimitError(ProxyError):
    """Rate limiting errors."""

    code = "RATE_LIMIT_ERROR"
    error = "Too many requests"
    status_code = 429

    def __init__(self, message: str = "Too many requests from this IP, please try again later.", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


def internal_error_response() -> ErrorResponse:
    """Generic body for unexpected failures; internal details are logged, never returned."""
    return ErrorResponse(
        code="INTERNAL_ERROR",
        error="Internal Server Error",
        message="Something went wrong on our end",
    )
