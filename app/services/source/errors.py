"""Failure taxonomy of the basketball-bund.net client."""
from typing import Optional


class SourceClientError(Exception):
    """Base class for every upstream fetch failure."""

    error_type = "unknown"

    def __init__(self, message: str, endpoint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint

    def __str__(self) -> str:
        if self.endpoint:
            return f"{self.message} ({self.endpoint})"
        return self.message


class SourceNetworkError(SourceClientError):
    """Transport failure, timeout, or an open circuit breaker."""

    error_type = "network"


class SourceStatusError(SourceClientError):
    """Non-200 HTTP response."""

    error_type = "http_status"

    def __init__(self, status_code: int, endpoint: Optional[str] = None):
        super().__init__(f"HTTP {status_code}", endpoint)
        self.status_code = status_code


class SourcePayloadError(SourceClientError):
    """Body is not JSON or does not decode into the expected shape."""

    error_type = "payload"


class SourceApplicationError(SourceClientError):
    """HTTP 200 whose envelope status is not "0"."""

    error_type = "application"
