"""
Exception hierarchy for the Deribit HTTP client.

Every failure surfaced by the client is a DeribitError subclass, so callers
can tell apart:
- RateLimitedError: try again later (carries a wait hint)
- AuthenticationFailedError: session is gone, re-authenticate
- NetworkError: transient transport failure, retry
- ConfigError: fatal misconfiguration
"""

from typing import Optional


class DeribitError(Exception):
    """Base exception for Deribit client errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[int] = None,
        response: Optional[dict] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.response = response
        super().__init__(message)


class NetworkError(DeribitError):
    """Transport failure reaching the API."""
    pass


class RequestFailedError(DeribitError):
    """Non-success status or JSON-RPC error returned by the API."""
    pass


class InvalidResponseError(DeribitError):
    """Malformed or unexpected response payload."""
    pass


class AuthenticationFailedError(DeribitError):
    """Credentials or token rejected, or no session available."""
    pass


class ConfigError(DeribitError):
    """Invalid or missing configuration, or an unsupported feature."""
    pass


class RateLimitedError(DeribitError):
    """Rate budget exhausted and the caller chose not to wait."""

    def __init__(self, message: str, retry_after: float = 0.0, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
