"""
Gateway error taxonomy.

Every failure surfaced to a caller is a GatewayError carrying a fixed
error code, the HTTP status to return, the originating provider and,
when available, the raw upstream payload for diagnostics.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Fixed error taxonomy."""
    INVALID_REQUEST = "INVALID_REQUEST"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class GatewayError(Exception):
    """Base exception for gateway errors."""

    default_code = ErrorCode.UNKNOWN_ERROR
    default_status = 500

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status: Optional[int] = None,
        code: Optional[ErrorCode] = None,
        raw: Any = None,
    ):
        self.message = message
        self.provider = provider
        self.status = status if status is not None else self.default_status
        self.code = code or self.default_code
        self.raw = raw
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable view, without the raw upstream payload."""
        return {
            "name": self.__class__.__name__,
            "message": self.message,
            "status": self.status,
            "code": self.code.value,
            "provider": self.provider,
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(code={self.code.value}, "
            f"status={self.status}, provider={self.provider!r}, message={self.message!r})"
        )


class GatewayInvalidRequestError(GatewayError):
    """Raised when request is invalid."""
    default_code = ErrorCode.INVALID_REQUEST
    default_status = 400


class GatewayAuthenticationError(GatewayError):
    """Raised when the upstream rejects our credentials."""
    default_code = ErrorCode.AUTHENTICATION_ERROR
    default_status = 401


class GatewayRateLimitError(GatewayError):
    """Raised when rate limit is exceeded."""
    default_code = ErrorCode.RATE_LIMIT_ERROR
    default_status = 429

    def __init__(self, message: str, provider: str = None, retry_after: float = None, **kwargs):
        super().__init__(message, provider, **kwargs)
        self.retry_after = retry_after


class GatewayProviderError(GatewayError):
    """Raised on upstream 5xx or an embedded failure flag."""
    default_code = ErrorCode.PROVIDER_ERROR
    default_status = 502


class GatewayConnectionError(GatewayError):
    """Raised when the upstream cannot be reached."""
    default_code = ErrorCode.NETWORK_ERROR
    default_status = 502


class GatewayConfigError(GatewayError):
    """Raised when a required credential or endpoint is missing."""
    default_code = ErrorCode.CONFIG_ERROR
    default_status = 400


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def error_from_status(
    message: str,
    status: Optional[int],
    provider: Optional[str] = None,
    raw: Any = None,
    retry_after: Optional[str] = None,
) -> GatewayError:
    """
    Classify an upstream HTTP failure into the error taxonomy.

    Args:
        message: Human readable message
        status: Upstream HTTP status (None when there was no response)
        provider: Provider name the failure came from
        raw: Raw upstream body
        retry_after: Value of the Retry-After header, if any

    Returns:
        GatewayError subclass instance matching the status
    """
    if not status:
        return GatewayError(message, provider, raw=raw)
    if status in (401, 403):
        return GatewayAuthenticationError(message, provider, status=status, raw=raw)
    if status == 429:
        return GatewayRateLimitError(
            message,
            provider,
            retry_after=_parse_retry_after(retry_after),
            status=status,
            raw=raw,
        )
    if status == 400:
        return GatewayInvalidRequestError(message, provider, status=status, raw=raw)
    if status >= 500:
        return GatewayProviderError(message, provider, status=status, raw=raw)
    return GatewayError(message, provider, status=status, raw=raw)
