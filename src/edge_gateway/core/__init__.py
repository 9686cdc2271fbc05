"""
Core gateway components.
"""

from .interface import AbstractProvider, ProviderCapability
from .registry import ProviderRegistry, Route
from .config import GatewayConfig, ProviderType, load_config
from .credentials import ServiceAccountTokenManager
from .errors import (
    ErrorCode,
    GatewayError,
    GatewayInvalidRequestError,
    GatewayAuthenticationError,
    GatewayRateLimitError,
    GatewayProviderError,
    GatewayConnectionError,
    GatewayConfigError,
)

__all__ = [
    "AbstractProvider",
    "ProviderCapability",
    "ProviderRegistry",
    "Route",
    "GatewayConfig",
    "ProviderType",
    "load_config",
    "ServiceAccountTokenManager",
    "ErrorCode",
    "GatewayError",
    "GatewayInvalidRequestError",
    "GatewayAuthenticationError",
    "GatewayRateLimitError",
    "GatewayProviderError",
    "GatewayConnectionError",
    "GatewayConfigError",
]
