"""Cakemail MCP models package.

This package contains the Pydantic models used throughout the Cakemail
MCP client.
"""

from .base_models import (
    CircuitBreakerConfig,
    ClientConfig,
    Credential,
    QueueStats,
    RateLimitConfig,
    RetryConfig,
    TokenStatus,
)

__all__ = [
    "Credential",
    "TokenStatus",
    "RetryConfig",
    "RateLimitConfig",
    "CircuitBreakerConfig",
    "ClientConfig",
    "QueueStats",
]
