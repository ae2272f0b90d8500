"""Shared Pydantic models for the Cakemail MCP project.

This module contains the data models exchanged between the request
execution layer and its callers:

- Authentication credentials and their status
- Client configuration for timeouts, retries, rate limiting and the
  circuit breaker
- Diagnostics snapshots (request queue statistics)
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# Auth Models
class Credential(BaseModel):
    """Access credential issued by the Cakemail token endpoint.

    ``expires_at`` already includes the safety margin: it is the
    server-reported expiry minus a fixed interval, so a credential is
    treated as expired slightly before the server would reject it.

    :param access_token: Bearer token attached to API calls
    :type access_token: str
    :param refresh_token: Optional token used for the refresh grant
    :type refresh_token: Optional[str]
    :param token_type: Token type reported by the server
    :type token_type: str
    :param expires_at: When the credential must no longer be used
    :type expires_at: datetime
    :param expires_in: Lifetime in seconds as reported by the server
    :type expires_in: Optional[int]
    :param accounts: Account identifiers the credential grants access to
    :type accounts: List[int]
    """

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_at: datetime
    expires_in: Optional[int] = None
    accounts: List[int] = Field(default_factory=list)


class TokenStatus(BaseModel):
    """Snapshot of the credential lifecycle for diagnostics."""

    has_token: bool
    is_expired: bool
    expires_at: Optional[datetime] = None
    time_until_expiry: Optional[float] = None
    needs_refresh: bool
    token_type: Optional[str] = None
    has_refresh_token: bool = False


# Configuration Models
class RetryConfig(BaseModel):
    """Retry settings consumed by the retry manager.

    Delays are in seconds.
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(3, ge=1)
    base_delay: float = Field(1.0, ge=0)
    max_delay: float = Field(30.0, ge=0)
    jitter: float = Field(0.25, ge=0, lt=1)


class RateLimitConfig(BaseModel):
    """Token bucket settings; ``refill_rate`` is tokens per second."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    capacity: float = Field(10.0, ge=1)
    refill_rate: float = Field(5.0, gt=0)


class CircuitBreakerConfig(BaseModel):
    """Circuit breaker settings; disabled unless explicitly enabled."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    failure_threshold: int = Field(5, ge=1)
    reset_timeout: float = Field(60.0, gt=0)


class ClientConfig(BaseModel):
    """Configuration surface of the request execution layer.

    :param base_url: API base URL
    :param username: Account username for the password grant
    :param password: Account password for the password grant
    :param timeout: Per-call deadline in seconds
    :param max_concurrent_requests: Request queue capacity
    """

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://api.cakemail.dev"
    username: str = ""
    password: str = Field("", repr=False)
    timeout: float = Field(30.0, gt=0)
    max_concurrent_requests: int = Field(10, ge=1)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)


# Diagnostics Models
class QueueStats(BaseModel):
    """Request queue occupancy.

    :param running: Operations currently holding a slot
    :param queued: Operations waiting for a slot
    :param max_concurrent: Queue capacity
    """

    running: int
    queued: int
    max_concurrent: int
