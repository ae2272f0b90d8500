"""HTTP utilities public API (barrel module).

This package provides:
- Shared HTTP client manager
- Token bucket rate limiter
- Retry manager with jittered backoff
- Circuit breaker
- Bounded request queue
- Request executor composing all of the above

Recommended import pattern for consumers:
    from cakemail_mcp.utils.http import RequestExecutor, http_client_manager
"""

from .circuit_breaker import CircuitBreaker, CircuitState
from .client_manager import (
    HTTPClientManager,
    create_limits,
    create_timeout,
    http_client_manager,
)
from .executor import RequestExecutor
from .metrics import MetricsCollector
from .rate_limiter import TokenBucket
from .request_queue import RequestQueue
from .retry import (
    RetryManager,
    RetryPolicy,
    is_retryable_error,
    parse_retry_after,
    should_retry_status,
)

__all__ = [
    "HTTPClientManager",
    "http_client_manager",
    "create_timeout",
    "create_limits",
    "CircuitBreaker",
    "CircuitState",
    "MetricsCollector",
    "TokenBucket",
    "RequestQueue",
    "RetryManager",
    "RetryPolicy",
    "is_retryable_error",
    "parse_retry_after",
    "should_retry_status",
    "RequestExecutor",
]
