"""In-process metrics for the request execution layer.

Counters, gauges and last-value histograms keyed by a dotted metric name
and the call label. Nothing is exported; the collector only backs the
diagnostics surface of the client.
"""

import logging
import time
from collections import defaultdict
from typing import Any, Dict

logger = logging.getLogger(__name__)


class MetricsCollector:
    """Collects metrics for monitoring and diagnostics."""

    def __init__(self):
        self._metrics: Dict[str, Dict[str, Any]] = defaultdict(lambda: defaultdict(int))
        self._start_time = time.time()

    def record_throttle(self, endpoint: str) -> None:
        """Record a 429 throttle response."""
        self._metrics["counters"][f"throttles_total.{endpoint}"] += 1
        logger.debug("Throttle recorded: %s", endpoint)

    def record_retry(self, endpoint: str, attempt: int, delay: float) -> None:
        """Record a retry attempt."""
        self._metrics["counters"][f"retry_attempts_total.{endpoint}"] += 1
        self._metrics["histograms"][f"retry_delay_seconds.{endpoint}"] = delay
        logger.debug("Retry %d for %s with %.2fs delay", attempt, endpoint, delay)

    def record_retry_after(self, endpoint: str, delay: float) -> None:
        """Record observed Retry-After header value."""
        self._metrics["gauges"][f"retry_after_seconds.{endpoint}"] = delay

    def record_failure(self, endpoint: str, error_code: str) -> None:
        """Record a failed attempt by error code."""
        self._metrics["counters"][f"failures_total.{endpoint}.{error_code}"] += 1

    def record_circuit_state(self, name: str, state: str) -> None:
        """Record circuit breaker state change."""
        self._metrics["gauges"][f"circuit_breaker_state.{name}"] = state
        self._metrics["counters"][f"circuit_breaker_transitions.{state}"] += 1

    def record_rate_limit_wait(self, wait_time: float) -> None:
        """Record time spent waiting for a rate limiter token."""
        self._metrics["histograms"]["rate_limit_wait_seconds"] = wait_time
        if wait_time > 5.0:
            logger.warning("Long rate limit wait: %.2fs", wait_time)

    def record_queue_wait(self, wait_time: float) -> None:
        """Record time spent waiting for a request queue slot."""
        self._metrics["histograms"]["queue_wait_seconds"] = wait_time
        if wait_time > 5.0:
            logger.warning("Long queue wait: %.2fs", wait_time)

    def record_success_after_retry(self, endpoint: str, attempts: int) -> None:
        """Record successful completion after retries."""
        self._metrics["counters"][f"success_after_retry.{endpoint}"] += 1
        logger.info("Success after %d attempts for %s", attempts, endpoint)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Get all collected metrics."""
        data = {kind: dict(values) for kind, values in self._metrics.items()}
        data["uptime_seconds"] = round(time.time() - self._start_time, 3)
        return data

    def reset(self) -> None:
        """Drop all collected metrics."""
        self._metrics.clear()
        self._start_time = time.time()
