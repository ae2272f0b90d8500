"""Retry manager for async API operations.

This module wraps a single logical operation with bounded retries. It
classifies failures into transient ones (network errors, timeouts, 5xx
and 429 responses) and permanent ones (other 4xx responses and
authentication failures), and waits an exponentially growing, jittered
delay between attempts so independent clients do not retry in lockstep.

A ``Retry-After`` value carried by a 429/503 error is honoured: the wait
is never shorter than what the server asked for (capped at ``max_delay``).
"""

import asyncio
import dataclasses
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ...exceptions import ApiError, CakemailError, NetworkError
from ...models import RetryConfig
from .metrics import MetricsCollector

logger = logging.getLogger(__name__)

T = TypeVar("T")


def should_retry_status(status_code: int) -> bool:
    """Determine if status code is retryable."""
    return status_code == 429 or status_code >= 500


def is_retryable_error(error: BaseException) -> bool:
    """Return whether ``error`` is a transient failure worth retrying.

    :param error: Exception raised by an attempt
    :return: True for network errors, timeouts, 5xx and 429 responses
    """
    if isinstance(error, NetworkError):
        return True
    if isinstance(error, ApiError) and error.status_code is not None:
        return should_retry_status(error.status_code)
    return False


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a ``Retry-After`` header value.

    Supports both delta-seconds and HTTP-date formats.

    :param value: Raw header value
    :return: Delay in seconds, or None if absent or unparseable
    """
    value = (value or "").strip()
    if not value:
        return None

    try:
        return max(0.0, float(value))
    except ValueError:
        pass

    try:
        retry_date = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning("Failed to parse Retry-After header '%s'", value)
        return None
    if retry_date.tzinfo is None:
        retry_date = retry_date.replace(tzinfo=timezone.utc)
    delay = (retry_date - datetime.now(timezone.utc)).total_seconds()
    return max(0.0, delay)


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry policy.

    Replaced wholesale (never mutated) so an in-flight retry loop that
    snapshotted the policy keeps a consistent view.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.25
    classifier: Callable[[BaseException], bool] = field(
        default=is_retryable_error, compare=False
    )

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            jitter=config.jitter,
        )

    def backoff(self, attempt: int) -> float:
        """Return the delay to wait before ``attempt`` (2-based).

        ``min(base_delay * 2^(attempt-2), max_delay)`` scaled by a random
        factor in ``[1, 1 + jitter]`` and capped at ``max_delay`` again.
        Because ``jitter < 1`` the sequence of delays never decreases.
        """
        if attempt < 2:
            return 0.0
        delay = min(self.base_delay * (2 ** (attempt - 2)), self.max_delay)
        delay *= 1 + random.uniform(0, self.jitter)
        return min(delay, self.max_delay)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "jitter": self.jitter,
        }


class RetryManager:
    """Run operations with bounded retries and backoff-with-jitter.

    :param policy: Initial retry policy
    :param metrics: Optional metrics collector
    :param sleep: Coroutine used for backoff waits
    :param on_retry: Optional hook called as ``on_retry(error, attempt, delay)``
                     for every intermediate failure
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        metrics: Optional[MetricsCollector] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_retry: Optional[Callable[[BaseException, int, float], None]] = None,
    ):
        self._policy = policy or RetryPolicy()
        self._metrics = metrics
        self._sleep = sleep
        self._on_retry = on_retry

    def get_policy(self) -> RetryPolicy:
        """Return the current policy."""
        return self._policy

    def update_policy(self, **changes: Any) -> RetryPolicy:
        """Replace the policy with a copy carrying ``changes``.

        :return: The new policy
        """
        self._policy = dataclasses.replace(self._policy, **changes)
        logger.info("Retry policy updated: %s", self._policy.as_dict())
        return self._policy

    def _delay_for(self, policy: RetryPolicy, error: BaseException, attempt: int) -> float:
        delay = policy.backoff(attempt)
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            delay = max(delay, min(float(retry_after), policy.max_delay))
        return delay

    async def execute_with_retry(
        self, operation: Callable[[], Awaitable[T]], label: str = "operation"
    ) -> T:
        """Run ``operation`` until it succeeds or the attempt budget is spent.

        :param operation: Zero-argument coroutine function performing one attempt
        :param label: Name of the operation for logs and metrics
        :return: The operation's result
        :raises CakemailError: The last observed error, tagged with the
                               number of attempts made
        """
        policy = self._policy
        attempt = 1
        while True:
            try:
                result = await operation()
            except Exception as e:
                retryable = policy.classifier(e)
                if self._metrics:
                    code = getattr(e, "code", type(e).__name__)
                    self._metrics.record_failure(label, code)
                    if getattr(e, "status_code", None) == 429:
                        self._metrics.record_throttle(label)

                if not retryable or attempt >= policy.max_attempts:
                    if isinstance(e, CakemailError):
                        e.tag_attempts(attempt)
                    if retryable:
                        logger.error(
                            "%s failed after %d attempts: %s", label, attempt, e
                        )
                    raise

                delay = self._delay_for(policy, e, attempt + 1)
                retry_after = getattr(e, "retry_after", None)
                if self._metrics:
                    self._metrics.record_retry(label, attempt, delay)
                    if retry_after is not None:
                        self._metrics.record_retry_after(label, retry_after)
                if self._on_retry:
                    self._on_retry(e, attempt, delay)
                logger.warning(
                    "Attempt %d/%d for %s failed (%s), retrying in %.2fs",
                    attempt,
                    policy.max_attempts,
                    label,
                    e,
                    delay,
                )
                await self._sleep(delay)
                attempt += 1
                continue

            if attempt > 1 and self._metrics:
                self._metrics.record_success_after_retry(label, attempt)
            return result
