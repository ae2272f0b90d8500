"""Token bucket rate limiting for outbound API calls.

Permits accumulate continuously at ``refill_rate`` per second up to
``capacity``. Every admitted request spends one permit; callers that find
the bucket empty are suspended for exactly the time needed to cover the
deficit. The bucket is shared by every caller of a client, so refills,
debits and waits are serialized by an ``asyncio.Lock``.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from .metrics import MetricsCollector

logger = logging.getLogger(__name__)


class TokenBucket:
    """Token bucket admission policy.

    :param capacity: Maximum number of permits held at once
    :param refill_rate: Permits added per second
    :param clock: Monotonic time source in seconds
    :param sleep: Coroutine used to suspend callers
    :param metrics: Optional metrics collector for wait times
    """

    def __init__(
        self,
        capacity: float,
        refill_rate: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        metrics: Optional[MetricsCollector] = None,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1 so a permit can accumulate")
        if refill_rate <= 0:
            raise ValueError("refill_rate must be positive")
        self.capacity = float(capacity)
        self.refill_rate = float(refill_rate)
        self._clock = clock
        self._sleep = sleep
        self._metrics = metrics
        self._tokens = float(capacity)
        self._last_refill = clock()
        self._lock = asyncio.Lock()

    @property
    def tokens(self) -> float:
        """Permits available as of the last refill."""
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now

    async def acquire(self) -> float:
        """Wait until a permit is available and spend it.

        :return: Seconds spent waiting
        :rtype: float
        """
        start = self._clock()
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    break
                wait_time = (1 - self._tokens) / self.refill_rate
                logger.debug("Rate limit reached, waiting %.3fs", wait_time)
                await self._sleep(wait_time)

        waited = self._clock() - start
        if self._metrics and waited > 0.01:
            self._metrics.record_rate_limit_wait(waited)
        return waited

    def get_state(self) -> Dict[str, float]:
        """Return the bucket configuration and current budget."""
        self._refill()
        return {
            "capacity": self.capacity,
            "refill_rate": self.refill_rate,
            "tokens": round(self._tokens, 3),
        }
