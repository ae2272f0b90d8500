"""Bounded concurrency gate for outbound requests.

Every call made by a client passes through one ``RequestQueue``; at most
``max_concurrent`` operations run at the same time and the rest wait for
a slot in submission order.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from ...models import QueueStats
from .metrics import MetricsCollector

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestQueue:
    """Limit the number of in-flight operations.

    :param max_concurrent: Number of slots
    :param metrics: Optional metrics collector for slot wait times
    """

    def __init__(self, max_concurrent: int = 10, metrics: Optional[MetricsCollector] = None):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._metrics = metrics
        self._running = 0
        self._queued = 0

    async def add(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` once a slot is free.

        The slot is released exactly once when the operation finishes,
        whatever the outcome.

        :param operation: Zero-argument coroutine function
        :return: The operation's result
        """
        start = time.monotonic()
        self._queued += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._queued -= 1

        waited = time.monotonic() - start
        if waited > 0.01:
            logger.debug("Request waited %.3fs for a queue slot", waited)
            if self._metrics:
                self._metrics.record_queue_wait(waited)

        self._running += 1
        try:
            return await operation()
        finally:
            self._running -= 1
            self._semaphore.release()

    def get_stats(self) -> QueueStats:
        """Return current occupancy."""
        return QueueStats(
            running=self._running,
            queued=self._queued,
            max_concurrent=self.max_concurrent,
        )
