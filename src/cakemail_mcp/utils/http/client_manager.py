"""HTTP client manager with connection pooling and lifecycle management.

A process-wide manager hands out ``httpx.AsyncClient`` instances cached
per (base URL, timeout, pool limits) so every Cakemail client created by
the server shares connection pools, and closes them all at shutdown.
"""

import asyncio
import logging
from typing import Dict, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)


def create_timeout(total: float, connect: Optional[float] = None) -> httpx.Timeout:
    """Create a timeout configuration from a per-call deadline.

    :param total: Deadline in seconds for read, write and pool waits
    :param connect: Optional separate connect timeout
    :return: Configured timeout object
    """
    return httpx.Timeout(total, connect=connect if connect is not None else min(total, 10.0))


def create_limits(max_connections: int = 20) -> httpx.Limits:
    """Create connection limits sized for the request queue.

    :param max_connections: Maximum total number of connections
    :return: Configured limits object
    """
    return httpx.Limits(
        max_keepalive_connections=max_connections,
        max_connections=max_connections,
        keepalive_expiry=30.0,
    )


class HTTPClientManager:
    """Manages shared HTTP clients with connection pooling."""

    def __init__(self):
        self._clients: Dict[Tuple, httpx.AsyncClient] = {}
        self._lock = asyncio.Lock()
        self._is_closing = False

    async def get_client(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_connections: int = 20,
    ) -> httpx.AsyncClient:
        """Get or create an HTTP client for the given configuration.

        :param base_url: Base URL requests are relative to
        :param timeout: Per-call deadline in seconds
        :param max_connections: Connection pool size
        :return: Shared client instance
        """
        cache_key = (base_url, timeout, max_connections)
        async with self._lock:
            client = self._clients.get(cache_key)
            if client is None or client.is_closed:
                client = httpx.AsyncClient(
                    base_url=base_url,
                    timeout=create_timeout(timeout),
                    limits=create_limits(max_connections),
                    follow_redirects=True,
                )
                self._clients[cache_key] = client
                logger.debug("Created new HTTP client for %s", base_url)
        return client

    async def close_all(self) -> None:
        """Close all managed HTTP clients."""
        if self._is_closing:
            logger.debug("Already closing HTTP clients, skipping duplicate call")
            return

        self._is_closing = True
        try:
            if not self._clients:
                logger.debug("No HTTP clients to close")
                return
            logger.info("Closing %d HTTP client(s)...", len(self._clients))
            for cache_key, client in list(self._clients.items()):
                try:
                    await client.aclose()
                except (httpx.HTTPError, RuntimeError) as e:
                    logger.warning("Error closing HTTP client %s: %s", cache_key[0], e)
            self._clients.clear()
        finally:
            self._is_closing = False


http_client_manager = HTTPClientManager()
