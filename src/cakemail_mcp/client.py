"""Cakemail API client.

:class:`CakemailClient` is the single entry point resource code talks to.
It owns the credential manager and the request executor, and layers the
pagination helpers on top of ``execute``.

Examples
--------
.. code-block:: python

   async with CakemailClient(ClientConfig(username="me", password="pw")) as client:
       senders = await client.get_all_items("/brands/default/senders", "senders")
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .auth.credentials import CredentialManager
from .config.settings import get_settings
from .exceptions import CakemailError
from .models import ClientConfig
from .pagination import (
    IteratorOptions,
    PageResult,
    PaginatedIterator,
    PaginationManager,
)
from .utils.http import (
    MetricsCollector,
    RequestExecutor,
    create_limits,
    create_timeout,
    http_client_manager,
)

logger = logging.getLogger(__name__)


class CakemailClient:
    """Authenticated, resilient client for the Cakemail API.

    :param config: Client configuration
    :param http_client: Optional pre-built client whose ``base_url`` points
                        at the API; when omitted one is created and owned
    :param transport: Optional httpx transport for a client created here
    :param metrics: Optional shared metrics collector
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or ClientConfig()
        self._owns_http_client = http_client is None
        if http_client is None:
            http_client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=create_timeout(self.config.timeout),
                limits=create_limits(self.config.max_concurrent_requests * 2),
                transport=transport,
            )
        self.http_client = http_client
        self.credentials = CredentialManager(
            http_client, self.config.username, self.config.password
        )
        self.executor = RequestExecutor(
            self.config, self.credentials, http_client, metrics=metrics
        )
        self._account_id: Optional[int] = None

    async def __aenter__(self) -> "CakemailClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http_client and not self.http_client.is_closed:
            await self.http_client.aclose()

    async def execute(
        self,
        method: str,
        path: str,
        body: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return await self.executor.execute(method, path, body, params, headers)

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.execute("GET", path, params=params)

    # Pagination

    def _page_fetcher(
        self, path: str, params: Optional[Dict[str, Any]]
    ) -> Callable[[Dict[str, Any]], Awaitable[Any]]:
        extra = {k: v for k, v in (params or {}).items() if v is not None}

        async def fetch(page_params: Dict[str, Any]) -> Any:
            return await self.get(path, params={**extra, **page_params})

        return fetch

    async def fetch_paginated(
        self,
        path: str,
        resource: str,
        options: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> PageResult:
        """Fetch one page of ``resource`` at ``path``.

        :param path: Collection path
        :param resource: Name used to look up the pagination configuration
        :param options: ``page``/``per_page`` or ``cursor``/``limit``
        :param params: Additional query parameters (filters, sorting)
        :return: Normalized page
        """
        manager = PaginationManager(resource)
        return await manager.fetch_page(self._page_fetcher(path, params), options)

    def create_iterator(
        self,
        path: str,
        resource: str,
        options: Optional[IteratorOptions] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> PaginatedIterator:
        return PaginatedIterator(
            PaginationManager(resource), self._page_fetcher(path, params), options
        )

    async def get_all_items(
        self,
        path: str,
        resource: str,
        options: Optional[IteratorOptions] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Any]:
        return await self.create_iterator(path, resource, options, params).to_list()

    async def process_batches(
        self,
        path: str,
        resource: str,
        processor: Callable[[List[Any]], Awaitable[None]],
        options: Optional[IteratorOptions] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Feed each page of ``resource`` to ``processor``.

        :return: Number of items processed
        """
        processed = 0
        iterator = self.create_iterator(path, resource, options, params)
        async for batch in iterator.batches():
            await processor(batch)
            processed += len(batch)
        return processed

    # Account

    async def get_current_account_id(self) -> Optional[int]:
        """Return the authenticated account id, cached after the first lookup.

        Lookup failures are logged and reported as ``None``.
        """
        if self._account_id is not None:
            return self._account_id
        try:
            account = await self.get("/accounts/self")
        except CakemailError as e:
            logger.warning("Could not fetch account id: %s", e.message)
            return None
        data = account.get("data") if isinstance(account, dict) else None
        if isinstance(data, dict) and data.get("id") is not None:
            self._account_id = int(data["id"])
        return self._account_id

    async def validate_credentials(self) -> Dict[str, Any]:
        """Check that the configured credentials can reach the account."""
        try:
            account = await self.get("/accounts/self")
        except CakemailError as e:
            return {
                "is_valid": False,
                "status_code": getattr(e, "status_code", None),
                "error": e.message,
            }
        data = account.get("data", {}) if isinstance(account, dict) else {}
        return {
            "is_valid": True,
            "status_code": 200,
            "account": {
                "id": data.get("id"),
                "email": data.get("email"),
                "name": data.get("name"),
            },
        }

    # Diagnostics

    async def health_check(self) -> Dict[str, Any]:
        return await self.executor.health_check()

    def get_diagnostics(self) -> Dict[str, Any]:
        """Snapshot of every resilience component and the token."""
        return {
            "retry_policy": self.executor.get_retry_policy(),
            "circuit_breaker": self.executor.get_circuit_breaker_state(),
            "request_queue": self.executor.get_request_queue_stats(),
            "metrics": self.executor.get_metrics(),
            "token": self.credentials.get_token_status().model_dump(mode="json"),
            "scopes": self.credentials.get_token_scopes(),
        }


_client: Optional[CakemailClient] = None


async def get_cakemail_client() -> CakemailClient:
    """Return the process-wide client built from the environment.

    The underlying HTTP client comes from the shared
    :data:`~cakemail_mcp.utils.http.http_client_manager`.
    """
    global _client
    if _client is None or _client.http_client.is_closed:
        settings = get_settings()
        config = settings.to_client_config()
        http_client = await http_client_manager.get_client(
            config.base_url,
            timeout=config.timeout,
            max_connections=config.max_concurrent_requests * 2,
        )
        _client = CakemailClient(config, http_client=http_client)
        logger.info("Cakemail client created for %s", config.base_url)
    return _client


def reset_cakemail_client() -> None:
    """Forget the process-wide client (used at shutdown and in tests)."""
    global _client
    _client = None
