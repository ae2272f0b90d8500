"""Resilient request execution for the Cakemail API.

Every outbound call goes through the same pipeline::

    request queue -> circuit breaker -> retry manager
        -> (per attempt) rate limiter -> credential -> HTTP call -> classification

The rate limiter and circuit breaker are optional stages: when disabled in
the configuration they are simply absent and the pipeline skips them.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ...auth.credentials import CredentialManager, parse_error_body
from ...exceptions import (
    AuthenticationError,
    CakemailError,
    InvalidResponseError,
    NetworkError,
    RequestTimeoutError,
    create_api_error,
)
from ...models import ClientConfig, Credential
from .circuit_breaker import CircuitBreaker
from .metrics import MetricsCollector
from .rate_limiter import TokenBucket
from .request_queue import RequestQueue
from .retry import RetryManager, RetryPolicy, is_retryable_error, parse_retry_after

logger = logging.getLogger(__name__)

HEALTH_CHECK_PATH = "/accounts/self"


class RequestExecutor:
    """Turn ``execute(method, path, body)`` into a bounded, retried HTTP call.

    :param config: Client configuration
    :param credentials: Credential lifecycle manager
    :param http_client: Client with ``base_url`` set to the API root
    :param metrics: Optional metrics collector shared by all stages
    """

    def __init__(
        self,
        config: ClientConfig,
        credentials: CredentialManager,
        http_client: httpx.AsyncClient,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config
        self.timeout = config.timeout
        self.credentials = credentials
        self.metrics = metrics or MetricsCollector()
        self._http = http_client

        self.retry_manager = RetryManager(
            RetryPolicy.from_config(config.retry), metrics=self.metrics
        )
        self.request_queue = RequestQueue(
            config.max_concurrent_requests, metrics=self.metrics
        )

        self.rate_limiter: Optional[TokenBucket] = None
        if config.rate_limit.enabled:
            self.rate_limiter = TokenBucket(
                capacity=config.rate_limit.capacity,
                refill_rate=config.rate_limit.refill_rate,
                metrics=self.metrics,
            )

        self.circuit_breaker: Optional[CircuitBreaker] = None
        if config.circuit_breaker.enabled:
            self.circuit_breaker = CircuitBreaker(
                failure_threshold=config.circuit_breaker.failure_threshold,
                reset_timeout=config.circuit_breaker.reset_timeout,
                failure_predicate=is_retryable_error,
                metrics=self.metrics,
            )

        logger.info(
            "RequestExecutor initialized: rate_limiting=%s, circuit_breaker=%s, "
            "max_concurrent=%d, timeout=%.1fs",
            self.rate_limiter is not None,
            self.circuit_breaker is not None,
            config.max_concurrent_requests,
            self.timeout,
        )

    async def execute(
        self,
        method: str,
        path: str,
        body: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Perform one logical API call.

        :param method: HTTP method
        :param path: Path relative to the API base URL
        :param body: Optional JSON body
        :param params: Optional query parameters
        :param headers: Optional extra headers
        :return: Parsed JSON, or ``{"success": True, "status": code}`` for
                 bodiless responses
        :raises CakemailError: Structured error once retries are exhausted
        """
        method = method.upper()
        label = f"{method} {path}"

        async def attempt() -> Any:
            return await self._attempt(method, path, body, params, headers, label)

        async def run() -> Any:
            if self.circuit_breaker is not None:
                return await self.circuit_breaker.execute(
                    lambda: self.retry_manager.execute_with_retry(attempt, label),
                    label,
                )
            return await self.retry_manager.execute_with_retry(attempt, label)

        return await self.request_queue.add(run)

    async def _attempt(
        self,
        method: str,
        path: str,
        body: Optional[Any],
        params: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
        label: str,
    ) -> Any:
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

        credential = await self.credentials.ensure_valid()
        response = await self._send(method, path, body, params, headers, credential, label)

        if response.status_code == 401:
            logger.info("%s answered 401, re-authenticating once", label)
            self.credentials.invalidate(credential.access_token)
            credential = await self.credentials.ensure_valid()
            response = await self._send(method, path, body, params, headers, credential, label)
            if response.status_code == 401:
                raise AuthenticationError(
                    f"Request to {label} rejected after re-authentication",
                    response_body=parse_error_body(response),
                    status_code=401,
                )

        return self._handle_response(response, label)

    async def _send(
        self,
        method: str,
        path: str,
        body: Optional[Any],
        params: Optional[Dict[str, Any]],
        extra_headers: Optional[Dict[str, str]],
        credential: Credential,
        label: str,
    ) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {credential.access_token}",
            "Accept": "application/json",
        }
        if extra_headers:
            headers.update(extra_headers)

        logger.debug("[Cakemail API] %s params=%s", label, params)

        try:
            return await asyncio.wait_for(
                self._http.request(
                    method,
                    path,
                    json=body,
                    params=params,
                    headers=headers,
                ),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise RequestTimeoutError(
                f"Request to {label} timed out after {self.timeout}s",
                endpoint=label,
                timeout=self.timeout,
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(
                f"Network error on {label}: {e}", endpoint=label, original_error=e
            ) from e

    def _handle_response(self, response: httpx.Response, label: str) -> Any:
        if not response.is_success:
            body = parse_error_body(response)
            logger.debug(
                "[Cakemail API] %s -> %d %s", label, response.status_code, body
            )
            raise create_api_error(
                response.status_code,
                body,
                endpoint=label,
                reason=response.reason_phrase,
                retry_after=parse_retry_after(response.headers.get("retry-after")),
            )

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type and response.content:
            try:
                return response.json()
            except ValueError as e:
                raise InvalidResponseError(
                    f"Malformed JSON in {response.status_code} response to {label}: {e}",
                    status_code=response.status_code,
                    response_body=response.text[:500],
                    endpoint=label,
                ) from e
        return {"success": True, "status": response.status_code}

    # Diagnostics

    def get_retry_policy(self) -> Dict[str, Any]:
        return self.retry_manager.get_policy().as_dict()

    def update_retry_policy(self, **changes: Any) -> Dict[str, Any]:
        return self.retry_manager.update_policy(**changes).as_dict()

    def get_circuit_breaker_state(self) -> Optional[Dict[str, Any]]:
        return self.circuit_breaker.get_state() if self.circuit_breaker else None

    def get_request_queue_stats(self) -> Dict[str, int]:
        return self.request_queue.get_stats().model_dump()

    def get_metrics(self) -> Dict[str, Any]:
        return self.metrics.get_metrics()

    def _components(self) -> Dict[str, Any]:
        return {
            "retry": self.get_retry_policy(),
            "rate_limiter": self.rate_limiter.get_state() if self.rate_limiter else "disabled",
            "circuit_breaker": self.get_circuit_breaker_state() or "disabled",
            "request_queue": self.get_request_queue_stats(),
            "timeout": self.timeout,
        }

    async def health_check(self) -> Dict[str, Any]:
        """Perform one authenticated call and report composite status.

        Never raises; failures are reported in the returned mapping.
        """
        try:
            account = await self.execute("GET", HEALTH_CHECK_PATH)
        except CakemailError as e:
            status_code = getattr(e, "status_code", None)
            return {
                "status": "unhealthy",
                "error": e.message,
                "error_type": type(e).__name__,
                "status_code": status_code,
                "authenticated": not isinstance(e, AuthenticationError)
                and status_code != 401,
                "components": self._components(),
            }

        data = account.get("data") if isinstance(account, dict) else None
        return {
            "status": "healthy",
            "authenticated": True,
            "account_id": data.get("id") if isinstance(data, dict) else None,
            "components": self._components(),
        }
