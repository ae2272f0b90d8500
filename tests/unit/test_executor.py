"""Tests for the request executor pipeline."""

import asyncio
import json

import httpx
import pytest

from cakemail_mcp.auth.credentials import CredentialManager
from cakemail_mcp.exceptions import (
    ApiValidationError,
    AuthenticationError,
    CircuitOpenError,
    InvalidResponseError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
)
from cakemail_mcp.models import (
    CircuitBreakerConfig,
    ClientConfig,
    RateLimitConfig,
    RetryConfig,
)
from cakemail_mcp.utils.http.circuit_breaker import CircuitState
from cakemail_mcp.utils.http.executor import RequestExecutor

BASE_URL = "https://api.cakemail.test"


class FakeApi:
    """Mock transport handler: issues tokens and replays scripted responses."""

    def __init__(self):
        self.responses = {}
        self.requests = []
        self.tokens_issued = 0

    def script(self, method, path, *responses):
        self.responses.setdefault((method, path), []).extend(responses)

    def api_requests(self):
        return [r for r in self.requests if r.url.path != "/token"]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/token":
            self.tokens_issued += 1
            return httpx.Response(
                200,
                json={
                    "access_token": f"token-{self.tokens_issued}",
                    "refresh_token": "refresh",
                    "expires_in": 3600,
                },
            )
        queue = self.responses.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"detail": "Not Found"})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response


def fast_config(**overrides):
    values = dict(
        base_url=BASE_URL,
        username="user",
        password="secret",
        timeout=1.0,
        retry=RetryConfig(max_attempts=3, base_delay=0.001, max_delay=0.01, jitter=0),
        rate_limit=RateLimitConfig(enabled=False),
    )
    values.update(overrides)
    return ClientConfig(**values)


@pytest.fixture
def api():
    return FakeApi()


def make_executor(api, **overrides):
    config = fast_config(**overrides)
    http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(api))
    credentials = CredentialManager(http, config.username, config.password)
    return RequestExecutor(config, credentials, http)


class TestExecute:
    """Test the happy path and response handling."""

    @pytest.mark.asyncio
    async def test_json_response_with_bearer_token(self, api):
        api.script("GET", "/campaigns", httpx.Response(200, json={"data": [{"id": 1}]}))
        executor = make_executor(api)

        result = await executor.execute("get", "/campaigns", params={"page": 1})

        assert result == {"data": [{"id": 1}]}
        request = api.api_requests()[0]
        assert request.headers["Authorization"] == "Bearer token-1"
        assert request.headers["Accept"] == "application/json"
        assert request.url.params["page"] == "1"

    @pytest.mark.asyncio
    async def test_json_body_is_sent(self, api):
        api.script("POST", "/lists", httpx.Response(201, json={"data": {"id": 7}}))
        executor = make_executor(api)

        await executor.execute("POST", "/lists", body={"name": "Newsletter"})

        request = api.api_requests()[0]
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {"name": "Newsletter"}

    @pytest.mark.asyncio
    async def test_empty_response(self, api):
        api.script("DELETE", "/campaigns/5", httpx.Response(204))
        executor = make_executor(api)

        assert await executor.execute("DELETE", "/campaigns/5") == {
            "success": True,
            "status": 204,
        }

    @pytest.mark.asyncio
    async def test_malformed_json_is_structured_error(self, api):
        api.script(
            "GET",
            "/lists",
            httpx.Response(
                200, content=b"{not json", headers={"content-type": "application/json"}
            ),
        )
        executor = make_executor(api)

        with pytest.raises(InvalidResponseError) as exc_info:
            await executor.execute("GET", "/lists")

        error = exc_info.value
        assert error.code == "INVALID_RESPONSE"
        assert error.status_code == 200
        assert error.endpoint == "GET /lists"
        assert error.response_body == "{not json"
        assert len(api.api_requests()) == 1

    @pytest.mark.asyncio
    async def test_disabled_components_are_absent(self, api):
        executor = make_executor(api)

        assert executor.rate_limiter is None
        assert executor.circuit_breaker is None
        assert executor.get_circuit_breaker_state() is None


class TestErrors:
    """Test error classification and retry integration."""

    @pytest.mark.asyncio
    async def test_retries_server_errors_then_succeeds(self, api):
        api.script(
            "GET",
            "/lists",
            httpx.Response(503, json={"detail": "busy"}),
            httpx.Response(500, text="oops"),
            httpx.Response(200, json={"data": []}),
        )
        executor = make_executor(api)

        assert await executor.execute("GET", "/lists") == {"data": []}
        assert len(api.api_requests()) == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_surface_structured_error(self, api):
        api.script("GET", "/lists", httpx.Response(502, json={"message": "bad gateway"}))
        executor = make_executor(api)

        with pytest.raises(ServerError) as exc_info:
            await executor.execute("GET", "/lists")

        error = exc_info.value
        assert error.status_code == 502
        assert error.endpoint == "GET /lists"
        assert error.details["attempts"] == 3
        assert error.response_body == {"message": "bad gateway"}
        assert "bad gateway" in error.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error_class",
        [(400, ApiValidationError), (422, ApiValidationError), (404, NotFoundError)],
    )
    async def test_client_errors_are_not_retried(self, api, status, error_class):
        api.script("GET", "/contacts", httpx.Response(status, json={"detail": "no"}))
        executor = make_executor(api)

        with pytest.raises(error_class):
            await executor.execute("GET", "/contacts")

        assert len(api.api_requests()) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_error_carries_retry_after(self, api):
        api.script(
            "GET",
            "/senders",
            httpx.Response(429, headers={"Retry-After": "0"}, json={"detail": "slow"}),
        )
        executor = make_executor(api)

        with pytest.raises(RateLimitError) as exc_info:
            await executor.execute("GET", "/senders")

        assert exc_info.value.retry_after == 0
        assert len(api.api_requests()) == 3

    @pytest.mark.asyncio
    async def test_transport_failure_is_network_error(self, api):
        api.script("GET", "/lists", httpx.ConnectError("refused"))
        executor = make_executor(api)

        with pytest.raises(NetworkError) as exc_info:
            await executor.execute("GET", "/lists")

        assert exc_info.value.attempts == 3

    @pytest.mark.asyncio
    async def test_timeout_is_request_timeout_error(self, api):
        executor = make_executor(
            api,
            timeout=0.05,
            retry=RetryConfig(max_attempts=1, base_delay=0, max_delay=0, jitter=0),
        )
        await executor.credentials.ensure_valid()

        async def hang(*args, **kwargs):
            await asyncio.sleep(1)

        executor._http.request = hang

        with pytest.raises(RequestTimeoutError) as exc_info:
            await executor.execute("GET", "/lists")

        assert exc_info.value.timeout == 0.05


class TestReauthentication:
    """Test the single transparent re-authentication on 401."""

    @pytest.mark.asyncio
    async def test_concurrent_401s_share_one_reauthentication(self):
        """A late 401 for the old token must not discard the fresh credential."""
        tokens_issued = 0
        reauthenticated = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal tokens_issued
            if request.url.path == "/token":
                tokens_issued += 1
                return httpx.Response(
                    200,
                    json={"access_token": f"token-{tokens_issued}", "expires_in": 3600},
                )
            stale = request.headers["Authorization"] == "Bearer token-1"
            if request.url.path == "/a":
                if stale:
                    return httpx.Response(401, json={"detail": "expired"})
                reauthenticated.set()
                return httpx.Response(200, json={"data": "a"})
            if stale:
                await reauthenticated.wait()
                return httpx.Response(401, json={"detail": "expired"})
            return httpx.Response(200, json={"data": "b"})

        executor = make_executor(handler)
        await executor.credentials.ensure_valid()

        results = await asyncio.gather(
            executor.execute("GET", "/a"), executor.execute("GET", "/b")
        )

        assert results == [{"data": "a"}, {"data": "b"}]
        assert tokens_issued == 2
        assert executor.credentials.credential.access_token == "token-2"

    @pytest.mark.asyncio
    async def test_401_reauthenticates_once(self, api):
        api.script(
            "GET",
            "/accounts/self",
            httpx.Response(401, json={"detail": "expired"}),
            httpx.Response(200, json={"data": {"id": 42}}),
        )
        executor = make_executor(api)

        assert await executor.execute("GET", "/accounts/self") == {"data": {"id": 42}}

        calls = api.api_requests()
        assert [r.headers["Authorization"] for r in calls] == [
            "Bearer token-1",
            "Bearer token-2",
        ]

    @pytest.mark.asyncio
    async def test_second_401_raises_authentication_error(self, api):
        api.script("GET", "/accounts/self", httpx.Response(401, json={"detail": "no"}))
        executor = make_executor(api)

        with pytest.raises(AuthenticationError) as exc_info:
            await executor.execute("GET", "/accounts/self")

        assert exc_info.value.status_code == 401
        assert len(api.api_requests()) == 2


class TestComposition:
    """Test optional stages and diagnostics."""

    @pytest.mark.asyncio
    async def test_circuit_opens_and_fails_fast(self, api):
        api.script("GET", "/lists", httpx.Response(500, json={"detail": "down"}))
        executor = make_executor(
            api,
            retry=RetryConfig(max_attempts=1, base_delay=0, max_delay=0, jitter=0),
            circuit_breaker=CircuitBreakerConfig(
                enabled=True, failure_threshold=2, reset_timeout=60
            ),
        )

        for _ in range(2):
            with pytest.raises(ServerError):
                await executor.execute("GET", "/lists")

        with pytest.raises(CircuitOpenError):
            await executor.execute("GET", "/lists")

        assert len(api.api_requests()) == 2
        assert executor.get_circuit_breaker_state()["state"] == CircuitState.OPEN.value

    @pytest.mark.asyncio
    async def test_rate_limiter_is_consulted(self, api):
        api.script("GET", "/lists", httpx.Response(200, json={"data": []}))
        executor = make_executor(
            api, rate_limit=RateLimitConfig(enabled=True, capacity=5, refill_rate=1)
        )

        await executor.execute("GET", "/lists")

        assert executor.rate_limiter.tokens == pytest.approx(4, abs=0.01)

    @pytest.mark.asyncio
    async def test_update_retry_policy(self, api):
        executor = make_executor(api)

        policy = executor.update_retry_policy(max_attempts=5)

        assert policy["max_attempts"] == 5
        assert executor.get_retry_policy()["max_attempts"] == 5

    @pytest.mark.asyncio
    async def test_health_check_healthy(self, api):
        api.script("GET", "/accounts/self", httpx.Response(200, json={"data": {"id": 42}}))
        executor = make_executor(api)

        health = await executor.health_check()

        assert health["status"] == "healthy"
        assert health["account_id"] == 42
        assert health["components"]["rate_limiter"] == "disabled"
        assert health["components"]["request_queue"]["max_concurrent"] == 10

    @pytest.mark.asyncio
    async def test_health_check_unhealthy_does_not_raise(self, api):
        api.script("GET", "/accounts/self", httpx.Response(403, json={"detail": "forbidden"}))
        executor = make_executor(api)

        health = await executor.health_check()

        assert health["status"] == "unhealthy"
        assert health["status_code"] == 403
        assert health["error_type"] == "ApiError"
