"""Tests for retry classification, backoff and the retry manager."""

from email.utils import formatdate
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from cakemail_mcp.exceptions import (
    ApiValidationError,
    AuthenticationError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
)
from cakemail_mcp.utils.http.metrics import MetricsCollector
from cakemail_mcp.utils.http.retry import (
    RetryManager,
    RetryPolicy,
    is_retryable_error,
    parse_retry_after,
    should_retry_status,
)


class TestClassification:
    """Test which failures are transient."""

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable_statuses(self, status):
        assert should_retry_status(status)

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_permanent_statuses(self, status):
        assert not should_retry_status(status)

    def test_error_classes(self):
        assert is_retryable_error(NetworkError("down"))
        assert is_retryable_error(RequestTimeoutError("slow", timeout=1.0))
        assert is_retryable_error(ServerError("boom", status_code=503))
        assert is_retryable_error(RateLimitError("slow down"))
        assert not is_retryable_error(NotFoundError("missing", status_code=404))
        assert not is_retryable_error(ApiValidationError("bad", status_code=400))
        assert not is_retryable_error(AuthenticationError("nope"))
        assert not is_retryable_error(ValueError("other"))


class TestParseRetryAfter:
    """Test Retry-After header parsing."""

    def test_delta_seconds(self):
        assert parse_retry_after("120") == 120.0

    def test_missing(self):
        assert parse_retry_after(None) is None
        assert parse_retry_after("") is None

    def test_http_date(self):
        future = formatdate(time.time() + 60, usegmt=True)
        delay = parse_retry_after(future)
        assert 55 <= delay <= 61

    def test_garbage(self):
        assert parse_retry_after("soon") is None


class TestRetryPolicy:
    """Test backoff computation."""

    def test_backoff_without_jitter_doubles(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=30.0, jitter=0)
        assert [policy.backoff(n) for n in range(2, 7)] == [1, 2, 4, 8, 16]

    def test_backoff_is_capped(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0, jitter=0.5)
        assert all(policy.backoff(n) <= 5.0 for n in range(2, 20))

    def test_backoff_with_jitter_never_decreases(self):
        policy = RetryPolicy(max_attempts=10, base_delay=0.5, max_delay=60.0, jitter=0.9)
        for _ in range(50):
            delays = [policy.backoff(n) for n in range(2, 10)]
            assert delays == sorted(delays)


class TestRetryManager:
    """Test the retry loop."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self, recorded_sleep):
        operation = AsyncMock(
            side_effect=[ServerError("boom", status_code=503), NetworkError("reset"), "done"]
        )
        manager = RetryManager(
            RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=30.0, jitter=0.25),
            sleep=recorded_sleep,
        )

        assert await manager.execute_with_retry(operation, "GET /campaigns") == "done"
        assert operation.call_count == 3
        assert len(recorded_sleep.delays) == 2
        first, second = recorded_sleep.delays
        assert 1.0 <= first <= 1.25
        assert 2.0 <= second <= 2.5
        assert second >= first

    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(self, recorded_sleep):
        error = NotFoundError("missing", status_code=404)
        operation = AsyncMock(side_effect=error)
        manager = RetryManager(RetryPolicy(max_attempts=5), sleep=recorded_sleep)

        with pytest.raises(NotFoundError) as exc_info:
            await manager.execute_with_retry(operation)

        assert operation.call_count == 1
        assert recorded_sleep.delays == []
        assert exc_info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error_with_attempts(self, recorded_sleep):
        errors = [ServerError(f"boom {n}", status_code=500) for n in range(3)]
        operation = AsyncMock(side_effect=errors)
        manager = RetryManager(RetryPolicy(max_attempts=3, jitter=0), sleep=recorded_sleep)

        with pytest.raises(ServerError) as exc_info:
            await manager.execute_with_retry(operation, "GET /lists")

        assert exc_info.value is errors[-1]
        assert exc_info.value.attempts == 3
        assert exc_info.value.details["attempts"] == 3
        assert recorded_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_retry_after_extends_delay(self, recorded_sleep):
        operation = AsyncMock(side_effect=[RateLimitError("slow", retry_after=7), "ok"])
        manager = RetryManager(
            RetryPolicy(base_delay=1.0, max_delay=30.0, jitter=0), sleep=recorded_sleep
        )

        assert await manager.execute_with_retry(operation) == "ok"
        assert recorded_sleep.delays == [7.0]

    @pytest.mark.asyncio
    async def test_retry_after_is_capped_by_max_delay(self, recorded_sleep):
        operation = AsyncMock(side_effect=[RateLimitError("slow", retry_after=600), "ok"])
        manager = RetryManager(
            RetryPolicy(base_delay=1.0, max_delay=10.0, jitter=0), sleep=recorded_sleep
        )

        await manager.execute_with_retry(operation)
        assert recorded_sleep.delays == [10.0]

    @pytest.mark.asyncio
    async def test_on_retry_hook_and_metrics(self, recorded_sleep):
        metrics = MetricsCollector()
        hook = MagicMock()
        operation = AsyncMock(side_effect=[RateLimitError("slow"), "ok"])
        manager = RetryManager(
            RetryPolicy(jitter=0), metrics=metrics, sleep=recorded_sleep, on_retry=hook
        )

        await manager.execute_with_retry(operation, "GET /senders")

        hook.assert_called_once()
        error, attempt, delay = hook.call_args.args
        assert isinstance(error, RateLimitError)
        assert (attempt, delay) == (1, 1.0)
        counters = metrics.get_metrics()["counters"]
        assert counters["throttles_total.GET /senders"] == 1
        assert counters["retry_attempts_total.GET /senders"] == 1
        assert counters["success_after_retry.GET /senders"] == 1

    @pytest.mark.asyncio
    async def test_update_policy_replaces_snapshot(self, recorded_sleep):
        manager = RetryManager(RetryPolicy(max_attempts=3), sleep=recorded_sleep)
        original = manager.get_policy()

        updated = manager.update_policy(max_attempts=1)

        assert original.max_attempts == 3
        assert updated.max_attempts == 1
        operation = AsyncMock(side_effect=NetworkError("down"))
        with pytest.raises(NetworkError):
            await manager.execute_with_retry(operation)
        assert operation.call_count == 1
