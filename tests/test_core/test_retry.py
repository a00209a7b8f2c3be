"""Tests for retry utilities."""

import pytest
from unittest.mock import AsyncMock, patch

from apnsender.core.retry import (
    RetryConfig,
    RETRY_STANDARD,
    calculate_delay,
    retry_async,
)


class TestRetryConfig:
    """Tests for RetryConfig class."""

    def test_default_values(self):
        """Config should have sensible defaults."""
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.base_delay == 1.0
        assert config.max_delay == 30.0
        assert config.exponential_base == 2.0
        assert config.jitter is True
        assert config.retryable_exceptions == (Exception,)

    def test_custom_values(self):
        config = RetryConfig(
            max_attempts=5,
            base_delay=0.5,
            max_delay=10.0,
            exponential_base=3.0,
            jitter=False,
            retryable_exceptions=[ValueError, TypeError],
        )
        assert config.max_attempts == 5
        assert config.exponential_base == 3.0
        assert config.retryable_exceptions == (ValueError, TypeError)

    def test_requires_an_attempt(self):
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=0)

    def test_retry_standard(self):
        assert RETRY_STANDARD.max_attempts == 3
        assert RETRY_STANDARD.max_delay == 10.0


class TestCalculateDelay:
    """Tests for backoff delay calculation."""

    def test_exponential_without_jitter(self):
        config = RetryConfig(base_delay=1.0, max_delay=100.0, jitter=False)
        assert [calculate_delay(a, config) for a in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self):
        config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False)
        assert calculate_delay(10, config) == 5.0

    def test_jitter_within_range(self):
        config = RetryConfig(base_delay=4.0, max_delay=100.0, jitter=True)
        for _ in range(50):
            assert 3.0 <= calculate_delay(0, config) <= 5.0


class TestRetryAsync:
    """Tests for retry_async."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        func = AsyncMock(return_value="ok")

        assert await retry_async(func, 1, key="v") == "ok"
        func.assert_awaited_once_with(1, key="v")

    @pytest.mark.asyncio
    async def test_retries_exceptions_then_succeeds(self):
        func = AsyncMock(side_effect=[ConnectionError("down"), "ok"])
        config = RetryConfig(max_attempts=3, jitter=False, retryable_exceptions=(ConnectionError,))

        with patch("apnsender.core.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            assert await retry_async(func, config=config) == "ok"

        assert func.await_count == 2
        sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_reraises_after_last_attempt(self):
        func = AsyncMock(side_effect=ConnectionError("down"))
        config = RetryConfig(max_attempts=2, base_delay=0, jitter=False)

        with pytest.raises(ConnectionError):
            await retry_async(func, config=config)

        assert func.await_count == 2

    @pytest.mark.asyncio
    async def test_non_retryable_exception_propagates(self):
        func = AsyncMock(side_effect=KeyError("nope"))
        config = RetryConfig(max_attempts=3, base_delay=0, retryable_exceptions=(ConnectionError,))

        with pytest.raises(KeyError):
            await retry_async(func, config=config)

        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_on_result(self):
        func = AsyncMock(side_effect=[429, 429, 200])
        config = RetryConfig(max_attempts=4, base_delay=0, jitter=False)

        result = await retry_async(func, config=config, retry_if_result=lambda r: r == 429)

        assert result == 200
        assert func.await_count == 3

    @pytest.mark.asyncio
    async def test_returns_last_result_when_exhausted(self):
        func = AsyncMock(return_value=429)
        config = RetryConfig(max_attempts=3, base_delay=0, jitter=False)

        result = await retry_async(func, config=config, retry_if_result=lambda r: r == 429)

        assert result == 429
        assert func.await_count == 3
