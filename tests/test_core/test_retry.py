"""
Tests for retry logic implementation.
"""
import pytest

from messaging_engine.core.retry import (
    RetryConfig,
    create_async_retry_decorator,
    get_carrier_config_retry_config,
)


class TestRetryConfig:
    """Test retry configuration."""

    def test_default_config(self):
        """Test default configuration values."""
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.base_delay == 1.0
        assert ConnectionError in config.retryable_exceptions
        assert ValueError not in config.retryable_exceptions

    def test_carrier_config_from_settings(self):
        """Test carrier retry config reads settings."""
        config = get_carrier_config_retry_config()
        assert config.max_attempts >= 1
        assert config.max_delay >= config.base_delay


class TestAsyncRetryDecorator:
    """Test async retry decorator."""

    @pytest.mark.asyncio
    async def test_retries_transport_errors_until_success(self):
        """Test transient connection errors are retried."""
        call_count = 0

        @create_async_retry_decorator(RetryConfig(max_attempts=3, base_delay=0.001, max_delay=0.01))
        async def flaky():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ConnectionError("Temporary failure")
            return "ok"

        assert await flaky() == "ok"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        """Test the last exception is re-raised."""
        call_count = 0

        @create_async_retry_decorator(RetryConfig(max_attempts=2, base_delay=0.001, max_delay=0.01))
        async def always_fails():
            nonlocal call_count
            call_count += 1
            raise ConnectionError("Permanent failure")

        with pytest.raises(ConnectionError):
            await always_fails()
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_non_transport_errors_not_retried(self):
        """Test other exceptions fail immediately."""
        call_count = 0

        @create_async_retry_decorator(RetryConfig(max_attempts=3, base_delay=0.001, max_delay=0.01))
        async def bad_request():
            nonlocal call_count
            call_count += 1
            raise ValueError("Rejected")

        with pytest.raises(ValueError):
            await bad_request()
        assert call_count == 1
