"""
Unit tests for shared utilities.
"""

import pytest
from unittest.mock import AsyncMock

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException, CircuitBreakerState
from shared.config import CacheSettings, get_settings
from shared.errors import CacheConfigurationError, ExternalServiceError, LoaderError
from shared.logging import add_correlation_context, corporation_context, corporation_id_var
from shared.retry import RetryConfig, RetryError, _calculate_delay, retry_on_exception


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestRetry:
    """Test cases for retry_on_exception."""

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self):
        """The call is repeated until it succeeds."""
        func = AsyncMock(side_effect=[ConnectionError("down"), ["ok"]])
        func.__name__ = "load"
        wrapped = retry_on_exception((ConnectionError,), RetryConfig(max_attempts=3, base_delay=0.0, jitter=False))(func)

        assert await wrapped() == ["ok"]
        assert func.call_count == 2

    @pytest.mark.asyncio
    async def test_exhaustion_raises_retry_error(self):
        """RetryError keeps the last exception and its payload."""
        error = ExternalServiceError("resource_api", data={"statusMessage": "busy"})
        func = AsyncMock(side_effect=error)
        func.__name__ = "load"
        wrapped = retry_on_exception((ExternalServiceError,), RetryConfig(max_attempts=2, base_delay=0.0, jitter=False))(func)

        with pytest.raises(RetryError) as exc_info:
            await wrapped()

        assert exc_info.value.attempts == 2
        assert exc_info.value.last_exception is error
        assert exc_info.value.data == {"statusMessage": "busy"}

    @pytest.mark.asyncio
    async def test_other_exceptions_are_not_retried(self):
        """Exceptions outside the tuple propagate at once."""
        func = AsyncMock(side_effect=KeyError("nope"))
        func.__name__ = "load"
        wrapped = retry_on_exception((ConnectionError,), RetryConfig(max_attempts=3, base_delay=0.0))(func)

        with pytest.raises(KeyError):
            await wrapped()
        assert func.call_count == 1

    def test_delay_strategies(self):
        """Backoff strategies and the max delay cap."""
        exponential = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False)
        assert _calculate_delay(1, exponential) == 1.0
        assert _calculate_delay(3, exponential) == 4.0
        assert _calculate_delay(10, exponential) == 5.0

        linear = RetryConfig(base_delay=0.5, jitter=False, backoff_strategy="linear")
        assert _calculate_delay(3, linear) == 1.5

        fixed = RetryConfig(base_delay=2.0, jitter=False, backoff_strategy="fixed")
        assert _calculate_delay(4, fixed) == 2.0

    def test_jitter_stays_within_ten_percent(self):
        """Jitter moves the delay by at most 10%."""
        config = RetryConfig(base_delay=1.0, jitter=True)
        for _ in range(20):
            assert 0.9 <= _calculate_delay(1, config) <= 1.1


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    @pytest.mark.asyncio
    async def test_opens_and_recovers(self):
        """The breaker opens at the threshold and closes after a good half-open call."""
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=10.0, expected_exception=ValueError, name="t", clock=clock)
        failing = AsyncMock(side_effect=ValueError("bad"))
        working = AsyncMock(return_value="ok")

        for _ in range(2):
            with pytest.raises(ValueError):
                await breaker.call(failing)
        assert breaker.is_open()

        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(working)
        assert working.call_count == 0

        clock.now += 10.0
        assert await breaker.call(working) == "ok"
        assert breaker.get_state()["state"] == CircuitBreakerState.CLOSED.value
        assert breaker.get_state()["failure_count"] == 0

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self):
        """A failing trial call opens the breaker again."""
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=5.0, expected_exception=ValueError, name="t", clock=clock)
        failing = AsyncMock(side_effect=ValueError("bad"))

        with pytest.raises(ValueError):
            await breaker.call(failing)
        clock.now += 5.0
        with pytest.raises(ValueError):
            await breaker.call(failing)

        assert breaker.is_open()

    @pytest.mark.asyncio
    async def test_unexpected_exceptions_do_not_count(self):
        """Only expected exceptions count as failures."""
        breaker = CircuitBreaker(failure_threshold=1, expected_exception=ValueError, name="t")

        with pytest.raises(KeyError):
            await breaker.call(AsyncMock(side_effect=KeyError("x")))

        assert not breaker.is_open()


class TestConfig:
    """Test cases for CacheSettings."""

    def test_defaults(self):
        """Defaults keep the shared in-flight behaviour and last-write-wins."""
        settings = CacheSettings()

        assert settings.share_inflight is True
        assert settings.discard_stale is False
        assert settings.retry_max_attempts == 3

    def test_environment_overrides(self, monkeypatch):
        """RESOURCE_CACHE_* variables override defaults."""
        monkeypatch.setenv("RESOURCE_CACHE_API_BASE_URL", "https://erp.example.com")
        monkeypatch.setenv("RESOURCE_CACHE_SHARE_INFLIGHT", "false")
        monkeypatch.setenv("RESOURCE_CACHE_REQUEST_TIMEOUT", "2.5")

        settings = CacheSettings()

        assert settings.api_base_url == "https://erp.example.com"
        assert settings.share_inflight is False
        assert settings.request_timeout == 2.5

    def test_get_settings_is_cached(self):
        """get_settings() returns one instance per process."""
        get_settings.cache_clear()
        assert get_settings() is get_settings()
        get_settings.cache_clear()


class TestErrors:
    """Test cases for error types."""

    def test_to_response(self):
        """Exceptions serialize to ErrorResponse."""
        response = CacheConfigurationError("no loader", details={"cache": "projects"}).to_response()

        assert response.code == "CACHE_CONFIGURATION_ERROR"
        assert response.message == "no loader"
        assert response.details == {"cache": "projects"}

    def test_external_service_error(self):
        """ExternalServiceError prefixes the service and keeps the payload."""
        error = ExternalServiceError("resource_api", "Unexpected status 500", data={"statusMessage": "down"})

        assert error.message == "resource_api: Unexpected status 500"
        assert error.data == {"statusMessage": "down"}
        assert error.code == "EXTERNAL_SERVICE_ERROR"

    def test_loader_error_defaults(self):
        """LoaderError has a default message."""
        assert LoaderError().message == "Loader failed"


class TestLogging:
    """Test cases for correlation context."""

    def test_corporation_context(self):
        """The corporation id is added to log events inside the block."""
        with corporation_context("c1"):
            event = add_correlation_context(None, "info", {"event": "Loading resource"})

        assert event["corporation_id"] == "c1"
        assert corporation_id_var.get() is None

    def test_numeric_ids_are_stringified(self):
        """Integer ids are logged as strings."""
        with corporation_context(42):
            assert add_correlation_context(None, "info", {})["corporation_id"] == "42"

    def test_no_context_adds_nothing(self):
        """Outside a block, or with no id, no extra keys are added."""
        assert add_correlation_context(None, "info", {"event": "x"}) == {"event": "x"}
        with corporation_context(None):
            assert add_correlation_context(None, "info", {"event": "x"}) == {"event": "x"}
