"""
Tests for circuit breaker implementation.
"""
import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from smswallet.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    ServiceClient,
)
from smswallet.core.exceptions import (
    ExternalServiceAuthenticationError,
    ExternalServiceConnectionError,
    ExternalServiceError,
    ExternalServiceRateLimitError,
    ExternalServiceTimeoutError,
    ServiceUnavailableError,
)
from smswallet.core.retry import RetryConfig


class TestCircuitBreakerConfig:
    """Test circuit breaker configuration."""

    def test_default_config(self):
        """Test default configuration values."""
        config = CircuitBreakerConfig()
        assert config.failure_threshold == 5
        assert config.success_threshold == 3
        assert config.timeout == 60
        assert config.half_open_max_calls == 5

    def test_custom_config(self):
        config = CircuitBreakerConfig(
            failure_threshold=10,
            success_threshold=5,
            timeout=120,
            half_open_max_calls=3,
        )
        assert config.failure_threshold == 10
        assert config.success_threshold == 5
        assert config.timeout == 120
        assert config.half_open_max_calls == 3


class TestCircuitBreaker:
    """Test circuit breaker functionality."""

    @pytest.fixture
    def circuit_breaker(self):
        """Create a circuit breaker for testing."""
        config = CircuitBreakerConfig(
            failure_threshold=3,
            success_threshold=2,
            timeout=60,
        )
        return CircuitBreaker("Test Service", config)

    @pytest.fixture
    def failing_function(self):
        async def fail_func():
            raise ExternalServiceError("Test Service", "Service unavailable")
        return fail_func

    @pytest.fixture
    def successful_function(self):
        async def success_func():
            return {"data": "success"}
        return success_func

    async def _open(self, circuit_breaker, failing_function):
        for _ in range(3):
            with pytest.raises(ExternalServiceError):
                await circuit_breaker.call_async(failing_function)

    def _expire_timeout(self, circuit_breaker):
        # Pretend the open timeout has elapsed
        circuit_breaker.last_failure_time -= circuit_breaker.config.timeout + 1

    def test_initial_closed_state(self, circuit_breaker):
        assert circuit_breaker.state == CircuitState.CLOSED
        assert circuit_breaker.failure_count == 0
        assert circuit_breaker.success_count == 0

    @pytest.mark.asyncio
    async def test_successful_call_resets_failure_count(self, circuit_breaker, successful_function, failing_function):
        """Test successful calls reset failure count."""
        for _ in range(2):
            with pytest.raises(ExternalServiceError):
                await circuit_breaker.call_async(failing_function)
        assert circuit_breaker.failure_count == 2

        result = await circuit_breaker.call_async(successful_function)

        assert result == {"data": "success"}
        assert circuit_breaker.failure_count == 0
        assert circuit_breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_circuit_opens_after_failure_threshold(self, circuit_breaker, failing_function):
        await self._open(circuit_breaker, failing_function)

        assert circuit_breaker.state == CircuitState.OPEN
        assert circuit_breaker.failure_count == 3

        # Rejected without calling the function
        with pytest.raises(ServiceUnavailableError):
            await circuit_breaker.call_async(failing_function)
        assert circuit_breaker.metrics.total_calls == 3

    @pytest.mark.asyncio
    async def test_circuit_closes_after_success_threshold(self, circuit_breaker, successful_function, failing_function):
        """Test circuit goes half-open after the timeout and closes on successes."""
        await self._open(circuit_breaker, failing_function)
        self._expire_timeout(circuit_breaker)

        await circuit_breaker.call_async(successful_function)
        assert circuit_breaker.state == CircuitState.HALF_OPEN
        assert circuit_breaker.half_open_calls == 1

        await circuit_breaker.call_async(successful_function)
        assert circuit_breaker.state == CircuitState.CLOSED
        assert circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_failure_in_half_open_reopens(self, circuit_breaker, successful_function, failing_function):
        await self._open(circuit_breaker, failing_function)
        self._expire_timeout(circuit_breaker)

        await circuit_breaker.call_async(successful_function)
        with pytest.raises(ExternalServiceError):
            await circuit_breaker.call_async(failing_function)

        assert circuit_breaker.state == CircuitState.OPEN
        assert circuit_breaker.metrics.circuit_open_count == 2

    @pytest.mark.asyncio
    async def test_half_open_max_calls_limit(self, failing_function, successful_function):
        circuit_breaker = CircuitBreaker(
            "Test Service",
            CircuitBreakerConfig(failure_threshold=1, success_threshold=5, timeout=60, half_open_max_calls=1),
        )
        with pytest.raises(ExternalServiceError):
            await circuit_breaker.call_async(failing_function)
        self._expire_timeout(circuit_breaker)

        await circuit_breaker.call_async(successful_function)

        with pytest.raises(ServiceUnavailableError):
            await circuit_breaker.call_async(successful_function)
        assert circuit_breaker.state == CircuitState.HALF_OPEN

    @pytest.mark.asyncio
    async def test_decorator(self, circuit_breaker):
        @circuit_breaker
        async def add(a, b):
            return a + b

        assert await add(1, 2) == 3
        assert circuit_breaker.metrics.successful_calls == 1

    @pytest.mark.asyncio
    async def test_metrics_tracking(self, circuit_breaker, successful_function, failing_function):
        for _ in range(3):
            await circuit_breaker.call_async(successful_function)
        for _ in range(2):
            with pytest.raises(ExternalServiceError):
                await circuit_breaker.call_async(failing_function)

        metrics = circuit_breaker.metrics
        assert metrics.total_calls == 5
        assert metrics.successful_calls == 3
        assert metrics.failed_calls == 2
        assert metrics.failure_rate == pytest.approx(0.4)
        assert metrics.average_response_time >= 0.0

    def test_get_status(self, circuit_breaker):
        status = circuit_breaker.get_status()

        for field in ("service", "state", "failure_count", "success_count", "failure_threshold", "is_available", "metrics"):
            assert field in status

        assert status["service"] == "Test Service"
        assert status["state"] == CircuitState.CLOSED.value
        assert status["is_available"] is True


class TestServiceClient:
    """Test service client with circuit breaker."""

    @pytest.fixture
    def service_client(self):
        return ServiceClient(
            service_name="Test Service",
            base_url="https://api.example.com/",
            timeout_seconds=5,
            circuit_breaker_config=CircuitBreakerConfig(failure_threshold=2, timeout=60),
            retry_config=RetryConfig(max_attempts=1, base_delay=0.01, max_delay=0.01),
        )

    def _response(self, status_code, body=None, headers=None):
        request = httpx.Request("POST", "https://api.example.com/test")
        return httpx.Response(status_code, json=body or {}, headers=headers, request=request)

    def test_url_building(self, service_client):
        assert service_client._url("") == "https://api.example.com"
        assert service_client._url("/wallets") == "https://api.example.com/wallets"
        assert service_client._url("transfers") == "https://api.example.com/transfers"

    @pytest.mark.asyncio
    async def test_successful_request(self, service_client):
        mock_client = AsyncMock()
        mock_client.request.return_value = self._response(200, {"data": "success"})
        service_client.client = mock_client

        result = await service_client.post("test")

        assert result == {"data": "success"}
        mock_client.request.assert_awaited_once_with("POST", "https://api.example.com/test")

    @pytest.mark.asyncio
    async def test_http_error_raises_external_service_error(self, service_client):
        mock_client = AsyncMock()
        mock_client.request.return_value = self._response(500, {"error": "boom"})
        service_client.client = mock_client

        with pytest.raises(ExternalServiceError) as exc_info:
            await service_client.post("test", json={})

        assert exc_info.value.service_name == "Test Service"
        assert exc_info.value.status_code == 500
        assert "HTTP 500" in str(exc_info.value)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code,headers,expected",
        [
            (429, {"Retry-After": "7"}, ExternalServiceRateLimitError),
            (401, None, ExternalServiceAuthenticationError),
            (403, None, ExternalServiceAuthenticationError),
        ],
    )
    async def test_status_code_mapping(self, service_client, status_code, headers, expected):
        mock_client = AsyncMock()
        mock_client.request.return_value = self._response(status_code, headers=headers)
        service_client.client = mock_client

        with pytest.raises(expected) as exc_info:
            await service_client.post("test")

        if status_code == 429:
            assert exc_info.value.retry_after == 7

    @pytest.mark.asyncio
    async def test_timeout_mapping(self, service_client):
        mock_client = AsyncMock()
        mock_client.request.side_effect = httpx.ReadTimeout("slow")
        service_client.client = mock_client

        with pytest.raises(ExternalServiceTimeoutError):
            await service_client.post("test")

    @pytest.mark.asyncio
    async def test_circuit_breaker_integration(self, service_client):
        """Test circuit breaker is properly integrated."""
        mock_client = AsyncMock()
        mock_client.request.side_effect = httpx.ConnectError("Connection failed")
        service_client.client = mock_client

        for _ in range(2):
            with pytest.raises(ExternalServiceConnectionError):
                await service_client.post("test")

        assert service_client.circuit_breaker.state == CircuitState.OPEN

        with pytest.raises(ExternalServiceError) as exc_info:
            await service_client.post("test")

        assert "Circuit breaker is OPEN" in str(exc_info.value)
        assert mock_client.request.await_count == 2

    @pytest.mark.asyncio
    async def test_connection_errors_are_retried(self):
        service_client = ServiceClient(
            service_name="Test Service",
            base_url="https://api.example.com",
            circuit_breaker_config=CircuitBreakerConfig(failure_threshold=10),
            retry_config=RetryConfig(max_attempts=3, base_delay=0.01, max_delay=0.01),
        )
        mock_client = AsyncMock()
        mock_client.request.side_effect = [
            httpx.ConnectError("refused"),
            self._response(200, {"ok": True}),
        ]
        service_client.client = mock_client

        result = await service_client.post("test")

        assert result == {"ok": True}
        assert mock_client.request.await_count == 2

    @pytest.mark.asyncio
    async def test_non_json_body(self, service_client):
        request = httpx.Request("POST", "https://api.example.com")
        mock_client = AsyncMock()
        mock_client.request.return_value = httpx.Response(200, text="queued", request=request)
        service_client.client = mock_client

        result = await service_client.post("")

        assert result == {"data": "queued", "status_code": 200}

    def test_get_circuit_status(self, service_client):
        status = service_client.get_circuit_status()

        assert status["service"] == "Test Service"
        assert status["state"] == "closed"
        assert "metrics" in status

    @pytest.mark.asyncio
    async def test_close(self, service_client):
        mock_client = MagicMock()
        mock_client.aclose = AsyncMock()
        service_client.client = mock_client

        await service_client.close()

        mock_client.aclose.assert_awaited_once()
