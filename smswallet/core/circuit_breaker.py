"""
Circuit breaker and HTTP service client for collaborator API calls.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx
import structlog

from smswallet.core.exceptions import (
    ExternalServiceAuthenticationError,
    ExternalServiceConnectionError,
    ExternalServiceError,
    ExternalServiceRateLimitError,
    ExternalServiceTimeoutError,
    ServiceUnavailableError,
)
from smswallet.core.retry import RetryConfig, create_async_retry_decorator

logger = structlog.get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5
    success_threshold: int = 3
    timeout: int = 60
    half_open_max_calls: int = 5


@dataclass
class CircuitBreakerMetrics:
    """Circuit breaker metrics for monitoring."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    circuit_open_count: int = 0
    last_state_change: Optional[float] = None
    failure_rate: float = 0.0
    average_response_time: float = 0.0
    response_times: List[float] = field(default_factory=list)

    def update_metrics(self, success: bool, response_time: float) -> None:
        """Update metrics after a call."""
        self.total_calls += 1

        if success:
            self.successful_calls += 1
        else:
            self.failed_calls += 1

        # Keep last 100 response times
        self.response_times.append(response_time)
        if len(self.response_times) > 100:
            self.response_times.pop(0)

        self.failure_rate = self.failed_calls / self.total_calls
        self.average_response_time = sum(self.response_times) / len(self.response_times)


class CircuitBreaker:
    """Circuit breaker for collaborator calls."""

    def __init__(
        self,
        service_name: str = "Unknown Service",
        config: Optional[CircuitBreakerConfig] = None,
    ):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()

        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time = None
        self.state = CircuitState.CLOSED
        self.half_open_calls = 0

        self.metrics = CircuitBreakerMetrics()

    def __call__(self, func: Callable) -> Callable:
        """Decorator to wrap functions with circuit breaker."""

        async def wrapper(*args, **kwargs) -> Any:
            return await self.call_async(func, *args, **kwargs)

        return wrapper

    async def call_async(self, func: Callable, *args, **kwargs) -> Any:
        """Execute async function with circuit breaker protection."""
        start_time = time.time()

        if self.state == CircuitState.OPEN:
            if self._should_attempt_reset():
                self._transition_to_half_open()
            else:
                logger.warning(
                    "Circuit breaker rejecting call - OPEN state",
                    service=self.service_name,
                    failure_count=self.failure_count,
                    last_failure_time=self.last_failure_time,
                )
                raise ServiceUnavailableError(
                    self.service_name,
                    f"Circuit breaker is OPEN for {self.service_name}",
                )

        if self.state == CircuitState.HALF_OPEN:
            if self.half_open_calls >= self.config.half_open_max_calls:
                logger.warning(
                    "Circuit breaker rejecting call - half-open limit reached",
                    service=self.service_name,
                    half_open_calls=self.half_open_calls,
                )
                raise ServiceUnavailableError(
                    self.service_name,
                    f"Circuit breaker half-open limit reached for {self.service_name}",
                )
            self.half_open_calls += 1

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._on_failure(time.time() - start_time)
            raise

        self._on_success(time.time() - start_time)
        return result

    def _should_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt circuit reset."""
        return bool(
            self.last_failure_time
            and time.time() - self.last_failure_time >= self.config.timeout
        )

    def _transition_to_half_open(self) -> None:
        """Transition circuit breaker to half-open state."""
        self.state = CircuitState.HALF_OPEN
        self.half_open_calls = 0
        self.success_count = 0
        self.metrics.last_state_change = time.time()
        logger.info(
            "Circuit breaker transitioning to half-open",
            service=self.service_name,
        )

    def _on_success(self, response_time: float) -> None:
        """Handle successful call."""
        self.metrics.update_metrics(True, response_time)

        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.config.success_threshold:
                self.state = CircuitState.CLOSED
                self.success_count = 0
                self.failure_count = 0
                self.half_open_calls = 0
                self.metrics.last_state_change = time.time()
                logger.info(
                    "Circuit breaker reset to closed",
                    service=self.service_name,
                )
        else:
            self.failure_count = 0
            self.success_count = 0

    def _on_failure(self, response_time: float) -> None:
        """Handle failed call."""
        self.metrics.update_metrics(False, response_time)
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == CircuitState.HALF_OPEN:
            # Any failure while probing reopens the circuit
            self.state = CircuitState.OPEN
            self.metrics.circuit_open_count += 1
            self.metrics.last_state_change = time.time()
            logger.warning(
                "Circuit breaker reopened from half-open",
                service=self.service_name,
                failure_count=self.failure_count,
            )
        elif self.failure_count >= self.config.failure_threshold:
            self.state = CircuitState.OPEN
            self.metrics.circuit_open_count += 1
            self.metrics.last_state_change = time.time()
            logger.warning(
                "Circuit breaker opened",
                service=self.service_name,
                failure_count=self.failure_count,
                threshold=self.config.failure_threshold,
            )

    def get_status(self) -> dict[str, Any]:
        """Get current circuit breaker status."""
        return {
            "service": self.service_name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "failure_threshold": self.config.failure_threshold,
            "is_available": self.state != CircuitState.OPEN,
            "last_failure_time": self.last_failure_time,
            "metrics": {
                "total_calls": self.metrics.total_calls,
                "successful_calls": self.metrics.successful_calls,
                "failed_calls": self.metrics.failed_calls,
                "failure_rate": round(self.metrics.failure_rate, 4),
                "average_response_time": round(self.metrics.average_response_time, 3),
                "circuit_open_count": self.metrics.circuit_open_count,
            }
        }


class ServiceClient:
    """
    HTTP service client with retry and circuit breaker protection.

    Wraps httpx so every collaborator API (wallet, registration, SMS gateway)
    gets the same error mapping, retry policy and breaker accounting.
    """

    def __init__(
        self,
        service_name: str,
        base_url: str,
        timeout_seconds: int = 30,
        headers: Optional[Dict[str, str]] = None,
        circuit_breaker_config: Optional[CircuitBreakerConfig] = None,
        retry_config: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize service client.

        Args:
            service_name: Name of the service for logging
            base_url: Base URL for the service
            timeout_seconds: Request timeout in seconds
            headers: Default headers sent with every request
            circuit_breaker_config: Optional circuit breaker configuration
            retry_config: Optional retry configuration
            transport: Optional httpx transport (used by tests)
        """
        self.service_name = service_name
        self.base_url = base_url.rstrip('/')
        self.timeout_seconds = timeout_seconds

        self.circuit_breaker = CircuitBreaker(
            service_name=service_name,
            config=circuit_breaker_config or CircuitBreakerConfig(),
        )
        self.retry_decorator = create_async_retry_decorator(
            config=retry_config,
            service_name=service_name,
        )

        self.client = httpx.AsyncClient(
            timeout=timeout_seconds,
            headers=headers or {},
            transport=transport,
        )

        logger.info(
            "Service client initialized",
            service_name=service_name,
            base_url=self.base_url,
            timeout_seconds=timeout_seconds
        )

    async def post(self, endpoint: str, **kwargs) -> Dict[str, Any]:
        """Make POST request with retry and circuit breaker protection."""
        return await self._make_request("POST", endpoint, **kwargs)

    def _url(self, endpoint: str) -> str:
        if not endpoint:
            return self.base_url
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def _make_request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        """
        Make HTTP request with retry and circuit breaker protection.

        Args:
            method: HTTP method
            endpoint: API endpoint, appended to the base URL
            **kwargs: Additional request parameters

        Returns:
            Response data as dictionary

        Raises:
            ExternalServiceError: If the request fails or the circuit is open
        """
        url = self._url(endpoint)

        @self.retry_decorator
        @self.circuit_breaker
        async def protected_request():
            try:
                response = await self.client.request(method, url, **kwargs)
                response.raise_for_status()
            except httpx.TimeoutException as e:
                logger.error(
                    "Timeout in service call",
                    service_name=self.service_name,
                    method=method,
                    url=url,
                    error=str(e),
                )
                raise ExternalServiceTimeoutError(self.service_name, self.timeout_seconds)
            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                logger.error(
                    "HTTP error in service call",
                    service_name=self.service_name,
                    method=method,
                    url=url,
                    status_code=status_code,
                )
                if status_code == 429:
                    retry_after = e.response.headers.get("Retry-After")
                    raise ExternalServiceRateLimitError(
                        self.service_name,
                        retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                    )
                if status_code in (401, 403):
                    raise ExternalServiceAuthenticationError(self.service_name, status_code=status_code)
                raise ExternalServiceError(
                    service_name=self.service_name,
                    message=f"HTTP {status_code}: {e.response.text}",
                    status_code=status_code,
                )
            except httpx.RequestError as e:
                logger.error(
                    "Request error in service call",
                    service_name=self.service_name,
                    method=method,
                    url=url,
                    error=str(e),
                )
                raise ExternalServiceConnectionError(self.service_name, str(e))

            try:
                return response.json()
            except ValueError:
                return {"data": response.text, "status_code": response.status_code}

        try:
            return await protected_request()
        except ServiceUnavailableError as e:
            raise ExternalServiceError(
                service_name=self.service_name,
                message=f"Service unavailable: {e.detail}",
                status_code=e.status_code,
            )

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    def get_circuit_status(self) -> Dict[str, Any]:
        """Get circuit breaker status."""
        return self.circuit_breaker.get_status()
