"""
Name registration API client.

Registers ``<username>.<domain>`` names for new wallets. Registration is
best-effort: failures are reported, never raised.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import structlog

from smswallet.core.circuit_breaker import CircuitBreakerConfig, ServiceClient
from smswallet.core.config import Settings, get_settings
from smswallet.core.exceptions import ExternalServiceError
from smswallet.core.retry import get_external_service_retry_config

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RegistrationResult:
    success: bool
    name: str
    transaction_hash: Optional[str] = None
    message: Optional[str] = None


class RegistrationClient:
    """Client for the name registration service."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = settings or get_settings()
        self.service_name = "Registration API"
        self.domain = settings.registration_domain

        headers = {}
        if settings.registration_api_key:
            headers["Authorization"] = f"Bearer {settings.registration_api_key}"

        self.service_client = ServiceClient(
            service_name=self.service_name,
            base_url=settings.registration_api_url,
            timeout_seconds=settings.registration_api_timeout,
            headers=headers,
            circuit_breaker_config=CircuitBreakerConfig(
                failure_threshold=settings.circuit_breaker_failure_threshold,
                timeout=settings.circuit_breaker_timeout_seconds,
            ),
            retry_config=get_external_service_retry_config(
                max_attempts=settings.retry_max_attempts,
                base_delay=settings.retry_base_delay_seconds,
                max_delay=settings.retry_max_delay_seconds,
            ),
            transport=transport,
        )

    def full_name(self, username: str) -> str:
        return f"{username.lower()}.{self.domain}"

    async def register_name(self, username: str, address: str) -> RegistrationResult:
        """
        Register ``<username>.<domain>`` for ``address``.

        Args:
            username: Label to register
            address: Wallet address the name resolves to

        Returns:
            RegistrationResult; ``success`` is False on any failure
        """
        name = self.full_name(username)
        try:
            data = await self.service_client.post("/names", json={"name": name, "address": address})
        except ExternalServiceError as e:
            logger.warning("Name registration failed", service=self.service_name, name=name, error=str(e))
            return RegistrationResult(success=False, name=name, message=str(e))

        if not data.get("success"):
            message = data.get("message") or "Registration rejected"
            logger.warning("Name registration rejected", service=self.service_name, name=name, reason=message)
            return RegistrationResult(success=False, name=name, message=message)

        logger.info(
            "Name registered",
            service=self.service_name,
            name=name,
            transaction_hash=data.get("transactionHash"),
        )
        return RegistrationResult(success=True, name=name, transaction_hash=data.get("transactionHash"))

    def get_circuit_breaker_status(self) -> Dict[str, Any]:
        return self.service_client.get_circuit_status()

    async def close(self):
        await self.service_client.close()
