"""
Outbound SMS gateway client.
"""
import re
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
import structlog

from smswallet.core.circuit_breaker import CircuitBreakerConfig, ServiceClient
from smswallet.core.config import Settings, get_settings
from smswallet.core.retry import get_external_service_retry_config

logger = structlog.get_logger(__name__)

E164_PATTERN = re.compile(r"^\+[1-9]\d{6,14}$")


class SMSGatewayClient:
    """Client for the outbound SMS gateway."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = settings or get_settings()
        self.service_name = "SMS Gateway"
        self.default_sender = settings.sms_default_sender

        # Create circuit breaker configuration
        circuit_config = CircuitBreakerConfig(
            failure_threshold=settings.circuit_breaker_failure_threshold,
            timeout=settings.circuit_breaker_timeout_seconds,
            success_threshold=3,
            half_open_max_calls=5,
        )

        headers = {"Content-Type": "application/json"}
        if settings.sms_gateway_api_key:
            headers["x-api-key"] = settings.sms_gateway_api_key

        # Create service client with circuit breaker
        self.service_client = ServiceClient(
            service_name=self.service_name,
            base_url=settings.sms_gateway_url,
            timeout_seconds=settings.sms_gateway_timeout,
            headers=headers,
            circuit_breaker_config=circuit_config,
            retry_config=get_external_service_retry_config(
                max_attempts=settings.retry_max_attempts,
                base_delay=settings.retry_base_delay_seconds,
                max_delay=settings.retry_max_delay_seconds,
            ),
            transport=transport,
        )

    def _validate_phone_number(self, phone_number: str) -> None:
        """
        Validate phone_number parameter.

        Raises:
            ValueError: If phone_number is not in E.164 format
        """
        if not isinstance(phone_number, str) or not phone_number:
            raise ValueError("Phone number cannot be empty")

        if not E164_PATTERN.match(phone_number):
            raise ValueError("Phone number format is invalid")

    async def send_sms(self, phone_number: str, message: str) -> str:
        """
        Send an SMS.

        Args:
            phone_number: Destination in E.164 format
            message: SMS text

        Returns:
            Message ID from the gateway

        Raises:
            ExternalServiceError: If the gateway call fails or the circuit is open
            ValueError: If phone_number or message is invalid
        """
        self._validate_phone_number(phone_number)

        if not isinstance(message, str) or not message.strip():
            raise ValueError("Message cannot be empty")

        payload = {"to": phone_number, "content": message}
        if self.default_sender:
            payload["from"] = self.default_sender

        logger.info(
            "Sending SMS message",
            service=self.service_name,
            phone_number=phone_number,
            message_length=len(message),
        )
        data = await self.service_client.post("", json=payload)

        message_id = data.get("message_id") or data.get("id")
        if not message_id:
            message_id = f"msg-{datetime.utcnow().timestamp()}"
            logger.warning(
                "No message ID in gateway response, generating local ID",
                service=self.service_name,
                phone_number=phone_number,
                generated_id=message_id,
            )

        logger.info(
            "SMS sent successfully",
            service=self.service_name,
            phone_number=phone_number,
            message_id=message_id,
        )
        return str(message_id)

    def get_circuit_breaker_status(self) -> Dict[str, Any]:
        """Get current circuit breaker status."""
        return self.service_client.get_circuit_status()

    async def close(self):
        """Close the service client."""
        await self.service_client.close()
