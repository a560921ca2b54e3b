"""
Custodial wallet API client: wallet creation and token transfers.
"""
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import structlog

from smswallet.core.circuit_breaker import CircuitBreakerConfig, ServiceClient
from smswallet.core.config import Settings, get_settings
from smswallet.core.exceptions import ExternalServiceError
from smswallet.core.retry import get_external_service_retry_config

logger = structlog.get_logger(__name__)

# Transfer states the wallet API reports for transfers that will never settle
FAILED_TRANSFER_STATES = frozenset({"FAILED", "CANCELLED", "DENIED"})


@dataclass(frozen=True)
class WalletInfo:
    """A newly created custodial wallet."""

    wallet_id: str
    address: str


@dataclass(frozen=True)
class TransferResult:
    """Result of a transfer submission."""

    success: bool
    transfer_id: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None


class WalletClient:
    """Client for the custodial wallet service."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = settings or get_settings()
        self.service_name = "Wallet API"
        self.blockchain = settings.wallet_blockchain

        circuit_config = CircuitBreakerConfig(
            failure_threshold=settings.circuit_breaker_failure_threshold,
            timeout=settings.circuit_breaker_timeout_seconds,
            success_threshold=3,
            half_open_max_calls=5,
        )
        retry_config = get_external_service_retry_config(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
        )

        headers = {}
        if settings.wallet_api_key:
            headers["Authorization"] = f"Bearer {settings.wallet_api_key}"

        self.service_client = ServiceClient(
            service_name=self.service_name,
            base_url=settings.wallet_api_url,
            timeout_seconds=settings.wallet_api_timeout,
            headers=headers,
            circuit_breaker_config=circuit_config,
            retry_config=retry_config,
            transport=transport,
        )

    async def create_wallet(self, name: str) -> WalletInfo:
        """
        Create a custodial wallet.

        Args:
            name: Label for the wallet (the username)

        Returns:
            The new wallet's id and address

        Raises:
            ExternalServiceError: If the wallet could not be created
        """
        payload = {
            "name": name,
            "blockchain": self.blockchain,
            "idempotencyKey": str(uuid.uuid4()),
        }
        logger.info("Creating wallet", service=self.service_name, name=name)

        data = await self.service_client.post("/wallets", json=payload)
        wallet_id, address = data.get("id"), data.get("address")
        if not wallet_id or not address:
            logger.error("Wallet API returned no wallet", service=self.service_name, response=data)
            raise ExternalServiceError(
                service_name=self.service_name,
                message="Failed to create wallet: response missing id or address",
            )

        logger.info("Wallet created", service=self.service_name, wallet_id=wallet_id, address=address)
        return WalletInfo(wallet_id=str(wallet_id), address=str(address))

    async def transfer(
        self,
        wallet_id: str,
        destination_address: str,
        amount: str,
        token: str,
    ) -> TransferResult:
        """
        Submit a token transfer from ``wallet_id``.

        Collaborator errors are reported as an unsuccessful result rather
        than raised; the idempotency key keeps retried submissions from
        moving funds twice.

        Args:
            wallet_id: Sender wallet id
            destination_address: Recipient wallet address
            amount: Decimal amount string
            token: Token symbol

        Returns:
            TransferResult describing the submission
        """
        payload: Dict[str, Any] = {
            "walletId": wallet_id,
            "destinationAddress": destination_address,
            "amounts": [amount],
            "token": token,
            "idempotencyKey": str(uuid.uuid4()),
        }
        logger.info(
            "Submitting transfer",
            service=self.service_name,
            wallet_id=wallet_id,
            destination_address=destination_address,
            amount=amount,
            token=token,
        )

        try:
            data = await self.service_client.post("/transfers", json=payload)
        except ExternalServiceError as e:
            logger.error("Transfer submission failed", service=self.service_name, wallet_id=wallet_id, error=str(e))
            return TransferResult(success=False, error=str(e))

        transfer_id, state = data.get("id"), data.get("state")
        if not transfer_id or not state:
            logger.error("Wallet API returned no transfer", service=self.service_name, response=data)
            return TransferResult(success=False, error="Response missing transfer id or state")

        state = str(state).upper()
        if state in FAILED_TRANSFER_STATES:
            logger.warning("Transfer rejected by wallet API", service=self.service_name, transfer_id=transfer_id, state=state)
            return TransferResult(success=False, transfer_id=str(transfer_id), state=state)

        logger.info("Transfer submitted", service=self.service_name, transfer_id=transfer_id, state=state)
        return TransferResult(success=True, transfer_id=str(transfer_id), state=state)

    def get_circuit_breaker_status(self) -> Dict[str, Any]:
        return self.service_client.get_circuit_status()

    async def close(self):
        """Close the service client."""
        await self.service_client.close()
