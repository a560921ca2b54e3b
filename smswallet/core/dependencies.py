"""
Dependency injection for FastAPI application.

Provides factory functions for the collaborator clients and the command
processor. Clients are cached so their circuit breakers persist across
requests.
"""

from functools import lru_cache

from smswallet.database import get_session_factory
from smswallet.services.command_processor import CommandProcessor
from smswallet.services.dispatcher import WorkflowDispatcher
from smswallet.services.notification_service import NotificationService
from smswallet.services.registration_service import RegistrationClient
from smswallet.services.sms_gateway import SMSGatewayClient
from smswallet.services.wallet_service import WalletClient
from smswallet.core.config import get_settings


@lru_cache()
def get_wallet_client() -> WalletClient:
    """Get wallet service client."""
    return WalletClient(get_settings())


@lru_cache()
def get_registration_client() -> RegistrationClient:
    """Get name registration client."""
    return RegistrationClient(get_settings())


@lru_cache()
def get_sms_gateway_client() -> SMSGatewayClient:
    """Get outbound SMS gateway client."""
    return SMSGatewayClient(get_settings())


@lru_cache()
def get_command_processor() -> CommandProcessor:
    """
    Get the command processor with all dependencies injected.

    Returns:
        Configured CommandProcessor instance
    """
    settings = get_settings()
    dispatcher = WorkflowDispatcher(
        session_factory=get_session_factory(),
        wallet_client=get_wallet_client(),
        registration_client=get_registration_client(),
        settings=settings,
    )
    return CommandProcessor(
        dispatcher=dispatcher,
        notification_service=NotificationService(get_sms_gateway_client()),
        settings=settings,
    )


async def close_clients() -> None:
    """Close every cached collaborator client."""
    for factory in (get_wallet_client, get_registration_client, get_sms_gateway_client):
        if factory.cache_info().currsize:
            await factory().close()
