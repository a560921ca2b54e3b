"""
Pytest configuration and fixtures for the SMS Wallet Command Service.
"""
import os

# Keep the app's own engine off the working directory
os.environ.setdefault("DATABASE_URL", "sqlite://")

from typing import Callable, Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from smswallet.core.config import Settings
from smswallet.core.dependencies import get_command_processor
from smswallet.database import create_db_engine, create_session_factory, init_db
from smswallet.database.user_repository import UserRepository
from smswallet.main import app
from smswallet.models.database import User
from smswallet.services.command_processor import CommandProcessor
from smswallet.services.dispatcher import WorkflowDispatcher
from smswallet.services.notification_service import NotificationService
from smswallet.services.registration_service import RegistrationResult
from smswallet.services.wallet_service import TransferResult, WalletInfo


@pytest.fixture
def test_settings() -> Settings:
    """Settings for tests: fast retries, no TTL."""
    return Settings(
        database_url="sqlite://",
        retry_max_attempts=1,
        retry_base_delay_seconds=0.01,
        retry_max_delay_seconds=0.01,
        sms_gateway_url="http://sms.test/messages",
        wallet_api_url="http://wallet.test",
        registration_api_url="http://names.test",
    )


@pytest.fixture
def session_factory() -> Generator[sessionmaker, None, None]:
    """In-memory SQLite database shared across sessions."""
    engine = create_db_engine("sqlite://", echo=False, poolclass=StaticPool)
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """A session for arranging and inspecting rows."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def wallet_client() -> MagicMock:
    """Wallet collaborator that succeeds by default."""
    client = MagicMock()
    client.create_wallet = AsyncMock(
        side_effect=lambda name: WalletInfo(wallet_id=f"wallet-{name}", address=f"0x{name}")
    )
    client.transfer = AsyncMock(
        return_value=TransferResult(success=True, transfer_id="transfer-1", state="INITIATED")
    )
    client.get_circuit_breaker_status = MagicMock(return_value={"is_available": True, "state": "closed"})
    return client


@pytest.fixture
def registration_client() -> MagicMock:
    """Registration collaborator that succeeds by default."""
    client = MagicMock()
    client.register_name = AsyncMock(
        side_effect=lambda username, address: RegistrationResult(
            success=True, name=f"{username.lower()}.smswallet.eth", transaction_hash="0xhash"
        )
    )
    client.get_circuit_breaker_status = MagicMock(return_value={"is_available": True, "state": "closed"})
    return client


@pytest.fixture
def sms_client() -> MagicMock:
    """SMS gateway that accepts every message."""
    client = MagicMock()
    client.send_sms = AsyncMock(return_value="msg-1")
    client.get_circuit_breaker_status = MagicMock(return_value={"is_available": True, "state": "closed"})
    return client


@pytest.fixture
def dispatcher(session_factory, wallet_client, registration_client, test_settings) -> WorkflowDispatcher:
    return WorkflowDispatcher(
        session_factory=session_factory,
        wallet_client=wallet_client,
        registration_client=registration_client,
        settings=test_settings,
    )


@pytest.fixture
def processor(dispatcher, sms_client, test_settings) -> CommandProcessor:
    return CommandProcessor(
        dispatcher=dispatcher,
        notification_service=NotificationService(sms_client),
        settings=test_settings,
    )


@pytest.fixture
def create_user(session_factory) -> Callable[..., User]:
    """Factory that inserts a registered user directly."""

    def _create_user(username: str, phone_number: str, requires_approval: bool = False) -> User:
        session = session_factory()
        try:
            user = UserRepository(session).create(
                phone_number=phone_number,
                username=username,
                wallet_id=f"wallet-{username}",
                wallet_address=f"0x{username}",
                registration_name=f"{username}.smswallet.eth",
            )
            user.requires_approval = requires_approval
            session.commit()
            return user
        finally:
            session.close()

    return _create_user


@pytest.fixture
def add_approvers(session_factory) -> Callable[..., None]:
    """Attach accepted cosigners to a user and enable approval mode."""

    def _add_approvers(owner_phone: str, *approver_phones: str) -> None:
        session = session_factory()
        try:
            users = UserRepository(session)
            owner = users.get_by_phone(owner_phone)
            for phone in approver_phones:
                users.add_approver(owner, users.get_by_phone(phone))
            session.commit()
        finally:
            session.close()

    return _add_approvers


@pytest.fixture
def client(processor, wallet_client, registration_client, sms_client) -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application.

    The command processor is replaced with one wired to the in-memory
    database and mocked collaborators.
    """
    from smswallet.core.dependencies import (
        get_registration_client,
        get_sms_gateway_client,
        get_wallet_client,
    )

    app.dependency_overrides[get_command_processor] = lambda: processor
    app.dependency_overrides[get_wallet_client] = lambda: wallet_client
    app.dependency_overrides[get_registration_client] = lambda: registration_client
    app.dependency_overrides[get_sms_gateway_client] = lambda: sms_client
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sample_webhook() -> Callable[..., dict]:
    """Build an inbound SMS webhook body."""

    def _sample_webhook(content: str, contact: str = "+15550000001", event_type: str = "message.phone.received") -> dict:
        return {"type": event_type, "data": {"content": content, "contact": contact}}

    return _sample_webhook
