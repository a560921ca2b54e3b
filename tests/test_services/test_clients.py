"""
Tests for the collaborator HTTP clients, using httpx mock transports.
"""
import json

import httpx
import pytest

from smswallet.core.exceptions import ExternalServiceError
from smswallet.services.registration_service import RegistrationClient
from smswallet.services.sms_gateway import SMSGatewayClient
from smswallet.services.wallet_service import WalletClient


class Recorder:
    """Mock transport handler that records requests and replays a response."""

    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.body = body if body is not None else {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)

    def transport(self):
        return httpx.MockTransport(self)


class TestWalletClient:

    @pytest.mark.asyncio
    async def test_create_wallet(self, test_settings):
        recorder = Recorder(body={"id": "w-1", "address": "0xabc"})
        client = WalletClient(test_settings, transport=recorder.transport())

        wallet = await client.create_wallet("alice")

        assert wallet.wallet_id == "w-1"
        assert wallet.address == "0xabc"
        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://wallet.test/wallets"
        body = recorder.last_json
        assert body["name"] == "alice"
        assert body["blockchain"] == test_settings.wallet_blockchain
        assert body["idempotencyKey"]
        await client.close()

    @pytest.mark.asyncio
    async def test_create_wallet_requires_address(self, test_settings):
        recorder = Recorder(body={"id": "w-1"})
        client = WalletClient(test_settings, transport=recorder.transport())

        with pytest.raises(ExternalServiceError):
            await client.create_wallet("alice")

    @pytest.mark.asyncio
    async def test_create_wallet_http_error(self, test_settings):
        recorder = Recorder(status_code=500, body={"error": "down"})
        client = WalletClient(test_settings, transport=recorder.transport())

        with pytest.raises(ExternalServiceError):
            await client.create_wallet("alice")

    @pytest.mark.asyncio
    async def test_api_key_header(self, test_settings):
        recorder = Recorder(body={"id": "w-1", "address": "0xabc"})
        settings = test_settings.model_copy(update={"wallet_api_key": "secret"})
        client = WalletClient(settings, transport=recorder.transport())

        await client.create_wallet("alice")

        assert recorder.requests[0].headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_transfer(self, test_settings):
        recorder = Recorder(body={"id": "t-1", "state": "initiated"})
        client = WalletClient(test_settings, transport=recorder.transport())

        result = await client.transfer("w-1", "0xdef", "10", "USDC")

        assert result.success is True
        assert result.transfer_id == "t-1"
        assert result.state == "INITIATED"
        assert str(recorder.requests[0].url) == "http://wallet.test/transfers"
        body = recorder.last_json
        assert body["walletId"] == "w-1"
        assert body["destinationAddress"] == "0xdef"
        assert body["amounts"] == ["10"]
        assert body["token"] == "USDC"

    @pytest.mark.asyncio
    async def test_rejected_transfer(self, test_settings):
        recorder = Recorder(body={"id": "t-1", "state": "FAILED"})
        client = WalletClient(test_settings, transport=recorder.transport())

        result = await client.transfer("w-1", "0xdef", "10", "USDC")

        assert result.success is False
        assert result.transfer_id == "t-1"

    @pytest.mark.asyncio
    async def test_transfer_errors_are_returned_not_raised(self, test_settings):
        recorder = Recorder(status_code=502, body={})
        client = WalletClient(test_settings, transport=recorder.transport())

        result = await client.transfer("w-1", "0xdef", "10", "USDC")

        assert result.success is False
        assert result.error

    @pytest.mark.asyncio
    async def test_circuit_opens_after_failures(self, test_settings):
        """Test an open circuit stops calls reaching the wallet API."""
        recorder = Recorder(status_code=500, body={})
        settings = test_settings.model_copy(update={"circuit_breaker_failure_threshold": 1})
        client = WalletClient(settings, transport=recorder.transport())

        await client.transfer("w-1", "0xdef", "10", "USDC")
        result = await client.transfer("w-1", "0xdef", "10", "USDC")

        assert result.success is False
        assert "unavailable" in result.error.lower()
        assert len(recorder.requests) == 1
        assert client.get_circuit_breaker_status()["is_available"] is False


class TestRegistrationClient:

    @pytest.mark.asyncio
    async def test_register_name(self, test_settings):
        recorder = Recorder(body={"success": True, "transactionHash": "0xhash"})
        client = RegistrationClient(test_settings, transport=recorder.transport())

        result = await client.register_name("Alice", "0xabc")

        assert result.success is True
        assert result.name == "alice.smswallet.eth"
        assert result.transaction_hash == "0xhash"
        assert str(recorder.requests[0].url) == "http://names.test/names"
        assert recorder.last_json == {"name": "alice.smswallet.eth", "address": "0xabc"}

    @pytest.mark.asyncio
    async def test_rejected_registration(self, test_settings):
        recorder = Recorder(body={"success": False, "message": "name taken"})
        client = RegistrationClient(test_settings, transport=recorder.transport())

        result = await client.register_name("alice", "0xabc")

        assert result.success is False
        assert result.message == "name taken"

    @pytest.mark.asyncio
    async def test_registration_errors_are_returned_not_raised(self, test_settings):
        recorder = Recorder(status_code=503, body={})
        client = RegistrationClient(test_settings, transport=recorder.transport())

        result = await client.register_name("alice", "0xabc")

        assert result.success is False
        assert result.name == "alice.smswallet.eth"


class TestSMSGatewayClient:

    @pytest.mark.asyncio
    async def test_send_sms(self, test_settings):
        recorder = Recorder(body={"message_id": "m-1"})
        client = SMSGatewayClient(test_settings, transport=recorder.transport())

        message_id = await client.send_sms("+15550000001", "hello")

        assert message_id == "m-1"
        assert str(recorder.requests[0].url) == "http://sms.test/messages"
        assert recorder.last_json == {"to": "+15550000001", "content": "hello"}

    @pytest.mark.asyncio
    async def test_sender_and_api_key(self, test_settings):
        recorder = Recorder(body={"id": "m-2"})
        settings = test_settings.model_copy(update={"sms_default_sender": "+15559999999", "sms_gateway_api_key": "k"})
        client = SMSGatewayClient(settings, transport=recorder.transport())

        message_id = await client.send_sms("+15550000001", "hello")

        assert message_id == "m-2"
        assert recorder.last_json["from"] == "+15559999999"
        assert recorder.requests[0].headers["x-api-key"] == "k"

    @pytest.mark.asyncio
    async def test_missing_message_id_generates_one(self, test_settings):
        recorder = Recorder(body={"status": "queued"})
        client = SMSGatewayClient(test_settings, transport=recorder.transport())

        message_id = await client.send_sms("+15550000001", "hello")

        assert message_id.startswith("msg-")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("phone_number", ["", "15550000001", "+0123456789", "+1-555-0001"])
    async def test_invalid_phone_number(self, test_settings, phone_number):
        recorder = Recorder()
        client = SMSGatewayClient(test_settings, transport=recorder.transport())

        with pytest.raises(ValueError):
            await client.send_sms(phone_number, "hello")
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_empty_message(self, test_settings):
        client = SMSGatewayClient(test_settings, transport=Recorder().transport())

        with pytest.raises(ValueError):
            await client.send_sms("+15550000001", "   ")

    @pytest.mark.asyncio
    async def test_gateway_error(self, test_settings):
        recorder = Recorder(status_code=500, body={})
        client = SMSGatewayClient(test_settings, transport=recorder.transport())

        with pytest.raises(ExternalServiceError):
            await client.send_sms("+15550000001", "hello")
