"""
Tests for the command processor: parse, dispatch, reply and fan-out.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from smswallet.models.commands import CommandType
from smswallet.models.outcome import Notification, Outcome, OutcomeStatus
from smswallet.services.command_processor import CommandProcessor
from smswallet.services.notification_service import NotificationService
from smswallet.services.response_composer import GENERIC_FAILURE_MESSAGE, UNRECOGNIZED_MESSAGE

ALICE = "+15550000001"
BOB = "+15550000002"


class TestCommandProcessor:

    @pytest.mark.asyncio
    async def test_ignored_event(self, processor, sms_client, sample_webhook):
        result = await processor.process_webhook(sample_webhook("HELP", event_type="message.phone.sent"))

        assert result.processed is False
        assert result.command is None
        sms_client.send_sms.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_help_replies_to_sender(self, processor, sms_client, sample_webhook):
        result = await processor.process_webhook(sample_webhook("help", contact="15550000001"))

        assert result.processed is True
        assert result.command == CommandType.HELP
        assert result.reply_sent is True
        assert result.success is True
        sms_client.send_sms.assert_awaited_once_with(ALICE, result.response.message)

    @pytest.mark.asyncio
    async def test_unknown_reply_by_default(self, processor, sms_client, sample_webhook):
        result = await processor.process_webhook(sample_webhook("what is this"))

        assert result.command == CommandType.UNKNOWN
        assert result.reply_sent is True
        assert result.success is False
        sms_client.send_sms.assert_awaited_once_with(ALICE, UNRECOGNIZED_MESSAGE)

    @pytest.mark.asyncio
    async def test_unknown_not_answered_when_disabled(self, dispatcher, sms_client, test_settings, sample_webhook):
        processor = CommandProcessor(
            dispatcher=dispatcher,
            notification_service=NotificationService(sms_client),
            settings=test_settings.model_copy(update={"reply_to_unknown_commands": False}),
        )

        result = await processor.process_webhook(sample_webhook("what is this"))

        assert result.processed is True
        assert result.reply_sent is False
        sms_client.send_sms.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_notifications_go_to_other_parties(self, processor, sms_client, create_user, sample_webhook):
        create_user("alice", ALICE)
        create_user("bob", BOB)

        result = await processor.process_webhook(sample_webhook("REQUEST 25USDC bob"))

        assert result.command == CommandType.REQUEST
        assert result.reply_sent is True
        assert result.notifications_sent == 1
        assert result.notifications_failed == 0
        recipients = [call.args[0] for call in sms_client.send_sms.await_args_list]
        assert sorted(recipients) == [ALICE, BOB]

    @pytest.mark.asyncio
    async def test_failed_notification_does_not_fail_command(self, processor, sms_client, create_user, sample_webhook):
        create_user("alice", ALICE)
        create_user("bob", BOB)

        async def send_sms(phone_number, message):
            if phone_number == BOB:
                raise ValueError("gateway down")
            return "msg-1"

        sms_client.send_sms = AsyncMock(side_effect=send_sms)

        result = await processor.process_webhook(sample_webhook("REQUEST 25USDC bob"))

        assert result.success is True
        assert result.reply_sent is True
        assert result.notifications_sent == 0
        assert result.notifications_failed == 1

    @pytest.mark.asyncio
    async def test_unexpected_dispatch_error_sends_generic_failure(self, sms_client, test_settings, sample_webhook):
        """Test the sender always hears back, even on unexpected errors."""
        dispatcher = MagicMock()
        dispatcher.dispatch = AsyncMock(side_effect=RuntimeError("boom"))
        processor = CommandProcessor(
            dispatcher=dispatcher,
            notification_service=NotificationService(sms_client),
            settings=test_settings,
        )

        result = await processor.process_webhook(sample_webhook("SEND 10USDC bob"))

        assert result.processed is True
        assert result.command == CommandType.SEND
        assert result.success is False
        sms_client.send_sms.assert_awaited_once_with(ALICE, GENERIC_FAILURE_MESSAGE)

    @pytest.mark.asyncio
    async def test_reply_failure_is_reported(self, sms_client, test_settings, sample_webhook):
        dispatcher = MagicMock()
        dispatcher.dispatch = AsyncMock(return_value=Outcome(
            kind=CommandType.HELP,
            status=OutcomeStatus.OK,
            notifications=(Notification(phone_number=BOB, message="fyi"),),
        ))
        sms_client.send_sms = AsyncMock(side_effect=RuntimeError("gateway down"))
        processor = CommandProcessor(
            dispatcher=dispatcher,
            notification_service=NotificationService(sms_client),
            settings=test_settings,
        )

        result = await processor.process_webhook(sample_webhook("HELP"))

        assert result.reply_sent is False
        assert result.notifications_failed == 1
        assert sms_client.send_sms.await_count == 2
