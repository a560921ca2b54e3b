"""
Command processor: webhook payload in, replies and notifications out.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import structlog

from smswallet.core.config import Settings, get_settings
from smswallet.core.logging import correlation_context
from smswallet.models.commands import Command, CommandType
from smswallet.models.outcome import Notification, Outcome, OutcomeStatus
from smswallet.models.responses import Response
from smswallet.services.dispatcher import WorkflowDispatcher
from smswallet.services.notification_service import NotificationService
from smswallet.services.response_composer import compose
from smswallet.utils.command_parser import CommandParser

logger = structlog.get_logger(__name__)


@dataclass
class ProcessingResult:
    """What happened to one webhook event."""

    processed: bool
    command: Optional[CommandType] = None
    response: Optional[Response] = None
    reply_sent: bool = False
    notifications_sent: int = 0
    notifications_failed: int = 0

    @property
    def success(self) -> bool:
        return self.response.success if self.response is not None else True


class CommandProcessor:
    """Runs parse, dispatch, compose and fan-out for each inbound SMS."""

    def __init__(
        self,
        dispatcher: WorkflowDispatcher,
        notification_service: NotificationService,
        parser: Optional[CommandParser] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.dispatcher = dispatcher
        self.notification_service = notification_service
        self.parser = parser or CommandParser(event_type=self.settings.inbound_event_type)

    async def process_webhook(self, payload: Mapping[str, Any]) -> ProcessingResult:
        """
        Process one webhook event.

        Args:
            payload: Webhook body ``{type, data: {content, contact}}``

        Returns:
            ProcessingResult; ``processed`` is False for ignored event types
        """
        command = self.parser.parse_webhook(payload)
        if command is None:
            logger.info("Ignoring webhook event", event_type=payload.get("type"))
            return ProcessingResult(processed=False)

        return await self.process_command(command)

    async def process_command(self, command: Command) -> ProcessingResult:
        """
        Dispatch a parsed command, then deliver the reply and notifications.

        Unexpected dispatcher errors become a generic failure reply so the
        sender always hears back.
        """
        with correlation_context(phone_number=command.phone_number, command=command.type.value):
            logger.info("Processing SMS command")

            try:
                outcome = await self.dispatcher.dispatch(command)
            except Exception as e:
                logger.error("Unexpected error dispatching command", error=str(e), exc_info=True)
                outcome = Outcome(kind=command.type, status=OutcomeStatus.FAILED)

            response = compose(outcome)
            replies = []
            if self._should_reply(response):
                replies.append(Notification(phone_number=command.phone_number, message=response.message))

            reply_report, notification_report = await asyncio.gather(
                self.notification_service.deliver(replies),
                self.notification_service.deliver(outcome.notifications),
            )

            result = ProcessingResult(
                processed=True,
                command=command.type,
                response=response,
                reply_sent=bool(replies) and reply_report.all_sent,
                notifications_sent=len(notification_report.sent),
                notifications_failed=len(notification_report.failed),
            )
            logger.info(
                "SMS command processed",
                outcome_status=outcome.status.value,
                success=response.success,
                reply_sent=result.reply_sent,
                notifications_sent=result.notifications_sent,
                notifications_failed=result.notifications_failed,
            )
            return result

    def _should_reply(self, response: Response) -> bool:
        if response.type == CommandType.UNKNOWN:
            return self.settings.reply_to_unknown_commands
        return True
