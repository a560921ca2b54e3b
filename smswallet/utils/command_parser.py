"""
SMS command parser.

Turns the free text of an inbound SMS into a typed command. Parsing is pure
and total: anything that does not match the grammar becomes an
``UnknownCommand`` carrying the original text, never an exception.
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from smswallet.models.commands import (
    ApprovalResponseCommand,
    Command,
    CommandType,
    HelpCommand,
    NominateCommand,
    NominationResponseCommand,
    PayCommand,
    RegisterCommand,
    RequestCommand,
    SendCommand,
    UnknownCommand,
)
from smswallet.utils.phone_number import format_phone_number

logger = logging.getLogger(__name__)

SMS_RECEIVED_EVENT = "message.phone.received"
DEFAULT_USERNAME = "Unknown username"

# "10USDC", "0.5eth"
AMOUNT_TOKEN_PATTERN = re.compile(r"^(\d+\.?\d*)([A-Za-z]+)$")


class CommandParser:
    """Parses SMS text into commands using a verb-keyed handler table."""

    def __init__(self, event_type: str = SMS_RECEIVED_EVENT):
        self.event_type = event_type
        self._handlers: Dict[str, Callable[[str, str, List[str]], Command]] = {
            CommandType.HELP.value: self._parse_help,
            CommandType.REGISTER.value: self._parse_register,
            CommandType.SEND.value: self._parse_send,
            CommandType.NOMINATE.value: self._parse_nominate,
            CommandType.ACCEPT.value: self._parse_nomination_response,
            CommandType.DENY.value: self._parse_nomination_response,
            CommandType.APPROVE.value: self._parse_approval_response,
            CommandType.REJECT.value: self._parse_approval_response,
            CommandType.REQUEST.value: self._parse_request,
            CommandType.PAY.value: self._parse_pay,
        }

    def should_process_webhook(self, payload: Mapping[str, Any]) -> bool:
        """Only inbound SMS events are processed; everything else is ignored."""
        return payload.get("type") == self.event_type

    def parse_webhook(self, payload: Mapping[str, Any]) -> Optional[Command]:
        """
        Parse a webhook payload into a command.

        Args:
            payload: Raw webhook body ``{type, data: {content, contact}}``

        Returns:
            Parsed command, or None when the event is not an inbound SMS
        """
        if not self.should_process_webhook(payload):
            return None

        data = payload.get("data") or {}
        content = data.get("content") or ""
        contact = data.get("contact") or ""
        return self.parse(content, format_phone_number(contact))

    def parse(self, raw_message: str, phone_number: str) -> Command:
        """
        Parse message text from ``phone_number`` into a command.

        Args:
            raw_message: Message text exactly as received
            phone_number: Sender phone number

        Returns:
            The typed command; ``UnknownCommand`` when nothing matches
        """
        parts = raw_message.split()
        if not parts:
            return self._unknown(raw_message, phone_number)

        verb = parts[0].upper()
        handler = self._handlers.get(verb)
        if handler is None:
            logger.debug("Unrecognized command verb: %s", verb)
            return self._unknown(raw_message, phone_number)

        return handler(raw_message, phone_number, parts)

    def _parse_help(self, raw_message: str, phone_number: str, parts: List[str]) -> Command:
        return HelpCommand(phone_number=phone_number, raw_message=raw_message)

    def _parse_register(self, raw_message: str, phone_number: str, parts: List[str]) -> Command:
        username = parts[1] if len(parts) > 1 else DEFAULT_USERNAME
        return RegisterCommand(
            phone_number=phone_number,
            raw_message=raw_message,
            username=username,
        )

    def _parse_send(self, raw_message: str, phone_number: str, parts: List[str]) -> Command:
        amount_token = self._parse_amount_token(parts)
        if amount_token is None:
            return self._unknown(raw_message, phone_number)

        amount, token = amount_token
        return SendCommand(
            phone_number=phone_number,
            raw_message=raw_message,
            amount=amount,
            token=token,
            recipient=parts[2],
        )

    def _parse_request(self, raw_message: str, phone_number: str, parts: List[str]) -> Command:
        amount_token = self._parse_amount_token(parts)
        if amount_token is None:
            return self._unknown(raw_message, phone_number)

        amount, token = amount_token
        return RequestCommand(
            phone_number=phone_number,
            raw_message=raw_message,
            amount=amount,
            token=token,
            recipient=parts[2],
        )

    def _parse_nominate(self, raw_message: str, phone_number: str, parts: List[str]) -> Command:
        if len(parts) != 3:
            return self._unknown(raw_message, phone_number)

        return NominateCommand(
            phone_number=phone_number,
            raw_message=raw_message,
            nominee1=parts[1],
            nominee2=parts[2],
        )

    def _parse_nomination_response(self, raw_message: str, phone_number: str, parts: List[str]) -> Command:
        if len(parts) != 2:
            return self._unknown(raw_message, phone_number)

        return NominationResponseCommand(
            type=CommandType(parts[0].upper()),
            phone_number=phone_number,
            raw_message=raw_message,
            code=parts[1],
        )

    def _parse_approval_response(self, raw_message: str, phone_number: str, parts: List[str]) -> Command:
        if len(parts) != 2:
            return self._unknown(raw_message, phone_number)

        return ApprovalResponseCommand(
            type=CommandType(parts[0].upper()),
            phone_number=phone_number,
            raw_message=raw_message,
            code=parts[1],
        )

    def _parse_pay(self, raw_message: str, phone_number: str, parts: List[str]) -> Command:
        if len(parts) < 2:
            return self._unknown(raw_message, phone_number)

        return PayCommand(phone_number=phone_number, raw_message=raw_message, code=parts[1])

    def _parse_amount_token(self, parts: List[str]) -> Optional[Tuple[str, str]]:
        """Split ``<amount><TOKEN>``; None unless amount is a positive decimal."""
        if len(parts) < 3:
            return None

        match = AMOUNT_TOKEN_PATTERN.match(parts[1])
        if not match:
            return None

        amount, token = match.group(1), match.group(2).upper()
        try:
            if Decimal(amount) <= 0:
                return None
        except InvalidOperation:
            return None

        return amount, token

    def _unknown(self, raw_message: str, phone_number: str) -> Command:
        return UnknownCommand(phone_number=phone_number, raw_message=raw_message)


_default_parser = CommandParser()


def parse(raw_message: str, phone_number: str) -> Command:
    """Parse SMS text with the default parser."""
    return _default_parser.parse(raw_message, phone_number)
