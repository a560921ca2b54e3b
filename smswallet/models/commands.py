"""
Typed commands parsed from inbound SMS text.

Each verb has its own frozen model tagged by ``type``; ``Command`` is the
discriminated union the dispatcher switches on.
"""
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, Field
from typing_extensions import Annotated


class CommandType(str, Enum):
    """SMS command verbs."""

    HELP = "HELP"
    REGISTER = "REGISTER"
    SEND = "SEND"
    NOMINATE = "NOMINATE"
    ACCEPT = "ACCEPT"
    DENY = "DENY"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    REQUEST = "REQUEST"
    PAY = "PAY"
    UNKNOWN = "UNKNOWN"


class _ParsedCommand(BaseModel):
    """Fields shared by every command."""

    phone_number: str = Field(..., description="Sender phone number")
    raw_message: str = Field(..., description="Message text as received")

    model_config = {"frozen": True}


class HelpCommand(_ParsedCommand):
    type: Literal[CommandType.HELP] = CommandType.HELP


class RegisterCommand(_ParsedCommand):
    type: Literal[CommandType.REGISTER] = CommandType.REGISTER
    username: str


class SendCommand(_ParsedCommand):
    type: Literal[CommandType.SEND] = CommandType.SEND
    amount: str = Field(..., description="Decimal amount exactly as typed")
    token: str = Field(..., description="Token symbol, upper-cased (e.g. USDC)")
    recipient: str


class NominateCommand(_ParsedCommand):
    type: Literal[CommandType.NOMINATE] = CommandType.NOMINATE
    nominee1: str
    nominee2: str


class NominationResponseCommand(_ParsedCommand):
    type: Literal[CommandType.ACCEPT, CommandType.DENY]
    code: str

    @property
    def accepted(self) -> bool:
        return self.type == CommandType.ACCEPT


class ApprovalResponseCommand(_ParsedCommand):
    type: Literal[CommandType.APPROVE, CommandType.REJECT]
    code: str

    @property
    def approved(self) -> bool:
        return self.type == CommandType.APPROVE


class RequestCommand(_ParsedCommand):
    type: Literal[CommandType.REQUEST] = CommandType.REQUEST
    amount: str = Field(..., description="Decimal amount exactly as typed")
    token: str
    recipient: str = Field(..., description="Party asked to pay")


class PayCommand(_ParsedCommand):
    type: Literal[CommandType.PAY] = CommandType.PAY
    code: str


class UnknownCommand(_ParsedCommand):
    type: Literal[CommandType.UNKNOWN] = CommandType.UNKNOWN


Command = Annotated[
    Union[
        HelpCommand,
        RegisterCommand,
        SendCommand,
        NominateCommand,
        NominationResponseCommand,
        ApprovalResponseCommand,
        RequestCommand,
        PayCommand,
        UnknownCommand,
    ],
    Field(discriminator="type"),
]
