"""
Reply models returned for every processed command.

Responses are built only by the response composer and are frozen once built.
"""
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field
from typing_extensions import Annotated

from smswallet.models.commands import CommandType


class TransferStatus(str, Enum):
    """Lifecycle of a transfer as reported back to the sender."""

    INITIATED = "INITIATED"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"
    INVALID = "INVALID"


class _BaseResponse(BaseModel):
    message: str = Field(..., description="SMS text sent back to the sender")
    success: bool

    model_config = {"frozen": True}


class HelpResponse(_BaseResponse):
    type: Literal[CommandType.HELP] = CommandType.HELP
    available_commands: List[str] = Field(default_factory=list)


class RegisterResponse(_BaseResponse):
    type: Literal[CommandType.REGISTER] = CommandType.REGISTER
    wallet_address: Optional[str] = None
    is_new_wallet: bool = False
    registration_name: Optional[str] = None


class SendResponse(_BaseResponse):
    type: Literal[CommandType.SEND] = CommandType.SEND
    status: TransferStatus
    recipient: Optional[str] = None
    amount: Optional[str] = None
    token: Optional[str] = None
    registration_name: Optional[str] = None
    transfer_id: Optional[str] = None


class NominateResponse(_BaseResponse):
    type: Literal[CommandType.NOMINATE] = CommandType.NOMINATE
    nominees: List[str] = Field(default_factory=list)
    code: Optional[str] = None


class NominationDecisionResponse(_BaseResponse):
    type: Literal[CommandType.ACCEPT, CommandType.DENY]
    code: str
    approved: bool
    nominator: Optional[str] = None


class ApprovalDecisionResponse(_BaseResponse):
    type: Literal[CommandType.APPROVE, CommandType.REJECT]
    code: str
    approved: bool
    status: TransferStatus
    owner: Optional[str] = None


class RequestResponse(_BaseResponse):
    type: Literal[CommandType.REQUEST] = CommandType.REQUEST
    payment_code: Optional[str] = None
    amount: Optional[str] = None
    token: Optional[str] = None


class PayResponse(_BaseResponse):
    type: Literal[CommandType.PAY] = CommandType.PAY
    payment_code: str
    amount: Optional[str] = None
    token: Optional[str] = None


class UnknownResponse(_BaseResponse):
    type: Literal[CommandType.UNKNOWN] = CommandType.UNKNOWN
    original_command: str = ""
    suggestions: List[str] = Field(default_factory=list)


Response = Annotated[
    Union[
        HelpResponse,
        RegisterResponse,
        SendResponse,
        NominateResponse,
        NominationDecisionResponse,
        ApprovalDecisionResponse,
        RequestResponse,
        PayResponse,
        UnknownResponse,
    ],
    Field(discriminator="type"),
]
