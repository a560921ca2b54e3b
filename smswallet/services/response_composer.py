"""
Response composer.

Maps dispatcher outcomes to reply models and renders every SMS the service
sends. Everything here is pure: all inputs are already resolved in the
outcome, so composing never touches the database or a collaborator.
"""
from typing import Callable, Dict, List, Tuple

from smswallet.models.commands import CommandType
from smswallet.models.outcome import Outcome, OutcomeStatus
from smswallet.models.responses import (
    ApprovalDecisionResponse,
    HelpResponse,
    NominateResponse,
    NominationDecisionResponse,
    PayResponse,
    RegisterResponse,
    RequestResponse,
    Response,
    SendResponse,
    TransferStatus,
    UnknownResponse,
)

AVAILABLE_COMMANDS: List[str] = [
    "HELP",
    "REGISTER <username>",
    "SEND <amount><token> <recipient>",
    "REQUEST <amount><token> <payer>",
    "PAY <code>",
    "NOMINATE <user1> <user2>",
    "ACCEPT <code> / DENY <code>",
    "APPROVE <code> / REJECT <code>",
]

SUGGESTED_COMMANDS: List[str] = ["HELP", "REGISTER", "SEND", "REQUEST", "PAY"]

UNRECOGNIZED_MESSAGE = "Command not recognized. Text HELP to see available commands."
NOT_REGISTERED_MESSAGE = "You don't have a wallet yet. Text REGISTER <username> to create one."
GENERIC_FAILURE_MESSAGE = "Something went wrong processing your request. Please try again later."

HELP_MESSAGE = (
    "SMS Wallet commands: REGISTER <username>, SEND <amount><token> <recipient>, "
    "REQUEST <amount><token> <payer>, PAY <code>, NOMINATE <user1> <user2>, "
    "ACCEPT/DENY <code>, APPROVE/REJECT <code>. Example: SEND 10USDC alice"
)

# Reply templates keyed by (command, status); filled from ``Outcome.data``
MESSAGE_TEMPLATES: Dict[Tuple[CommandType, OutcomeStatus], str] = {
    (CommandType.REGISTER, OutcomeStatus.CREATED): "Your new wallet has been created: {wallet_address}",
    (CommandType.REGISTER, OutcomeStatus.ALREADY_EXISTS): "You already have a wallet: {wallet_address}",
    (CommandType.REGISTER, OutcomeStatus.INVALID): (
        "Please choose a username of 3-32 letters, numbers, '-' or '_'. Example: REGISTER alice"
    ),
    (CommandType.REGISTER, OutcomeStatus.USERNAME_TAKEN): (
        "The username {username} is already taken. Please choose another one."
    ),
    (CommandType.REGISTER, OutcomeStatus.FAILED): (
        "We could not create your wallet right now. Please try again later."
    ),
    (CommandType.SEND, OutcomeStatus.AWAITING_CONFIRMATION): (
        "Your transfer of {amount} {token} to {recipient} has been submitted "
        "and is awaiting network confirmation."
    ),
    (CommandType.SEND, OutcomeStatus.PENDING_APPROVAL): (
        "Your transaction of {amount} {token} to {recipient} is pending approval "
        "from your nominated cosigners."
    ),
    (CommandType.SEND, OutcomeStatus.FAILED): (
        "Failed to send {amount} {token} to {recipient}. Please try again later."
    ),
    (CommandType.SEND, OutcomeStatus.INVALID): (
        "Could not find recipient {recipient}. Please check the name and try again."
    ),
    (CommandType.SEND, OutcomeStatus.NO_COSIGNERS): (
        "Your wallet requires cosigner approval but you have no active cosigners. "
        "Text NOMINATE <user1> <user2> to add cosigners."
    ),
    (CommandType.NOMINATE, OutcomeStatus.OK): (
        "You nominated {nominee1} and {nominee2} as your cosigners. "
        "They have been asked to reply with code {code}."
    ),
    (CommandType.NOMINATE, OutcomeStatus.INVALID): (
        "Could not nominate cosigners. Please name two other registered users: "
        "NOMINATE <user1> <user2>"
    ),
    (CommandType.ACCEPT, OutcomeStatus.ACCEPTED): (
        "You are now a cosigner for {nominator}. You will be asked to approve their transactions."
    ),
    (CommandType.DENY, OutcomeStatus.DECLINED): "You declined to be a cosigner for {nominator}.",
    (CommandType.APPROVE, OutcomeStatus.AWAITING_OTHERS): (
        "You approved the transaction of {amount} {token} to {recipient}. "
        "Waiting for the other cosigners to approve."
    ),
    (CommandType.APPROVE, OutcomeStatus.EXECUTED): (
        "You approved the transaction of {amount} {token} to {recipient}. "
        "The transaction has been executed."
    ),
    (CommandType.APPROVE, OutcomeStatus.EXECUTION_FAILED): (
        "You approved the transaction of {amount} {token} to {recipient}, "
        "but the transfer could not be completed."
    ),
    (CommandType.REJECT, OutcomeStatus.REJECTED): (
        "You rejected the transaction of {amount} {token} to {recipient}. "
        "The sender has been notified."
    ),
    (CommandType.REQUEST, OutcomeStatus.OK): (
        "Your request for {amount} {token} has been sent to {recipient}. Payment code: {code}"
    ),
    (CommandType.REQUEST, OutcomeStatus.INVALID): (
        "Could not request a payment from {recipient}. Please check the name and try again."
    ),
    (CommandType.PAY, OutcomeStatus.OK): "You paid {amount} {token} to {requester}. Payment code: {code}",
    (CommandType.PAY, OutcomeStatus.NOT_FOUND): "No pending payment request found for code {code}.",
    (CommandType.PAY, OutcomeStatus.FAILED): (
        "Payment of {amount} {token} to {requester} could not be completed. Please try again later."
    ),
}

# Same text whatever the command
STATUS_MESSAGES: Dict[OutcomeStatus, str] = {
    OutcomeStatus.NOT_REGISTERED: NOT_REGISTERED_MESSAGE,
    OutcomeStatus.ALREADY_PROCESSED: "This transaction has already been processed. No further action is needed.",
    OutcomeStatus.UNRECOGNIZED: UNRECOGNIZED_MESSAGE,
    OutcomeStatus.FAILED: GENERIC_FAILURE_MESSAGE,
}

SEND_TRANSFER_STATUS: Dict[OutcomeStatus, TransferStatus] = {
    OutcomeStatus.AWAITING_CONFIRMATION: TransferStatus.AWAITING_CONFIRMATION,
    OutcomeStatus.PENDING_APPROVAL: TransferStatus.PENDING_APPROVAL,
    OutcomeStatus.FAILED: TransferStatus.FAILED,
}

APPROVAL_TRANSFER_STATUS: Dict[OutcomeStatus, TransferStatus] = {
    OutcomeStatus.AWAITING_OTHERS: TransferStatus.PENDING_APPROVAL,
    OutcomeStatus.EXECUTED: TransferStatus.APPROVED,
    OutcomeStatus.EXECUTION_FAILED: TransferStatus.FAILED,
    OutcomeStatus.REJECTED: TransferStatus.REJECTED,
}


def render_message(outcome: Outcome) -> str:
    """Render the reply text for ``outcome``."""
    template = MESSAGE_TEMPLATES.get((outcome.kind, outcome.status))
    if outcome.status == OutcomeStatus.FAILED and not outcome.data:
        # Failed before anything was resolved
        template = None
    if template is None:
        if outcome.kind == CommandType.HELP:
            return HELP_MESSAGE
        template = STATUS_MESSAGES.get(outcome.status, GENERIC_FAILURE_MESSAGE)

    message = template.format_map(_TemplateData(outcome.data))
    if outcome.kind == CommandType.REGISTER and outcome.status == OutcomeStatus.CREATED:
        if outcome.data.get("registration_name"):
            message += f" Your wallet name is {outcome.data['registration_name']}."
    return message


class _TemplateData(dict):
    """Missing template fields render as empty rather than raising."""

    def __missing__(self, key: str) -> str:
        return ""


def _help(outcome: Outcome, message: str) -> Response:
    return HelpResponse(message=message, success=True, available_commands=AVAILABLE_COMMANDS)


def _register(outcome: Outcome, message: str) -> Response:
    return RegisterResponse(
        message=message,
        success=outcome.success,
        wallet_address=outcome.data.get("wallet_address"),
        is_new_wallet=outcome.status == OutcomeStatus.CREATED,
        registration_name=outcome.data.get("registration_name"),
    )


def _send(outcome: Outcome, message: str) -> Response:
    return SendResponse(
        message=message,
        success=outcome.success,
        status=SEND_TRANSFER_STATUS.get(outcome.status, TransferStatus.INVALID),
        recipient=outcome.data.get("recipient"),
        amount=outcome.data.get("amount"),
        token=outcome.data.get("token"),
        registration_name=outcome.data.get("registration_name"),
        transfer_id=outcome.data.get("transfer_id"),
    )


def _nominate(outcome: Outcome, message: str) -> Response:
    nominees = [outcome.data[key] for key in ("nominee1", "nominee2") if outcome.data.get(key)]
    return NominateResponse(
        message=message,
        success=outcome.success,
        nominees=nominees,
        code=outcome.data.get("code"),
    )


def _nomination_decision(outcome: Outcome, message: str) -> Response:
    return NominationDecisionResponse(
        type=outcome.kind,
        message=message,
        success=outcome.success,
        code=outcome.data.get("code", ""),
        approved=outcome.kind == CommandType.ACCEPT,
        nominator=outcome.data.get("nominator"),
    )


def _approval_decision(outcome: Outcome, message: str) -> Response:
    if outcome.status == OutcomeStatus.ALREADY_PROCESSED:
        status = TransferStatus.INVALID
    else:
        status = APPROVAL_TRANSFER_STATUS.get(outcome.status, TransferStatus.FAILED)
    return ApprovalDecisionResponse(
        type=outcome.kind,
        message=message,
        success=outcome.success,
        code=outcome.data.get("code", ""),
        approved=outcome.kind == CommandType.APPROVE,
        status=status,
        owner=outcome.data.get("owner"),
    )


def _request(outcome: Outcome, message: str) -> Response:
    return RequestResponse(
        message=message,
        success=outcome.success,
        payment_code=outcome.data.get("code"),
        amount=outcome.data.get("amount"),
        token=outcome.data.get("token"),
    )


def _pay(outcome: Outcome, message: str) -> Response:
    return PayResponse(
        message=message,
        success=outcome.success,
        payment_code=outcome.data.get("code", ""),
        amount=outcome.data.get("amount"),
        token=outcome.data.get("token"),
    )


def _unknown(outcome: Outcome, message: str) -> Response:
    return UnknownResponse(
        message=message,
        success=False,
        original_command=outcome.data.get("original_command", ""),
        suggestions=SUGGESTED_COMMANDS,
    )


RESPONSE_BUILDERS: Dict[CommandType, Callable[[Outcome, str], Response]] = {
    CommandType.HELP: _help,
    CommandType.REGISTER: _register,
    CommandType.SEND: _send,
    CommandType.NOMINATE: _nominate,
    CommandType.ACCEPT: _nomination_decision,
    CommandType.DENY: _nomination_decision,
    CommandType.APPROVE: _approval_decision,
    CommandType.REJECT: _approval_decision,
    CommandType.REQUEST: _request,
    CommandType.PAY: _pay,
    CommandType.UNKNOWN: _unknown,
}


def compose(outcome: Outcome) -> Response:
    """
    Build the reply for a dispatcher outcome.

    Args:
        outcome: Result of dispatching one command

    Returns:
        Frozen reply model tagged with the outcome's command type
    """
    return RESPONSE_BUILDERS[outcome.kind](outcome, render_message(outcome))


# Notification templates: messages to parties other than the sender

def approval_request_notice(owner: str, amount: str, token: str, recipient: str, code: str) -> str:
    return (
        f"{owner} is trying to send {amount} {token} to {recipient}. "
        f"Reply APPROVE {code} to authorize or REJECT {code} to deny."
    )


def transaction_executed_notice(amount: str, token: str, recipient: str) -> str:
    return (
        f"Your transaction of {amount} {token} to {recipient} has been approved "
        "by your cosigners and executed."
    )


def transaction_failed_notice(amount: str, token: str, recipient: str) -> str:
    return (
        f"Your transaction of {amount} {token} to {recipient} was approved by your "
        "cosigners but could not be completed. Please try again later."
    )


def transaction_rejected_notice(amount: str, token: str, recipient: str) -> str:
    return f"Your recent transaction of {amount} {token} to {recipient} was rejected by a cosigner."


def nomination_request_notice(nominator: str, code: str) -> str:
    return (
        f"{nominator} has nominated you as a cosigner for their wallet. "
        f"Reply ACCEPT {code} to accept or DENY {code} to decline."
    )


def nomination_accepted_notice(nominee: str) -> str:
    return (
        f"{nominee} accepted your cosigner nomination. "
        "Your transactions now require cosigner approval."
    )


def nomination_declined_notice(nominee: str) -> str:
    return f"{nominee} declined your cosigner nomination."


def payment_request_notice(requester: str, amount: str, token: str, code: str) -> str:
    return (
        f"{requester} has requested a payment of {amount} {token} from you. "
        f"Reply with PAY {code} to pay."
    )


def payment_received_notice(payer: str, amount: str, token: str, code: str) -> str:
    return f"{payer} paid your request of {amount} {token} (code {code})."
