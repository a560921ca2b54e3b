"""
Dispatcher results: what happened, plus who else must be told.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple

from smswallet.models.commands import CommandType


class OutcomeStatus(str, Enum):
    """Result of executing a command against workflow state."""

    OK = "ok"
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    NOT_REGISTERED = "not_registered"
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    USERNAME_TAKEN = "username_taken"
    FAILED = "failed"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    PENDING_APPROVAL = "pending_approval"
    NO_COSIGNERS = "no_cosigners"
    AWAITING_OTHERS = "awaiting_others"
    EXECUTED = "executed"
    EXECUTION_FAILED = "execution_failed"
    REJECTED = "rejected"
    ALREADY_PROCESSED = "already_processed"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    UNRECOGNIZED = "unrecognized"


SUCCESS_STATUSES = frozenset({
    OutcomeStatus.OK,
    OutcomeStatus.CREATED,
    OutcomeStatus.ALREADY_EXISTS,
    OutcomeStatus.AWAITING_CONFIRMATION,
    OutcomeStatus.PENDING_APPROVAL,
    OutcomeStatus.AWAITING_OTHERS,
    OutcomeStatus.EXECUTED,
    OutcomeStatus.REJECTED,
    OutcomeStatus.ALREADY_PROCESSED,
    OutcomeStatus.ACCEPTED,
    OutcomeStatus.DECLINED,
})


@dataclass(frozen=True)
class Notification:
    """A side-channel SMS to someone other than the sender."""

    phone_number: str
    message: str


@dataclass(frozen=True)
class Outcome:
    """
    Result of dispatching one command.

    ``data`` carries everything the composer needs to render the reply;
    ``notifications`` is the fan-out list, delivered after commit.
    """

    kind: CommandType
    status: OutcomeStatus
    data: Dict[str, Any] = field(default_factory=dict)
    notifications: Tuple[Notification, ...] = ()

    @property
    def success(self) -> bool:
        return self.status in SUCCESS_STATUSES
