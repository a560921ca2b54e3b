"""
Models package for the SMS Wallet Command Service.
"""
from .commands import Command, CommandType
from .outcome import Notification, Outcome, OutcomeStatus
from .responses import Response, TransferStatus

__all__ = [
    "Command",
    "CommandType",
    "Notification",
    "Outcome",
    "OutcomeStatus",
    "Response",
    "TransferStatus",
]
