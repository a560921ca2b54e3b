"""
Notification fan-out for replies and side-channel SMS.
"""
import asyncio
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import structlog

from smswallet.models.outcome import Notification
from smswallet.services.sms_gateway import SMSGatewayClient

logger = structlog.get_logger(__name__)


@dataclass
class DeliveryReport:
    """Per-batch delivery summary."""

    sent: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def all_sent(self) -> bool:
        return not self.failed


class NotificationService:
    """Delivers SMS notifications independently of each other."""

    def __init__(self, sms_client: SMSGatewayClient):
        self.sms_client = sms_client

    async def deliver(self, notifications: Sequence[Notification]) -> DeliveryReport:
        """
        Send every notification concurrently.

        A failed delivery is logged and counted; it never stops the other
        deliveries and is never raised to the caller.

        Args:
            notifications: Messages to send

        Returns:
            DeliveryReport listing delivered and failed phone numbers
        """
        report = DeliveryReport()
        if not notifications:
            return report

        results = await asyncio.gather(
            *(self.sms_client.send_sms(n.phone_number, n.message) for n in notifications),
            return_exceptions=True,
        )

        for notification, result in zip(notifications, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Notification delivery failed",
                    phone_number=notification.phone_number,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                report.failed.append((notification.phone_number, str(result)))
            else:
                report.sent.append(notification.phone_number)

        logger.info(
            "Notifications delivered",
            sent=len(report.sent),
            failed=len(report.failed),
        )
        return report
