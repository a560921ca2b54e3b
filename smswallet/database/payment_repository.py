"""
Payment request database repository.
"""

from typing import Optional

import structlog
from sqlalchemy import or_, select, update

from smswallet.database.base import BaseRepository
from smswallet.models.database import Payment, PaymentStatus, User

logger = structlog.get_logger(__name__)


class PaymentRepository(BaseRepository):
    """Repository for payment requests."""

    def code_in_use(self, code: str) -> bool:
        """
        True when a pending payment, or a paid one whose transfer is still
        unrecorded, already uses ``code``.
        """
        with self._operation("check payment code"):
            return self.db.scalars(
                select(Payment.id).where(
                    Payment.code == code,
                    or_(
                        Payment.status == PaymentStatus.PENDING.value,
                        Payment.transfer_id.is_(None),
                    ),
                )
            ).first() is not None

    def create_pending(self, requester: User, recipient: User, code: str, amount: str, token: str) -> Payment:
        """
        Create a pending payment request.

        Args:
            requester: User asking to be paid
            recipient: User asked to pay
            code: Payment code unique among pending payments
            amount: Decimal amount string
            token: Token symbol

        Returns:
            Created Payment instance
        """
        with self._operation("create payment", requester_id=requester.id, code=code):
            payment = Payment(
                requester_id=requester.id,
                recipient_id=recipient.id,
                code=code,
                amount=amount,
                token=token,
                status=PaymentStatus.PENDING.value,
            )
            self.db.add(payment)
            self.db.flush()

        logger.info(
            "Payment request created",
            payment_id=payment.id,
            requester_id=requester.id,
            recipient_id=recipient.id,
            code=code,
        )
        return payment

    def get_pending_for_payer(self, code: str, payer_id: int) -> Optional[Payment]:
        """Find the pending payment with ``code`` addressed to ``payer_id``."""
        with self._operation("get pending payment", code=code, payer_id=payer_id):
            query = select(Payment).where(
                Payment.code == code,
                Payment.recipient_id == payer_id,
                Payment.status == PaymentStatus.PENDING.value,
            )
            cutoff = self._code_cutoff()
            if cutoff is not None:
                query = query.where(Payment.created_at >= cutoff)
            return self.db.scalars(query).first()

    def mark_paid(self, payment_id: int) -> bool:
        """
        Claim a pending payment.

        Returns:
            True if this call moved it to paid, False if it was already paid
        """
        with self._operation("mark payment paid", payment_id=payment_id):
            result = self.db.execute(
                update(Payment)
                .where(
                    Payment.id == payment_id,
                    Payment.status == PaymentStatus.PENDING.value,
                )
                .values(status=PaymentStatus.PAID.value)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def record_transfer(self, payment_id: int, transfer_id: Optional[str]) -> None:
        with self._operation("record payment transfer", payment_id=payment_id):
            self.db.execute(
                update(Payment)
                .where(Payment.id == payment_id)
                .values(transfer_id=transfer_id)
                .execution_options(synchronize_session=False)
            )

    def release(self, payment_id: int) -> bool:
        """
        Return a paid payment with no recorded transfer to pending.

        Used when the transfer behind a claim fails, so the code stays
        payable.

        Returns:
            True if the payment is pending again
        """
        with self._operation("release payment", payment_id=payment_id):
            result = self.db.execute(
                update(Payment)
                .where(
                    Payment.id == payment_id,
                    Payment.status == PaymentStatus.PAID.value,
                    Payment.transfer_id.is_(None),
                )
                .values(status=PaymentStatus.PENDING.value)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1
