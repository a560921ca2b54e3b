"""
Transaction and approval database repository.

Quorum sends are stored as one ``Transaction`` plus one ``Approval`` per
cosigner. Every status change is a guarded ``UPDATE ... WHERE status = ...``;
callers check the returned flag to learn whether they won.
"""

from typing import List, Optional

import structlog
from sqlalchemy import select, update

from smswallet.database.base import BaseRepository
from smswallet.models.database import (
    Approval,
    ApprovalStatus,
    Transaction,
    TransactionStatus,
    User,
)

logger = structlog.get_logger(__name__)


class TransactionRepository(BaseRepository):
    """Repository for quorum transactions and their approvals."""

    # Transaction Operations

    def create_transaction(
        self,
        owner: User,
        recipient_name: str,
        destination_address: str,
        amount: str,
        token: str,
    ) -> Transaction:
        """Create a pending transaction awaiting cosigner approval."""
        with self._operation("create transaction", owner_id=owner.id):
            transaction = Transaction(
                owner_id=owner.id,
                recipient_name=recipient_name,
                destination_address=destination_address,
                amount=amount,
                token=token,
                status=TransactionStatus.PENDING.value,
            )
            self.db.add(transaction)
            self.db.flush()

        logger.info(
            "Transaction created",
            transaction_id=transaction.id,
            owner_id=owner.id,
            amount=amount,
            token=token,
        )
        return transaction

    def lock_transaction(self, transaction_id: int) -> Optional[Transaction]:
        """
        Load a transaction under a row lock (``SELECT ... FOR UPDATE``).

        Approvals for the same transaction queue behind the lock until the
        holder commits, so the last approver always sees every other vote.
        """
        with self._operation("lock transaction", transaction_id=transaction_id):
            return self.db.scalars(
                select(Transaction)
                .where(Transaction.id == transaction_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).first()

    def transition_transaction(
        self,
        transaction_id: int,
        new_status: TransactionStatus,
    ) -> bool:
        """
        Move a pending transaction to ``new_status``.

        Returns:
            True if this call performed the transition, False if the
            transaction was no longer pending
        """
        with self._operation("transition transaction", transaction_id=transaction_id):
            result = self.db.execute(
                update(Transaction)
                .where(
                    Transaction.id == transaction_id,
                    Transaction.status == TransactionStatus.PENDING.value,
                )
                .values(status=new_status.value)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def record_execution(
        self,
        transaction_id: int,
        status: TransactionStatus,
        transfer_id: Optional[str] = None,
    ) -> bool:
        """
        Record the transfer result on an executing transaction.

        Returns:
            True if the result was stored, False if the transaction was not
            executing
        """
        with self._operation("record transaction execution", transaction_id=transaction_id):
            result = self.db.execute(
                update(Transaction)
                .where(
                    Transaction.id == transaction_id,
                    Transaction.status == TransactionStatus.EXECUTING.value,
                )
                .values(status=status.value, transfer_id=transfer_id)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    # Approval Operations

    def approval_code_exists(self, code: str) -> bool:
        """Approval codes are globally unique, whatever their status."""
        with self._operation("check approval code"):
            return self.db.scalars(
                select(Approval.id).where(Approval.code == code)
            ).first() is not None

    def create_approval(self, transaction: Transaction, approver: User, code: str) -> Approval:
        with self._operation("create approval", transaction_id=transaction.id, approver_id=approver.id):
            approval = Approval(
                transaction_id=transaction.id,
                approver_id=approver.id,
                code=code,
                status=ApprovalStatus.PENDING.value,
            )
            self.db.add(approval)
            self.db.flush()
        return approval

    def get_pending_approval(self, code: str, approver_id: int) -> Optional[Approval]:
        """At most one pending approval matches a (code, approver) pair."""
        with self._operation("get pending approval", code=code, approver_id=approver_id):
            query = select(Approval).where(
                Approval.code == code,
                Approval.approver_id == approver_id,
                Approval.status == ApprovalStatus.PENDING.value,
            )
            cutoff = self._code_cutoff()
            if cutoff is not None:
                query = query.where(Approval.created_at >= cutoff)
            return self.db.scalars(query).first()

    def transition_approval(self, approval_id: int, approved: bool) -> bool:
        """
        Consume a pending approval code.

        Returns:
            True if this call consumed it, False if it was already used
        """
        new_status = ApprovalStatus.ACCEPTED if approved else ApprovalStatus.REJECTED
        with self._operation("transition approval", approval_id=approval_id):
            result = self.db.execute(
                update(Approval)
                .where(
                    Approval.id == approval_id,
                    Approval.status == ApprovalStatus.PENDING.value,
                )
                .values(status=new_status.value)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def get_approval_statuses(self, transaction_id: int) -> List[str]:
        """Read approval statuses straight from the database."""
        with self._operation("get approval statuses", transaction_id=transaction_id):
            return list(
                self.db.scalars(
                    select(Approval.status).where(Approval.transaction_id == transaction_id)
                ).all()
            )
