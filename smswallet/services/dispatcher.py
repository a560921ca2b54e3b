"""
Workflow dispatcher.

Executes parsed commands against persistent workflow state: registration,
direct and quorum transfers, cosigner nominations, approvals and payment
requests. Each command runs in its own unit of work; every single-use code
is consumed with a guarded update so concurrent replies cannot both win.
Claims that lead to a transfer are committed before the transfer is
submitted, and its result is recorded in a second unit of work.
"""
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from smswallet.core.config import Settings, get_settings
from smswallet.core.exceptions import DatabaseError, ExternalServiceError
from smswallet.core.logging import log_business_event
from smswallet.database.nomination_repository import NominationRepository
from smswallet.database.payment_repository import PaymentRepository
from smswallet.database.transaction_repository import TransactionRepository
from smswallet.database.user_repository import UserRepository
from smswallet.models.commands import (
    ApprovalResponseCommand,
    Command,
    CommandType,
    NominateCommand,
    NominationResponseCommand,
    PayCommand,
    RegisterCommand,
    RequestCommand,
    SendCommand,
)
from smswallet.models.database import ApprovalStatus, TransactionStatus
from smswallet.models.outcome import Notification, Outcome, OutcomeStatus
from smswallet.services import response_composer as templates
from smswallet.services.registration_service import RegistrationClient
from smswallet.services.wallet_service import WalletClient
from smswallet.utils.codes import CodeGenerationError, generate_code, generate_unique_code
from smswallet.utils.command_parser import DEFAULT_USERNAME

logger = structlog.get_logger(__name__)

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{2,31}$")


@dataclass(frozen=True)
class TransferClaim:
    """A committed claim whose transfer the claiming caller must now submit."""
    record_id: int
    wallet_id: str
    destination_address: str
    amount: str
    token: str
    notify_phone: str
    data: Dict[str, Any] = field(default_factory=dict)


class WorkflowDispatcher:
    """
    Executes commands and reports what happened as an ``Outcome``.

    Collaborators are injected so the dispatcher holds no hidden global
    state; notifications are returned, never sent from here.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        wallet_client: WalletClient,
        registration_client: RegistrationClient,
        settings: Optional[Settings] = None,
        code_generator: Callable[[int, str], str] = generate_code,
    ):
        """
        Initialize the dispatcher.

        Args:
            session_factory: Creates a new SQLAlchemy session per command
            wallet_client: Wallet creation and transfer collaborator
            registration_client: Name registration collaborator
            settings: Application settings
            code_generator: Produces candidate codes from (length, alphabet)
        """
        self.session_factory = session_factory
        self.wallet_client = wallet_client
        self.registration_client = registration_client
        self.settings = settings or get_settings()
        self.code_generator = code_generator

        self._handlers: Dict[CommandType, Callable[[Command], Awaitable[Outcome]]] = {
            CommandType.HELP: self._handle_help,
            CommandType.REGISTER: self._handle_register,
            CommandType.SEND: self._handle_send,
            CommandType.NOMINATE: self._handle_nominate,
            CommandType.ACCEPT: self._handle_nomination_response,
            CommandType.DENY: self._handle_nomination_response,
            CommandType.APPROVE: self._handle_approval_response,
            CommandType.REJECT: self._handle_approval_response,
            CommandType.REQUEST: self._handle_request,
            CommandType.PAY: self._handle_pay,
            CommandType.UNKNOWN: self._handle_unknown,
        }

    async def dispatch(self, command: Command) -> Outcome:
        """
        Execute ``command``.

        Persistence failures and code exhaustion are rolled back and
        reported as a FAILED outcome.

        Args:
            command: Parsed command

        Returns:
            Outcome describing the result and the notifications to send
        """
        handler = self._handlers[command.type]
        try:
            return await handler(command)
        except (DatabaseError, SQLAlchemyError, CodeGenerationError) as e:
            logger.error(
                "Command failed during unit of work",
                command=command.type.value,
                phone_number=command.phone_number,
                error=str(e),
                exc_info=True,
            )
            return Outcome(kind=command.type, status=OutcomeStatus.FAILED)

    @contextmanager
    def _unit_of_work(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _new_code(self, is_taken: Callable[[str], bool]) -> str:
        return generate_unique_code(
            is_taken,
            length=self.settings.code_length,
            alphabet=self.settings.code_alphabet,
            max_attempts=self.settings.max_code_generation_attempts,
            generator=self.code_generator,
        )

    def _unrecognized(self, command: Command) -> Outcome:
        return Outcome(
            kind=CommandType.UNKNOWN,
            status=OutcomeStatus.UNRECOGNIZED,
            data={"original_command": command.raw_message},
        )

    async def _handle_help(self, command: Command) -> Outcome:
        return Outcome(kind=CommandType.HELP, status=OutcomeStatus.OK)

    async def _handle_unknown(self, command: Command) -> Outcome:
        return self._unrecognized(command)

    async def _handle_register(self, command: RegisterCommand) -> Outcome:
        username = command.username

        with self._unit_of_work() as db:
            users = UserRepository(db)

            existing = users.get_by_phone(command.phone_number)
            if existing is not None:
                return Outcome(
                    kind=CommandType.REGISTER,
                    status=OutcomeStatus.ALREADY_EXISTS,
                    data={
                        "username": existing.username,
                        "wallet_address": existing.wallet_address,
                        "registration_name": existing.registration_name,
                    },
                )

            if username == DEFAULT_USERNAME or not USERNAME_PATTERN.match(username):
                return Outcome(kind=CommandType.REGISTER, status=OutcomeStatus.INVALID, data={"username": username})

            if users.is_username_taken(username):
                return Outcome(kind=CommandType.REGISTER, status=OutcomeStatus.USERNAME_TAKEN, data={"username": username})

            try:
                wallet = await self.wallet_client.create_wallet(username)
            except ExternalServiceError as e:
                logger.error("Wallet creation failed", username=username, error=str(e))
                return Outcome(kind=CommandType.REGISTER, status=OutcomeStatus.FAILED, data={"username": username})

            registration = await self.registration_client.register_name(username, wallet.address)
            registration_name = registration.name if registration.success else None

            try:
                users.create(
                    phone_number=command.phone_number,
                    username=username,
                    wallet_id=wallet.wallet_id,
                    wallet_address=wallet.address,
                    registration_name=registration_name,
                )
                db.commit()
            except (DatabaseError, SQLAlchemyError) as e:
                db.rollback()
                logger.error("User insert failed after wallet creation", username=username, error=str(e))
                return Outcome(kind=CommandType.REGISTER, status=OutcomeStatus.FAILED, data={"username": username})

        log_business_event(
            "wallet_registered",
            username=username,
            wallet_address=wallet.address,
            registration_name=registration_name,
        )
        return Outcome(
            kind=CommandType.REGISTER,
            status=OutcomeStatus.CREATED,
            data={
                "username": username,
                "wallet_address": wallet.address,
                "registration_name": registration_name,
            },
        )

    async def _handle_send(self, command: SendCommand) -> Outcome:
        data = {"amount": command.amount, "token": command.token, "recipient": command.recipient}

        with self._unit_of_work() as db:
            users = UserRepository(db)
            sender = users.get_by_phone(command.phone_number)
            if sender is None:
                return Outcome(kind=CommandType.SEND, status=OutcomeStatus.NOT_REGISTERED, data=data)

            recipient = users.find_by_identifier(command.recipient)
            if recipient is None:
                return Outcome(kind=CommandType.SEND, status=OutcomeStatus.INVALID, data=data)

            data.update(recipient=recipient.username, registration_name=recipient.registration_name)

            if not sender.requires_approval:
                result = await self.wallet_client.transfer(
                    sender.wallet_id, recipient.wallet_address, command.amount, command.token
                )
                if not result.success:
                    return Outcome(kind=CommandType.SEND, status=OutcomeStatus.FAILED, data=data)

                log_business_event(
                    "transfer_submitted",
                    sender=sender.username,
                    recipient=recipient.username,
                    amount=command.amount,
                    token=command.token,
                    transfer_id=result.transfer_id,
                )
                data["transfer_id"] = result.transfer_id
                return Outcome(kind=CommandType.SEND, status=OutcomeStatus.AWAITING_CONFIRMATION, data=data)

            approvers = list(sender.approvers)
            if not approvers:
                return Outcome(kind=CommandType.SEND, status=OutcomeStatus.NO_COSIGNERS, data=data)

            transactions = TransactionRepository(db)
            transaction = transactions.create_transaction(
                owner=sender,
                recipient_name=recipient.username,
                destination_address=recipient.wallet_address,
                amount=command.amount,
                token=command.token,
            )

            notifications: List[Notification] = []
            for approver in approvers:
                code = self._new_code(transactions.approval_code_exists)
                transactions.create_approval(transaction, approver, code)
                notifications.append(Notification(
                    phone_number=approver.phone_number,
                    message=templates.approval_request_notice(
                        sender.username, command.amount, command.token, recipient.username, code
                    ),
                ))

            db.commit()
            transaction_id = transaction.id

        log_business_event(
            "transaction_pending_approval",
            transaction_id=transaction_id,
            owner=sender.username,
            approver_count=len(approvers),
        )
        return Outcome(
            kind=CommandType.SEND,
            status=OutcomeStatus.PENDING_APPROVAL,
            data=data,
            notifications=tuple(notifications),
        )

    async def _handle_approval_response(self, command: ApprovalResponseCommand) -> Outcome:
        claimed = self._claim_approval(command)
        if isinstance(claimed, Outcome):
            return claimed

        result = await self.wallet_client.transfer(
            claimed.wallet_id, claimed.destination_address, claimed.amount, claimed.token
        )
        data = dict(claimed.data, transfer_id=result.transfer_id)
        final_status = TransactionStatus.SUCCESS if result.success else TransactionStatus.FAILED
        self._record_transfer_result(
            lambda db: TransactionRepository(db).record_execution(
                claimed.record_id, final_status, result.transfer_id
            ),
            transaction_id=claimed.record_id,
            status=final_status.value,
        )

        if not result.success:
            log_business_event("transaction_execution_failed", transaction_id=claimed.record_id, error=result.error)
            return Outcome(
                kind=command.type,
                status=OutcomeStatus.EXECUTION_FAILED,
                data=data,
                notifications=(Notification(
                    phone_number=claimed.notify_phone,
                    message=templates.transaction_failed_notice(claimed.amount, claimed.token, data["recipient"]),
                ),),
            )

        log_business_event("transaction_executed", transaction_id=claimed.record_id, transfer_id=result.transfer_id)
        return Outcome(
            kind=command.type,
            status=OutcomeStatus.EXECUTED,
            data=data,
            notifications=(Notification(
                phone_number=claimed.notify_phone,
                message=templates.transaction_executed_notice(claimed.amount, claimed.token, data["recipient"]),
            ),),
        )

    def _claim_approval(self, command: ApprovalResponseCommand) -> Union[Outcome, TransferClaim]:
        """
        Consume an approval code in one committed unit of work.

        The transaction row is locked first, so approvals for one
        transaction are applied one at a time. When this vote completes the
        quorum the transaction moves to ``executing`` and a TransferClaim is
        returned; the transfer itself runs after the commit.
        """
        code = command.code.upper()

        with self._unit_of_work() as db:
            users = UserRepository(db)
            transactions = TransactionRepository(db, self.settings.code_ttl_minutes)

            approver = users.get_by_phone(command.phone_number)
            if approver is None:
                return self._unrecognized(command)

            approval = transactions.get_pending_approval(code, approver.id)
            if approval is None:
                return self._unrecognized(command)

            transaction = transactions.lock_transaction(approval.transaction_id)
            owner = transaction.owner
            data = {
                "code": code,
                "amount": transaction.amount,
                "token": transaction.token,
                "recipient": transaction.recipient_name,
                "owner": owner.username,
            }

            if transaction.status != TransactionStatus.PENDING.value:
                return Outcome(kind=command.type, status=OutcomeStatus.ALREADY_PROCESSED, data=data)

            if not transactions.transition_approval(approval.id, command.approved):
                db.rollback()
                return self._unrecognized(command)

            if not command.approved:
                if not transactions.transition_transaction(transaction.id, TransactionStatus.FAILED):
                    db.rollback()
                    return Outcome(kind=command.type, status=OutcomeStatus.ALREADY_PROCESSED, data=data)
                db.commit()

                log_business_event("transaction_rejected", transaction_id=transaction.id, approver=approver.username)
                return Outcome(
                    kind=command.type,
                    status=OutcomeStatus.REJECTED,
                    data=data,
                    notifications=(Notification(
                        phone_number=owner.phone_number,
                        message=templates.transaction_rejected_notice(
                            transaction.amount, transaction.token, transaction.recipient_name
                        ),
                    ),),
                )

            statuses = transactions.get_approval_statuses(transaction.id)
            if any(status != ApprovalStatus.ACCEPTED.value for status in statuses):
                db.commit()
                log_business_event("approval_accepted", transaction_id=transaction.id, approver=approver.username)
                return Outcome(kind=command.type, status=OutcomeStatus.AWAITING_OTHERS, data=data)

            # Only the caller that wins this claim executes the transfer
            if not transactions.transition_transaction(transaction.id, TransactionStatus.EXECUTING):
                db.rollback()
                return Outcome(kind=command.type, status=OutcomeStatus.ALREADY_PROCESSED, data=data)
            db.commit()

            log_business_event("transaction_claimed", transaction_id=transaction.id, approver=approver.username)
            return TransferClaim(
                record_id=transaction.id,
                wallet_id=owner.wallet_id,
                destination_address=transaction.destination_address,
                amount=transaction.amount,
                token=transaction.token,
                notify_phone=owner.phone_number,
                data=data,
            )

    def _record_transfer_result(self, write: Callable[[Session], Optional[bool]], **context) -> None:
        """
        Store the outcome of a submitted transfer in its own unit of work.

        The transfer has already been submitted and its claim committed, so
        a failure here is logged and the command still reports what the
        wallet did.
        """
        try:
            with self._unit_of_work() as db:
                recorded = write(db)
                db.commit()
        except (DatabaseError, SQLAlchemyError) as e:
            logger.error("Transfer result not recorded", error=str(e), exc_info=True, **context)
            return

        if recorded is False:
            logger.warning("Transfer result matched no claimed row", **context)

    async def _handle_nominate(self, command: NominateCommand) -> Outcome:
        data = {"nominee1": command.nominee1, "nominee2": command.nominee2}

        with self._unit_of_work() as db:
            users = UserRepository(db)
            nominations = NominationRepository(db)

            nominator = users.get_by_phone(command.phone_number)
            if nominator is None:
                return Outcome(kind=CommandType.NOMINATE, status=OutcomeStatus.NOT_REGISTERED, data=data)

            nominee1 = users.find_by_identifier(command.nominee1)
            nominee2 = users.find_by_identifier(command.nominee2)
            if (
                nominee1 is None
                or nominee2 is None
                or nominee1.id == nominee2.id
                or nominator.id in (nominee1.id, nominee2.id)
            ):
                return Outcome(kind=CommandType.NOMINATE, status=OutcomeStatus.INVALID, data=data)

            code = self._new_code(nominations.code_in_use)
            nominations.create_pending(nominator, [nominee1, nominee2], code)
            db.commit()

            notifications = tuple(
                Notification(
                    phone_number=nominee.phone_number,
                    message=templates.nomination_request_notice(nominator.username, code),
                )
                for nominee in (nominee1, nominee2)
            )
            data = {"nominee1": nominee1.username, "nominee2": nominee2.username, "code": code}

        log_business_event("cosigners_nominated", nominator=nominator.username, **data)
        return Outcome(kind=CommandType.NOMINATE, status=OutcomeStatus.OK, data=data, notifications=notifications)

    async def _handle_nomination_response(self, command: NominationResponseCommand) -> Outcome:
        code = command.code.upper()

        with self._unit_of_work() as db:
            users = UserRepository(db)
            nominations = NominationRepository(db, self.settings.code_ttl_minutes)

            responder = users.get_by_phone(command.phone_number)
            if responder is None:
                return self._unrecognized(command)

            claimed = nominations.claim_pending(code, responder.id, command.accepted)
            if not claimed:
                db.rollback()
                return self._unrecognized(command)

            nominators = {nomination.nominator.id: nomination.nominator for nomination in claimed}
            if command.accepted:
                for nominator in nominators.values():
                    users.add_approver(nominator, responder)
            db.commit()

            if command.accepted:
                message = templates.nomination_accepted_notice(responder.username)
                status = OutcomeStatus.ACCEPTED
            else:
                message = templates.nomination_declined_notice(responder.username)
                status = OutcomeStatus.DECLINED

            notifications = tuple(
                Notification(phone_number=nominator.phone_number, message=message)
                for nominator in nominators.values()
            )
            nominator_names = ", ".join(nominator.username for nominator in nominators.values())

        log_business_event(
            "nomination_answered",
            nominee=responder.username,
            nominator=nominator_names,
            accepted=command.accepted,
        )
        return Outcome(
            kind=command.type,
            status=status,
            data={"code": code, "nominator": nominator_names},
            notifications=notifications,
        )

    async def _handle_request(self, command: RequestCommand) -> Outcome:
        data = {"amount": command.amount, "token": command.token, "recipient": command.recipient}

        with self._unit_of_work() as db:
            users = UserRepository(db)
            payments = PaymentRepository(db)

            requester = users.get_by_phone(command.phone_number)
            if requester is None:
                return Outcome(kind=CommandType.REQUEST, status=OutcomeStatus.NOT_REGISTERED, data=data)

            recipient = users.find_by_identifier(command.recipient)
            if recipient is None or recipient.id == requester.id:
                return Outcome(kind=CommandType.REQUEST, status=OutcomeStatus.INVALID, data=data)

            code = self._new_code(payments.code_in_use)
            payments.create_pending(requester, recipient, code, command.amount, command.token)
            db.commit()

            data.update(recipient=recipient.username, code=code)
            notification = Notification(
                phone_number=recipient.phone_number,
                message=templates.payment_request_notice(requester.username, command.amount, command.token, code),
            )

        log_business_event("payment_requested", requester=requester.username, **data)
        return Outcome(kind=CommandType.REQUEST, status=OutcomeStatus.OK, data=data, notifications=(notification,))

    async def _handle_pay(self, command: PayCommand) -> Outcome:
        claimed = self._claim_payment(command)
        if isinstance(claimed, Outcome):
            return claimed

        data = claimed.data
        result = await self.wallet_client.transfer(
            claimed.wallet_id, claimed.destination_address, claimed.amount, claimed.token
        )
        if not result.success:
            # Releases the claim so the code can be paid again
            self._record_transfer_result(
                lambda db: PaymentRepository(db).release(claimed.record_id),
                payment_id=claimed.record_id,
            )
            return Outcome(kind=CommandType.PAY, status=OutcomeStatus.FAILED, data=data)

        self._record_transfer_result(
            lambda db: PaymentRepository(db).record_transfer(claimed.record_id, result.transfer_id),
            payment_id=claimed.record_id,
            transfer_id=result.transfer_id,
        )

        notification = Notification(
            phone_number=claimed.notify_phone,
            message=templates.payment_received_notice(data["payer"], claimed.amount, claimed.token, data["code"]),
        )
        log_business_event("payment_completed", transfer_id=result.transfer_id, **data)
        return Outcome(kind=CommandType.PAY, status=OutcomeStatus.OK, data=data, notifications=(notification,))

    def _claim_payment(self, command: PayCommand) -> Union[Outcome, TransferClaim]:
        """Mark the payer's pending payment paid and commit before any transfer."""
        code = command.code.upper()
        data = {"code": code}

        with self._unit_of_work() as db:
            users = UserRepository(db)
            payments = PaymentRepository(db, self.settings.code_ttl_minutes)

            payer = users.get_by_phone(command.phone_number)
            if payer is None:
                return Outcome(kind=CommandType.PAY, status=OutcomeStatus.NOT_REGISTERED, data=data)

            payment = payments.get_pending_for_payer(code, payer.id)
            if payment is None:
                return Outcome(kind=CommandType.PAY, status=OutcomeStatus.NOT_FOUND, data=data)

            requester = payment.requester
            if not payments.mark_paid(payment.id):
                db.rollback()
                return Outcome(kind=CommandType.PAY, status=OutcomeStatus.NOT_FOUND, data=data)
            db.commit()

            return TransferClaim(
                record_id=payment.id,
                wallet_id=payer.wallet_id,
                destination_address=requester.wallet_address,
                amount=payment.amount,
                token=payment.token,
                notify_phone=requester.phone_number,
                data={
                    "code": code,
                    "amount": payment.amount,
                    "token": payment.token,
                    "requester": requester.username,
                    "payer": payer.username,
                },
            )
