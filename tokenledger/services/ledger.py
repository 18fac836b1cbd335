"""Token transfers between accounts."""

from dataclasses import dataclass

from bson import ObjectId

from tokenledger.core.exceptions import (
    InsufficientFundsError,
    InvalidAmountError,
    InvalidMessageError,
    NotFoundError,
    SelfTransferError,
)
from tokenledger.core.logging import get_logger
from tokenledger.db.store import AtomicUnit, Store
from tokenledger.models.account import Account
from tokenledger.models.token_transaction import (
    MESSAGE_MAX_LENGTH,
    TokenTransaction,
    TransactionStatus,
    TransactionType,
)
from tokenledger.services import accounts
from tokenledger.services.notifications import Notifier, TransferCompleted

log = get_logger(__name__)


@dataclass
class TransferResult:
    new_balance: int
    transaction: TokenTransaction
    recipient: Account


def validate_amount(amount) -> int:
    # bool is an int subclass; True must not move one token
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError()
    if amount <= 0:
        raise InvalidAmountError("Amount must be at least 1")
    return amount


def validate_message(message) -> str:
    if not isinstance(message, str):
        raise InvalidMessageError()
    text = message.strip()
    if not text or len(text) > MESSAGE_MAX_LENGTH:
        raise InvalidMessageError()
    return text


async def _delete_transaction(transaction: TokenTransaction) -> None:
    await TokenTransaction.get_motor_collection().delete_one({"_id": transaction.id})


class LedgerEngine:
    def __init__(self, store: Store, notifier: Notifier | None = None):
        self.store = store
        self.notifier = notifier

    async def transfer(
        self,
        sender_id: str | ObjectId,
        recipient_email: str,
        amount: int,
        message: str,
    ) -> TransferResult:
        """
        Move ``amount`` tokens from the sender to the account owning
        ``recipient_email`` and record one SEND row.

        Debit, credit and the ledger insert commit as one unit; the
        notification is published only after that unit committed.
        """
        amount = validate_amount(amount)
        message = validate_message(message)

        sender = await accounts.get_account(sender_id)
        if not sender:
            raise NotFoundError("Sender not found")
        recipient = await accounts.find_by_email(recipient_email)
        if not recipient:
            raise NotFoundError("Recipient not found")
        if sender.id == recipient.id:
            raise SelfTransferError()
        if sender.balance < amount:
            raise InsufficientFundsError(required=amount, current=sender.balance)

        async def apply(unit: AtomicUnit) -> TransferResult:
            new_balance = await accounts.debit(unit, sender.id, amount)
            if new_balance is None:
                raise InsufficientFundsError(required=amount)
            transaction = TokenTransaction(
                sender_id=sender.id,
                recipient_id=recipient.id,
                amount=amount,
                message=message,
                type=TransactionType.SEND,
                status=TransactionStatus.COMPLETED,
            )
            await transaction.insert(session=unit.session)
            unit.on_rollback(lambda: _delete_transaction(transaction))
            # Credit last: once the recipient holds the tokens nothing in the unit can fail.
            recipient_balance = await accounts.credit(unit, recipient.id, amount)
            if recipient_balance is None:
                raise NotFoundError("Recipient not found")
            recipient.balance = recipient_balance
            return TransferResult(new_balance=new_balance, transaction=transaction, recipient=recipient)

        result = await self.store.run_atomic(apply)
        sender.balance = result.new_balance
        log.info(
            "transfer_completed",
            transaction_id=str(result.transaction.id),
            sender_id=str(sender.id),
            recipient_id=str(recipient.id),
            amount=amount,
        )
        if self.notifier is not None:
            self.notifier.publish(
                TransferCompleted(
                    transaction_id=str(result.transaction.id),
                    sender_id=str(sender.id),
                    sender_name=sender.name,
                    recipient_id=str(recipient.id),
                    recipient_email=recipient.email,
                    recipient_name=recipient.name,
                    amount=amount,
                    message=message,
                    recipient_balance=recipient.balance,
                )
            )
        return result
