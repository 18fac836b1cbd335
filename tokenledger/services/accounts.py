"""Account lookups and guarded balance mutations."""

from beanie import PydanticObjectId
from bson import ObjectId
from pymongo import ReturnDocument

from tokenledger.core.exceptions import InvalidAmountError, NotFoundError
from tokenledger.core.logging import get_logger
from tokenledger.db.store import AtomicUnit, store_errors
from tokenledger.models.account import Account

log = get_logger(__name__)


def parse_object_id(value: str | ObjectId | None) -> PydanticObjectId | None:
    """Return an ObjectId for a path/session value, or None if it cannot be one."""
    if isinstance(value, ObjectId):
        return PydanticObjectId(value)
    if isinstance(value, str) and ObjectId.is_valid(value):
        return PydanticObjectId(value)
    return None


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


async def get_account(account_id: str | ObjectId | None) -> Account | None:
    oid = parse_object_id(account_id)
    if oid is None:
        return None
    with store_errors():
        return await Account.get(oid)


async def find_by_email(email: str) -> Account | None:
    normalized = normalize_email(email)
    if not normalized:
        return None
    with store_errors():
        return await Account.find_one(Account.email == normalized)


async def get_balance(account_id: str | ObjectId) -> int:
    account = await get_account(account_id)
    if not account:
        raise NotFoundError("User not found")
    return account.balance


async def create_account(email: str, name: str = "", balance: int = 0) -> Account:
    """Insert an account record; registration itself lives outside the ledger."""
    if balance < 0:
        raise InvalidAmountError("Opening balance cannot be negative")
    account = Account(email=normalize_email(email), name=name, balance=balance)
    with store_errors():
        await account.insert()
    return account


async def debit(unit: AtomicUnit, account_id: ObjectId, amount: int) -> int | None:
    """
    Take ``amount`` from the account only if the balance covers it.
    Returns the new balance, or None when the guard rejected the update.
    """
    doc = await Account.get_motor_collection().find_one_and_update(
        {"_id": account_id, "balance": {"$gte": amount}},
        {"$inc": {"balance": -amount}},
        return_document=ReturnDocument.AFTER,
        session=unit.session,
    )
    if doc is None:
        return None
    unit.on_rollback(lambda: _inc(account_id, amount))
    return doc["balance"]


async def credit(unit: AtomicUnit, account_id: ObjectId, amount: int) -> int | None:
    """Add ``amount``; returns the new balance, or None if the account is gone."""
    doc = await Account.get_motor_collection().find_one_and_update(
        {"_id": account_id},
        {"$inc": {"balance": amount}},
        return_document=ReturnDocument.AFTER,
        session=unit.session,
    )
    if doc is None:
        return None
    unit.on_rollback(lambda: _dec(account_id, amount))
    return doc["balance"]


async def _inc(account_id: ObjectId, amount: int) -> None:
    await Account.get_motor_collection().update_one({"_id": account_id}, {"$inc": {"balance": amount}})


async def _dec(account_id: ObjectId, amount: int) -> None:
    # Floor at zero: a compensation must never drive a balance negative.
    result = await Account.get_motor_collection().update_one(
        {"_id": account_id, "balance": {"$gte": amount}},
        {"$inc": {"balance": -amount}},
    )
    if result.modified_count == 0:
        log.error("compensation_skipped", account_id=str(account_id), amount=amount)
