"""Read side of the ledger: history pages, leaderboards, recent activity, stats."""

from typing import Literal

from bson import ObjectId
from pydantic import BaseModel

from tokenledger.core.config import get_settings
from tokenledger.core.exceptions import NotFoundError, ValidationError
from tokenledger.core.pagination import Page, build_page, page_window
from tokenledger.db.store import store_errors
from tokenledger.models.account import Account
from tokenledger.models.token_transaction import TokenTransaction, TransactionStatus, TransactionType
from tokenledger.services import accounts

LeaderboardKind = Literal["sent", "received"]

# Newest first; _id breaks created_at ties so page boundaries never shift.
HISTORY_ORDER = ("-created_at", "-_id")


class LeaderboardEntry(BaseModel):
    account_id: str
    name: str
    email: str
    total: int
    transactions: int


class AccountStats(BaseModel):
    total_sent: int
    total_received: int
    total_transactions: int
    current_balance: int


def _involving(account_id: ObjectId) -> dict:
    return {"$or": [{"sender_id": account_id}, {"recipient_id": account_id}]}


async def get_user_history(account_id: ObjectId, limit: int = 20, offset: int = 0) -> list[TokenTransaction]:
    with store_errors():
        return (
            await TokenTransaction.find(_involving(account_id))
            .sort(*HISTORY_ORDER)
            .skip(offset)
            .limit(limit)
            .to_list()
        )


async def get_history(account_id: str | ObjectId, page: int = 1, limit: int = 20) -> Page[TokenTransaction]:
    """One page of the account's transactions, as sender or recipient."""
    oid = accounts.parse_object_id(account_id)
    if oid is None:
        raise NotFoundError("User not found")
    page, limit, offset = page_window(page, limit, get_settings().history_max_limit)
    items = await get_user_history(oid, limit, offset)
    with store_errors():
        total = await TokenTransaction.find(_involving(oid)).count()
    return build_page(items, page, limit, total)


async def get_recent_transactions(limit: int = 10) -> list[TokenTransaction]:
    limit = max(1, min(limit, get_settings().history_max_limit))
    with store_errors():
        return (
            await TokenTransaction.find(TokenTransaction.status == TransactionStatus.COMPLETED)
            .sort(*HISTORY_ORDER)
            .limit(limit)
            .to_list()
        )


async def aggregate_leaderboard(kind: LeaderboardKind = "sent", limit: int = 10) -> list[LeaderboardEntry]:
    """Top accounts by tokens sent or received through transfers."""
    if kind not in ("sent", "received"):
        raise ValidationError("Leaderboard type must be 'sent' or 'received'", field="type")
    limit = max(1, min(limit, 100))
    group_key = "$sender_id" if kind == "sent" else "$recipient_id"
    pipeline = [
        {"$match": {"type": TransactionType.SEND.value}},
        {"$group": {"_id": group_key, "total": {"$sum": "$amount"}, "transactions": {"$sum": 1}}},
        {"$sort": {"total": -1, "_id": 1}},
        {"$limit": limit},
        {
            "$lookup": {
                "from": Account.get_motor_collection().name,
                "localField": "_id",
                "foreignField": "_id",
                "as": "account",
            }
        },
        {"$unwind": "$account"},
    ]
    with store_errors():
        rows = await TokenTransaction.aggregate(pipeline).to_list()
    return [
        LeaderboardEntry(
            account_id=str(row["_id"]),
            name=row["account"].get("name", ""),
            email=row["account"]["email"],
            total=row["total"],
            transactions=row["transactions"],
        )
        for row in rows
    ]


async def _sum_sent(match: dict) -> int:
    rows = await TokenTransaction.aggregate(
        [
            {"$match": {**match, "type": TransactionType.SEND.value}},
            {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
        ]
    ).to_list()
    return rows[0]["total"] if rows else 0


async def get_account_stats(account_id: str | ObjectId) -> AccountStats:
    account = await accounts.get_account(account_id)
    if not account:
        raise NotFoundError("User not found")
    with store_errors():
        total_sent = await _sum_sent({"sender_id": account.id})
        total_received = await _sum_sent({"recipient_id": account.id})
        total_transactions = await TokenTransaction.find(_involving(account.id)).count()
    return AccountStats(
        total_sent=total_sent,
        total_received=total_received,
        total_transactions=total_transactions,
        current_balance=account.balance,
    )
