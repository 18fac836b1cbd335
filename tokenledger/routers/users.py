from typing import Literal

from fastapi import APIRouter, Depends, Query

from tokenledger.deps import get_current_account
from tokenledger.models.account import Account
from tokenledger.services import history as history_service

router = APIRouter()


@router.get("/profile")
async def users_profile(account: Account = Depends(get_current_account)):
    """Current user with transfer statistics."""
    stats = await history_service.get_account_stats(account.id)
    return {
        "user": {"id": str(account.id), "email": account.email, "name": account.name},
        "stats": stats.model_dump(),
    }


@router.get("/leaderboard")
async def users_leaderboard(
    type: Literal["sent", "received"] = Query("sent"),
    limit: int = Query(10, ge=1, le=100),
):
    """Top users by tokens sent or received."""
    entries = await history_service.aggregate_leaderboard(type, limit)
    return {"type": type, "leaderboard": [e.model_dump() for e in entries]}
