from fastapi import APIRouter, Depends

from tokenledger.deps import get_current_account, get_redemptions
from tokenledger.models.account import Account
from tokenledger.models.reward import Reward
from tokenledger.routers.tokens import transaction_out
from tokenledger.services import rewards as rewards_service
from tokenledger.services.redemptions import RedemptionEngine

router = APIRouter()


def reward_out(r: Reward) -> dict:
    return {
        "id": str(r.id),
        "name": r.name,
        "description": r.description,
        "token_cost": r.token_cost,
        "category": r.category.value,
        "image_url": r.image_url,
        "stock": r.stock,
        "is_available": r.is_available,
        "terms": r.terms,
    }


@router.get("")
async def rewards_list():
    """All active rewards, cheapest first."""
    items = await rewards_service.list_rewards()
    return {"rewards": [reward_out(r) for r in items]}


@router.get("/categories/{category}")
async def rewards_by_category(category: str):
    items = await rewards_service.list_rewards_by_category(category)
    return {"category": category.upper(), "rewards": [reward_out(r) for r in items]}


@router.get("/{reward_id}")
async def reward_detail(reward_id: str):
    reward = await rewards_service.get_reward(reward_id)
    return {"reward": reward_out(reward)}


@router.post("/{reward_id}/redeem")
async def reward_redeem(
    reward_id: str,
    account: Account = Depends(get_current_account),
    redemptions: RedemptionEngine = Depends(get_redemptions),
):
    """Spend tokens on a reward; returns the redemption code."""
    result = await redemptions.redeem(account.id, reward_id)
    return {
        "message": f"Successfully redeemed {result.reward.name}",
        "new_balance": result.new_balance,
        "redemption_code": result.redemption_code,
        "transaction": transaction_out(result.transaction),
    }
