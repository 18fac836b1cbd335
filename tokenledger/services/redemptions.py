"""Reward redemption: stock claim, balance debit and REDEEM row as one unit."""

from dataclasses import dataclass

from bson import ObjectId

from tokenledger.core.exceptions import InsufficientFundsError, NotFoundError, RewardUnavailableError
from tokenledger.core.logging import get_logger
from tokenledger.db.store import AtomicUnit, Store
from tokenledger.models.reward import Reward
from tokenledger.models.token_transaction import (
    RedemptionDetails,
    TokenTransaction,
    TransactionStatus,
    TransactionType,
)
from tokenledger.services import accounts
from tokenledger.services import rewards as rewards_service
from tokenledger.services.notifications import Notifier, RewardRedeemed

log = get_logger(__name__)


@dataclass
class RedemptionResult:
    new_balance: int
    redemption_code: str
    transaction: TokenTransaction
    reward: Reward


def _ensure_available(reward: Reward) -> None:
    if not reward.is_active:
        raise RewardUnavailableError("This reward is no longer available", reason="inactive")
    if not reward.is_available:
        raise RewardUnavailableError("This reward is out of stock", reason="out_of_stock")


class RedemptionEngine:
    def __init__(self, store: Store, notifier: Notifier | None = None):
        self.store = store
        self.notifier = notifier

    async def redeem(self, user_id: str | ObjectId, reward_id: str | ObjectId) -> RedemptionResult:
        reward = await rewards_service.get_reward(reward_id)
        _ensure_available(reward)
        user = await accounts.get_account(user_id)
        if not user:
            raise NotFoundError("User not found")
        if not reward.can_afford(user.balance):
            raise InsufficientFundsError(required=reward.token_cost, current=user.balance)

        code = reward.redemption_code or rewards_service.generate_redemption_code()
        cost = reward.token_cost

        async def apply(unit: AtomicUnit) -> RedemptionResult:
            # Claim stock first: it is the scarcer resource and the cheaper one to give back.
            claimed = await rewards_service.reserve_stock(unit, reward.id)
            new_balance = await accounts.debit(unit, user.id, cost)
            if new_balance is None:
                raise InsufficientFundsError(required=cost)
            transaction = TokenTransaction(
                sender_id=user.id,
                recipient_id=user.id,
                amount=-cost,
                message=f"Redeemed: {reward.name}",
                type=TransactionType.REDEEM,
                status=TransactionStatus.COMPLETED,
                metadata=RedemptionDetails(
                    reward_id=reward.id,
                    reward_name=reward.name,
                    redemption_code=code,
                ),
            )
            await transaction.insert(session=unit.session)
            reward.stock = claimed["stock"]
            return RedemptionResult(
                new_balance=new_balance,
                redemption_code=code,
                transaction=transaction,
                reward=reward,
            )

        result = await self.store.run_atomic(apply)
        log.info(
            "redemption_completed",
            transaction_id=str(result.transaction.id),
            account_id=str(user.id),
            reward_id=str(reward.id),
            token_cost=cost,
            stock_left=reward.stock,
        )
        if self.notifier is not None:
            self.notifier.publish(
                RewardRedeemed(
                    transaction_id=str(result.transaction.id),
                    account_id=str(user.id),
                    account_email=user.email,
                    reward_id=str(reward.id),
                    reward_name=reward.name,
                    redemption_code=code,
                    token_cost=cost,
                )
            )
        return result
