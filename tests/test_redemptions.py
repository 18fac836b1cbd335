import asyncio

import pytest
from pymongo.errors import NetworkTimeout

from tokenledger.core.exceptions import (
    InsufficientFundsError,
    NotFoundError,
    RewardUnavailableError,
    StoreUnavailableError,
)
from tokenledger.models.reward import Reward
from tokenledger.models.token_transaction import TokenTransaction, TransactionType
from tokenledger.services import accounts
from tokenledger.services import rewards as rewards_service

pytestmark = pytest.mark.asyncio


async def stock_of(reward) -> int:
    return (await Reward.get(reward.id)).stock


async def test_redeem_debits_decrements_and_records(redemptions, make_account, make_reward):
    user = await make_account("user@example.com", balance=20)
    reward = await make_reward("Movie Ticket", token_cost=15, stock=3)

    result = await redemptions.redeem(user.id, reward.id)

    assert result.new_balance == 5
    assert await accounts.get_balance(user.id) == 5
    assert await stock_of(reward) == 2
    tx = result.transaction
    assert tx.type == TransactionType.REDEEM
    assert tx.amount == -15
    assert tx.sender_id == user.id == tx.recipient_id
    assert tx.message == "Redeemed: Movie Ticket"
    assert tx.metadata.reward_id == reward.id
    assert tx.metadata.reward_name == "Movie Ticket"
    assert tx.metadata.redemption_code == result.redemption_code
    assert result.redemption_code


async def test_fixed_redemption_code_is_handed_out(redemptions, make_account, make_reward):
    user = await make_account("user@example.com", balance=20)
    reward = await make_reward(token_cost=5, redemption_code="COFFEE-2024")

    result = await redemptions.redeem(user.id, str(reward.id))

    assert result.redemption_code == "COFFEE-2024"


async def test_unlimited_stock_is_never_decremented(redemptions, make_account, make_reward):
    user = await make_account("user@example.com", balance=50)
    reward = await make_reward(token_cost=5, stock=-1)

    for _ in range(4):
        await redemptions.redeem(user.id, reward.id)

    assert await stock_of(reward) == -1
    assert await accounts.get_balance(user.id) == 30
    assert await TokenTransaction.find(TokenTransaction.type == TransactionType.REDEEM).count() == 4


async def test_inactive_or_empty_reward_is_unavailable(redemptions, make_account, make_reward):
    user = await make_account("user@example.com", balance=50)
    inactive = await make_reward("Old", token_cost=5, is_active=False)
    empty = await make_reward("Gone", token_cost=5, stock=0)

    with pytest.raises(RewardUnavailableError) as exc:
        await redemptions.redeem(user.id, inactive.id)
    assert exc.value.details["reason"] == "inactive"
    with pytest.raises(RewardUnavailableError) as exc:
        await redemptions.redeem(user.id, empty.id)
    assert exc.value.details["reason"] == "out_of_stock"
    assert await accounts.get_balance(user.id) == 50


async def test_insufficient_funds_leaves_stock(redemptions, make_account, make_reward):
    user = await make_account("user@example.com", balance=4)
    reward = await make_reward(token_cost=5, stock=2)

    with pytest.raises(InsufficientFundsError) as exc:
        await redemptions.redeem(user.id, reward.id)

    assert exc.value.details == {"reason": "insufficient_funds", "required": 5, "current": 4}
    assert await stock_of(reward) == 2
    assert await TokenTransaction.find_all().count() == 0


async def test_missing_reward_or_user(redemptions, make_account, make_reward):
    user = await make_account("user@example.com", balance=10)
    reward = await make_reward(token_cost=5)

    with pytest.raises(NotFoundError, match="Reward"):
        await redemptions.redeem(user.id, "64b7f0c2a1b2c3d4e5f60718")
    with pytest.raises(NotFoundError, match="Reward"):
        await redemptions.redeem(user.id, "garbage")
    with pytest.raises(NotFoundError, match="User"):
        await redemptions.redeem("64b7f0c2a1b2c3d4e5f60718", reward.id)


async def test_last_unit_goes_to_exactly_one_redeemer(redemptions, make_account, make_reward):
    first = await make_account("first@example.com", balance=10)
    second = await make_account("second@example.com", balance=10)
    reward = await make_reward(token_cost=5, stock=1)

    results = await asyncio.gather(
        redemptions.redeem(first.id, reward.id),
        redemptions.redeem(second.id, reward.id),
        return_exceptions=True,
    )

    succeeded = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(succeeded) == 1
    assert len(failed) == 1
    assert isinstance(failed[0], RewardUnavailableError)
    assert await stock_of(reward) == 0
    balances = sorted([await accounts.get_balance(first.id), await accounts.get_balance(second.id)])
    assert balances == [5, 10]
    assert await TokenTransaction.find_all().count() == 1


async def test_stale_availability_is_stopped_by_stock_guard(redemptions, make_account, make_reward, monkeypatch):
    first = await make_account("first@example.com", balance=10)
    second = await make_account("second@example.com", balance=10)
    reward = await make_reward(token_cost=5, stock=1)

    real_get_reward = rewards_service.get_reward

    async def slow_get_reward(reward_id):
        found = await real_get_reward(reward_id)
        # both callers see stock 1 before either claims it
        await asyncio.sleep(0.01)
        return found

    monkeypatch.setattr(rewards_service, "get_reward", slow_get_reward)

    results = await asyncio.gather(
        redemptions.redeem(first.id, reward.id),
        redemptions.redeem(second.id, reward.id),
        return_exceptions=True,
    )

    failed = [r for r in results if isinstance(r, Exception)]
    assert len(failed) == 1
    assert isinstance(failed[0], RewardUnavailableError)
    assert failed[0].details["reason"] == "out_of_stock"
    assert await stock_of(reward) == 0
    balances = sorted([await accounts.get_balance(first.id), await accounts.get_balance(second.id)])
    assert balances == [5, 10]
    assert await TokenTransaction.find_all().count() == 1


@pytest.mark.parametrize("stock", [-1, 3])
async def test_reward_deactivated_after_check_reports_inactive(
    redemptions, make_account, make_reward, monkeypatch, stock
):
    user = await make_account("user@example.com", balance=10)
    reward = await make_reward(token_cost=5, stock=stock)

    real_get_reward = rewards_service.get_reward

    async def get_then_deactivate(reward_id):
        found = await real_get_reward(reward_id)
        await Reward.get_motor_collection().update_one({"_id": found.id}, {"$set": {"is_active": False}})
        return found

    monkeypatch.setattr(rewards_service, "get_reward", get_then_deactivate)

    with pytest.raises(RewardUnavailableError) as exc:
        await redemptions.redeem(user.id, reward.id)

    assert exc.value.details["reason"] == "inactive"
    assert await accounts.get_balance(user.id) == 10
    assert await stock_of(reward) == stock
    assert await TokenTransaction.find_all().count() == 0


async def test_failed_insert_restores_stock_and_balance(redemptions, make_account, make_reward, monkeypatch):
    user = await make_account("user@example.com", balance=20)
    reward = await make_reward(token_cost=15, stock=1)

    async def timeout_insert(self, *args, **kwargs):
        raise NetworkTimeout("operation timed out")

    monkeypatch.setattr(TokenTransaction, "insert", timeout_insert)

    with pytest.raises(StoreUnavailableError):
        await redemptions.redeem(user.id, reward.id)

    assert await accounts.get_balance(user.id) == 20
    assert await stock_of(reward) == 1


async def test_redemption_publishes_event(redemptions, notifier, dispatcher, make_account, make_reward):
    user = await make_account("user@example.com", balance=20)
    reward = await make_reward("Spa Day", token_cost=10, stock=5)

    result = await redemptions.redeem(user.id, reward.id)
    await notifier.drain()

    assert len(dispatcher.events) == 1
    event = dispatcher.events[0]
    assert event.job_name == "deliver_redemption_notification"
    assert event.reward_name == "Spa Day"
    assert event.redemption_code == result.redemption_code
    assert event.account_email == "user@example.com"
