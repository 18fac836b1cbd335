"""Reward catalog reads, stock reservation and sample seeding."""

import secrets

from bson import ObjectId
from pymongo import ReturnDocument

from tokenledger.core.exceptions import NotFoundError, RewardUnavailableError, ValidationError
from tokenledger.core.logging import get_logger
from tokenledger.db.store import AtomicUnit, store_errors
from tokenledger.models.reward import UNLIMITED_STOCK, Reward, RewardCategory
from tokenledger.services.accounts import parse_object_id

log = get_logger(__name__)

SAMPLE_REWARDS = [
    {
        "name": "Coffee Voucher",
        "description": "Enjoy a delicious coffee at your favorite café. Perfect for a morning pick-me-up or afternoon break.",
        "token_cost": 5,
        "category": RewardCategory.FOOD,
        "stock": 50,
        "terms": "Valid for 30 days. Cannot be combined with other offers.",
    },
    {
        "name": "Movie Ticket",
        "description": "Watch the latest blockbuster at any major cinema. Perfect for a date night or family outing.",
        "token_cost": 15,
        "category": RewardCategory.ENTERTAINMENT,
        "stock": 25,
        "terms": "Valid for 60 days. Subject to availability.",
    },
    {
        "name": "Book Store Gift Card",
        "description": "Get lost in a good book with this gift card to your local bookstore.",
        "token_cost": 10,
        "category": RewardCategory.SHOPPING,
        "stock": 30,
        "terms": "Valid for 90 days. Can be used online or in-store.",
    },
    {
        "name": "Spa Day Experience",
        "description": "Treat yourself to a relaxing spa day with massage and facial treatment.",
        "token_cost": 50,
        "category": RewardCategory.EXPERIENCE,
        "stock": 10,
        "terms": "Valid for 6 months. Advance booking required.",
    },
    {
        "name": "Restaurant Dinner",
        "description": "Enjoy a fine dining experience at a premium restaurant.",
        "token_cost": 25,
        "category": RewardCategory.FOOD,
        "stock": 20,
        "terms": "Valid for 45 days. Reservation required.",
    },
    {
        "name": "Concert Tickets",
        "description": "Experience live music with tickets to upcoming concerts.",
        "token_cost": 30,
        "category": RewardCategory.ENTERTAINMENT,
        "stock": 15,
        "terms": "Valid for 90 days. Subject to availability.",
    },
    {
        "name": "Online Shopping Credit",
        "description": "Shop online with credit at major retailers.",
        "token_cost": 20,
        "category": RewardCategory.SHOPPING,
        "stock": 40,
        "terms": "Valid for 120 days. Can be used at participating stores.",
    },
    {
        "name": "Team Shout-out",
        "description": "A public thank-you on the company board.",
        "token_cost": 3,
        "category": RewardCategory.OTHER,
        "stock": UNLIMITED_STOCK,
        "terms": "Posted within one business day.",
    },
]


def generate_redemption_code() -> str:
    return secrets.token_urlsafe(9).upper().replace("-", "").replace("_", "")[:12]


async def list_rewards() -> list[Reward]:
    """Active rewards, cheapest first."""
    with store_errors():
        return await Reward.find(Reward.is_active == True).sort(+Reward.token_cost).to_list()  # noqa: E712


async def get_reward(reward_id: str | ObjectId) -> Reward:
    oid = parse_object_id(reward_id)
    if oid is None:
        raise NotFoundError("Reward not found")
    with store_errors():
        reward = await Reward.get(oid)
    if not reward:
        raise NotFoundError("Reward not found")
    return reward


def parse_category(category: str) -> RewardCategory:
    try:
        return RewardCategory((category or "").strip().upper())
    except ValueError:
        raise ValidationError("Invalid category", field="category") from None


async def list_rewards_by_category(category: str) -> list[Reward]:
    parsed = parse_category(category)
    with store_errors():
        return (
            await Reward.find(Reward.category == parsed, Reward.is_active == True)  # noqa: E712
            .sort(+Reward.token_cost)
            .to_list()
        )


async def reserve_stock(unit: AtomicUnit, reward_id: ObjectId) -> dict:
    """
    Claim one unit of an active reward. Limited stock is decremented with a
    ``stock > 0`` guard; unlimited stock is only checked, never written.
    Returns the reward document after the claim; raises RewardUnavailableError
    with the reason the claim missed.
    """
    coll = Reward.get_motor_collection()
    doc = await coll.find_one_and_update(
        {"_id": reward_id, "is_active": True, "stock": {"$gt": 0}},
        {"$inc": {"stock": -1}},
        return_document=ReturnDocument.AFTER,
        session=unit.session,
    )
    if doc is not None:
        unit.on_rollback(lambda: _restock(reward_id))
        return doc
    doc = await coll.find_one({"_id": reward_id}, session=unit.session)
    if doc is None or not doc.get("is_active", False):
        raise RewardUnavailableError("This reward is no longer available", reason="inactive")
    if doc.get("stock") != UNLIMITED_STOCK:
        raise RewardUnavailableError("This reward is out of stock", reason="out_of_stock")
    return doc


async def _restock(reward_id: ObjectId) -> None:
    await Reward.get_motor_collection().update_one(
        {"_id": reward_id, "stock": {"$gte": 0}},
        {"$inc": {"stock": 1}},
    )


async def seed_rewards() -> list[Reward]:
    """Replace the catalog with the sample rewards."""
    with store_errors():
        await Reward.delete_all()
        rewards = [Reward(**data) for data in SAMPLE_REWARDS]
        await Reward.insert_many(rewards)
    log.info("rewards_seeded", count=len(rewards))
    return rewards
