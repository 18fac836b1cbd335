from datetime import datetime
from enum import Enum

from beanie import Document
from pydantic import Field

UNLIMITED_STOCK = -1


class RewardCategory(str, Enum):
    FOOD = "FOOD"
    ENTERTAINMENT = "ENTERTAINMENT"
    SHOPPING = "SHOPPING"
    EXPERIENCE = "EXPERIENCE"
    OTHER = "OTHER"


class Reward(Document):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=500)
    token_cost: int = Field(ge=1)
    category: RewardCategory = RewardCategory.OTHER
    image_url: str | None = None
    is_active: bool = True
    stock: int = Field(default=UNLIMITED_STOCK, ge=UNLIMITED_STOCK)  # -1 = unlimited
    redemption_code: str | None = None  # fixed code handed out on every redemption
    terms: str | None = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_unlimited(self) -> bool:
        return self.stock == UNLIMITED_STOCK

    @property
    def is_available(self) -> bool:
        return self.is_active and (self.is_unlimited or self.stock > 0)

    def can_afford(self, balance: int) -> bool:
        return balance >= self.token_cost

    class Settings:
        name = "rewards"
        indexes = [
            [("category", 1), ("is_active", 1)],
            [("token_cost", 1)],
        ]
