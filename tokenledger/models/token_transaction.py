from datetime import datetime
from enum import Enum

from beanie import Document, PydanticObjectId
from pydantic import BaseModel, Field, model_validator

MESSAGE_MAX_LENGTH = 500


class TransactionType(str, Enum):
    SEND = "SEND"
    RECEIVE = "RECEIVE"
    PURCHASE = "PURCHASE"
    REDEEM = "REDEEM"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"  # never persisted: failures are rejected before any write


class RedemptionDetails(BaseModel):
    """Payload carried only by REDEEM rows."""
    reward_id: PydanticObjectId
    reward_name: str
    redemption_code: str


class TokenTransaction(Document):
    """
    Append-only ledger row.

    A transfer is stored once, from the sender's perspective; the recipient's
    history reads the same row through ``recipient_id``.
    """
    sender_id: PydanticObjectId
    recipient_id: PydanticObjectId
    amount: int  # positive for SEND/RECEIVE/PURCHASE, negative for REDEEM
    message: str = Field(min_length=1, max_length=MESSAGE_MAX_LENGTH)
    type: TransactionType
    status: TransactionStatus = TransactionStatus.COMPLETED
    metadata: RedemptionDetails | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode="after")
    def _check_amount_and_metadata(self) -> "TokenTransaction":
        if self.type == TransactionType.REDEEM:
            if self.amount >= 0:
                raise ValueError("REDEEM amount must be negative")
            if self.metadata is None:
                raise ValueError("REDEEM requires redemption metadata")
        else:
            if self.amount <= 0:
                raise ValueError(f"{self.type.value} amount must be positive")
            if self.metadata is not None:
                raise ValueError(f"{self.type.value} carries no metadata")
        return self

    class Settings:
        name = "token_transactions"
        indexes = [
            [("sender_id", 1), ("created_at", -1)],
            [("recipient_id", 1), ("created_at", -1)],
            [("type", 1), ("created_at", -1)],
        ]
