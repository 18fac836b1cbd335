from tokenledger.models.account import Account
from tokenledger.models.reward import Reward, RewardCategory, UNLIMITED_STOCK
from tokenledger.models.token_transaction import (
    RedemptionDetails,
    TokenTransaction,
    TransactionStatus,
    TransactionType,
)
from tokenledger.models.failed_job import FailedJob

__all__ = [
    "Account",
    "Reward",
    "RewardCategory",
    "UNLIMITED_STOCK",
    "RedemptionDetails",
    "TokenTransaction",
    "TransactionStatus",
    "TransactionType",
    "FailedJob",
]
