from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from tokenledger.deps import get_current_account, get_ledger
from tokenledger.models.account import Account
from tokenledger.models.token_transaction import TokenTransaction
from tokenledger.services import accounts as accounts_service
from tokenledger.services import history as history_service
from tokenledger.services.ledger import LedgerEngine

router = APIRouter()


class SendTokensRequest(BaseModel):
    recipient_email: str
    amount: int
    message: str


def transaction_out(t: TokenTransaction) -> dict:
    out = {
        "id": str(t.id),
        "sender_id": str(t.sender_id),
        "recipient_id": str(t.recipient_id),
        "amount": t.amount,
        "message": t.message,
        "type": t.type.value,
        "status": t.status.value,
        "created_at": t.created_at.isoformat(),
    }
    if t.metadata is not None:
        out["metadata"] = {
            "reward_id": str(t.metadata.reward_id),
            "reward_name": t.metadata.reward_name,
            "redemption_code": t.metadata.redemption_code,
        }
    return out


@router.post("/send")
async def send_tokens(
    body: SendTokensRequest,
    account: Account = Depends(get_current_account),
    ledger: LedgerEngine = Depends(get_ledger),
):
    """Send tokens to another user by email."""
    result = await ledger.transfer(account.id, body.recipient_email, body.amount, body.message)
    recipient = result.recipient.name or result.recipient.email
    return {
        "message": f"Successfully sent {body.amount} tokens to {recipient}",
        "new_balance": result.new_balance,
        "transaction": transaction_out(result.transaction),
    }


@router.get("/history")
async def tokens_history(
    account: Account = Depends(get_current_account),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """Transactions sent or received by the current user (newest first)."""
    p = await history_service.get_history(account.id, page, limit)
    return {
        "transactions": [transaction_out(t) for t in p.items],
        "pagination": {
            "current_page": p.current_page,
            "total_pages": p.total_pages,
            "total_transactions": p.total,
            "has_next_page": p.has_next_page,
            "has_prev_page": p.has_prev_page,
        },
    }


@router.get("/balance")
async def tokens_balance(account: Account = Depends(get_current_account)):
    """Return current token balance."""
    balance = await accounts_service.get_balance(account.id)
    return {"balance": balance}


@router.get("/recent")
async def tokens_recent(limit: int = Query(10, ge=1, le=100)):
    """Most recent completed transactions across all users."""
    items = await history_service.get_recent_transactions(limit)
    return {"transactions": [transaction_out(t) for t in items]}
