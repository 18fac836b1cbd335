"""Shared FastAPI dependencies."""

from fastapi import Request

from tokenledger.core.exceptions import UnauthorizedError
from tokenledger.core.logging import bind_account_id
from tokenledger.core.security import load_session_cookie
from tokenledger.models.account import Account
from tokenledger.services import accounts
from tokenledger.services.ledger import LedgerEngine
from tokenledger.services.redemptions import RedemptionEngine

SESSION_COOKIE_NAME = "tokenledger_session"


async def get_current_account(request: Request) -> Account:
    """Dependency: load session from cookie and return the Account."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_cookie(cookie)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    account_id = payload.get("account_id")
    if not account_id:
        raise UnauthorizedError("Invalid session")
    account = await accounts.get_account(account_id)
    if not account:
        raise UnauthorizedError("User not found")
    bind_account_id(str(account.id))
    return account


def get_ledger(request: Request) -> LedgerEngine:
    return request.app.state.ledger


def get_redemptions(request: Request) -> RedemptionEngine:
    return request.app.state.redemptions
