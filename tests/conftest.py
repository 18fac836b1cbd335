import os
from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Use test DB
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "tokenledger_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("NOTIFICATIONS_ENABLED", "false")


class RecordingDispatcher:
    def __init__(self, fail: bool = False):
        self.events = []
        self.fail = fail
        self.closed = False

    async def dispatch(self, event) -> None:
        self.events.append(event)
        if self.fail:
            raise RuntimeError("mail relay down")

    async def close(self) -> None:
        self.closed = True


@pytest_asyncio.fixture
async def store():
    """Store backed by an in-memory Motor client; a fresh database per test."""
    from mongomock_motor import AsyncMongoMockClient

    from tokenledger.core.config import get_settings
    from tokenledger.db.store import Store

    s = Store(get_settings(), client=AsyncMongoMockClient())
    await s.connect()
    yield s
    s.close()


@pytest_asyncio.fixture
async def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest_asyncio.fixture
async def failing_dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher(fail=True)


@pytest_asyncio.fixture
async def notifier(dispatcher):
    from tokenledger.services.notifications import Notifier

    n = Notifier(dispatcher)
    await n.start()
    yield n
    await n.stop()


@pytest_asyncio.fixture
async def ledger(store, notifier):
    from tokenledger.services.ledger import LedgerEngine
    return LedgerEngine(store, notifier)


@pytest_asyncio.fixture
async def redemptions(store, notifier):
    from tokenledger.services.redemptions import RedemptionEngine
    return RedemptionEngine(store, notifier)


@pytest_asyncio.fixture
async def make_account(store):
    from tokenledger.services import accounts

    async def _make(email: str, balance: int = 0, name: str = ""):
        return await accounts.create_account(email, name=name or email.split("@")[0], balance=balance)

    return _make


@pytest_asyncio.fixture
async def make_reward(store):
    from tokenledger.models.reward import Reward

    async def _make(name: str = "Coffee Voucher", token_cost: int = 5, stock: int = -1, **kwargs):
        reward = Reward(
            name=name,
            description=kwargs.pop("description", f"{name} description"),
            token_cost=token_cost,
            stock=stock,
            **kwargs,
        )
        await reward.insert()
        return reward

    return _make


@pytest_asyncio.fixture
async def client(store, notifier) -> AsyncGenerator[AsyncClient, None]:
    from tokenledger.main import app, attach_services

    attach_services(app, store, notifier)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def session_headers():
    from tokenledger.core.security import create_session_cookie
    from tokenledger.deps import SESSION_COOKIE_NAME

    def _headers(account) -> dict[str, str]:
        cookie = create_session_cookie({"account_id": str(account.id)})
        return {"Cookie": f"{SESSION_COOKIE_NAME}={cookie}"}

    return _headers
