"""
MongoDB store client: connection lifecycle, error translation and atomic units.

One ``Store`` is constructed per process and injected into the ledger and
redemption engines. ``connect()`` / ``close()`` are explicit; nothing checks an
ambient "connected" flag.

An atomic unit runs either inside a MongoDB multi-document transaction
(``MONGODB_TRANSACTIONS=true``, needs a replica set) or, on a standalone
server, as a sequence of conditional single-document updates where every
applied step registers a compensation that is replayed in reverse if a later
step fails.
"""

import asyncio
from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Iterator, TypeVar

import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession
from pymongo.errors import ConnectionFailure, ExecutionTimeout, PyMongoError, WTimeoutError

from tokenledger.core.config import Settings
from tokenledger.core.exceptions import ConcurrencyConflictError, StoreUnavailableError
from tokenledger.core.logging import get_logger
from tokenledger.models.account import Account
from tokenledger.models.failed_job import FailedJob
from tokenledger.models.reward import Reward
from tokenledger.models.token_transaction import TokenTransaction

log = get_logger(__name__)

T = TypeVar("T")

DOCUMENT_MODELS = [
    Account,
    Reward,
    TokenTransaction,
    FailedJob,
]

_RETRY_BACKOFF_SECONDS = 0.05


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


def _is_transient(exc: PyMongoError) -> bool:
    return exc.has_error_label("TransientTransactionError") or exc.has_error_label(
        "UnknownTransactionCommitResult"
    )


def _is_unavailable(exc: PyMongoError) -> bool:
    if isinstance(exc, (ConnectionFailure, ExecutionTimeout, WTimeoutError)):
        return True
    return bool(getattr(exc, "timeout", False))


@contextmanager
def store_errors() -> Iterator[None]:
    """Translate driver failures into the tagged errors callers understand."""
    try:
        yield
    except PyMongoError as exc:
        if _is_transient(exc):
            raise ConcurrencyConflictError() from exc
        if _is_unavailable(exc):
            log.warning("store_unavailable", error=str(exc))
            raise StoreUnavailableError() from exc
        raise


class AtomicUnit:
    """Handle passed to every write that belongs to one all-or-nothing unit."""

    def __init__(self, session: AsyncIOMotorClientSession | None = None):
        self.session = session
        self._compensations: list[Callable[[], Awaitable[Any]]] = []

    @property
    def transactional(self) -> bool:
        return self.session is not None

    def on_rollback(self, undo: Callable[[], Awaitable[Any]]) -> None:
        """Register how to revert a step that has already been applied."""
        if not self.transactional:
            self._compensations.append(undo)

    async def compensate(self) -> None:
        while self._compensations:
            undo = self._compensations.pop()
            try:
                await undo()
            except PyMongoError:
                # Keep unwinding the remaining steps; this one needs manual repair.
                log.exception("compensation_failed")


class Store:
    def __init__(self, settings: Settings, client: AsyncIOMotorClient | None = None):
        self.settings = settings
        self._client = client
        self._owns_client = client is None
        self.database = None

    @property
    def client(self) -> AsyncIOMotorClient:
        if self._client is None:
            raise StoreUnavailableError("Store is not connected")
        return self._client

    async def connect(self) -> None:
        settings = self.settings
        if self._client is None:
            kwargs: dict[str, Any] = {
                "timeoutMS": settings.mongodb_timeout_ms,
                "serverSelectionTimeoutMS": settings.mongodb_timeout_ms,
            }
            # Atlas in Docker: tlsCAFile + tlsDisableOCSPEndpointCheck avoid TLSV1_ALERT_INTERNAL_ERROR
            if _use_tls(settings.mongodb_uri):
                kwargs["tlsCAFile"] = certifi.where()
                kwargs["tlsDisableOCSPEndpointCheck"] = True
            self._client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
            self._owns_client = True
        self.database = self._client[settings.mongodb_db_name]
        with store_errors():
            await init_beanie(database=self.database, document_models=DOCUMENT_MODELS)
        log.info(
            "store_connected",
            db=settings.mongodb_db_name,
            transactions=settings.mongodb_transactions,
        )

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
        self._client = None
        self.database = None
        log.info("store_closed")

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[AtomicUnit]:
        """Open one all-or-nothing unit of writes."""
        with store_errors():
            if self.settings.mongodb_transactions:
                async with await self.client.start_session() as session:
                    async with session.start_transaction():
                        yield AtomicUnit(session)
            else:
                unit = AtomicUnit()
                try:
                    yield unit
                except BaseException:
                    await unit.compensate()
                    raise

    async def run_atomic(self, work: Callable[[AtomicUnit], Awaitable[T]]) -> T:
        """
        Run ``work`` in an atomic unit, retrying when the unit loses a race.

        Only ``ConcurrencyConflictError`` is retried; every other error already
        left the store untouched and goes straight back to the caller.
        """
        attempts = max(1, self.settings.ledger_max_retries)
        for attempt in range(1, attempts + 1):
            try:
                async with self.atomic() as unit:
                    return await work(unit)
            except ConcurrencyConflictError:
                if attempt == attempts:
                    log.warning("atomic_retries_exhausted", attempts=attempts)
                    raise
                log.info("atomic_retry", attempt=attempt)
                await asyncio.sleep(_RETRY_BACKOFF_SECONDS * attempt)
        raise ConcurrencyConflictError()
