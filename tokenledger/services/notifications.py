"""
Post-commit notification events.

Engines call ``Notifier.publish`` only after their atomic unit committed. The
event goes onto an in-process queue; a background consumer hands it to a
``NotificationDispatcher`` (ARQ job enqueue in production). Dispatch failures
are logged and dropped: they never reach the request that produced the event.
"""

import asyncio
import contextlib
from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Protocol

from arq import create_pool
from arq.connections import ArqRedis

from tokenledger.core.logging import get_logger
from tokenledger.worker.tasks import get_redis_settings

log = get_logger(__name__)


@dataclass(frozen=True)
class TransferCompleted:
    job_name: ClassVar[str] = "deliver_transfer_notification"

    transaction_id: str
    sender_id: str
    sender_name: str
    recipient_id: str
    recipient_email: str
    recipient_name: str
    amount: int
    message: str
    recipient_balance: int

    def payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RewardRedeemed:
    job_name: ClassVar[str] = "deliver_redemption_notification"

    transaction_id: str
    account_id: str
    account_email: str
    reward_id: str
    reward_name: str
    redemption_code: str
    token_cost: int

    def payload(self) -> dict[str, Any]:
        return asdict(self)


NotificationEvent = TransferCompleted | RewardRedeemed


class NotificationDispatcher(Protocol):
    async def dispatch(self, event: NotificationEvent) -> None: ...

    async def close(self) -> None: ...


class ArqDispatcher:
    """Enqueue one ARQ job per event; the worker renders and delivers it."""

    def __init__(self, redis_settings=None):
        self._redis_settings = redis_settings or get_redis_settings()
        self._pool: ArqRedis | None = None

    async def dispatch(self, event: NotificationEvent) -> None:
        if self._pool is None:
            self._pool = await create_pool(self._redis_settings)
        await self._pool.enqueue_job(event.job_name, event.payload())

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None


class LoggingDispatcher:
    """Used when notifications are disabled: record the event, deliver nothing."""

    async def dispatch(self, event: NotificationEvent) -> None:
        log.info("notification_skipped", job=event.job_name, transaction_id=event.transaction_id)

    async def close(self) -> None:
        pass


class Notifier:
    def __init__(self, dispatcher: NotificationDispatcher, maxsize: int = 1000):
        self.dispatcher = dispatcher
        self._queue: asyncio.Queue[NotificationEvent] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task | None = None

    def publish(self, event: NotificationEvent) -> None:
        """Fire-and-forget: never blocks and never raises into the caller."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            log.warning("notification_dropped", job=event.job_name, transaction_id=event.transaction_id)

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._consume(), name="notification-consumer")

    async def drain(self) -> None:
        """Wait until every queued event has been handed to the dispatcher."""
        await self._queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        if self._task is not None:
            try:
                await asyncio.wait_for(self.drain(), timeout)
            except asyncio.TimeoutError:
                log.warning("notification_drain_timeout", pending=self._queue.qsize())
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await self.dispatcher.close()

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.dispatcher.dispatch(event)
            except Exception:
                log.exception("notification_failed", job=event.job_name, transaction_id=event.transaction_id)
            finally:
                self._queue.task_done()
