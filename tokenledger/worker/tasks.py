"""ARQ job definitions: deliver post-commit ledger notifications."""

import uuid
from typing import Any

from arq.connections import RedisSettings

from tokenledger.core.config import get_settings
from tokenledger.core.logging import get_logger
from tokenledger.services import mailer

log = get_logger(__name__)


async def _run_with_dlq(
    ctx: dict[str, Any],
    job_name: str,
    payload: dict[str, Any],
    coro,
) -> None:
    """Run coroutine; on exception persist to FailedJob then re-raise."""
    job_id = ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else None
    try:
        await coro
    except Exception as e:
        from tokenledger.models.failed_job import FailedJob
        fid = job_id or str(uuid.uuid4())
        await FailedJob(
            job_name=job_name,
            job_id=fid,
            payload=payload,
            reason=str(e)[:2000],
        ).insert()
        log.exception("job_failed", job=job_name, job_id=fid, reason=str(e))
        raise


def render_transfer_email(payload: dict[str, Any]) -> dict[str, str]:
    sender = payload.get("sender_name") or "A colleague"
    amount = payload["amount"]
    body = (
        f"You received {amount} tokens!\n\n"
        f"From: {sender}\n"
        f'Message: "{payload["message"]}"\n'
        f"Your new balance: {payload['recipient_balance']} tokens\n\n"
        "Thank you for spreading kindness!"
    )
    return {
        "to": payload["recipient_email"],
        "subject": "You received tokens of gratitude!",
        "body": body,
    }


def render_redemption_email(payload: dict[str, Any]) -> dict[str, str]:
    body = (
        f"You redeemed {payload['reward_name']} for {payload['token_cost']} tokens.\n\n"
        f"Redemption code: {payload['redemption_code']}\n"
    )
    return {
        "to": payload["account_email"],
        "subject": f"Your reward: {payload['reward_name']}",
        "body": body,
    }


async def _deliver(email: dict[str, str], transaction_id: str) -> None:
    sent = await mailer.send_email(email["to"], email["subject"], email["body"])
    if sent:
        log.info("notification_delivered", to=email["to"], subject=email["subject"], transaction_id=transaction_id)
    else:
        log.info("notification_skipped", to=email["to"], transaction_id=transaction_id)


async def deliver_transfer_notification(ctx: dict[str, Any], payload: dict[str, Any]) -> None:
    """Tell the recipient of a completed transfer."""
    email = render_transfer_email(payload)
    await _run_with_dlq(ctx, "deliver_transfer_notification", payload, _deliver(email, payload["transaction_id"]))


async def deliver_redemption_notification(ctx: dict[str, Any], payload: dict[str, Any]) -> None:
    """Send the redemption code to the account that redeemed."""
    email = render_redemption_email(payload)
    await _run_with_dlq(ctx, "deliver_redemption_notification", payload, _deliver(email, payload["transaction_id"]))


async def startup(ctx: dict) -> None:
    from tokenledger.db.store import Store
    store = Store(get_settings())
    await store.connect()
    ctx["store"] = store


async def shutdown(ctx: dict) -> None:
    store = ctx.get("store")
    if store is not None:
        store.close()


def get_redis_settings() -> RedisSettings:
    from urllib.parse import urlparse
    s = get_settings()
    u = urlparse(s.redis_url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/")) if u.path.lstrip("/") else 0,
    )
