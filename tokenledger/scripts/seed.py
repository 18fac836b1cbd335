"""Load the sample reward catalog. Usage: python -m tokenledger.scripts.seed"""

import asyncio

from tokenledger.core.config import get_settings
from tokenledger.core.logging import configure_logging, get_logger
from tokenledger.db.store import Store
from tokenledger.services.rewards import seed_rewards

log = get_logger(__name__)


async def main() -> None:
    settings = get_settings()
    configure_logging(debug=settings.debug)
    store = Store(settings)
    await store.connect()
    try:
        rewards = await seed_rewards()
        for r in rewards:
            log.info("reward_seeded", name=r.name, token_cost=r.token_cost, stock=r.stock)
    finally:
        store.close()


if __name__ == "__main__":
    asyncio.run(main())
