"""Run ARQ worker. Usage: python -m tokenledger.worker.run_worker"""

from arq import run_worker

from tokenledger.core.config import get_settings
from tokenledger.core.logging import configure_logging
from tokenledger.worker.tasks import (
    deliver_redemption_notification,
    deliver_transfer_notification,
    get_redis_settings,
    shutdown,
    startup,
)


class WorkerSettings:
    redis_settings = get_redis_settings()
    functions = [deliver_transfer_notification, deliver_redemption_notification]
    on_startup = startup
    on_shutdown = shutdown
    max_tries = 1  # delivery is best-effort; failures land in the dead-letter collection


def main() -> None:
    configure_logging(debug=get_settings().debug)
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
