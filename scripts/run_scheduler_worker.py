#!/usr/bin/env python3
"""
Dedicated scheduler process.

Deploy alongside the API (which runs with RUN_SCHEDULER=false) so the daily
preventive maintenance job fires exactly once regardless of API replicas.
"""

import asyncio
import signal

from propertyops.core.config import settings
from propertyops.core.errors import init_sentry
from propertyops.core.logging_config import get_logger
from propertyops.core.scheduler import scheduler, start_scheduler

logger = get_logger(__name__)


async def main():
    init_sentry(settings.SENTRY_DSN, environment=settings.ENVIRONMENT)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    start_scheduler()
    logger.info("Scheduler worker running", environment=settings.ENVIRONMENT)

    await stop.wait()
    scheduler.shutdown(wait=False)
    logger.info("Scheduler worker stopped")


if __name__ == "__main__":
    asyncio.run(main())
