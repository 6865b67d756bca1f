"""
Background scheduler process.

    complianceos-scheduler      (or: python -m complianceos.scheduler_main)

Runs digests, overdue alerts and invitation/evidence expiry on the
APScheduler loop. No HTTP server; deploy it as its own container.
"""

import asyncio
import signal

import structlog

from complianceos.config import settings
from complianceos.db.engine import build_engine, make_session_factory
from complianceos.services.scheduler import NotificationScheduler

logger = structlog.get_logger(__name__)

SCHEDULER_POOL_SIZE = 5


async def main() -> None:
    logger.info("scheduler_starting", version=settings.app_version)
    engine = build_engine(pool_size=SCHEDULER_POOL_SIZE, max_overflow=SCHEDULER_POOL_SIZE)
    scheduler = NotificationScheduler(session_factory=make_session_factory(engine))

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        # Anything that lapsed while the process was down
        await scheduler.expire_stale()
        scheduler.start()
        logger.info("scheduler_running", jobs=len(scheduler.scheduler.get_jobs()))
        await stop.wait()
    finally:
        scheduler.stop()
        await engine.dispose()
        logger.info("scheduler_stopped")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
