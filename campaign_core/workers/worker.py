from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog
from redis import Redis
from rq import Queue, Worker

from campaign_core.core.config import get_settings
from campaign_core.core.logging import setup_logging
from campaign_core.domain.clock import SystemClock
from campaign_core.workers import jobs

logger = structlog.get_logger()

QUEUE_NAMES: Sequence[str] = (jobs.RECONCILIATION_QUEUE,)
REGISTERED_JOBS = {
    "reconcile_campaigns": jobs.reconcile_campaigns_job,
}


async def main() -> None:
    """Bootstrap the worker, seed the daily reconciliation and start consuming."""
    settings = get_settings()
    setup_logging(settings.log_level)
    redis_connection = Redis.from_url(settings.redis_url)
    logger.info(
        "worker_bootstrap",
        queues=list(QUEUE_NAMES),
        redis_url=settings.redis_url,
        jobs=list(REGISTERED_JOBS.keys()),
    )

    queue = Queue(jobs.RECONCILIATION_QUEUE, connection=redis_connection)
    jobs.schedule_next_reconciliation(
        queue, now=SystemClock().now(), hour_utc=settings.reconciliation_hour_utc
    )

    await asyncio.to_thread(_run_worker, redis_connection, QUEUE_NAMES)


def _run_worker(connection: Redis, queue_names: Sequence[str]) -> None:
    """Run the RQ worker in a background thread."""
    queues = [Queue(name, connection=connection) for name in queue_names]
    worker = Worker(queues, connection=connection, name="campaign-core-worker")
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    asyncio.run(main())
