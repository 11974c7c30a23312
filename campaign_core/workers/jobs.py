"""
Worker jobs.

The reconciliation job runs once a day and re-enqueues itself for the next
run at ``RECONCILIATION_HOUR_UTC``.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any

import structlog
from redis import Redis
from rq import Queue

from campaign_core.core.config import get_settings
from campaign_core.domain.clock import SystemClock, ensure_utc
from campaign_core.infrastructure.db.session import Database
from campaign_core.libs.notifications import ChannelRouter
from campaign_core.workers.pipeline import run_reconciliation

logger = structlog.get_logger()

RECONCILIATION_QUEUE = "default"


def next_run_at(now: datetime, hour_utc: int) -> datetime:
    """First instant at ``hour_utc`` strictly after ``now``."""
    now = ensure_utc(now)
    candidate = now.replace(hour=hour_utc, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def schedule_next_reconciliation(queue: Queue, *, now: datetime, hour_utc: int) -> datetime:
    run_at = next_run_at(now, hour_utc)
    queue.enqueue_at(run_at, reconcile_campaigns_job, job_timeout=3600)
    logger.info("reconciliation_scheduled", run_at=run_at.isoformat())
    return run_at


def reconcile_campaigns_job(reschedule: bool = True) -> dict[str, Any]:
    """Entry point executed by the rq worker."""
    settings = get_settings()
    result = asyncio.run(_reconcile_async())
    if reschedule:
        queue = Queue(RECONCILIATION_QUEUE, connection=Redis.from_url(settings.redis_url))
        schedule_next_reconciliation(
            queue, now=SystemClock().now(), hour_utc=settings.reconciliation_hour_utc
        )
    return result


async def _reconcile_async() -> dict[str, Any]:
    settings = get_settings()
    database = Database.from_settings(settings)
    try:
        result = await run_reconciliation(
            database, settings, ChannelRouter.from_settings(settings), clock=SystemClock()
        )
    except Exception as e:
        logger.error("reconciliation_job_failed", error=str(e), exc_info=True)
        return {"status": "failed", "error": str(e)}
    finally:
        await database.dispose()
    return {"status": "completed" if result.acquired else "skipped", **result.to_dict()}
