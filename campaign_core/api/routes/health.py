from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy import text

from campaign_core.api.deps import get_app_settings, get_clock, get_database
from campaign_core.core.config import Settings
from campaign_core.domain.clock import Clock
from campaign_core.infrastructure.db.session import Database

router = APIRouter(tags=["Observability"])
logger = structlog.get_logger()


async def check_database(database: Database) -> dict:
    """Check the campaign store connection."""
    try:
        async with database.session_factory() as session:
            await session.execute(text("SELECT 1"))
            return {"status": "ok", "dialect": database.dialect}
    except Exception as e:
        return {"status": "error", "message": str(e)[:100]}


async def check_redis(redis_url: str) -> dict:
    """Check Redis connection."""
    try:
        import redis.asyncio as aioredis

        client = aioredis.from_url(redis_url)
        await client.ping()
        await client.aclose()
        return {"status": "ok"}
    except Exception as e:
        return {"status": "error", "message": str(e)[:100]}


@router.get("/health", summary="Service health probe")
async def health_check(
    settings: Settings = Depends(get_app_settings),
    database: Database = Depends(get_database),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    """Return basic service and datastore status information."""
    database_status = await check_database(database)
    redis_status = await check_redis(settings.redis_url)

    # Redis only drives the daily sweep; the API keeps serving without it
    overall_status = "ok" if database_status.get("status") == "ok" else "degraded"

    payload = {
        "service": settings.app_name,
        "version": settings.version,
        "status": overall_status,
        "timestamp": clock.now().isoformat(),
        "datastores": {
            "database": database_status,
            "redis": redis_status,
        },
    }
    logger.info("health_probe", **payload)
    return payload
