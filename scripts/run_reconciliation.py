#!/usr/bin/env python
"""
Run one reconciliation sweep in the foreground.

Useful for local development and for operators who need to catch up after
the worker was down, without waiting for the scheduled run.

Usage:
    python scripts/run_reconciliation.py [tenant_id ...]
"""

import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from campaign_core.core.config import get_settings
from campaign_core.core.logging import setup_logging
from campaign_core.infrastructure.db.session import Database
from campaign_core.libs.notifications import ChannelRouter
from campaign_core.workers.pipeline import run_reconciliation


async def main(tenant_ids: list[str] | None) -> int:
    settings = get_settings()
    setup_logging(settings.log_level)
    database = Database.from_settings(settings)
    try:
        result = await run_reconciliation(
            database,
            settings,
            ChannelRouter.from_settings(settings),
            tenant_ids=tenant_ids,
        )
    finally:
        await database.dispose()

    print(json.dumps(result.to_dict(), indent=2, default=str))
    if not result.acquired:
        print("⏭️  Another sweep holds the lock, nothing done")
        return 1
    return 1 if result.failed_tenants else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:] or None)))
