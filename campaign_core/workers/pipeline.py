"""Fan the reconciliation sweep out over every active tenant."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from campaign_core.core.config import Settings
from campaign_core.domain.clock import Clock, SystemClock
from campaign_core.domain.services.reconciliation import (
    ReconciliationReport,
    ReconciliationService,
)
from campaign_core.infrastructure.db.session import Database
from campaign_core.infrastructure.repositories.catalog import active_tenant_ids
from campaign_core.infrastructure.repositories.unit_of_work import advisory_lock
from campaign_core.libs.notifications import NotificationSink

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class SweepResult:
    acquired: bool
    reports: list[ReconciliationReport] = field(default_factory=list)
    failed_tenants: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "acquired": self.acquired,
            "tenants": [report.to_dict() for report in self.reports],
            "failedTenants": self.failed_tenants,
        }


async def run_reconciliation(
    database: Database,
    settings: Settings,
    notifications: NotificationSink,
    *,
    clock: Clock | None = None,
    tenant_ids: list[str] | None = None,
) -> SweepResult:
    """Run one sweep unless another instance holds the run lock."""
    clock = clock or SystemClock()
    policy = settings.campaign_policy()

    async with advisory_lock(database.engine, settings.reconciliation_lock_key) as acquired:
        if not acquired:
            logger.info("reconciliation_skipped", reason="lock_held")
            return SweepResult(acquired=False)

        if tenant_ids is None:
            async with database.session_factory() as session:
                tenant_ids = await active_tenant_ids(session)

        result = SweepResult(acquired=True)
        for tenant_id in tenant_ids:
            async with database.session_factory() as session:
                service = ReconciliationService(
                    session,
                    tenant_id,
                    policy=policy,
                    clock=clock,
                    notifications=notifications,
                    stage_timeout_seconds=settings.reconciliation_stage_timeout_seconds,
                )
                try:
                    result.reports.append(await service.run())
                except Exception as exc:  # pragma: no cover - logged upstream
                    logger.exception(
                        "reconciliation_tenant_failed", tenant_id=tenant_id, error=str(exc)
                    )
                    result.failed_tenants.append(tenant_id)

    logger.info(
        "reconciliation_sweep_completed",
        tenants=len(result.reports),
        failed=len(result.failed_tenants),
        changed=sum(report.changed for report in result.reports),
    )
    return result
