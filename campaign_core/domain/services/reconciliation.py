"""Periodic sweep aligning stored campaigns with the state machine and the clock.

Every stage runs in its own transaction under its own timeout. A failed stage
is logged and skipped; later stages still run. Running the sweep twice over
the same state changes nothing the second time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_core.core.logging import bind_tenant
from campaign_core.domain.clock import Clock, start_of_day
from campaign_core.domain.models import AssignmentStatus, CampaignStatus, NotificationKind
from campaign_core.domain.policy import CampaignPolicy
from campaign_core.domain.services.assignments import NotificationDispatcher, is_reminder_eligible
from campaign_core.infrastructure.repositories.audit import SYSTEM_ACTOR
from campaign_core.infrastructure.repositories.unit_of_work import UnitOfWork
from campaign_core.libs.notifications import NotificationSink

logger = structlog.get_logger()

STAGES = ("activate", "complete", "near_end", "archive", "integrity", "reminders")


@dataclass(slots=True)
class StageOutcome:
    name: str
    status: str = "ok"
    changed: int = 0
    detail: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.name,
            "status": self.status,
            "changed": self.changed,
            "detail": self.detail,
            "error": self.error,
        }


@dataclass(slots=True)
class ReconciliationReport:
    tenant_id: str
    ran_at: datetime
    stages: list[StageOutcome] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return sum(stage.changed for stage in self.stages)

    @property
    def failed(self) -> list[str]:
        return [stage.name for stage in self.stages if stage.status != "ok"]

    def stage(self, name: str) -> StageOutcome:
        return next(stage for stage in self.stages if stage.name == name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenantId": self.tenant_id,
            "ranAt": self.ran_at.isoformat(),
            "changed": self.changed,
            "failed": self.failed,
            "stages": [stage.to_dict() for stage in self.stages],
        }


class ReconciliationService:
    """One tenant's sweep. The caller decides which tenants to visit and holds the run lock."""

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: str,
        *,
        policy: CampaignPolicy,
        clock: Clock,
        notifications: NotificationSink,
        stage_timeout_seconds: float = 120.0,
    ) -> None:
        self.tenant_id = tenant_id
        self.uow = UnitOfWork(session, tenant_id)
        self.policy = policy
        self.clock = clock
        self.stage_timeout = stage_timeout_seconds
        self.dispatcher = NotificationDispatcher(self.uow, notifications, clock)

    async def run(self) -> ReconciliationReport:
        bind_tenant(self.tenant_id)
        now = self.clock.now()
        report = ReconciliationReport(tenant_id=self.tenant_id, ran_at=now)
        handlers: dict[str, Callable[[datetime], Awaitable[StageOutcome]]] = {
            "activate": self.activate,
            "complete": self.complete,
            "near_end": self.near_end,
            "archive": self.archive,
            "integrity": self.integrity,
            "reminders": self.reminders,
        }
        for name in STAGES:
            report.stages.append(await self._run_stage(name, handlers[name], now))

        logger.info(
            "reconciliation_completed",
            changed=report.changed,
            failed=report.failed,
        )
        return report

    async def _run_stage(
        self,
        name: str,
        handler: Callable[[datetime], Awaitable[StageOutcome]],
        now: datetime,
    ) -> StageOutcome:
        try:
            outcome = await asyncio.wait_for(handler(now), timeout=self.stage_timeout)
        except TimeoutError:
            logger.error("reconciliation_stage_failed", stage=name, error="timeout")
            return StageOutcome(name=name, status="timeout", error="timeout")
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "reconciliation_stage_failed", stage=name, error=str(exc), exc_info=True
            )
            return StageOutcome(name=name, status="failed", error=str(exc))

        logger.info(
            "reconciliation_stage_completed",
            stage=name,
            changed=outcome.changed,
            **outcome.detail,
        )
        return outcome

    async def activate(self, now: datetime) -> StageOutcome:
        """PLANNED campaigns whose start date has arrived become ACTIVE."""
        end_of_today = start_of_day(now) + timedelta(days=1) - timedelta(microseconds=1)
        async with self.uow.transaction():
            campaigns = await self.uow.campaigns.by_status(
                [CampaignStatus.PLANNED], start_before=end_of_today, lock=True
            )
            for campaign in campaigns:
                campaign.status = CampaignStatus.ACTIVE
                campaign.updated_at = now
                self.uow.audit.record(
                    actor=SYSTEM_ACTOR,
                    action="campaign_status_changed",
                    entity_type="campaign",
                    entity_id=campaign.id,
                    at=now,
                    details={
                        "from": CampaignStatus.PLANNED.value,
                        "to": CampaignStatus.ACTIVE.value,
                    },
                )
        return StageOutcome(
            name="activate",
            changed=len(campaigns),
            detail={"activated": [c.id for c in campaigns]},
        )

    async def complete(self, now: datetime) -> StageOutcome:
        """Running campaigns past their end become COMPLETED; open assignments expire.

        Also closes assignments left open under already closed campaigns.
        """
        today = start_of_day(now)
        async with self.uow.transaction():
            campaigns = await self.uow.campaigns.by_status(
                CampaignStatus.running_statuses(), end_before=today, lock=True
            )
            for campaign in campaigns:
                previous = campaign.status
                campaign.status = CampaignStatus.COMPLETED
                campaign.updated_at = now
                self.uow.audit.record(
                    actor=SYSTEM_ACTOR,
                    action="campaign_status_changed",
                    entity_type="campaign",
                    entity_id=campaign.id,
                    at=now,
                    details={"from": previous.value, "to": CampaignStatus.COMPLETED.value},
                )

            finished = await self.uow.campaigns.by_status(
                [CampaignStatus.COMPLETED, CampaignStatus.ARCHIVED]
            )
            cancelled = await self.uow.campaigns.by_status([CampaignStatus.CANCELLED])
            expired = await self.uow.assignments.close_open(
                [c.id for c in finished], AssignmentStatus.EXPIRED
            )
            withdrawn = await self.uow.assignments.close_open(
                [c.id for c in cancelled], AssignmentStatus.CANCELLED
            )

        return StageOutcome(
            name="complete",
            changed=len(campaigns) + expired + withdrawn,
            detail={
                "completed": [c.id for c in campaigns],
                "expiredAssignments": expired,
                "cancelledAssignments": withdrawn,
            },
        )

    async def near_end(self, now: datetime) -> StageOutcome:
        """Collect uncompleted assignments of running campaigns ending soon. Read only."""
        today = start_of_day(now)
        horizon = today + timedelta(days=self.policy.reconciliation_near_end_days + 1)
        campaigns = await self.uow.campaigns.by_status(
            CampaignStatus.running_statuses(), end_between=(today, horizon)
        )
        pending: dict[str, list[str]] = {}
        for campaign in campaigns:
            rows, _ = await self.uow.assignments.for_campaign(
                campaign.id, statuses=AssignmentStatus.open_statuses()
            )
            if rows:
                pending[campaign.id] = [row.id for row in rows]
        await self.uow.session.commit()

        if pending:
            logger.info(
                "campaigns_near_end",
                campaigns=len(pending),
                assignments=sum(len(ids) for ids in pending.values()),
            )
        return StageOutcome(name="near_end", detail={"pending": pending})

    async def archive(self, now: datetime) -> StageOutcome:
        """COMPLETED campaigns older than the archive horizon become ARCHIVED."""
        cutoff = start_of_day(now) - timedelta(days=self.policy.archive_after_days)
        async with self.uow.transaction():
            campaigns = await self.uow.campaigns.by_status(
                [CampaignStatus.COMPLETED], end_before=cutoff, lock=True
            )
            for campaign in campaigns:
                campaign.status = CampaignStatus.ARCHIVED
                campaign.archived_at = now
                campaign.updated_at = now
                self.uow.audit.record(
                    actor=SYSTEM_ACTOR,
                    action="campaign_status_changed",
                    entity_type="campaign",
                    entity_id=campaign.id,
                    at=now,
                    details={
                        "from": CampaignStatus.COMPLETED.value,
                        "to": CampaignStatus.ARCHIVED.value,
                    },
                )
        return StageOutcome(
            name="archive",
            changed=len(campaigns),
            detail={"archived": [c.id for c in campaigns]},
        )

    async def integrity(self, now: datetime) -> StageOutcome:
        """Remove orphan assignments, repair response flags, report parallel open assignments."""
        async with self.uow.transaction():
            orphans = await self.uow.assignments.orphans()
            for orphan in orphans:
                self.uow.audit.record(
                    actor=SYSTEM_ACTOR,
                    action="orphan_assignment_deleted",
                    entity_type="assignment",
                    entity_id=orphan.id,
                    at=now,
                    details={"campaignId": orphan.campaign_id, "employeeId": orphan.employee_id},
                )
                await self.uow.assignments.delete(orphan)

            flagged = await self.uow.campaigns.unflagged_with_responses()
            for campaign in flagged:
                campaign.has_responses = True
                self.uow.audit.record(
                    actor=SYSTEM_ACTOR,
                    action="has_responses_flag_set",
                    entity_type="campaign",
                    entity_id=campaign.id,
                    at=now,
                )

            parallel = await self.uow.assignments.employees_with_parallel_open()

        if parallel:
            logger.warning(
                "duplicate_active_assignments_detected",
                employees=[{"employeeId": eid, "openAssignments": n} for eid, n in parallel],
            )
        return StageOutcome(
            name="integrity",
            changed=len(orphans) + len(flagged),
            detail={
                "orphansDeleted": len(orphans),
                "responseFlagsSet": len(flagged),
                "parallelOpenEmployees": len(parallel),
            },
        )

    async def reminders(self, now: datetime) -> StageOutcome:
        """Remind every eligible assignment of running campaigns."""
        sent = 0
        failed = 0
        async with self.uow.transaction():
            campaigns = await self.uow.campaigns.by_status(CampaignStatus.running_statuses())
            for campaign in campaigns:
                rows, _ = await self.uow.assignments.for_campaign(
                    campaign.id, statuses=AssignmentStatus.open_statuses()
                )
                eligible = [
                    row for row in rows if is_reminder_eligible(campaign, row, now, self.policy)
                ]
                if not eligible:
                    continue
                result = await self.dispatcher.dispatch(
                    campaign, eligible, NotificationKind.REMINDER, actor=SYSTEM_ACTOR
                )
                sent += len(result.sent)
                failed += len(result.failed)
        return StageOutcome(
            name="reminders", changed=sent, detail={"sent": sent, "failed": failed}
        )
