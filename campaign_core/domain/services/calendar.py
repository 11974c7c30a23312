from __future__ import annotations

from collections import Counter, defaultdict
from datetime import timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_core.domain.clock import Clock
from campaign_core.domain.errors import ValidationFailedError
from campaign_core.domain.models import (
    AssignmentStatus,
    CallerContext,
    CampaignFamily,
    CampaignStatus,
    PageRequest,
    Window,
)
from campaign_core.domain.policy import CampaignPolicy
from campaign_core.domain.services.campaigns import CampaignService, RescheduleResult
from campaign_core.domain.services.projections import calendar_entry
from campaign_core.domain.tenancy import require_tenant
from campaign_core.infrastructure.db.models import CampaignAssignment
from campaign_core.infrastructure.repositories.unit_of_work import UnitOfWork
from campaign_core.libs.adapters import Collaborators

logger = structlog.get_logger()

PERIODS = {
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "quarter": timedelta(days=90),
    "year": timedelta(days=365),
}


def workload_level(count: int) -> str:
    if count == 0:
        return "none"
    if count <= 2:
        return "low"
    if count <= 4:
        return "medium"
    if count <= 6:
        return "high"
    return "overload"


class CalendarService:
    """Merged read model over both campaign families."""

    def __init__(
        self,
        session: AsyncSession,
        context: CallerContext,
        *,
        policy: CampaignPolicy,
        clock: Clock,
        collaborators: Collaborators | None = None,
    ) -> None:
        self.session = session
        self.context = context
        self.tenant_id = require_tenant(context)
        self.uow = UnitOfWork(session, self.tenant_id)
        self.policy = policy
        self.clock = clock
        self.collaborators = collaborators

    async def calendar(
        self,
        window: Window,
        page: PageRequest,
        *,
        include_completed: bool = False,
        employee_id: int | None = None,
    ) -> tuple[list[dict[str, Any]], int, dict[str, Any]]:
        if window.start > window.end:
            raise ValidationFailedError("Calendar range start must not be after its end")
        statuses = None if include_completed else CampaignStatus.open_statuses()
        campaigns = await self.uow.campaigns.overlapping(
            window.start, window.end, statuses=statuses
        )
        ids = [campaign.id for campaign in campaigns]
        by_campaign: dict[str, list[CampaignAssignment]] = defaultdict(list)
        for assignment in await self.uow.assignments.for_campaigns(ids):
            by_campaign[assignment.campaign_id].append(assignment)

        if employee_id is not None:
            campaigns = [
                campaign
                for campaign in campaigns
                if any(a.employee_id == employee_id for a in by_campaign[campaign.id])
            ]

        responses = await self.uow.responses.counts_for([campaign.id for campaign in campaigns])
        entries = [
            calendar_entry(
                campaign,
                assignments=by_campaign[campaign.id],
                response_count=responses.get(campaign.id, 0),
                editable=campaign.status not in CampaignStatus.closed_statuses(),
            )
            for campaign in campaigns
        ]
        entries.sort(key=lambda entry: (entry["start"], entry["id"]))

        families = Counter(entry["family"] for entry in entries)
        summary = {
            "totalCampaigns": len(entries),
            "engagementCampaigns": families.get(CampaignFamily.ENGAGEMENT.value, 0),
            "assessmentCampaigns": families.get(CampaignFamily.ASSESSMENT.value, 0),
            "dateRange": {"start": window.start.isoformat(), "end": window.end.isoformat()},
        }
        total = len(entries)
        return entries[page.offset : page.offset + page.limit], total, summary

    async def stats(self, period: str = "month") -> dict[str, Any]:
        if period not in PERIODS:
            raise ValidationFailedError(
                f"Unknown period '{period}'", details={"allowed": list(PERIODS)}
            )
        now = self.clock.now()
        since = now - PERIODS[period]
        payload: dict[str, Any] = {"period": period, "since": since.isoformat()}
        active_total = 0
        upcoming_total = 0
        for family in CampaignFamily:
            counts = await self.uow.campaigns.status_counts(family, created_since=since)
            active = await self.uow.campaigns.count(family, CampaignStatus.ACTIVE)
            upcoming = await self.uow.campaigns.count(
                family, CampaignStatus.PLANNED, start_from=now
            )
            payload[family.value] = {
                "total": sum(counts.values()),
                "byStatus": {s.value: counts.get(s.value, 0) for s in CampaignStatus},
                "active": active,
                "upcoming": upcoming,
            }
            active_total += active
            upcoming_total += upcoming
        payload["totals"] = {"active": active_total, "upcoming": upcoming_total}
        return payload

    def lifecycle(self) -> CampaignService:
        return CampaignService(
            self.session,
            self.context,
            policy=self.policy,
            clock=self.clock,
            collaborators=self.collaborators,
        )

    async def reschedule(
        self,
        family: CampaignFamily,
        campaign_id: str,
        window: Window,
        *,
        check_conflicts: bool = True,
    ) -> RescheduleResult:
        return await self.lifecycle().reschedule(
            family, campaign_id, window, check_conflicts=check_conflicts, cross_family=True
        )

    async def workload(
        self, window: Window, *, employee_ids: list[int] | None = None
    ) -> list[dict[str, Any]]:
        campaigns = await self.uow.campaigns.overlapping(
            window.start, window.end, statuses=CampaignStatus.open_statuses()
        )
        families = {campaign.id: campaign.family for campaign in campaigns}
        assignments = await self.uow.assignments.for_campaigns(
            list(families), employee_ids=employee_ids
        )

        per_employee: dict[int, Counter] = defaultdict(
            Counter, {employee_id: Counter() for employee_id in employee_ids or []}
        )
        for assignment in assignments:
            if assignment.status in AssignmentStatus.counted_statuses():
                per_employee[assignment.employee_id][families[assignment.campaign_id].value] += 1

        rows = []
        for employee_id in sorted(per_employee):
            counts = per_employee[employee_id]
            total = sum(counts.values())
            rows.append(
                {
                    "employeeId": employee_id,
                    "engagementCampaigns": counts.get(CampaignFamily.ENGAGEMENT.value, 0),
                    "assessmentCampaigns": counts.get(CampaignFamily.ASSESSMENT.value, 0),
                    "totalCampaigns": total,
                    "workloadLevel": workload_level(total),
                }
            )
        return rows

    async def conflict_statistics(self, window: Window) -> dict[str, Any]:
        campaigns = await self.uow.campaigns.within(window.start, window.end)
        assignments = await self.uow.assignments.for_campaigns([c.id for c in campaigns])
        per_employee = Counter(a.employee_id for a in assignments)
        families = Counter(c.family.value for c in campaigns)
        stats = {
            "dateRange": {"start": window.start.isoformat(), "end": window.end.isoformat()},
            "totalCampaigns": len(campaigns),
            "engagementCampaigns": families.get(CampaignFamily.ENGAGEMENT.value, 0),
            "assessmentCampaigns": families.get(CampaignFamily.ASSESSMENT.value, 0),
            "totalAssignments": len(assignments),
            "uniqueEmployees": len(per_employee),
            "employeesWithMultipleAssignments": sum(1 for n in per_employee.values() if n > 1),
            "maxAssignmentsPerEmployee": max(per_employee.values(), default=0),
        }
        logger.info("conflict_statistics_computed", campaigns=len(campaigns))
        return stats
