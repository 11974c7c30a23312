from __future__ import annotations

import math
import uuid
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_core.domain.clock import Clock
from campaign_core.domain.errors import (
    CampaignCoreError,
    ConflictDetectedError,
    HasResponsesError,
    HasStartedAssignmentsError,
    IllegalTransitionError,
    NotFoundError,
    TemplateNotFoundError,
    ValidationFailedError,
)
from campaign_core.domain.models import (
    AssessmentOptions,
    AssignmentStatus,
    CallerContext,
    CampaignDraft,
    CampaignFamily,
    CampaignStatus,
    EngagementOptions,
    NotificationKind,
    PageRequest,
    Window,
)
from campaign_core.domain.policy import CampaignPolicy
from campaign_core.domain.services.assignments import NotificationDispatcher
from campaign_core.domain.services.conflicts import ConflictQuery, ConflictReport, ConflictService
from campaign_core.domain.services.projections import (
    assignment_to_dict,
    campaign_to_dict,
    percentage,
)
from campaign_core.domain.services.state_machine import check_campaign_transition
from campaign_core.domain.tenancy import require_tenant
from campaign_core.infrastructure.db.models import Campaign, CampaignAssignment, CampaignTemplate
from campaign_core.infrastructure.repositories.unit_of_work import UnitOfWork
from campaign_core.libs.adapters import Collaborators

logger = structlog.get_logger()


@dataclass(slots=True)
class CreateCampaignResult:
    campaign: Campaign
    assignments: list[CampaignAssignment]
    report: ConflictReport


@dataclass(slots=True)
class RescheduleResult:
    campaign: Campaign
    previous: Window
    report: ConflictReport | None = None


@dataclass(slots=True)
class BatchResult:
    succeeded: list[dict[str, Any]] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"succeeded": self.succeeded, "failed": self.failed}


def validate_window(
    window: Window,
    policy: CampaignPolicy,
    *,
    now=None,
) -> None:
    """Reject inverted, empty or over-long windows, plus the optional policies."""
    if window.start >= window.end:
        raise ValidationFailedError(
            "Campaign start must be before its end",
            details={"start": window.start.isoformat(), "end": window.end.isoformat()},
        )
    if window.duration > timedelta(days=policy.max_campaign_duration_days):
        raise ValidationFailedError(
            f"Campaign cannot last more than {policy.max_campaign_duration_days} days",
            details={"durationDays": round(window.duration_days, 2)},
        )
    if policy.enforce_min_campaign_duration and window.duration < timedelta(
        days=policy.min_campaign_duration_days
    ):
        raise ValidationFailedError(
            f"Campaign must last at least {policy.min_campaign_duration_days} days",
            details={"durationDays": round(window.duration_days, 2)},
        )
    if policy.enforce_start_not_in_past and now is not None and window.start < now:
        raise ValidationFailedError("Campaign start cannot be in the past")


class CampaignService:
    """Lifecycle of assessment and engagement campaigns within one tenant."""

    def __init__(
        self,
        session: AsyncSession,
        context: CallerContext,
        *,
        policy: CampaignPolicy,
        clock: Clock,
        collaborators: Collaborators | None = None,
    ) -> None:
        self.context = context
        self.tenant_id = require_tenant(context)
        self.uow = UnitOfWork(session, self.tenant_id)
        self.policy = policy
        self.clock = clock
        self.collaborators = collaborators or Collaborators()
        self.conflicts = ConflictService(self.uow, policy)

    @property
    def actor(self) -> str:
        return self.context.user_id

    async def _campaign(
        self, campaign_id: str, family: CampaignFamily | None = None, *, lock: bool = False
    ) -> Campaign:
        campaign = await self.uow.campaigns.get(campaign_id, family=family, lock=lock)
        if campaign is None:
            raise NotFoundError(f"Campaign '{campaign_id}' not found")
        return campaign

    async def _template(self, template_id: int, family: CampaignFamily) -> CampaignTemplate:
        template = await self.uow.templates.get_accessible(template_id, family)
        if template is None:
            raise TemplateNotFoundError(
                f"Template {template_id} is not available", details={"templateId": template_id}
            )
        return template

    async def check_conflicts(
        self, query: ConflictQuery, *, strict: bool = False
    ) -> ConflictReport:
        return await self.conflicts.check(query, strict=strict)

    async def create(self, draft: CampaignDraft) -> CreateCampaignResult:
        employee_ids = sorted(set(draft.employee_ids))
        if not employee_ids:
            raise ValidationFailedError("At least one employee is required")
        now = self.clock.now()
        validate_window(draft.window, self.policy, now=now)

        family = draft.family
        async with self.uow.transaction(serialize=True):
            template = await self._template(draft.template_id, family)

            active = await self.uow.employees.active_ids(employee_ids)
            missing = [employee_id for employee_id in employee_ids if employee_id not in active]
            if missing:
                raise ValidationFailedError(
                    "Some employees do not exist or are inactive", details={"employeeIds": missing}
                )

            report = await self.conflicts.check(
                ConflictQuery(
                    employee_ids=tuple(employee_ids),
                    window=draft.window,
                    family=family,
                    assessment_type=(
                        template.template_type if family == CampaignFamily.ASSESSMENT else None
                    ),
                )
            )
            if report.has_errors:
                raise ConflictDetectedError(
                    "Campaign conflicts with existing campaigns", details=report.to_dict()
                )

            campaign = Campaign(
                id=str(uuid.uuid4()),
                family=family,
                template_id=template.id,
                name=(draft.name or template.name).strip(),
                description=draft.description,
                start_at=draft.window.start,
                end_at=draft.window.end,
                status=CampaignStatus.PLANNED,
                frequency=draft.frequency,
                target_audience={
                    "employeeIds": employee_ids,
                    "totalCount": len(employee_ids),
                    "selectedAt": now.isoformat(),
                },
                created_by=self.actor,
                created_at=now,
                updated_at=now,
                has_responses=False,
            )
            options = draft.options
            if isinstance(options, AssessmentOptions):
                campaign.mandatory = options.mandatory
                campaign.allow_retakes = options.allow_retakes
                campaign.max_attempts = options.max_attempts
            elif isinstance(options, EngagementOptions):
                campaign.anonymous_responses = options.anonymous_responses
                campaign.reminder_settings = options.reminder_settings.to_json()
            campaign.template = template
            self.uow.campaigns.add(campaign)
            assignments = [
                self.uow.assignments.add(
                    CampaignAssignment(
                        id=str(uuid.uuid4()),
                        campaign_id=campaign.id,
                        employee_id=employee_id,
                        status=AssignmentStatus.ASSIGNED,
                        assigned_by=self.actor,
                        assigned_at=now,
                        reminder_count=0,
                    )
                )
                for employee_id in employee_ids
            ]
            template.usage_count = (template.usage_count or 0) + 1
            self.uow.audit.record(
                actor=self.actor,
                action="campaign_created",
                entity_type="campaign",
                entity_id=campaign.id,
                at=now,
                details={
                    "family": family.value,
                    "templateId": template.id,
                    "employeeCount": len(employee_ids),
                    "warnings": len(report.warnings),
                },
            )

        logger.info(
            "campaign_created",
            campaign_id=campaign.id,
            family=family.value,
            employees=len(employee_ids),
            warnings=len(report.warnings),
        )
        await self._emit(
            "campaign_created",
            {"campaignId": campaign.id, "family": family.value, "employees": len(employee_ids)},
        )
        return CreateCampaignResult(campaign=campaign, assignments=assignments, report=report)

    async def _emit(self, event: str, payload: dict[str, Any]) -> None:
        """Analytics is best effort: failures are logged and audited, never raised."""
        try:
            await self.collaborators.analytics.emit(event, {"tenantId": self.tenant_id, **payload})
        except Exception as exc:  # noqa: BLE001
            logger.warning("analytics_failed", analytics_event=event, error=str(exc))
            async with self.uow.transaction():
                self.uow.audit.record(
                    actor=self.actor,
                    action="analytics_failed",
                    entity_type="campaign",
                    entity_id=str(payload.get("campaignId", "")),
                    at=self.clock.now(),
                    details={"event": event, "error": str(exc)},
                )

    async def list(
        self,
        family: CampaignFamily,
        page: PageRequest,
        *,
        status: CampaignStatus | None = None,
        template_id: int | None = None,
        search: str | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        campaigns, total = await self.uow.campaigns.list(
            family, page, status=status, template_id=template_id, search=search
        )
        ids = [campaign.id for campaign in campaigns]
        counts = await self.uow.assignments.status_counts(ids)
        responses = await self.uow.responses.counts_for(ids)
        items = [
            campaign_to_dict(
                campaign,
                assignment_counts=counts.get(campaign.id, {}),
                response_count=responses.get(campaign.id, 0),
            )
            for campaign in campaigns
        ]
        return items, total

    async def get(self, family: CampaignFamily, campaign_id: str) -> dict[str, Any]:
        campaign = await self._campaign(campaign_id, family)
        assignments, _ = await self.uow.assignments.for_campaign(campaign.id)
        responses = await self.uow.responses.for_campaign(campaign.id)
        counts = Counter(a.status.value for a in assignments)

        payload = campaign_to_dict(
            campaign, assignment_counts=dict(counts), response_count=len(responses)
        )
        payload["assignments"] = [assignment_to_dict(a) for a in assignments]
        payload["responses"] = [
            {"id": r.id, "assignmentId": r.assignment_id, "submittedAt": r.submitted_at.isoformat()}
            for r in responses
        ]
        payload["completionRate"] = payload["stats"]["completionRate"]
        return payload

    async def update_status(
        self, family: CampaignFamily, campaign_id: str, target: CampaignStatus
    ) -> Campaign:
        now = self.clock.now()
        async with self.uow.transaction():
            campaign = await self._campaign(campaign_id, family, lock=True)
            previous = campaign.status
            check_campaign_transition(
                campaign.family,
                previous,
                target,
                start=campaign.start_at,
                end=campaign.end_at,
                now=now,
                policy=self.policy,
            )
            campaign.status = target
            campaign.updated_at = now
            closed = 0
            if target == CampaignStatus.ARCHIVED:
                campaign.archived_at = now
            elif target == CampaignStatus.COMPLETED:
                closed = await self.uow.assignments.close_open(
                    [campaign.id], AssignmentStatus.EXPIRED
                )
            elif target == CampaignStatus.CANCELLED:
                closed = await self.uow.assignments.close_open(
                    [campaign.id], AssignmentStatus.CANCELLED
                )
            self.uow.audit.record(
                actor=self.actor,
                action="campaign_status_changed",
                entity_type="campaign",
                entity_id=campaign.id,
                at=now,
                details={"from": previous.value, "to": target.value, "closedAssignments": closed},
            )

        logger.info(
            "campaign_status_changed",
            campaign_id=campaign_id,
            previous=previous.value,
            status=target.value,
        )
        return campaign

    async def delete(self, family: CampaignFamily, campaign_id: str) -> None:
        async with self.uow.transaction():
            campaign = await self._campaign(campaign_id, family, lock=True)
            response_count = await self.uow.responses.count_for(campaign.id)
            if response_count or campaign.has_responses:
                raise HasResponsesError(
                    "Campaign has responses and cannot be deleted",
                    details={"responseCount": response_count},
                )
            counts = (await self.uow.assignments.status_counts([campaign.id])).get(campaign.id, {})
            started = {
                status: count
                for status, count in counts.items()
                if status != AssignmentStatus.ASSIGNED.value and count
            }
            if started:
                raise HasStartedAssignmentsError(
                    "Campaign has assignments that are no longer ASSIGNED",
                    details={"byStatus": started},
                )
            await self.uow.campaigns.delete(campaign.id)
            self.uow.audit.record(
                actor=self.actor,
                action="campaign_deleted",
                entity_type="campaign",
                entity_id=campaign.id,
                at=self.clock.now(),
                details={"family": campaign.family.value, "name": campaign.name},
            )
        logger.info("campaign_deleted", campaign_id=campaign_id)

    async def duplicate(
        self,
        family: CampaignFamily,
        campaign_id: str,
        *,
        name: str | None = None,
        include_assignments: bool = True,
    ) -> Campaign:
        return await self.clone_with_shift(
            family, campaign_id, 0, name=name, include_assignments=include_assignments
        )

    async def clone_with_shift(
        self,
        family: CampaignFamily,
        campaign_id: str,
        day_shift: int,
        *,
        name: str | None = None,
        include_assignments: bool = True,
    ) -> Campaign:
        """Copy a campaign into a new PLANNED one, moving its window by ``day_shift`` days.

        Responses are never copied. Assignments, when included, are re-created
        fresh for every employee whose original assignment was not cancelled.
        """
        now = self.clock.now()
        async with self.uow.transaction():
            source = await self._campaign(campaign_id, family)
            window = Window(source.start_at, source.end_at).shifted(day_shift)
            employee_ids: list[int] = []
            if include_assignments:
                rows, _ = await self.uow.assignments.for_campaign(source.id)
                employee_ids = sorted(
                    {row.employee_id for row in rows if row.status != AssignmentStatus.CANCELLED}
                )

            clone = Campaign(
                id=str(uuid.uuid4()),
                family=source.family,
                template_id=source.template_id,
                name=name or f"{source.name} (Copy)",
                description=source.description,
                start_at=window.start,
                end_at=window.end,
                status=CampaignStatus.PLANNED,
                frequency=source.frequency,
                mandatory=source.mandatory,
                allow_retakes=source.allow_retakes,
                max_attempts=source.max_attempts,
                anonymous_responses=source.anonymous_responses,
                reminder_settings=(
                    dict(source.reminder_settings) if source.reminder_settings else None
                ),
                target_audience={
                    "employeeIds": employee_ids,
                    "totalCount": len(employee_ids),
                    "selectedAt": now.isoformat(),
                },
                created_by=self.actor,
                created_at=now,
                updated_at=now,
                has_responses=False,
            )
            clone.template = source.template
            self.uow.campaigns.add(clone)
            for employee_id in employee_ids:
                self.uow.assignments.add(
                    CampaignAssignment(
                        id=str(uuid.uuid4()),
                        campaign_id=clone.id,
                        employee_id=employee_id,
                        status=AssignmentStatus.ASSIGNED,
                        assigned_by=self.actor,
                        assigned_at=now,
                        reminder_count=0,
                    )
                )
            source.template.usage_count = (source.template.usage_count or 0) + 1
            self.uow.audit.record(
                actor=self.actor,
                action="campaign_duplicated",
                entity_type="campaign",
                entity_id=clone.id,
                at=now,
                details={
                    "sourceId": source.id,
                    "dayShift": day_shift,
                    "assignments": len(employee_ids),
                },
            )

        logger.info(
            "campaign_duplicated",
            campaign_id=clone.id,
            source_id=campaign_id,
            day_shift=day_shift,
            assignments=len(employee_ids),
        )
        return clone

    async def batch_duplicate(
        self,
        family: CampaignFamily,
        campaign_ids: Sequence[str],
        *,
        name_prefix: str | None = None,
        day_shift: int = 0,
        include_assignments: bool = True,
    ) -> BatchResult:
        result = BatchResult()
        for campaign_id in dict.fromkeys(campaign_ids):
            try:
                name = None
                if name_prefix:
                    source = await self._campaign(campaign_id, family)
                    name = f"{name_prefix} {source.name}"
                clone = await self.clone_with_shift(
                    family,
                    campaign_id,
                    day_shift,
                    name=name,
                    include_assignments=include_assignments,
                )
            except CampaignCoreError as exc:
                result.failed.append(
                    {"id": campaign_id, "error": exc.kind.value, "message": exc.message}
                )
                continue
            result.succeeded.append({"sourceId": campaign_id, "id": clone.id, "name": clone.name})
        return result

    async def reschedule(
        self,
        family: CampaignFamily,
        campaign_id: str,
        window: Window,
        *,
        check_conflicts: bool = True,
        cross_family: bool = False,
    ) -> RescheduleResult:
        """Move the window of an open campaign.

        Per-family reschedules treat every overlap as blocking. Cross-family checks
        (the unified calendar) only block on duplicates and mandatory assessments.
        """
        validate_window(window, self.policy)
        now = self.clock.now()
        async with self.uow.transaction(serialize=check_conflicts):
            campaign = await self._campaign(campaign_id, family, lock=True)
            if campaign.status in CampaignStatus.closed_statuses():
                raise IllegalTransitionError(
                    f"A {campaign.status.value} campaign cannot be rescheduled",
                    details={"status": campaign.status.value},
                )

            report = None
            if check_conflicts:
                rows, _ = await self.uow.assignments.for_campaign(
                    campaign.id, statuses=AssignmentStatus.counted_statuses()
                )
                report = await self.conflicts.check(
                    ConflictQuery(
                        employee_ids=tuple(sorted({row.employee_id for row in rows})),
                        window=window,
                        family=campaign.family,
                        exclude_campaign_id=campaign.id,
                        assessment_type=(
                            campaign.template.template_type
                            if campaign.family == CampaignFamily.ASSESSMENT
                            else None
                        ),
                        cross_family=cross_family,
                    ),
                    strict=not cross_family,
                )
                if report.has_errors:
                    raise ConflictDetectedError(
                        "New window conflicts with existing campaigns", details=report.to_dict()
                    )

            previous = Window(campaign.start_at, campaign.end_at)
            campaign.start_at = window.start
            campaign.end_at = window.end
            campaign.updated_at = now
            self.uow.audit.record(
                actor=self.actor,
                action="campaign_rescheduled",
                entity_type="campaign",
                entity_id=campaign.id,
                at=now,
                details={
                    "previous": {
                        "start": previous.start.isoformat(),
                        "end": previous.end.isoformat(),
                    },
                    "current": {"start": window.start.isoformat(), "end": window.end.isoformat()},
                    "checkedConflicts": check_conflicts,
                },
            )

        logger.info(
            "campaign_rescheduled",
            campaign_id=campaign_id,
            start=window.start.isoformat(),
            end=window.end.isoformat(),
            checked_conflicts=check_conflicts,
        )
        return RescheduleResult(campaign=campaign, previous=previous, report=report)

    async def notify(
        self, family: CampaignFamily, campaign_id: str, kind: NotificationKind
    ) -> dict[str, Any]:
        dispatcher = NotificationDispatcher(self.uow, self.collaborators.notifications, self.clock)
        async with self.uow.transaction():
            campaign = await self._campaign(campaign_id, family, lock=True)
            if campaign.status not in CampaignStatus.running_statuses():
                raise IllegalTransitionError(
                    "Notifications can only be sent for running campaigns",
                    details={"status": campaign.status.value},
                )
            rows, _ = await self.uow.assignments.for_campaign(
                campaign.id, statuses=AssignmentStatus.open_statuses()
            )
            result = await dispatcher.dispatch(campaign, rows, kind, actor=self.actor)
        return {"kind": kind.value, **result.to_dict()}

    async def stats(self, family: CampaignFamily, campaign_id: str) -> dict[str, Any]:
        campaign = await self._campaign(campaign_id, family)
        assignments, _ = await self.uow.assignments.for_campaign(campaign.id)
        responses = await self.uow.responses.for_campaign(campaign.id)
        now = self.clock.now()

        by_status = Counter(a.status.value for a in assignments)
        total = len(assignments)
        respondents = {r.employee_id for r in responses if r.employee_id is not None}
        by_date = Counter(r.submitted_at.date().isoformat() for r in responses)
        remaining = (campaign.end_at - now).total_seconds() / 86400

        return {
            "campaignId": campaign.id,
            "family": campaign.family.value,
            "status": campaign.status.value,
            "targetCount": (campaign.target_audience or {}).get("totalCount", total),
            "totalAssignments": total,
            "byStatus": {s.value: by_status.get(s.value, 0) for s in AssignmentStatus},
            "responseCount": len(responses),
            "uniqueRespondents": len(respondents),
            "responseRate": percentage(len(respondents), total),
            "completionRate": percentage(by_status.get(AssignmentStatus.COMPLETED.value, 0), total),
            "responsesByDate": dict(sorted(by_date.items())),
            "daysRemaining": max(0, math.ceil(remaining)),
        }
