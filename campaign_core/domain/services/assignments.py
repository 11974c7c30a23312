from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_core.domain.clock import Clock
from campaign_core.domain.errors import (
    AssignmentStartedError,
    CampaignCoreError,
    ConflictDetectedError,
    ErrorKind,
    IllegalTransitionError,
    NotFoundError,
    TemplateConstraintError,
    ValidationFailedError,
)
from campaign_core.domain.models import (
    AssignmentStatus,
    CallerContext,
    CampaignFamily,
    CampaignStatus,
    NotificationChannel,
    NotificationKind,
    PageRequest,
    ReminderSettings,
    Window,
)
from campaign_core.domain.policy import CampaignPolicy
from campaign_core.domain.services.conflicts import ConflictQuery, ConflictReport, ConflictService
from campaign_core.domain.services.projections import assignment_to_dict
from campaign_core.domain.services.state_machine import check_assignment_transition
from campaign_core.domain.tenancy import require_tenant
from campaign_core.infrastructure.db.models import Campaign, CampaignAssignment
from campaign_core.infrastructure.repositories.unit_of_work import UnitOfWork
from campaign_core.libs.notifications import NotificationSink, Recipient

logger = structlog.get_logger()

BULK_ACTIONS = ("status", "cancel", "remind")


def reminder_settings_for(campaign: Campaign) -> ReminderSettings | None:
    if campaign.family != CampaignFamily.ENGAGEMENT:
        return None
    return ReminderSettings.from_json(campaign.reminder_settings)


def is_reminder_eligible(
    campaign: Campaign,
    assignment: CampaignAssignment,
    now: datetime,
    policy: CampaignPolicy,
) -> bool:
    settings = reminder_settings_for(campaign)
    if settings is None or not settings.enabled:
        return False
    if campaign.status not in CampaignStatus.running_statuses():
        return False
    if assignment.status not in AssignmentStatus.open_statuses():
        return False
    if assignment.completed_at is not None:
        return False
    if assignment.last_reminder_at is None:
        return True
    frequency = settings.frequency_days or policy.reminder_frequency_days
    return now - assignment.last_reminder_at >= timedelta(days=frequency)


def notification_channels(campaign: Campaign) -> list[NotificationChannel]:
    settings = reminder_settings_for(campaign)
    if settings is None or not settings.channels:
        return [NotificationChannel.EMAIL]
    channels = []
    for value in settings.channels:
        try:
            channels.append(NotificationChannel(value))
        except ValueError:
            logger.warning("notification_channel_unknown", channel=value, campaign_id=campaign.id)
    return channels or [NotificationChannel.EMAIL]


@dataclass(slots=True)
class DispatchResult:
    sent: list[str] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"sent": len(self.sent), "failed": self.failed, "assignmentIds": self.sent}


class NotificationDispatcher:
    """Sends campaign notifications and keeps reminder bookkeeping.

    Sink failures never abort the caller: they are logged and audited as
    ``notification_failed``. The caller owns the transaction.
    """

    def __init__(self, uow: UnitOfWork, sink: NotificationSink, clock: Clock) -> None:
        self.uow = uow
        self.sink = sink
        self.clock = clock

    async def dispatch(
        self,
        campaign: Campaign,
        assignments: Sequence[CampaignAssignment],
        kind: NotificationKind,
        *,
        actor: str | None,
    ) -> DispatchResult:
        result = DispatchResult()
        if not assignments:
            return result

        now = self.clock.now()
        employees = await self.uow.employees.get_many(a.employee_id for a in assignments)
        channels = notification_channels(campaign)
        settings = reminder_settings_for(campaign)
        payload = {
            "campaignId": campaign.id,
            "campaignName": campaign.name,
            "family": campaign.family.value,
            "end": campaign.end_at.isoformat(),
            "customMessage": settings.custom_message if settings else None,
        }

        for assignment in assignments:
            employee = employees.get(assignment.employee_id)
            recipient = Recipient(
                employee_id=assignment.employee_id,
                email=employee.email if employee else None,
                name=employee.full_name if employee else None,
            )
            errors: list[str] = []
            for channel in channels:
                try:
                    await self.sink.send(recipient, channel, kind, payload)
                except Exception as exc:  # noqa: BLE001
                    errors.append(f"{channel.value}: {exc}")

            if len(errors) == len(channels):
                logger.warning(
                    "notification_failed",
                    campaign_id=campaign.id,
                    assignment_id=assignment.id,
                    kind=kind.value,
                    errors=errors,
                )
                self.uow.audit.record(
                    actor=actor,
                    action="notification_failed",
                    entity_type="assignment",
                    entity_id=assignment.id,
                    at=now,
                    details={"campaignId": campaign.id, "kind": kind.value, "errors": errors},
                )
                result.failed.append({"assignmentId": assignment.id, "errors": errors})
                continue

            if kind == NotificationKind.REMINDER:
                assignment.reminder_count = (assignment.reminder_count or 0) + 1
                assignment.last_reminder_at = now
            result.sent.append(assignment.id)

        logger.info(
            "notifications_dispatched",
            campaign_id=campaign.id,
            kind=kind.value,
            sent=len(result.sent),
            failed=len(result.failed),
        )
        return result


@dataclass(slots=True)
class AddAssignmentsResult:
    created: list[CampaignAssignment]
    reactivated: list[CampaignAssignment]
    report: ConflictReport | None = None


@dataclass(slots=True)
class BulkUpdateResult:
    succeeded: list[str] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"succeeded": self.succeeded, "failed": self.failed}


class AssignmentService:
    """Per-employee lifecycle inside a campaign."""

    def __init__(
        self,
        session: AsyncSession,
        context: CallerContext,
        *,
        policy: CampaignPolicy,
        clock: Clock,
        notifications: NotificationSink,
    ) -> None:
        self.context = context
        self.tenant_id = require_tenant(context)
        self.uow = UnitOfWork(session, self.tenant_id)
        self.policy = policy
        self.clock = clock
        self.conflicts = ConflictService(self.uow, policy)
        self.dispatcher = NotificationDispatcher(self.uow, notifications, clock)

    async def _campaign(self, campaign_id: str, *, lock: bool = False) -> Campaign:
        campaign = await self.uow.campaigns.get(campaign_id, lock=lock)
        if campaign is None:
            raise NotFoundError(f"Campaign '{campaign_id}' not found")
        return campaign

    async def _assignment(self, campaign_id: str, assignment_id: str) -> CampaignAssignment:
        assignment = await self.uow.assignments.get(assignment_id, campaign_id=campaign_id)
        if assignment is None:
            raise NotFoundError(f"Assignment '{assignment_id}' not found")
        return assignment

    async def add(
        self,
        campaign_id: str,
        employee_ids: Sequence[int],
        *,
        check_conflicts: bool = True,
    ) -> AddAssignmentsResult:
        requested = sorted(set(employee_ids))
        if not requested:
            raise ValidationFailedError("At least one employee is required")

        async with self.uow.transaction(serialize=check_conflicts):
            campaign = await self._campaign(campaign_id, lock=True)
            if campaign.status in CampaignStatus.closed_statuses():
                raise IllegalTransitionError(
                    f"Cannot add assignments to a {campaign.status.value} campaign"
                )

            active = await self.uow.employees.active_ids(requested)
            missing = [employee_id for employee_id in requested if employee_id not in active]
            if missing:
                raise ValidationFailedError(
                    "Some employees do not exist or are inactive", details={"employeeIds": missing}
                )

            existing, _ = await self.uow.assignments.for_campaign(campaign.id)
            by_employee = {a.employee_id: a for a in existing}
            duplicates = [
                employee_id
                for employee_id in requested
                if employee_id in by_employee
                and by_employee[employee_id].status != AssignmentStatus.CANCELLED
            ]
            if duplicates:
                raise TemplateConstraintError(
                    "Employees are already assigned to this campaign",
                    details={"employeeIds": duplicates},
                )

            report = None
            if check_conflicts:
                report = await self.conflicts.check(
                    ConflictQuery(
                        employee_ids=tuple(requested),
                        window=Window(campaign.start_at, campaign.end_at),
                        family=campaign.family,
                        exclude_campaign_id=campaign.id,
                        assessment_type=(
                            campaign.template.template_type
                            if campaign.family == CampaignFamily.ASSESSMENT
                            else None
                        ),
                    )
                )
                if report.has_errors:
                    raise ConflictDetectedError(
                        "Conflicts detected for the requested employees", details=report.to_dict()
                    )

            now = self.clock.now()
            created: list[CampaignAssignment] = []
            reactivated: list[CampaignAssignment] = []
            for employee_id in requested:
                row = by_employee.get(employee_id)
                if row is not None:
                    row.status = AssignmentStatus.ASSIGNED
                    row.assigned_by = self.context.user_id
                    row.assigned_at = now
                    row.completed_at = None
                    row.last_reminder_at = None
                    row.reminder_count = 0
                    reactivated.append(row)
                    continue
                created.append(
                    self.uow.assignments.add(
                        CampaignAssignment(
                            id=str(uuid.uuid4()),
                            campaign_id=campaign.id,
                            employee_id=employee_id,
                            status=AssignmentStatus.ASSIGNED,
                            assigned_by=self.context.user_id,
                            assigned_at=now,
                            reminder_count=0,
                        )
                    )
                )

            audience = dict(campaign.target_audience or {})
            employees = sorted(set(audience.get("employeeIds", [])) | set(requested))
            campaign.target_audience = {
                "employeeIds": employees,
                "totalCount": len(employees),
                "selectedAt": now.isoformat(),
            }
            campaign.updated_at = now
            self.uow.audit.record(
                actor=self.context.user_id,
                action="assignments_added",
                entity_type="campaign",
                entity_id=campaign.id,
                at=now,
                details={
                    "created": [a.employee_id for a in created],
                    "reactivated": [a.employee_id for a in reactivated],
                },
            )

        logger.info(
            "assignments_added",
            campaign_id=campaign_id,
            created=len(created),
            reactivated=len(reactivated),
        )
        return AddAssignmentsResult(created=created, reactivated=reactivated, report=report)

    async def remove(self, campaign_id: str, assignment_id: str) -> None:
        async with self.uow.transaction():
            await self._campaign(campaign_id, lock=True)
            assignment = await self._assignment(campaign_id, assignment_id)
            if assignment.status not in (AssignmentStatus.ASSIGNED, AssignmentStatus.CANCELLED):
                raise AssignmentStartedError(
                    f"Assignment is {assignment.status.value} and cannot be removed",
                    details={"status": assignment.status.value},
                )
            await self.uow.assignments.delete(assignment)
            self.uow.audit.record(
                actor=self.context.user_id,
                action="assignment_removed",
                entity_type="assignment",
                entity_id=assignment_id,
                at=self.clock.now(),
                details={"campaignId": campaign_id, "employeeId": assignment.employee_id},
            )
        logger.info("assignment_removed", campaign_id=campaign_id, assignment_id=assignment_id)

    def _apply_status(self, assignment: CampaignAssignment, target: AssignmentStatus) -> None:
        check_assignment_transition(assignment.status, target)
        now = self.clock.now()
        previous = assignment.status
        assignment.status = target
        if target == AssignmentStatus.IN_PROGRESS:
            assignment.last_accessed_at = now
        elif target == AssignmentStatus.COMPLETED:
            assignment.completed_at = now
        self.uow.audit.record(
            actor=self.context.user_id,
            action="assignment_status_changed",
            entity_type="assignment",
            entity_id=assignment.id,
            at=now,
            details={"from": previous.value, "to": target.value},
        )

    async def update_status(
        self, campaign_id: str, assignment_id: str, target: AssignmentStatus
    ) -> CampaignAssignment:
        async with self.uow.transaction():
            await self._campaign(campaign_id, lock=True)
            assignment = await self._assignment(campaign_id, assignment_id)
            self._apply_status(assignment, target)
        logger.info(
            "assignment_status_updated",
            campaign_id=campaign_id,
            assignment_id=assignment_id,
            status=target.value,
        )
        return assignment

    async def bulk_update(
        self,
        campaign_id: str,
        assignment_ids: Sequence[str],
        action: str,
        data: dict[str, Any] | None = None,
    ) -> BulkUpdateResult:
        """Apply ``action`` to each assignment independently; failures do not stop the batch."""
        if action not in BULK_ACTIONS:
            raise ValidationFailedError(
                f"Unknown bulk action '{action}'", details={"allowed": list(BULK_ACTIONS)}
            )
        target: AssignmentStatus | None = None
        if action == "status":
            raw = (data or {}).get("status")
            try:
                target = AssignmentStatus(raw)
            except ValueError as exc:
                raise ValidationFailedError(f"Unknown assignment status '{raw}'") from exc
        elif action == "cancel":
            target = AssignmentStatus.CANCELLED

        result = BulkUpdateResult()
        async with self.uow.transaction():
            campaign = await self._campaign(campaign_id, lock=True)
            rows = {
                a.id: a
                for a in await self.uow.assignments.by_ids(list(dict.fromkeys(assignment_ids)))
                if a.campaign_id == campaign.id
            }
            to_remind: list[CampaignAssignment] = []
            for assignment_id in dict.fromkeys(assignment_ids):
                assignment = rows.get(assignment_id)
                if assignment is None:
                    result.failed.append(
                        {
                            "id": assignment_id,
                            "error": ErrorKind.NOT_FOUND.value,
                            "message": "Assignment not found",
                        }
                    )
                    continue
                try:
                    if target is not None:
                        self._apply_status(assignment, target)
                        result.succeeded.append(assignment_id)
                    elif assignment.status in AssignmentStatus.open_statuses():
                        to_remind.append(assignment)
                    else:
                        raise AssignmentStartedError(
                            f"Assignment is {assignment.status.value}; nothing to remind"
                        )
                except CampaignCoreError as exc:
                    result.failed.append(
                        {"id": assignment_id, "error": exc.kind.value, "message": exc.message}
                    )

            if to_remind:
                dispatched = await self.dispatcher.dispatch(
                    campaign, to_remind, NotificationKind.REMINDER, actor=self.context.user_id
                )
                result.succeeded.extend(dispatched.sent)
                result.failed.extend(
                    {
                        "id": item["assignmentId"],
                        "error": ErrorKind.DEPENDENCY_UNAVAILABLE.value,
                        "message": "; ".join(item["errors"]),
                    }
                    for item in dispatched.failed
                )

        logger.info(
            "assignments_bulk_updated",
            campaign_id=campaign_id,
            action=action,
            succeeded=len(result.succeeded),
            failed=len(result.failed),
        )
        return result

    async def list_for_campaign(
        self,
        campaign_id: str,
        page: PageRequest,
        *,
        status: AssignmentStatus | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        await self._campaign(campaign_id)
        rows, total = await self.uow.assignments.for_campaign(campaign_id, status=status, page=page)
        return [assignment_to_dict(row) for row in rows], total

    async def list_for_employee(
        self,
        employee_id: int,
        page: PageRequest,
        *,
        status: AssignmentStatus | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        rows, total = await self.uow.assignments.for_employee(employee_id, status=status, page=page)
        campaigns = await self.uow.campaigns.get_many(row.campaign_id for row in rows)
        return [assignment_to_dict(row, campaigns.get(row.campaign_id)) for row in rows], total
