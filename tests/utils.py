from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select

from campaign_core.api.deps import issue_smoke_token
from campaign_core.core.auth import Role
from campaign_core.domain.clock import Clock
from campaign_core.domain.models import (
    AssessmentOptions,
    AssignmentStatus,
    CampaignDraft,
    CampaignFamily,
    CampaignStatus,
    EngagementOptions,
    NotificationChannel,
    NotificationKind,
    ReminderSettings,
    Window,
)
from campaign_core.domain.policy import CampaignPolicy
from campaign_core.domain.services.reconciliation import (
    ReconciliationReport,
    ReconciliationService,
)
from campaign_core.infrastructure.db.models import (
    AuditEntry,
    Campaign,
    CampaignAssignment,
    CampaignResponse,
)
from campaign_core.infrastructure.db.session import Database
from campaign_core.libs.notifications import NotificationError, NotificationSink, Recipient

TENANT_A = "tenant-a"
TENANT_B = "tenant-b"


def day(year: int, month: int, dom: int, hour: int = 0) -> datetime:
    return datetime(year, month, dom, hour, tzinfo=UTC)


def auth_headers(
    user_id: str = "hr-1",
    role: Role = Role.HR_MANAGER,
    tenant_id: str | None = TENANT_A,
    employee_id: int | None = None,
) -> dict[str, str]:
    email = f"{user_id}@example.com"
    token = issue_smoke_token(
        user_id, role=role, tenant_id=tenant_id, email=email, employee_id=employee_id
    )
    return {"Authorization": f"Bearer {token}"}


class RecordingSink:
    """Notification sink that keeps what it was asked to send."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[int, NotificationChannel, NotificationKind]] = []

    async def send(
        self,
        recipient: Recipient,
        channel: NotificationChannel,
        kind: NotificationKind,
        payload: Mapping[str, Any],
    ) -> None:
        if self.fail:
            raise NotificationError("sink offline")
        self.sent.append((recipient.employee_id, channel, kind))


class RecordingAnalytics:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def emit(self, event: str, payload: Mapping[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("analytics pipeline down")
        self.events.append((event, dict(payload)))


def engagement_draft(
    template_id: int,
    employee_ids: Iterable[int],
    start: datetime,
    end: datetime,
    *,
    name: str | None = None,
    reminders: ReminderSettings | None = None,
) -> CampaignDraft:
    return CampaignDraft(
        template_id=template_id,
        name=name,
        description=None,
        employee_ids=list(employee_ids),
        window=Window(start, end),
        options=EngagementOptions(reminder_settings=reminders or ReminderSettings()),
    )


def assessment_draft(
    template_id: int,
    employee_ids: Iterable[int],
    start: datetime,
    end: datetime,
    *,
    name: str | None = None,
    mandatory: bool = False,
) -> CampaignDraft:
    return CampaignDraft(
        template_id=template_id,
        name=name,
        description=None,
        employee_ids=list(employee_ids),
        window=Window(start, end),
        options=AssessmentOptions(mandatory=mandatory),
    )


async def insert_campaign(
    database: Database,
    *,
    template_id: int,
    family: CampaignFamily,
    start: datetime,
    end: datetime,
    employee_ids: Iterable[int] = (),
    status: CampaignStatus = CampaignStatus.ACTIVE,
    assignment_status: AssignmentStatus = AssignmentStatus.ASSIGNED,
    tenant_id: str = TENANT_A,
    name: str = "Existing campaign",
    mandatory: bool = False,
    reminder_settings: dict[str, Any] | None = None,
) -> str:
    """Write a campaign and its assignments straight to the store, bypassing the services."""
    campaign_id = str(uuid.uuid4())
    now = day(2025, 1, 1)
    async with database.session_factory() as session:
        session.add(
            Campaign(
                id=campaign_id,
                tenant_id=tenant_id,
                family=family,
                template_id=template_id,
                name=name,
                start_at=start,
                end_at=end,
                status=status,
                mandatory=mandatory,
                reminder_settings=reminder_settings,
                created_at=now,
                updated_at=now,
            )
        )
        for employee_id in employee_ids:
            session.add(
                CampaignAssignment(
                    id=str(uuid.uuid4()),
                    tenant_id=tenant_id,
                    campaign_id=campaign_id,
                    employee_id=employee_id,
                    status=assignment_status,
                    assigned_at=now,
                )
            )
        await session.commit()
    return campaign_id


async def insert_response(
    database: Database,
    campaign_id: str,
    *,
    employee_id: int | None = None,
    tenant_id: str = TENANT_A,
) -> str:
    response_id = str(uuid.uuid4())
    async with database.session_factory() as session:
        session.add(
            CampaignResponse(
                id=response_id,
                tenant_id=tenant_id,
                campaign_id=campaign_id,
                employee_id=employee_id,
                payload={"answers": []},
                submitted_at=day(2025, 1, 15),
            )
        )
        await session.commit()
    return response_id


async def load_campaign(database: Database, campaign_id: str) -> Campaign | None:
    async with database.session_factory() as session:
        result = await session.execute(select(Campaign).where(Campaign.id == campaign_id))
        return result.unique().scalar_one_or_none()


async def load_assignments(database: Database, campaign_id: str) -> list[CampaignAssignment]:
    async with database.session_factory() as session:
        result = await session.scalars(
            select(CampaignAssignment)
            .where(CampaignAssignment.campaign_id == campaign_id)
            .order_by(CampaignAssignment.employee_id)
        )
        return list(result)


async def audit_actions(database: Database, tenant_id: str = TENANT_A) -> list[str]:
    async with database.session_factory() as session:
        result = await session.scalars(
            select(AuditEntry.action)
            .where(AuditEntry.tenant_id == tenant_id)
            .order_by(AuditEntry.created_at, AuditEntry.id)
        )
        return list(result)


async def count_campaigns(database: Database, tenant_id: str = TENANT_A) -> int:
    async with database.session_factory() as session:
        result = await session.scalars(select(Campaign.id).where(Campaign.tenant_id == tenant_id))
        return len(list(result))


async def insert_orphan_assignment(
    database: Database, *, employee_id: int = 101, tenant_id: str = TENANT_A
) -> str:
    """An assignment pointing at a campaign that does not exist."""
    assignment_id = str(uuid.uuid4())
    async with database.session_factory() as session:
        session.add(
            CampaignAssignment(
                id=assignment_id,
                tenant_id=tenant_id,
                campaign_id=str(uuid.uuid4()),
                employee_id=employee_id,
                status=AssignmentStatus.ASSIGNED,
                assigned_at=day(2025, 1, 1),
            )
        )
        await session.commit()
    return assignment_id


async def reconcile(
    database: Database,
    clock: Clock,
    notifications: NotificationSink,
    *,
    tenant_id: str = TENANT_A,
    policy: CampaignPolicy | None = None,
) -> ReconciliationReport:
    async with database.session_factory() as session:
        service = ReconciliationService(
            session,
            tenant_id,
            policy=policy or CampaignPolicy(),
            clock=clock,
            notifications=notifications,
        )
        return await service.run()
