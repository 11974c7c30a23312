from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_core.domain.models import (
    AssignmentStatus,
    CampaignFamily,
    CampaignStatus,
    PageRequest,
)
from campaign_core.domain.tenancy import scoped
from campaign_core.infrastructure.db.models import (
    Campaign,
    CampaignAssignment,
    CampaignResponse,
)


class CampaignRepository:
    """Tenant-scoped access to campaigns of both families."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self.session = session
        self.tenant_id = tenant_id

    def _select(self):
        return scoped(select(Campaign), Campaign, self.tenant_id)

    async def get(
        self,
        campaign_id: str,
        *,
        family: CampaignFamily | None = None,
        lock: bool = False,
    ) -> Campaign | None:
        stmt = self._select().where(Campaign.id == campaign_id)
        if family is not None:
            stmt = stmt.where(Campaign.family == family)
        if lock:
            stmt = stmt.with_for_update(of=Campaign)
        result = await self.session.execute(stmt)
        return result.unique().scalar_one_or_none()

    async def get_many(self, campaign_ids: Iterable[str]) -> dict[str, Campaign]:
        ids = list(set(campaign_ids))
        if not ids:
            return {}
        result = await self.session.execute(self._select().where(Campaign.id.in_(ids)))
        return {campaign.id: campaign for campaign in result.unique().scalars()}

    async def list(
        self,
        family: CampaignFamily,
        page: PageRequest,
        *,
        status: CampaignStatus | None = None,
        template_id: int | None = None,
        search: str | None = None,
    ) -> tuple[list[Campaign], int]:
        stmt = self._select().where(Campaign.family == family)
        if status is not None:
            stmt = stmt.where(Campaign.status == status)
        if template_id is not None:
            stmt = stmt.where(Campaign.template_id == template_id)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Campaign.name).like(pattern),
                    func.lower(func.coalesce(Campaign.description, "")).like(pattern),
                )
            )

        total = await self.session.scalar(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        )
        stmt = stmt.order_by(Campaign.created_at.desc(), Campaign.id).offset(page.offset).limit(
            page.limit
        )
        result = await self.session.execute(stmt)
        return list(result.unique().scalars()), int(total or 0)

    async def overlapping(
        self,
        start: datetime,
        end: datetime,
        *,
        statuses: Iterable[CampaignStatus] | None = None,
        family: CampaignFamily | None = None,
        exclude_id: str | None = None,
    ) -> list[Campaign]:
        """Campaigns whose window intersects [start, end] (closed on both sides)."""
        stmt = self._select().where(Campaign.start_at <= end, Campaign.end_at >= start)
        if statuses is not None:
            stmt = stmt.where(Campaign.status.in_(list(statuses)))
        if family is not None:
            stmt = stmt.where(Campaign.family == family)
        if exclude_id is not None:
            stmt = stmt.where(Campaign.id != exclude_id)
        result = await self.session.execute(stmt.order_by(Campaign.start_at, Campaign.id))
        return list(result.unique().scalars())

    async def within(self, start: datetime, end: datetime) -> list[Campaign]:
        """Campaigns whose whole window lies inside [start, end]."""
        stmt = self._select().where(Campaign.start_at >= start, Campaign.end_at <= end)
        result = await self.session.execute(stmt.order_by(Campaign.start_at, Campaign.id))
        return list(result.unique().scalars())

    async def by_status(
        self,
        statuses: Iterable[CampaignStatus],
        *,
        start_before: datetime | None = None,
        end_before: datetime | None = None,
        end_between: tuple[datetime, datetime] | None = None,
        lock: bool = False,
    ) -> list[Campaign]:
        stmt = self._select().where(Campaign.status.in_(list(statuses)))
        if start_before is not None:
            stmt = stmt.where(Campaign.start_at <= start_before)
        if end_before is not None:
            stmt = stmt.where(Campaign.end_at < end_before)
        if end_between is not None:
            stmt = stmt.where(Campaign.end_at >= end_between[0], Campaign.end_at <= end_between[1])
        if lock:
            stmt = stmt.with_for_update(of=Campaign)
        result = await self.session.execute(stmt.order_by(Campaign.id))
        return list(result.unique().scalars())

    async def unflagged_with_responses(self) -> list[Campaign]:
        has_response = (
            select(CampaignResponse.id)
            .where(CampaignResponse.campaign_id == Campaign.id)
            .where(CampaignResponse.tenant_id == Campaign.tenant_id)
            .exists()
        )
        stmt = self._select().where(Campaign.has_responses.is_(False)).where(has_response)
        result = await self.session.execute(stmt.order_by(Campaign.id))
        return list(result.unique().scalars())

    async def status_counts(
        self, family: CampaignFamily, *, created_since: datetime | None = None
    ) -> dict[str, int]:
        stmt = (
            scoped(select(Campaign.status, func.count()), Campaign, self.tenant_id)
            .where(Campaign.family == family)
            .group_by(Campaign.status)
        )
        if created_since is not None:
            stmt = stmt.where(Campaign.created_at >= created_since)
        rows = await self.session.execute(stmt)
        return {status.value: count for status, count in rows.all()}

    async def count(
        self,
        family: CampaignFamily,
        status: CampaignStatus,
        *,
        start_from: datetime | None = None,
    ) -> int:
        stmt = (
            scoped(select(func.count(Campaign.id)), Campaign, self.tenant_id)
            .where(Campaign.family == family)
            .where(Campaign.status == status)
        )
        if start_from is not None:
            stmt = stmt.where(Campaign.start_at >= start_from)
        return int(await self.session.scalar(stmt) or 0)

    def add(self, campaign: Campaign) -> Campaign:
        campaign.tenant_id = self.tenant_id
        self.session.add(campaign)
        return campaign

    async def delete(self, campaign_id: str) -> None:
        await self.session.execute(
            scoped(delete(CampaignAssignment), CampaignAssignment, self.tenant_id).where(
                CampaignAssignment.campaign_id == campaign_id
            )
        )
        await self.session.execute(
            scoped(delete(Campaign), Campaign, self.tenant_id).where(Campaign.id == campaign_id)
        )


class AssignmentRepository:
    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self.session = session
        self.tenant_id = tenant_id

    def _select(self):
        return scoped(select(CampaignAssignment), CampaignAssignment, self.tenant_id)

    async def get(
        self, assignment_id: str, *, campaign_id: str | None = None
    ) -> CampaignAssignment | None:
        stmt = self._select().where(CampaignAssignment.id == assignment_id)
        if campaign_id is not None:
            stmt = stmt.where(CampaignAssignment.campaign_id == campaign_id)
        return await self.session.scalar(stmt)

    async def by_ids(self, assignment_ids: Sequence[str]) -> list[CampaignAssignment]:
        if not assignment_ids:
            return []
        result = await self.session.scalars(
            self._select().where(CampaignAssignment.id.in_(list(assignment_ids)))
        )
        return list(result)

    async def for_campaign(
        self,
        campaign_id: str,
        *,
        status: AssignmentStatus | None = None,
        statuses: Iterable[AssignmentStatus] | None = None,
        page: PageRequest | None = None,
    ) -> tuple[list[CampaignAssignment], int]:
        stmt = self._select().where(CampaignAssignment.campaign_id == campaign_id)
        if status is not None:
            stmt = stmt.where(CampaignAssignment.status == status)
        if statuses is not None:
            stmt = stmt.where(CampaignAssignment.status.in_(list(statuses)))
        return await self._paginate(stmt, page)

    async def for_employee(
        self,
        employee_id: int,
        *,
        status: AssignmentStatus | None = None,
        page: PageRequest | None = None,
    ) -> tuple[list[CampaignAssignment], int]:
        stmt = self._select().where(CampaignAssignment.employee_id == employee_id)
        if status is not None:
            stmt = stmt.where(CampaignAssignment.status == status)
        return await self._paginate(stmt, page)

    async def for_campaigns(
        self,
        campaign_ids: Sequence[str],
        *,
        employee_ids: Iterable[int] | None = None,
    ) -> list[CampaignAssignment]:
        if not campaign_ids:
            return []
        stmt = self._select().where(CampaignAssignment.campaign_id.in_(list(campaign_ids)))
        if employee_ids is not None:
            stmt = stmt.where(CampaignAssignment.employee_id.in_(list(employee_ids)))
        result = await self.session.scalars(
            stmt.order_by(CampaignAssignment.employee_id, CampaignAssignment.campaign_id)
        )
        return list(result)

    async def _paginate(
        self, stmt, page: PageRequest | None
    ) -> tuple[list[CampaignAssignment], int]:
        total = await self.session.scalar(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        )
        stmt = stmt.order_by(CampaignAssignment.assigned_at.desc(), CampaignAssignment.id)
        if page is not None:
            stmt = stmt.offset(page.offset).limit(page.limit)
        result = await self.session.scalars(stmt)
        return list(result), int(total or 0)

    async def status_counts(self, campaign_ids: Sequence[str]) -> dict[str, dict[str, int]]:
        counts: dict[str, dict[str, int]] = defaultdict(dict)
        if not campaign_ids:
            return counts
        stmt = (
            scoped(
                select(CampaignAssignment.campaign_id, CampaignAssignment.status, func.count()),
                CampaignAssignment,
                self.tenant_id,
            )
            .where(CampaignAssignment.campaign_id.in_(list(campaign_ids)))
            .group_by(CampaignAssignment.campaign_id, CampaignAssignment.status)
        )
        for campaign_id, status, count in (await self.session.execute(stmt)).all():
            counts[campaign_id][status.value] = count
        return counts

    def add(self, assignment: CampaignAssignment) -> CampaignAssignment:
        assignment.tenant_id = self.tenant_id
        self.session.add(assignment)
        return assignment

    async def delete(self, assignment: CampaignAssignment) -> None:
        await self.session.execute(
            scoped(delete(CampaignAssignment), CampaignAssignment, self.tenant_id).where(
                CampaignAssignment.id == assignment.id
            )
        )

    async def close_open(
        self,
        campaign_ids: Sequence[str],
        status: AssignmentStatus,
    ) -> int:
        """Move ASSIGNED/IN_PROGRESS assignments of ``campaign_ids`` to a terminal status."""
        if not campaign_ids:
            return 0
        stmt = (
            scoped(update(CampaignAssignment), CampaignAssignment, self.tenant_id)
            .where(CampaignAssignment.campaign_id.in_(list(campaign_ids)))
            .where(CampaignAssignment.status.in_(AssignmentStatus.open_statuses()))
            .values(status=status)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def orphans(self) -> list[CampaignAssignment]:
        """Assignments whose parent campaign no longer exists."""
        parent = select(Campaign.id).where(Campaign.id == CampaignAssignment.campaign_id).exists()
        result = await self.session.scalars(
            self._select().where(~parent).order_by(CampaignAssignment.id)
        )
        return list(result)

    async def employees_with_parallel_open(self) -> list[tuple[int, int]]:
        """(employee_id, open assignment count) for employees holding more than one."""
        stmt = (
            scoped(
                select(CampaignAssignment.employee_id, func.count(CampaignAssignment.id)),
                CampaignAssignment,
                self.tenant_id,
            )
            .where(CampaignAssignment.status.in_(AssignmentStatus.open_statuses()))
            .group_by(CampaignAssignment.employee_id)
            .having(func.count(CampaignAssignment.id) > 1)
            .order_by(CampaignAssignment.employee_id)
        )
        rows = (await self.session.execute(stmt)).all()
        return [(employee_id, count) for employee_id, count in rows]


class ResponseRepository:
    """Read-only view over responses; the core never writes or drops them."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self.session = session
        self.tenant_id = tenant_id

    async def count_for(self, campaign_id: str) -> int:
        stmt = scoped(
            select(func.count(CampaignResponse.id)), CampaignResponse, self.tenant_id
        ).where(CampaignResponse.campaign_id == campaign_id)
        return int(await self.session.scalar(stmt) or 0)

    async def counts_for(self, campaign_ids: Sequence[str]) -> dict[str, int]:
        if not campaign_ids:
            return {}
        stmt = (
            scoped(
                select(CampaignResponse.campaign_id, func.count(CampaignResponse.id)),
                CampaignResponse,
                self.tenant_id,
            )
            .where(CampaignResponse.campaign_id.in_(list(campaign_ids)))
            .group_by(CampaignResponse.campaign_id)
        )
        rows = (await self.session.execute(stmt)).all()
        return {campaign_id: count for campaign_id, count in rows}

    async def for_campaign(self, campaign_id: str) -> list[CampaignResponse]:
        result = await self.session.scalars(
            scoped(select(CampaignResponse), CampaignResponse, self.tenant_id)
            .where(CampaignResponse.campaign_id == campaign_id)
            .order_by(CampaignResponse.submitted_at, CampaignResponse.id)
        )
        return list(result)
