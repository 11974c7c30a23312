from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_core.domain.models import CampaignFamily
from campaign_core.domain.tenancy import scoped, visible_to_tenant
from campaign_core.infrastructure.db.models import (
    CampaignTemplate,
    Employee,
    Tenant,
    TenantTemplateSelection,
)


class TemplateRepository:
    """Templates visible to a tenant: its own, global ones, or explicitly selected ones."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self.session = session
        self.tenant_id = tenant_id

    async def get_accessible(
        self, template_id: int, family: CampaignFamily
    ) -> CampaignTemplate | None:
        stmt = (
            select(CampaignTemplate)
            .where(CampaignTemplate.id == template_id)
            .where(CampaignTemplate.family == family)
            .where(CampaignTemplate.is_active.is_(True))
            .where(
                visible_to_tenant(
                    CampaignTemplate, self.tenant_id, CampaignTemplate.id.in_(self._selected())
                )
            )
        )
        return await self.session.scalar(stmt)

    def _selected(self):
        return scoped(
            select(TenantTemplateSelection.template_id), TenantTemplateSelection, self.tenant_id
        ).where(TenantTemplateSelection.is_active.is_(True))

    async def list_accessible(self, family: CampaignFamily) -> list[CampaignTemplate]:
        stmt = (
            select(CampaignTemplate)
            .where(CampaignTemplate.family == family)
            .where(CampaignTemplate.is_active.is_(True))
            .where(
                visible_to_tenant(
                    CampaignTemplate, self.tenant_id, CampaignTemplate.id.in_(self._selected())
                )
            )
            .order_by(CampaignTemplate.id)
        )
        return list(await self.session.scalars(stmt))


class EmployeeRepository:
    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self.session = session
        self.tenant_id = tenant_id

    async def active_ids(self, employee_ids: Iterable[int]) -> set[int]:
        ids = list(employee_ids)
        if not ids:
            return set()
        stmt = (
            scoped(select(Employee.id), Employee, self.tenant_id)
            .where(Employee.id.in_(ids))
            .where(Employee.is_active.is_(True))
        )
        return set(await self.session.scalars(stmt))

    async def get_many(self, employee_ids: Iterable[int]) -> dict[int, Employee]:
        ids = list(employee_ids)
        if not ids:
            return {}
        stmt = scoped(select(Employee), Employee, self.tenant_id).where(Employee.id.in_(ids))
        return {employee.id: employee for employee in await self.session.scalars(stmt)}


async def active_tenant_ids(session: AsyncSession) -> list[str]:
    """Tenant directory lookup used by the sweep to fan out per tenant."""
    result = await session.scalars(
        select(Tenant.id).where(Tenant.is_active.is_(True)).order_by(Tenant.id)
    )
    return list(result)
