from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_core.domain.tenancy import scoped
from campaign_core.infrastructure.db.models import AuditEntry

logger = structlog.get_logger()

SYSTEM_ACTOR = "system"


class AuditRepository:
    """Append-only audit trail."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self.session = session
        self.tenant_id = tenant_id

    def record(
        self,
        *,
        actor: str | None,
        action: str,
        entity_type: str,
        entity_id: str,
        at: datetime,
        details: dict[str, Any] | None = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            tenant_id=self.tenant_id,
            actor=actor or SYSTEM_ACTOR,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            details=details,
            created_at=at,
        )
        self.session.add(entry)
        logger.debug("audit_recorded", action=action, entity_type=entity_type, entity_id=entity_id)
        return entry

    async def for_entity(self, entity_id: str) -> list[AuditEntry]:
        result = await self.session.scalars(
            scoped(select(AuditEntry), AuditEntry, self.tenant_id)
            .where(AuditEntry.entity_id == str(entity_id))
            .order_by(AuditEntry.created_at, AuditEntry.id)
        )
        return list(result)

    async def by_action(self, action: str) -> list[AuditEntry]:
        result = await self.session.scalars(
            scoped(select(AuditEntry), AuditEntry, self.tenant_id)
            .where(AuditEntry.action == action)
            .order_by(AuditEntry.created_at, AuditEntry.id)
        )
        return list(result)
