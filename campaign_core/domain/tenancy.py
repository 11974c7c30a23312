"""Tenancy gate: the only place the tenant predicate is composed."""

from __future__ import annotations

from typing import Any, TypeVar

from sqlalchemy import ColumnElement, Delete, Select, Update, or_

from campaign_core.core.logging import bind_tenant
from campaign_core.domain.errors import TenantMissingError
from campaign_core.domain.models import CallerContext

StatementT = TypeVar("StatementT", Select, Update, Delete)


def require_tenant(context: CallerContext | None) -> str:
    """Resolve the tenant for an operation or refuse it."""
    tenant_id = (context.tenant_id or "").strip() if context else ""
    if not tenant_id:
        raise TenantMissingError("Caller context does not carry a tenant")
    bind_tenant(tenant_id)
    return tenant_id


def scoped(statement: StatementT, model: Any, tenant_id: str) -> StatementT:
    """Restrict a select/update/delete on ``model`` to ``tenant_id``."""
    if not tenant_id:
        raise TenantMissingError("Tenant predicate requested without a tenant")
    return statement.where(model.tenant_id == tenant_id)


def visible_to_tenant(model: Any, tenant_id: str, *alternatives: Any) -> ColumnElement[bool]:
    """Predicate for shared catalogs: rows owned by ``tenant_id`` or global (NULL tenant)."""
    if not tenant_id:
        raise TenantMissingError("Tenant predicate requested without a tenant")
    return or_(model.tenant_id == tenant_id, model.tenant_id.is_(None), *alternatives)
