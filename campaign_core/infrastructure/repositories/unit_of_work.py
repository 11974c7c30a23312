from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from weakref import WeakKeyDictionary

import structlog
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from campaign_core.domain.errors import TemplateConstraintError

from .audit import AuditRepository
from .campaigns import AssignmentRepository, CampaignRepository, ResponseRepository
from .catalog import EmployeeRepository, TemplateRepository

logger = structlog.get_logger()

# asyncio locks belong to one event loop, so the registry is kept per loop
_tenant_locks: WeakKeyDictionary[asyncio.AbstractEventLoop, dict[str, asyncio.Lock]] = (
    WeakKeyDictionary()
)


def tenant_write_lock(tenant_id: str) -> asyncio.Lock:
    """Process-wide lock serializing conflict-checked writes of one tenant."""
    locks = _tenant_locks.setdefault(asyncio.get_running_loop(), {})
    return locks.setdefault(tenant_id, asyncio.Lock())


class UnitOfWork:
    """Tenant-bound repositories sharing one session and transaction boundary."""

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        self.session = session
        self.tenant_id = tenant_id
        self.campaigns = CampaignRepository(session, tenant_id)
        self.assignments = AssignmentRepository(session, tenant_id)
        self.responses = ResponseRepository(session, tenant_id)
        self.templates = TemplateRepository(session, tenant_id)
        self.employees = EmployeeRepository(session, tenant_id)
        self.audit = AuditRepository(session, tenant_id)

    @asynccontextmanager
    async def transaction(self, *, serialize: bool = False) -> AsyncIterator[UnitOfWork]:
        """Commit on success, roll back on any exception.

        With ``serialize`` the transaction excludes every other serialized
        transaction of the tenant: a process-local lock is held until commit and,
        on PostgreSQL, a transaction-level advisory lock covers other instances.
        Conflict checks and the writes they guard run under it.

        Uniqueness violations surface as ``TemplateConstraintError``.
        """
        async with AsyncExitStack() as stack:
            if serialize:
                await stack.enter_async_context(tenant_write_lock(self.tenant_id))
            logger.debug("uow_enter", serialized=serialize)
            try:
                if serialize and self.session.get_bind().dialect.name == "postgresql":
                    await self.session.execute(
                        text("SELECT pg_advisory_xact_lock(hashtext(:tenant))"),
                        {"tenant": self.tenant_id},
                    )
                yield self
                await self.session.commit()
                logger.debug("uow_commit")
            except IntegrityError as exc:
                await self.session.rollback()
                logger.debug("uow_rollback", reason="integrity_error")
                raise TemplateConstraintError(
                    "Uniqueness constraint violated", details={"error": str(exc.orig)}
                ) from exc
            except BaseException:
                await self.session.rollback()
                logger.debug("uow_rollback")
                raise


@asynccontextmanager
async def advisory_lock(engine: AsyncEngine, key: int) -> AsyncIterator[bool]:
    """Try to take a session-level advisory lock; yields whether it was acquired.

    The lock lives on one dedicated connection that is held until the block
    exits, so the unlock always reaches the connection that took it.
    Only PostgreSQL has advisory locks. Other backends run single-instance
    and always acquire.
    """
    if engine.dialect.name != "postgresql":
        yield True
        return

    async with engine.connect() as connection:
        acquired = bool(
            await connection.scalar(text("SELECT pg_try_advisory_lock(:key)"), {"key": key})
        )
        await connection.commit()
        try:
            yield acquired
        finally:
            if acquired:
                await connection.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": key})
                await connection.commit()
