from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import StaticPool

from campaign_core.api.main import create_app
from campaign_core.core.config import Settings
from campaign_core.domain.clock import FixedClock
from campaign_core.domain.models import CallerContext, CampaignFamily
from campaign_core.domain.policy import CampaignPolicy
from campaign_core.domain.reference_data import GLOBAL_TEMPLATES
from campaign_core.domain.services import (
    AssignmentService,
    CalendarService,
    CampaignService,
    TemplateService,
)
from campaign_core.infrastructure.db.base import Base
from campaign_core.infrastructure.db.models import CampaignTemplate, Employee, Tenant
from campaign_core.infrastructure.db.session import Database
from campaign_core.libs.adapters import Collaborators
from tests.utils import TENANT_A, TENANT_B, RecordingAnalytics, RecordingSink, day

ACTIVE_EMPLOYEES_A = (55, 101, 102, 103, 104, 105)
INACTIVE_EMPLOYEE_A = 106
EMPLOYEES_B = (201, 202)


async def seed_reference_data(database: Database) -> dict[str, int]:
    """Two tenants, their employees and the template catalogue; returns template ids by type."""
    async with database.session_factory() as session:
        session.add_all(
            [
                Tenant(id=TENANT_A, slug="acme", name="Acme"),
                Tenant(id=TENANT_B, slug="globex", name="Globex"),
            ]
        )
        for employee_id in ACTIVE_EMPLOYEES_A:
            session.add(
                Employee(
                    id=employee_id,
                    tenant_id=TENANT_A,
                    email=f"employee{employee_id}@acme.test",
                    full_name=f"Employee {employee_id}",
                )
            )
        session.add(
            Employee(id=INACTIVE_EMPLOYEE_A, tenant_id=TENANT_A, full_name="Gone", is_active=False)
        )
        for employee_id in EMPLOYEES_B:
            session.add(Employee(id=employee_id, tenant_id=TENANT_B, full_name="Globex staff"))

        templates = [CampaignTemplate(**values) for values in GLOBAL_TEMPLATES]
        private = CampaignTemplate(
            tenant_id=TENANT_B,
            family=CampaignFamily.ENGAGEMENT,
            template_type="private",
            name="Globex private survey",
            question_count=4,
        )
        session.add_all([*templates, private])
        await session.flush()
        ids = {template.template_type: template.id for template in templates}
        ids["private"] = private.id
        await session.commit()
    return ids


@pytest.fixture()
async def database() -> AsyncIterator[Database]:
    database = Database.from_url(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield database
    await database.dispose()


@pytest.fixture()
async def templates(database: Database) -> dict[str, int]:
    return await seed_reference_data(database)


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(day(2025, 1, 10, 9))


@pytest.fixture()
def policy() -> CampaignPolicy:
    return CampaignPolicy()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def analytics() -> RecordingAnalytics:
    return RecordingAnalytics()


@pytest.fixture()
def collaborators(sink: RecordingSink, analytics: RecordingAnalytics) -> Collaborators:
    return Collaborators(notifications=sink, analytics=analytics)


@pytest.fixture()
def manager() -> CallerContext:
    return CallerContext(user_id="hr-1", tenant_id=TENANT_A, roles=["hr_manager"])


@pytest.fixture()
async def session(database: Database, templates: dict[str, int]):
    async with database.session_factory() as session:
        yield session


@pytest.fixture()
def campaign_service(session, manager, policy, clock, collaborators) -> CampaignService:
    return CampaignService(
        session, manager, policy=policy, clock=clock, collaborators=collaborators
    )


@pytest.fixture()
def assignment_service(session, manager, policy, clock, sink) -> AssignmentService:
    return AssignmentService(session, manager, policy=policy, clock=clock, notifications=sink)


@pytest.fixture()
def calendar_service(session, manager, policy, clock, collaborators) -> CalendarService:
    return CalendarService(
        session, manager, policy=policy, clock=clock, collaborators=collaborators
    )


@pytest.fixture()
def template_service(session, manager, clock) -> TemplateService:
    return TemplateService(session, manager, clock=clock)


@pytest.fixture()
def settings() -> Settings:
    return Settings(REDIS_URL="redis://127.0.0.1:1/0")


@pytest.fixture()
async def async_client(
    database: Database,
    templates: dict[str, int],
    settings: Settings,
    clock: FixedClock,
    collaborators: Collaborators,
) -> AsyncIterator[AsyncClient]:
    """Async HTTP client wired to an app that shares the test database and clock."""
    app = create_app(settings, database=database, clock=clock, collaborators=collaborators)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
