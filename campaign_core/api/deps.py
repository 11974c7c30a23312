from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterable, Sequence

from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_core.core.auth import Role, TokenError, create_access_token, decode_access_token
from campaign_core.core.config import Settings, get_settings
from campaign_core.domain.clock import Clock
from campaign_core.domain.models import CallerContext, PageRequest
from campaign_core.domain.policy import CampaignPolicy
from campaign_core.domain.services import (
    AssignmentService,
    CalendarService,
    CampaignService,
    TemplateService,
)
from campaign_core.infrastructure.db.session import Database
from campaign_core.libs.adapters import Collaborators

bearer_scheme = HTTPBearer(auto_error=False)

MANAGER_ROLES = (Role.HR_MANAGER.value, Role.ADMIN.value)
READER_ROLES = (Role.EMPLOYEE.value, *MANAGER_ROLES)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),  # noqa: B008
) -> CallerContext:
    """Resolve the authenticated caller from a bearer token."""
    if credentials is None:
        raise _unauthorized("Missing bearer token")

    try:
        payload = decode_access_token(credentials.credentials)
    except TokenError as exc:
        raise _unauthorized(str(exc)) from exc

    user_id = payload.get("sub")
    roles: Iterable[str] = payload.get("roles", [])

    if not user_id:
        raise _unauthorized("Token missing subject")

    if not roles:
        raise _forbidden("Token missing required roles")

    employee_id = payload.get("employee_id")

    return CallerContext(
        user_id=str(user_id),
        tenant_id=payload.get("tenant_id"),
        email=payload.get("email", ""),
        roles=list(roles),
        employee_id=int(employee_id) if employee_id is not None else None,
    )


def require_roles(required_roles: Sequence[str]) -> Callable[[CallerContext], CallerContext]:
    """Dependency factory enforcing that the caller has one of the required roles."""
    settings = get_settings()
    allowed = set(settings.allowed_roles)

    invalid_roles = [role for role in required_roles if role not in allowed]
    if invalid_roles:
        joined_roles = ", ".join(invalid_roles)
        raise ValueError(f"Unsupported role(s) requested: {joined_roles}")

    required = set(required_roles)

    def dependency(user: CallerContext = Depends(get_current_user)) -> CallerContext:  # noqa: B008
        if not required.intersection(user.roles):
            raise _forbidden("Insufficient role privileges")
        return user

    return dependency


def issue_smoke_token(
    user_id: str,
    *,
    role: Role,
    tenant_id: str | None = None,
    email: str | None = None,
    employee_id: int | None = None,
) -> str:
    """Generate a signed token for manual smoke testing."""
    return create_access_token(
        user_id, roles=[role.value], tenant_id=tenant_id, email=email, employee_id=employee_id
    )


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_policy(request: Request) -> CampaignPolicy:
    return request.app.state.policy


def get_collaborators(request: Request) -> Collaborators:
    return request.app.state.collaborators


async def get_db_session(
    database: Database = Depends(get_database),  # noqa: B008
) -> AsyncIterator[AsyncSession]:
    """Provide an async SQLAlchemy session for API handlers."""
    async for session in database.session():
        yield session


def get_page(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> PageRequest:
    return PageRequest(page=page, limit=limit)


def get_campaign_service(
    session: AsyncSession = Depends(get_db_session),  # noqa: B008
    user: CallerContext = Depends(require_roles(MANAGER_ROLES)),  # noqa: B008
    policy: CampaignPolicy = Depends(get_policy),  # noqa: B008
    clock: Clock = Depends(get_clock),  # noqa: B008
    collaborators: Collaborators = Depends(get_collaborators),  # noqa: B008
) -> CampaignService:
    return CampaignService(
        session, user, policy=policy, clock=clock, collaborators=collaborators
    )


def _assignment_service(
    session: AsyncSession,
    user: CallerContext,
    policy: CampaignPolicy,
    clock: Clock,
    collaborators: Collaborators,
) -> AssignmentService:
    return AssignmentService(
        session, user, policy=policy, clock=clock, notifications=collaborators.notifications
    )


def get_assignment_service(
    session: AsyncSession = Depends(get_db_session),  # noqa: B008
    user: CallerContext = Depends(require_roles(MANAGER_ROLES)),  # noqa: B008
    policy: CampaignPolicy = Depends(get_policy),  # noqa: B008
    clock: Clock = Depends(get_clock),  # noqa: B008
    collaborators: Collaborators = Depends(get_collaborators),  # noqa: B008
) -> AssignmentService:
    return _assignment_service(session, user, policy, clock, collaborators)


def get_assignment_reader(
    employee_id: int,
    session: AsyncSession = Depends(get_db_session),  # noqa: B008
    user: CallerContext = Depends(require_roles(READER_ROLES)),  # noqa: B008
    policy: CampaignPolicy = Depends(get_policy),  # noqa: B008
    clock: Clock = Depends(get_clock),  # noqa: B008
    collaborators: Collaborators = Depends(get_collaborators),  # noqa: B008
) -> AssignmentService:
    """Managers read any employee; employees only the one their token names."""
    if not set(MANAGER_ROLES).intersection(user.roles) and user.employee_id != employee_id:
        raise _forbidden("Employees can only read their own assignments")
    return _assignment_service(session, user, policy, clock, collaborators)


def get_calendar_service(
    session: AsyncSession = Depends(get_db_session),  # noqa: B008
    user: CallerContext = Depends(require_roles(MANAGER_ROLES)),  # noqa: B008
    policy: CampaignPolicy = Depends(get_policy),  # noqa: B008
    clock: Clock = Depends(get_clock),  # noqa: B008
    collaborators: Collaborators = Depends(get_collaborators),  # noqa: B008
) -> CalendarService:
    return CalendarService(
        session, user, policy=policy, clock=clock, collaborators=collaborators
    )


def get_template_service(
    session: AsyncSession = Depends(get_db_session),  # noqa: B008
    user: CallerContext = Depends(require_roles(MANAGER_ROLES)),  # noqa: B008
    clock: Clock = Depends(get_clock),  # noqa: B008
    collaborators: Collaborators = Depends(get_collaborators),  # noqa: B008
) -> TemplateService:
    return TemplateService(
        session, user, clock=clock, generator=collaborators.question_generator
    )


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
