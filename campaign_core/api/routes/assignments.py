from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query, status

from campaign_core.api.deps import get_assignment_reader, get_assignment_service, get_page
from campaign_core.api.schemas.assignments import (
    AssignmentsAdd,
    AssignmentsBulkUpdate,
    AssignmentStatusUpdate,
)
from campaign_core.api.schemas.common import success
from campaign_core.domain.models import AssignmentStatus, PageRequest
from campaign_core.domain.services import AssignmentService
from campaign_core.domain.services.projections import assignment_to_dict

router = APIRouter(tags=["Assignments"])
logger = structlog.get_logger()


@router.get("/campaigns/{campaign_id}/assignments")
async def list_campaign_assignments(
    campaign_id: str,
    status_filter: AssignmentStatus | None = Query(None, alias="status"),
    page: PageRequest = Depends(get_page),
    service: AssignmentService = Depends(get_assignment_service),
) -> dict[str, Any]:
    items, total = await service.list_for_campaign(campaign_id, page, status=status_filter)
    return success(items, pagination=page.describe(total))


@router.post("/campaigns/{campaign_id}/assignments", status_code=status.HTTP_201_CREATED)
async def add_assignments(
    campaign_id: str,
    payload: AssignmentsAdd,
    service: AssignmentService = Depends(get_assignment_service),
) -> dict[str, Any]:
    result = await service.add(
        campaign_id, payload.employee_ids, check_conflicts=payload.check_conflicts
    )
    warnings = [entry.to_dict() for entry in result.report.warnings] if result.report else []
    return success(
        {
            "created": [assignment_to_dict(a) for a in result.created],
            "reactivated": [assignment_to_dict(a) for a in result.reactivated],
        },
        warnings=warnings or None,
    )


@router.delete("/campaigns/{campaign_id}/assignments/{assignment_id}")
async def remove_assignment(
    campaign_id: str,
    assignment_id: str,
    service: AssignmentService = Depends(get_assignment_service),
) -> dict[str, Any]:
    await service.remove(campaign_id, assignment_id)
    return success({"id": assignment_id, "deleted": True})


@router.patch("/campaigns/{campaign_id}/assignments/{assignment_id}/status")
async def update_assignment_status(
    campaign_id: str,
    assignment_id: str,
    payload: AssignmentStatusUpdate,
    service: AssignmentService = Depends(get_assignment_service),
) -> dict[str, Any]:
    assignment = await service.update_status(campaign_id, assignment_id, payload.status)
    return success(assignment_to_dict(assignment))


@router.post("/campaigns/{campaign_id}/assignments/bulk")
async def bulk_update_assignments(
    campaign_id: str,
    payload: AssignmentsBulkUpdate,
    service: AssignmentService = Depends(get_assignment_service),
) -> dict[str, Any]:
    result = await service.bulk_update(
        campaign_id, payload.assignment_ids, payload.action, payload.data
    )
    return success(result.to_dict())


@router.get("/employees/{employee_id}/assignments")
async def list_employee_assignments(
    employee_id: int,
    status_filter: AssignmentStatus | None = Query(None, alias="status"),
    page: PageRequest = Depends(get_page),
    service: AssignmentService = Depends(get_assignment_reader),
) -> dict[str, Any]:
    items, total = await service.list_for_employee(employee_id, page, status=status_filter)
    return success(items, pagination=page.describe(total))
