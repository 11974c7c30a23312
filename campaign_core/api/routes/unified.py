from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

import structlog
from fastapi import APIRouter, Depends, Query

from campaign_core.api.deps import get_calendar_service, get_page
from campaign_core.api.schemas.calendar import UnifiedConflictCheck, UnifiedReschedule
from campaign_core.api.schemas.common import success
from campaign_core.domain.clock import ensure_utc
from campaign_core.domain.models import CampaignFamily, PageRequest, Window
from campaign_core.domain.services import CalendarService, ConflictQuery
from campaign_core.domain.services.projections import campaign_to_dict

router = APIRouter(prefix="/unified", tags=["Unified Calendar"])
logger = structlog.get_logger()


def _window(start: datetime, end: datetime) -> Window:
    return Window(ensure_utc(start), ensure_utc(end))


@router.get("/calendar")
async def calendar(
    start: datetime = Query(...),
    end: datetime = Query(...),
    include_completed: bool = Query(False, alias="includeCompleted"),
    employee_id: int | None = Query(None, alias="employeeId"),
    page: PageRequest = Depends(get_page),
    service: CalendarService = Depends(get_calendar_service),
) -> dict[str, Any]:
    """Both campaign families merged into one timeline, sorted by start."""
    entries, total, summary = await service.calendar(
        _window(start, end),
        page,
        include_completed=include_completed,
        employee_id=employee_id,
    )
    return success(entries, pagination=page.describe(total), summary=summary)


@router.get("/stats")
async def stats(
    period: Literal["week", "month", "quarter", "year"] = Query("month"),
    service: CalendarService = Depends(get_calendar_service),
) -> dict[str, Any]:
    return success(await service.stats(period))


@router.post("/check-conflicts")
async def check_conflicts(
    payload: UnifiedConflictCheck,
    service: CalendarService = Depends(get_calendar_service),
) -> dict[str, Any]:
    assessment_type = payload.assessment_type
    if assessment_type is None and payload.template_id is not None:
        if payload.family == CampaignFamily.ASSESSMENT:
            template = await service.uow.templates.get_accessible(
                payload.template_id, payload.family
            )
            assessment_type = template.template_type if template else None
    report = await service.lifecycle().check_conflicts(
        ConflictQuery(
            employee_ids=tuple(sorted(set(payload.employee_ids))),
            window=payload.to_window(),
            family=payload.family,
            exclude_campaign_id=payload.exclude_campaign_id,
            assessment_type=assessment_type,
            cross_family=True,
        ),
        strict=payload.strict,
    )
    return success(report.to_dict())


@router.post("/reschedule")
async def reschedule(
    payload: UnifiedReschedule,
    service: CalendarService = Depends(get_calendar_service),
) -> dict[str, Any]:
    result = await service.reschedule(
        payload.family,
        payload.campaign_id,
        payload.to_window(),
        check_conflicts=payload.check_conflicts,
    )
    data = campaign_to_dict(result.campaign)
    data["previous"] = {
        "start": result.previous.start.isoformat(),
        "end": result.previous.end.isoformat(),
    }
    warnings = [entry.to_dict() for entry in result.report.warnings] if result.report else []
    return success(data, warnings=warnings or None)


@router.get("/workload")
async def workload(
    start: datetime = Query(...),
    end: datetime = Query(...),
    employee_ids: list[int] | None = Query(None, alias="employeeIds"),
    service: CalendarService = Depends(get_calendar_service),
) -> dict[str, Any]:
    rows = await service.workload(_window(start, end), employee_ids=employee_ids)
    return success(rows)


@router.get("/conflict-statistics")
async def conflict_statistics(
    start: datetime = Query(...),
    end: datetime = Query(...),
    service: CalendarService = Depends(get_calendar_service),
) -> dict[str, Any]:
    return success(await service.conflict_statistics(_window(start, end)))
