"""Campaign endpoints, built once per family.

Assessment and engagement campaigns share every route; they differ only in
the create body and in the name of the window end on the wire.
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query, status

from campaign_core.api.deps import get_campaign_service, get_page
from campaign_core.api.schemas.campaigns import (
    CREATE_MODELS,
    BatchDuplicateRequest,
    CampaignStatusUpdate,
    CloneRequest,
    ConflictCheckRequest,
    DuplicateRequest,
    NotifyRequest,
    RescheduleRequest,
)
from campaign_core.api.schemas.common import success
from campaign_core.domain.errors import TemplateNotFoundError
from campaign_core.domain.models import CampaignFamily, CampaignStatus, PageRequest
from campaign_core.domain.services import CampaignService, ConflictQuery
from campaign_core.domain.services.projections import campaign_to_dict

logger = structlog.get_logger()


def build_campaign_router(family: CampaignFamily) -> APIRouter:
    router = APIRouter(
        prefix=f"/{family.value}/campaigns", tags=[f"{family.value.title()} Campaigns"]
    )
    create_model = CREATE_MODELS[family]

    @router.get("", summary=f"List {family.value} campaigns")
    async def list_campaigns(
        status_filter: CampaignStatus | None = Query(None, alias="status"),
        template_id: int | None = Query(None, alias="templateId"),
        search: str | None = Query(None, max_length=255),
        page: PageRequest = Depends(get_page),
        service: CampaignService = Depends(get_campaign_service),
    ) -> dict[str, Any]:
        items, total = await service.list(
            family, page, status=status_filter, template_id=template_id, search=search
        )
        return success(items, pagination=page.describe(total))

    @router.post(
        "", status_code=status.HTTP_201_CREATED, summary=f"Create a {family.value} campaign"
    )
    async def create_campaign(
        payload: create_model,  # type: ignore[valid-type]
        service: CampaignService = Depends(get_campaign_service),
    ) -> dict[str, Any]:
        result = await service.create(payload.to_draft())
        data = campaign_to_dict(
            result.campaign, assignment_counts={"ASSIGNED": len(result.assignments)}
        )
        data["assignmentsCreated"] = len(result.assignments)
        report = result.report
        return success(
            data,
            warnings=[entry.to_dict() for entry in report.warnings] or None,
            suggestions=report.suggestions.to_dict() if report.has_warnings else None,
        )

    @router.post("/check-conflicts", summary="Dry-run the conflict detector")
    async def check_conflicts(
        payload: ConflictCheckRequest,
        service: CampaignService = Depends(get_campaign_service),
    ) -> dict[str, Any]:
        assessment_type = payload.assessment_type
        if assessment_type is None and payload.template_id is not None:
            template = await service.uow.templates.get_accessible(payload.template_id, family)
            if template is None:
                raise TemplateNotFoundError(f"Template {payload.template_id} is not available")
            if family == CampaignFamily.ASSESSMENT:
                assessment_type = template.template_type
        report = await service.check_conflicts(
            ConflictQuery(
                employee_ids=tuple(sorted(set(payload.employee_ids))),
                window=payload.to_window(),
                family=family,
                exclude_campaign_id=payload.exclude_campaign_id,
                assessment_type=assessment_type,
            ),
            strict=payload.strict,
        )
        return success(report.to_dict())

    @router.post("/batch-duplicate", summary="Duplicate several campaigns")
    async def batch_duplicate(
        payload: BatchDuplicateRequest,
        service: CampaignService = Depends(get_campaign_service),
    ) -> dict[str, Any]:
        result = await service.batch_duplicate(
            family,
            payload.campaign_ids,
            name_prefix=payload.name_prefix,
            day_shift=payload.day_shift,
            include_assignments=payload.include_assignments,
        )
        return success(result.to_dict())

    @router.get("/{campaign_id}", summary=f"Get a {family.value} campaign")
    async def get_campaign(
        campaign_id: str,
        service: CampaignService = Depends(get_campaign_service),
    ) -> dict[str, Any]:
        return success(await service.get(family, campaign_id))

    @router.delete("/{campaign_id}", summary=f"Delete a {family.value} campaign")
    async def delete_campaign(
        campaign_id: str,
        service: CampaignService = Depends(get_campaign_service),
    ) -> dict[str, Any]:
        await service.delete(family, campaign_id)
        return success({"id": campaign_id, "deleted": True})

    @router.patch("/{campaign_id}/status", summary="Move a campaign through its lifecycle")
    async def update_status(
        campaign_id: str,
        payload: CampaignStatusUpdate,
        service: CampaignService = Depends(get_campaign_service),
    ) -> dict[str, Any]:
        campaign = await service.update_status(family, campaign_id, payload.status)
        return success(campaign_to_dict(campaign))

    @router.patch("/{campaign_id}/reschedule", summary="Move a campaign window")
    async def reschedule(
        campaign_id: str,
        payload: RescheduleRequest,
        service: CampaignService = Depends(get_campaign_service),
    ) -> dict[str, Any]:
        result = await service.reschedule(
            family, campaign_id, payload.to_window(), check_conflicts=payload.check_conflicts
        )
        report = result.report
        return success(
            campaign_to_dict(result.campaign),
            warnings=[entry.to_dict() for entry in report.warnings] if report else None,
        )

    @router.post("/{campaign_id}/notify", summary="Notify assignees of a running campaign")
    async def notify(
        campaign_id: str,
        payload: NotifyRequest,
        service: CampaignService = Depends(get_campaign_service),
    ) -> dict[str, Any]:
        return success(await service.notify(family, campaign_id, payload.to_kind()))

    @router.get("/{campaign_id}/stats", summary="Per-campaign statistics")
    async def stats(
        campaign_id: str,
        service: CampaignService = Depends(get_campaign_service),
    ) -> dict[str, Any]:
        return success(await service.stats(family, campaign_id))

    @router.post(
        "/{campaign_id}/duplicate",
        status_code=status.HTTP_201_CREATED,
        summary="Copy a campaign into a new PLANNED one",
    )
    async def duplicate(
        campaign_id: str,
        payload: DuplicateRequest | None = None,
        service: CampaignService = Depends(get_campaign_service),
    ) -> dict[str, Any]:
        payload = payload or DuplicateRequest()
        clone = await service.duplicate(
            family,
            campaign_id,
            name=payload.name,
            include_assignments=payload.include_assignments,
        )
        return success(campaign_to_dict(clone))

    @router.post(
        "/{campaign_id}/clone",
        status_code=status.HTTP_201_CREATED,
        summary="Copy a campaign and shift its window",
    )
    async def clone_with_shift(
        campaign_id: str,
        payload: CloneRequest,
        service: CampaignService = Depends(get_campaign_service),
    ) -> dict[str, Any]:
        clone = await service.clone_with_shift(
            family,
            campaign_id,
            payload.day_shift,
            name=payload.name,
            include_assignments=payload.include_assignments,
        )
        return success(campaign_to_dict(clone))

    return router


assessment_router = build_campaign_router(CampaignFamily.ASSESSMENT)
engagement_router = build_campaign_router(CampaignFamily.ENGAGEMENT)
