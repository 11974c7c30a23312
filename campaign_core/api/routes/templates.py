from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends

from campaign_core.api.deps import get_template_service
from campaign_core.api.schemas.common import success
from campaign_core.domain.models import CampaignFamily
from campaign_core.domain.services import TemplateService

router = APIRouter(prefix="/templates", tags=["Templates"])
logger = structlog.get_logger()


@router.get("/{family}")
async def list_templates(
    family: CampaignFamily,
    service: TemplateService = Depends(get_template_service),
) -> dict[str, Any]:
    """Templates the tenant may build campaigns from: its own, global and selected ones."""
    return success(await service.list(family))


@router.post("/{family}/{template_id}/generate-questions")
async def generate_questions(
    family: CampaignFamily,
    template_id: int,
    params: dict[str, Any] = Body(default_factory=dict),
    service: TemplateService = Depends(get_template_service),
) -> dict[str, Any]:
    generated = await service.generate_questions(family, template_id, params)
    return success(
        {
            "questions": generated.questions,
            "model": generated.model,
            "totalTokens": generated.total_tokens,
            "latencyMs": generated.latency_ms,
        }
    )
