from __future__ import annotations

from pydantic import Field

from campaign_core.api.schemas.campaigns import ConflictCheckRequest, RescheduleRequest
from campaign_core.domain.models import CampaignFamily


class UnifiedConflictCheck(ConflictCheckRequest):
    family: CampaignFamily


class UnifiedReschedule(RescheduleRequest):
    campaign_id: str = Field(..., min_length=1)
    family: CampaignFamily
