from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import AliasChoices, Field

from campaign_core.api.schemas.common import CamelModel
from campaign_core.domain.clock import ensure_utc
from campaign_core.domain.models import (
    AssessmentOptions,
    CampaignDraft,
    CampaignFamily,
    CampaignStatus,
    EngagementOptions,
    Frequency,
    NotificationChannel,
    NotificationKind,
    ReminderSettings,
    Window,
)


class ReminderSettingsIn(CamelModel):
    enabled: bool = True
    frequency: int | None = Field(default=None, ge=1, le=90)
    channels: list[NotificationChannel] = Field(
        default_factory=lambda: [NotificationChannel.EMAIL, NotificationChannel.IN_APP]
    )
    custom_message: str | None = Field(default=None, max_length=2000)

    def to_domain(self) -> ReminderSettings:
        return ReminderSettings(
            enabled=self.enabled,
            frequency_days=self.frequency,
            channels=[channel.value for channel in self.channels],
            custom_message=self.custom_message,
        )


class CampaignCreateBase(CamelModel):
    template_id: int = Field(..., ge=1)
    name: str | None = Field(default=None, max_length=255)
    description: str | None = None
    employee_ids: list[int] = Field(..., min_length=1)
    start: datetime
    frequency: Frequency = Frequency.ONCE


class AssessmentCampaignCreate(CampaignCreateBase):
    family: Literal["assessment"] = "assessment"
    deadline: datetime
    mandatory: bool = False
    allow_retakes: bool = False
    max_attempts: int = Field(default=1, ge=1, le=10)

    def to_draft(self) -> CampaignDraft:
        return CampaignDraft(
            template_id=self.template_id,
            name=self.name,
            description=self.description,
            employee_ids=list(self.employee_ids),
            window=Window(ensure_utc(self.start), ensure_utc(self.deadline)),
            options=AssessmentOptions(
                mandatory=self.mandatory,
                allow_retakes=self.allow_retakes,
                max_attempts=self.max_attempts,
            ),
            frequency=self.frequency,
        )


class EngagementCampaignCreate(CampaignCreateBase):
    family: Literal["engagement"] = "engagement"
    end: datetime
    anonymous_responses: bool = False
    reminder_settings: ReminderSettingsIn = Field(default_factory=ReminderSettingsIn)

    def to_draft(self) -> CampaignDraft:
        return CampaignDraft(
            template_id=self.template_id,
            name=self.name,
            description=self.description,
            employee_ids=list(self.employee_ids),
            window=Window(ensure_utc(self.start), ensure_utc(self.end)),
            options=EngagementOptions(
                anonymous_responses=self.anonymous_responses,
                reminder_settings=self.reminder_settings.to_domain(),
            ),
            frequency=self.frequency,
        )


CampaignCreate = Annotated[
    AssessmentCampaignCreate | EngagementCampaignCreate, Field(discriminator="family")
]

CREATE_MODELS: dict[CampaignFamily, type[CampaignCreateBase]] = {
    CampaignFamily.ASSESSMENT: AssessmentCampaignCreate,
    CampaignFamily.ENGAGEMENT: EngagementCampaignCreate,
}


class CampaignStatusUpdate(CamelModel):
    status: CampaignStatus


class WindowIn(CamelModel):
    start: datetime
    end: datetime = Field(..., validation_alias=AliasChoices("end", "deadline"))

    def to_window(self) -> Window:
        return Window(ensure_utc(self.start), ensure_utc(self.end))


class RescheduleRequest(WindowIn):
    check_conflicts: bool = True


class NotifyRequest(CamelModel):
    kind: Literal["initial", "reminder"] = "reminder"

    def to_kind(self) -> NotificationKind:
        return NotificationKind(self.kind)


class DuplicateRequest(CamelModel):
    name: str | None = Field(default=None, max_length=255)
    include_assignments: bool = True


class CloneRequest(DuplicateRequest):
    day_shift: int = Field(..., ge=-3650, le=3650)


class BatchDuplicateRequest(CamelModel):
    campaign_ids: list[str] = Field(..., min_length=1, max_length=100)
    name_prefix: str | None = Field(default=None, max_length=64)
    day_shift: int = Field(default=0, ge=-3650, le=3650)
    include_assignments: bool = True


class ConflictCheckRequest(WindowIn):
    employee_ids: list[int] = Field(..., min_length=1)
    exclude_campaign_id: str | None = None
    template_id: int | None = None
    assessment_type: str | None = None
    strict: bool = False
