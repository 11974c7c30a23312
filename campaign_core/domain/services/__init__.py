"""Domain services."""

from campaign_core.domain.services.assignments import (
    AssignmentService,
    NotificationDispatcher,
    is_reminder_eligible,
)
from campaign_core.domain.services.calendar import CalendarService
from campaign_core.domain.services.campaigns import CampaignService, CreateCampaignResult
from campaign_core.domain.services.conflicts import (
    ConflictQuery,
    ConflictReport,
    ConflictService,
    detect_conflicts,
)
from campaign_core.domain.services.reconciliation import (
    ReconciliationReport,
    ReconciliationService,
)
from campaign_core.domain.services.templates import TemplateService

__all__ = [
    "AssignmentService",
    "CalendarService",
    "CampaignService",
    "ConflictQuery",
    "ConflictReport",
    "ConflictService",
    "CreateCampaignResult",
    "NotificationDispatcher",
    "ReconciliationReport",
    "ReconciliationService",
    "TemplateService",
    "detect_conflicts",
    "is_reminder_eligible",
]
