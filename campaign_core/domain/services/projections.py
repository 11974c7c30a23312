"""Wire projections of store rows. Derived values here are never persisted."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from campaign_core.domain.models import AssignmentStatus, CampaignFamily, ReminderSettings
from campaign_core.infrastructure.db.models import Campaign, CampaignAssignment

FAMILY_STYLE = {
    CampaignFamily.ENGAGEMENT: {"color": "#10B981", "icon": "chat"},
    CampaignFamily.ASSESSMENT: {"color": "#3B82F6", "icon": "clipboard"},
}


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def percentage(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


def assignment_totals(counts: Mapping[str, int]) -> dict[str, int]:
    total = sum(counts.values())
    return {
        "total": total,
        "byStatus": {status.value: counts.get(status.value, 0) for status in AssignmentStatus},
    }


def progress(family: CampaignFamily, counts: Mapping[str, int], response_count: int) -> int:
    """Engagement: responses over assignments. Assessment: completed over assignments."""
    total = sum(counts.values())
    if family == CampaignFamily.ENGAGEMENT:
        return min(100, percentage(response_count, total))
    return percentage(counts.get(AssignmentStatus.COMPLETED.value, 0), total)


def campaign_to_dict(
    campaign: Campaign,
    *,
    assignment_counts: Mapping[str, int] | None = None,
    response_count: int | None = None,
) -> dict[str, Any]:
    family = campaign.family
    payload: dict[str, Any] = {
        "id": campaign.id,
        "family": family.value,
        "templateId": campaign.template_id,
        "name": campaign.name,
        "description": campaign.description,
        "start": _iso(campaign.start_at),
        family.end_field: _iso(campaign.end_at),
        "status": campaign.status.value,
        "frequency": campaign.frequency.value,
        "targetAudience": campaign.target_audience,
        "createdBy": campaign.created_by,
        "createdAt": _iso(campaign.created_at),
        "updatedAt": _iso(campaign.updated_at),
        "archivedAt": _iso(campaign.archived_at),
        "hasResponses": campaign.has_responses,
    }
    if family == CampaignFamily.ASSESSMENT:
        payload.update(
            mandatory=campaign.mandatory,
            allowRetakes=campaign.allow_retakes,
            maxAttempts=campaign.max_attempts,
        )
    else:
        settings = ReminderSettings.from_json(campaign.reminder_settings)
        payload.update(
            anonymousResponses=campaign.anonymous_responses,
            reminderSettings=settings.to_json() if settings else None,
        )

    template = campaign.template
    if template is not None:
        payload["template"] = {
            "id": template.id,
            "name": template.name,
            "type": template.template_type,
            "questionCount": template.question_count,
        }

    if assignment_counts is not None:
        totals = assignment_totals(assignment_counts)
        completed = totals["byStatus"][AssignmentStatus.COMPLETED.value]
        payload["stats"] = {
            "totalAssignments": totals["total"],
            "byStatus": totals["byStatus"],
            "responseCount": response_count or 0,
            "questionCount": template.question_count if template is not None else 0,
            "completionRate": percentage(completed, totals["total"]),
        }
    return payload


def assignment_to_dict(
    assignment: CampaignAssignment, campaign: Campaign | None = None
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": assignment.id,
        "campaignId": assignment.campaign_id,
        "employeeId": assignment.employee_id,
        "status": assignment.status.value,
        "assignedBy": assignment.assigned_by,
        "assignedAt": _iso(assignment.assigned_at),
        "lastReminderAt": _iso(assignment.last_reminder_at),
        "reminderCount": assignment.reminder_count,
        "lastAccessedAt": _iso(assignment.last_accessed_at),
        "completedAt": _iso(assignment.completed_at),
    }
    if campaign is not None:
        payload["campaign"] = {
            "id": campaign.id,
            "family": campaign.family.value,
            "name": campaign.name,
            "status": campaign.status.value,
            "start": _iso(campaign.start_at),
            campaign.family.end_field: _iso(campaign.end_at),
        }
    return payload


def calendar_entry(
    campaign: Campaign,
    *,
    assignments: list[CampaignAssignment],
    response_count: int,
    editable: bool,
) -> dict[str, Any]:
    counts: dict[str, int] = {}
    for assignment in assignments:
        counts[assignment.status.value] = counts.get(assignment.status.value, 0) + 1
    total = len(assignments)

    if campaign.family == CampaignFamily.ENGAGEMENT:
        stats: dict[str, Any] = {
            "totalAssigned": total,
            "totalResponses": response_count,
            "completionRate": min(100, percentage(response_count, total)),
        }
    else:
        stats = {
            "totalAssigned": total,
            "completed": counts.get(AssignmentStatus.COMPLETED.value, 0),
            "inProgress": counts.get(AssignmentStatus.IN_PROGRESS.value, 0),
            "notStarted": counts.get(AssignmentStatus.ASSIGNED.value, 0),
        }

    entry: dict[str, Any] = {
        "id": campaign.id,
        "family": campaign.family.value,
        "name": campaign.name,
        "description": campaign.description,
        "templateName": campaign.template.name if campaign.template else None,
        "templateType": campaign.template.template_type if campaign.template else None,
        "start": _iso(campaign.start_at),
        "end": _iso(campaign.end_at),
        "status": campaign.status.value,
        "frequency": campaign.frequency.value,
        "progress": progress(campaign.family, counts, response_count),
        "editable": editable,
        "stats": stats,
        "assignments": [
            {"id": a.id, "employeeId": a.employee_id, "status": a.status.value}
            for a in assignments
        ],
        **FAMILY_STYLE[campaign.family],
    }
    if campaign.family == CampaignFamily.ASSESSMENT:
        entry["mandatory"] = campaign.mandatory
    return entry
