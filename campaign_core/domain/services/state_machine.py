from __future__ import annotations

from datetime import datetime, timedelta

from campaign_core.domain.errors import IllegalTransitionError
from campaign_core.domain.models import AssignmentStatus, CampaignFamily, CampaignStatus
from campaign_core.domain.policy import CampaignPolicy

S = CampaignStatus
A = AssignmentStatus

CAMPAIGN_TRANSITIONS: dict[CampaignFamily, dict[CampaignStatus, frozenset[CampaignStatus]]] = {
    CampaignFamily.ENGAGEMENT: {
        S.PLANNED: frozenset({S.ACTIVE, S.CANCELLED}),
        S.ACTIVE: frozenset({S.IN_PROGRESS, S.PAUSED, S.COMPLETED, S.CANCELLED}),
        S.IN_PROGRESS: frozenset({S.ACTIVE, S.PAUSED, S.COMPLETED, S.CANCELLED}),
        S.PAUSED: frozenset({S.ACTIVE, S.COMPLETED, S.CANCELLED}),
        S.COMPLETED: frozenset({S.ARCHIVED}),
    },
    CampaignFamily.ASSESSMENT: {
        S.PLANNED: frozenset({S.ACTIVE}),
        S.ACTIVE: frozenset({S.COMPLETED}),
        S.COMPLETED: frozenset({S.ARCHIVED}),
    },
}

ASSIGNMENT_TRANSITIONS: dict[AssignmentStatus, frozenset[AssignmentStatus]] = {
    A.ASSIGNED: frozenset({A.IN_PROGRESS, A.EXPIRED, A.CANCELLED}),
    A.IN_PROGRESS: frozenset({A.COMPLETED, A.EXPIRED}),
}


def allowed_targets(family: CampaignFamily, current: CampaignStatus) -> frozenset[CampaignStatus]:
    return CAMPAIGN_TRANSITIONS[family].get(current, frozenset())


def check_campaign_transition(
    family: CampaignFamily,
    current: CampaignStatus,
    target: CampaignStatus,
    *,
    start: datetime,
    end: datetime,
    now: datetime,
    policy: CampaignPolicy,
) -> None:
    """Raise ``IllegalTransitionError`` unless ``current -> target`` is allowed right now."""
    if target not in allowed_targets(family, current):
        raise IllegalTransitionError(
            f"Cannot move {family.value} campaign from {current.value} to {target.value}",
            details={
                "from": current.value,
                "to": target.value,
                "allowed": sorted(status.value for status in allowed_targets(family, current)),
            },
        )

    if current == S.PLANNED and target == S.ACTIVE and start > now:
        raise IllegalTransitionError(
            "Campaign cannot be activated before its start",
            details={"from": current.value, "to": target.value, "start": start.isoformat()},
        )
    if current == S.ACTIVE and target == S.COMPLETED and end >= now:
        raise IllegalTransitionError(
            "Campaign cannot be completed before its end",
            details={"from": current.value, "to": target.value, "end": end.isoformat()},
        )
    if target == S.ARCHIVED and end >= now - timedelta(days=policy.archive_after_days):
        raise IllegalTransitionError(
            f"Campaign can only be archived {policy.archive_after_days} days after its end",
            details={"from": current.value, "to": target.value, "end": end.isoformat()},
        )


def check_assignment_transition(current: AssignmentStatus, target: AssignmentStatus) -> None:
    if target not in ASSIGNMENT_TRANSITIONS.get(current, frozenset()):
        raise IllegalTransitionError(
            f"Cannot move assignment from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )
