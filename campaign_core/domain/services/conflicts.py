"""Conflict detection across both campaign families.

``detect_conflicts`` is a pure function of a store snapshot and a query; the
``ConflictService`` wrapper only loads the snapshot for a tenant.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog

from campaign_core.domain.models import (
    AssignmentStatus,
    CampaignFamily,
    CampaignStatus,
    Window,
)
from campaign_core.domain.policy import CampaignPolicy

if TYPE_CHECKING:
    from campaign_core.infrastructure.repositories.unit_of_work import UnitOfWork

logger = structlog.get_logger()

ERROR = "error"
WARNING = "warning"

DUPLICATE = "duplicate"
MANDATORY_CONFLICT = "mandatory_conflict"
OVERLAP = "overlap"
OVERLOAD = "overload"
COGNITIVE_OVERLOAD = "cognitive_overload"


@dataclass(frozen=True, slots=True)
class AssignmentSnapshot:
    employee_id: int
    status: AssignmentStatus


@dataclass(frozen=True, slots=True)
class CampaignSnapshot:
    id: str
    family: CampaignFamily
    name: str
    start: datetime
    end: datetime
    status: CampaignStatus
    template_type: str | None = None
    template_name: str | None = None
    question_count: int = 0
    mandatory: bool = False
    assignments: tuple[AssignmentSnapshot, ...] = ()


@dataclass(frozen=True, slots=True)
class ConflictQuery:
    employee_ids: tuple[int, ...]
    window: Window
    family: CampaignFamily
    exclude_campaign_id: str | None = None
    assessment_type: str | None = None
    # unified calendar checks look at both families and escalate mandatory assessments
    cross_family: bool = False


@dataclass(slots=True)
class ConflictEntry:
    kind: str
    severity: str
    message: str
    employee_id: int | None = None
    campaign_id: str | None = None
    campaign_name: str | None = None
    campaign_family: CampaignFamily | None = None
    period: Window | None = None
    mandatory: bool | None = None
    total_minutes: int | None = None
    campaign_count: int | None = None

    def sort_key(self) -> tuple:
        # entries not tied to an employee go last
        return (
            self.employee_id is None,
            self.employee_id or 0,
            self.campaign_id or "",
            self.kind,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.kind,
            "severity": self.severity,
            "message": self.message,
        }
        if self.employee_id is not None:
            payload["employeeId"] = self.employee_id
        if self.campaign_id is not None:
            payload["campaignId"] = self.campaign_id
            payload["campaignName"] = self.campaign_name
            payload["campaignType"] = self.campaign_family.value if self.campaign_family else None
        if self.period is not None:
            payload["period"] = {
                "start": self.period.start.isoformat(),
                "end": self.period.end.isoformat(),
            }
        if self.mandatory is not None:
            payload["mandatory"] = self.mandatory
        if self.total_minutes is not None:
            payload["totalMinutes"] = self.total_minutes
        if self.campaign_count is not None:
            payload["campaignCount"] = self.campaign_count
        return payload


@dataclass(slots=True)
class ConflictSuggestions:
    employees_to_skip: list[int] = field(default_factory=list)
    alternative_window: Window | None = None
    extended_end: datetime | None = None
    adjustments: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "employeesToSkip": list(self.employees_to_skip),
            "alternativeDates": (
                {
                    "start": self.alternative_window.start.isoformat(),
                    "end": self.alternative_window.end.isoformat(),
                }
                if self.alternative_window
                else None
            ),
            "extendedEnd": self.extended_end.isoformat() if self.extended_end else None,
            "adjustments": list(self.adjustments),
        }


@dataclass(slots=True)
class ConflictReport:
    conflicts: list[ConflictEntry]
    warnings: list[ConflictEntry]
    suggestions: ConflictSuggestions
    total_employees: int
    affected_employees: list[int]

    @property
    def has_errors(self) -> bool:
        return bool(self.conflicts)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def summary(self) -> dict[str, int]:
        return {
            "totalEmployees": self.total_employees,
            "conflictedEmployees": len(
                {entry.employee_id for entry in self.conflicts if entry.employee_id is not None}
            ),
            "warnedEmployees": len(
                {entry.employee_id for entry in self.warnings if entry.employee_id is not None}
            ),
            "totalCollisions": sum(
                1 for entry in (*self.conflicts, *self.warnings) if entry.campaign_id is not None
            ),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "hasConflicts": self.has_errors,
            "hasWarnings": self.has_warnings,
            "conflicts": [entry.to_dict() for entry in self.conflicts],
            "warnings": [entry.to_dict() for entry in self.warnings],
            "affectedEmployees": list(self.affected_employees),
            "suggestions": self.suggestions.to_dict(),
            "summary": self.summary,
        }


def detect_conflicts(
    snapshot: Iterable[CampaignSnapshot],
    query: ConflictQuery,
    policy: CampaignPolicy,
    *,
    strict: bool = False,
) -> ConflictReport:
    """Classify collisions between ``query`` and the existing campaigns in ``snapshot``.

    Only campaigns of the query's family are considered unless ``query.cross_family``
    is set. Every (employee, campaign) collision yields exactly one entry:

    * ``duplicate`` (error) when an assessment of the same type already covers the employee;
    * ``mandatory_conflict`` (error) for a mandatory assessment, cross-family checks only;
    * ``overlap`` otherwise, a warning unless ``strict`` is set.

    On top of that each employee gets an ``overload`` warning when the estimated
    effort of their incomplete colliding assessments exceeds the policy limit.
    Cross-family checks add a single ``cognitive_overload`` warning when many
    distinct campaigns collide.
    """
    employees = sorted(set(query.employee_ids))
    wanted = set(employees)

    collected: dict[int, list[tuple[CampaignSnapshot, AssignmentSnapshot]]] = defaultdict(list)
    for campaign in sorted(snapshot, key=lambda c: c.id):
        if campaign.id == query.exclude_campaign_id:
            continue
        if not query.cross_family and campaign.family != query.family:
            continue
        if campaign.status not in CampaignStatus.open_statuses():
            continue
        if not query.window.overlaps(campaign.start, campaign.end):
            continue
        for assignment in campaign.assignments:
            if assignment.employee_id not in wanted:
                continue
            if assignment.status in (AssignmentStatus.EXPIRED, AssignmentStatus.CANCELLED):
                continue
            collected[assignment.employee_id].append((campaign, assignment))

    entries: list[ConflictEntry] = []
    colliding_campaigns: set[str] = set()
    for employee_id in employees:
        load_minutes = 0
        for campaign, assignment in collected.get(employee_id, []):
            colliding_campaigns.add(campaign.id)
            entries.append(_classify(employee_id, campaign, query, strict))
            if (
                campaign.family == CampaignFamily.ASSESSMENT
                and assignment.status != AssignmentStatus.COMPLETED
            ):
                load_minutes += campaign.question_count * policy.minutes_per_question

        if load_minutes > policy.cognitive_load_minutes:
            entries.append(
                ConflictEntry(
                    kind=OVERLOAD,
                    severity=WARNING,
                    employee_id=employee_id,
                    total_minutes=load_minutes,
                    message=(
                        f"Estimated effort exceeds {policy.cognitive_load_minutes} minutes "
                        f"({load_minutes} minutes)"
                    ),
                )
            )

    if query.cross_family and len(colliding_campaigns) >= policy.overload_warn_threshold:
        entries.append(
            ConflictEntry(
                kind=COGNITIVE_OVERLOAD,
                severity=WARNING,
                campaign_count=len(colliding_campaigns),
                message=(
                    "Employees may experience survey fatigue with "
                    f"{len(colliding_campaigns)} concurrent campaigns"
                ),
            )
        )

    entries.sort(key=ConflictEntry.sort_key)
    conflicts = [entry for entry in entries if entry.severity == ERROR]
    warnings = [entry for entry in entries if entry.severity == WARNING]
    return ConflictReport(
        conflicts=conflicts,
        warnings=warnings,
        suggestions=_suggest(conflicts, warnings, query.window, policy),
        total_employees=len(employees),
        affected_employees=sorted(collected),
    )


def _classify(
    employee_id: int,
    campaign: CampaignSnapshot,
    query: ConflictQuery,
    strict: bool,
) -> ConflictEntry:
    common: dict[str, Any] = {
        "employee_id": employee_id,
        "campaign_id": campaign.id,
        "campaign_name": campaign.name,
        "campaign_family": campaign.family,
        "period": Window(campaign.start, campaign.end),
    }
    is_assessment = campaign.family == CampaignFamily.ASSESSMENT
    if (
        query.family == CampaignFamily.ASSESSMENT
        and query.assessment_type
        and is_assessment
        and campaign.template_type == query.assessment_type
    ):
        return ConflictEntry(
            kind=DUPLICATE,
            severity=ERROR,
            message=f"Employee already has {query.assessment_type} assessment in this period",
            **common,
        )
    if query.cross_family and is_assessment and campaign.mandatory:
        return ConflictEntry(
            kind=MANDATORY_CONFLICT,
            severity=ERROR,
            mandatory=True,
            message=f'Employee already has mandatory assessment "{campaign.name}" scheduled',
            **common,
        )
    return ConflictEntry(
        kind=OVERLAP,
        severity=ERROR if strict else WARNING,
        message=(
            f'Employee already has {campaign.family.value} campaign "{campaign.name}" scheduled'
        ),
        **common,
    )


def _suggest(
    conflicts: Sequence[ConflictEntry],
    warnings: Sequence[ConflictEntry],
    window: Window,
    policy: CampaignPolicy,
) -> ConflictSuggestions:
    suggestions = ConflictSuggestions()

    duplicates = sorted({c.employee_id for c in conflicts if c.kind == DUPLICATE})
    if duplicates:
        suggestions.employees_to_skip = duplicates
        suggestions.adjustments.append("Skip employees with duplicate assessments")

    overlaps = [entry for entry in (*conflicts, *warnings) if entry.kind == OVERLAP]
    if len(overlaps) >= policy.overlap_shift_suggestion_threshold:
        suggestions.alternative_window = window.shifted(policy.suggested_shift_days)
        suggestions.adjustments.append(
            f"Consider scheduling {policy.suggested_shift_days} days later to reduce overlaps"
        )

    if any(entry.kind == OVERLOAD for entry in warnings):
        suggestions.extended_end = window.end + timedelta(days=policy.suggested_extension_days)
        suggestions.adjustments.append(
            f"Extend the end by {policy.suggested_extension_days} days to reduce cognitive load"
        )

    return suggestions


def snapshot_from_rows(
    campaigns: Iterable[Any], assignments: Iterable[Any]
) -> list[CampaignSnapshot]:
    """Build detector input from ORM rows."""
    by_campaign: dict[str, list[AssignmentSnapshot]] = defaultdict(list)
    for assignment in assignments:
        by_campaign[assignment.campaign_id].append(
            AssignmentSnapshot(employee_id=assignment.employee_id, status=assignment.status)
        )
    return [
        CampaignSnapshot(
            id=campaign.id,
            family=campaign.family,
            name=campaign.name,
            start=campaign.start_at,
            end=campaign.end_at,
            status=campaign.status,
            template_type=campaign.template.template_type if campaign.template else None,
            template_name=campaign.template.name if campaign.template else None,
            question_count=campaign.template.question_count if campaign.template else 0,
            mandatory=bool(campaign.mandatory),
            assignments=tuple(by_campaign.get(campaign.id, ())),
        )
        for campaign in campaigns
    ]


class ConflictService:
    """Loads the tenant snapshot a query needs and runs the detector over it."""

    def __init__(self, uow: UnitOfWork, policy: CampaignPolicy) -> None:
        self.uow = uow
        self.policy = policy

    async def snapshot(self, query: ConflictQuery) -> list[CampaignSnapshot]:
        campaigns = await self.uow.campaigns.overlapping(
            query.window.start,
            query.window.end,
            statuses=CampaignStatus.open_statuses(),
            family=None if query.cross_family else query.family,
            exclude_id=query.exclude_campaign_id,
        )
        assignments = await self.uow.assignments.for_campaigns(
            [campaign.id for campaign in campaigns],
            employee_ids=query.employee_ids,
        )
        return snapshot_from_rows(campaigns, assignments)

    async def check(self, query: ConflictQuery, *, strict: bool = False) -> ConflictReport:
        report = detect_conflicts(await self.snapshot(query), query, self.policy, strict=strict)
        logger.info(
            "conflict_check_completed",
            family=query.family.value,
            cross_family=query.cross_family,
            employees=len(query.employee_ids),
            errors=len(report.conflicts),
            warnings=len(report.warnings),
            strict=strict,
        )
        return report
