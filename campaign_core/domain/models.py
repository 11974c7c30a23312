from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any


class CampaignFamily(str, enum.Enum):
    ASSESSMENT = "assessment"
    ENGAGEMENT = "engagement"

    @property
    def end_field(self) -> str:
        """Name of the window end on the wire: assessments call it a deadline."""
        return "deadline" if self is CampaignFamily.ASSESSMENT else "end"


class CampaignStatus(str, enum.Enum):
    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    IN_PROGRESS = "IN_PROGRESS"  # engagement only
    PAUSED = "PAUSED"  # engagement only
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"
    CANCELLED = "CANCELLED"

    @classmethod
    def open_statuses(cls) -> tuple[CampaignStatus, ...]:
        return (cls.PLANNED, cls.ACTIVE, cls.IN_PROGRESS, cls.PAUSED)

    @classmethod
    def running_statuses(cls) -> tuple[CampaignStatus, ...]:
        return (cls.ACTIVE, cls.IN_PROGRESS)

    @classmethod
    def closed_statuses(cls) -> tuple[CampaignStatus, ...]:
        return (cls.COMPLETED, cls.ARCHIVED, cls.CANCELLED)


class AssignmentStatus(str, enum.Enum):
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"

    @classmethod
    def open_statuses(cls) -> tuple[AssignmentStatus, ...]:
        return (cls.ASSIGNED, cls.IN_PROGRESS)

    @classmethod
    def terminal_statuses(cls) -> tuple[AssignmentStatus, ...]:
        return (cls.COMPLETED, cls.EXPIRED, cls.CANCELLED)

    @classmethod
    def counted_statuses(cls) -> tuple[AssignmentStatus, ...]:
        """Statuses that still occupy an employee for conflict purposes."""
        return (cls.ASSIGNED, cls.IN_PROGRESS, cls.COMPLETED)


class Frequency(str, enum.Enum):
    ONCE = "once"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"


class NotificationChannel(str, enum.Enum):
    EMAIL = "email"
    IN_APP = "in_app"


class NotificationKind(str, enum.Enum):
    INITIAL = "initial"
    REMINDER = "reminder"


@dataclass(slots=True)
class CallerContext:
    """Authenticated actor as resolved at the boundary."""

    user_id: str
    tenant_id: str | None = None
    email: str = ""
    roles: list[str] = field(default_factory=list)
    # employee record the caller is, when the identity provider links one
    employee_id: int | None = None


@dataclass(frozen=True, slots=True)
class Window:
    """Campaign period [start, end)."""

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def duration_days(self) -> float:
        return self.duration.total_seconds() / 86400

    def shifted(self, days: int) -> Window:
        delta = timedelta(days=days)
        return Window(start=self.start + delta, end=self.end + delta)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return start <= self.end and end >= self.start


@dataclass(slots=True)
class ReminderSettings:
    enabled: bool = True
    frequency_days: int | None = None
    channels: list[str] = field(
        default_factory=lambda: [NotificationChannel.EMAIL.value, NotificationChannel.IN_APP.value]
    )
    custom_message: str | None = None

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "enabled": self.enabled,
            "frequency": self.frequency_days,
            "channels": list(self.channels),
        }
        if self.custom_message:
            payload["customMessage"] = self.custom_message
        return payload

    @classmethod
    def from_json(cls, data: dict[str, Any] | None) -> ReminderSettings | None:
        if data is None:
            return None
        return cls(
            enabled=bool(data.get("enabled", False)),
            frequency_days=data.get("frequency"),
            channels=list(data.get("channels") or []),
            custom_message=data.get("customMessage"),
        )


@dataclass(slots=True)
class AssessmentOptions:
    mandatory: bool = False
    allow_retakes: bool = False
    max_attempts: int = 1

    @property
    def family(self) -> CampaignFamily:
        return CampaignFamily.ASSESSMENT


@dataclass(slots=True)
class EngagementOptions:
    anonymous_responses: bool = False
    reminder_settings: ReminderSettings = field(default_factory=ReminderSettings)

    @property
    def family(self) -> CampaignFamily:
        return CampaignFamily.ENGAGEMENT


CampaignOptions = AssessmentOptions | EngagementOptions


@dataclass(slots=True)
class CampaignDraft:
    """Validated input for creating a campaign of either family."""

    template_id: int
    name: str | None
    description: str | None
    employee_ids: list[int]
    window: Window
    options: CampaignOptions
    frequency: Frequency = Frequency.ONCE

    @property
    def family(self) -> CampaignFamily:
        return self.options.family


@dataclass(frozen=True, slots=True)
class PageRequest:
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def describe(self, total: int) -> dict[str, int]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": total,
            "totalPages": (total + self.limit - 1) // self.limit if self.limit else 0,
        }
