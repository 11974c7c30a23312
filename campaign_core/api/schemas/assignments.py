from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from campaign_core.api.schemas.common import CamelModel
from campaign_core.domain.models import AssignmentStatus


class AssignmentsAdd(CamelModel):
    employee_ids: list[int] = Field(..., min_length=1, max_length=1000)
    check_conflicts: bool = True


class AssignmentStatusUpdate(CamelModel):
    status: AssignmentStatus


class AssignmentsBulkUpdate(CamelModel):
    assignment_ids: list[str] = Field(..., min_length=1, max_length=1000)
    action: Literal["status", "cancel", "remind"]
    data: dict[str, Any] | None = None
