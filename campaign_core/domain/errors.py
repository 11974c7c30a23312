from __future__ import annotations

import enum
from typing import Any


class ErrorKind(str, enum.Enum):
    TENANT_MISSING = "TENANT_MISSING"
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    CONFLICT_DETECTED = "CONFLICT_DETECTED"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    HAS_RESPONSES = "HAS_RESPONSES"
    HAS_STARTED_ASSIGNMENTS = "HAS_STARTED_ASSIGNMENTS"
    ASSIGNMENT_STARTED = "ASSIGNMENT_STARTED"
    TEMPLATE_CONSTRAINT = "TEMPLATE_CONSTRAINT"
    NOT_FOUND = "NOT_FOUND"
    DEPENDENCY_UNAVAILABLE = "DEPENDENCY_UNAVAILABLE"
    INTERNAL = "INTERNAL"


class CampaignCoreError(Exception):
    """Base class for refusals surfaced to callers with a stable error kind."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class TenantMissingError(CampaignCoreError):
    """Raised when the caller context carries no tenant."""

    kind = ErrorKind.TENANT_MISSING


class TemplateNotFoundError(CampaignCoreError):
    """Raised when a template is absent, inactive or not accessible to the tenant."""

    kind = ErrorKind.TEMPLATE_NOT_FOUND


class ValidationFailedError(CampaignCoreError):
    kind = ErrorKind.VALIDATION_FAILED


class ConflictDetectedError(CampaignCoreError):
    """Raised when the conflict detector returns at least one error."""

    kind = ErrorKind.CONFLICT_DETECTED


class IllegalTransitionError(CampaignCoreError):
    kind = ErrorKind.ILLEGAL_TRANSITION


class HasResponsesError(CampaignCoreError):
    kind = ErrorKind.HAS_RESPONSES


class HasStartedAssignmentsError(CampaignCoreError):
    kind = ErrorKind.HAS_STARTED_ASSIGNMENTS


class AssignmentStartedError(CampaignCoreError):
    kind = ErrorKind.ASSIGNMENT_STARTED


class TemplateConstraintError(CampaignCoreError):
    """Raised on uniqueness violations such as a repeated (campaign, employee) pair."""

    kind = ErrorKind.TEMPLATE_CONSTRAINT


class NotFoundError(CampaignCoreError):
    kind = ErrorKind.NOT_FOUND


class DependencyUnavailableError(CampaignCoreError):
    kind = ErrorKind.DEPENDENCY_UNAVAILABLE
