"""Contracts for collaborators that live outside the campaign core."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import structlog

from campaign_core.libs.ai_client import AIQuestionGenerator
from campaign_core.libs.notifications import InAppSink, NotificationSink

logger = structlog.get_logger(__name__)


class AnalyticsError(Exception):
    """Raised when the analytics pipeline rejects an event."""


@dataclass(slots=True)
class ExtractedDocument:
    text: str
    statistics: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class DocumentExtractor(Protocol):
    """CV text extraction. The returned text is opaque to the core."""

    async def extract(self, content: bytes, mime: str) -> ExtractedDocument: ...


@runtime_checkable
class PDFRenderer(Protocol):
    """Report rendering; the core only keeps the identifier of the produced document."""

    async def render(self, template_id: str, data: Mapping[str, Any]) -> bytes: ...


@runtime_checkable
class AnalyticsEmitter(Protocol):
    async def emit(self, event: str, payload: Mapping[str, Any]) -> None: ...


class LogAnalyticsEmitter:
    """Forwards analytics events to the log pipeline that feeds the read models."""

    async def emit(self, event: str, payload: Mapping[str, Any]) -> None:
        logger.info("analytics_event", analytics_event=event, **dict(payload))


@dataclass(slots=True)
class Collaborators:
    """External adapters handed to the application factory and the worker."""

    notifications: NotificationSink = field(default_factory=InAppSink)
    analytics: AnalyticsEmitter = field(default_factory=LogAnalyticsEmitter)
    question_generator: AIQuestionGenerator | None = None
    document_extractor: DocumentExtractor | None = None
    pdf_renderer: PDFRenderer | None = None
