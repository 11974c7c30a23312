"""Adapters to collaborators outside the campaign core."""

from campaign_core.libs.adapters import (
    AnalyticsEmitter,
    Collaborators,
    DocumentExtractor,
    LogAnalyticsEmitter,
    PDFRenderer,
)
from campaign_core.libs.ai_client import (
    AIClientError,
    AIQuestionGenerator,
    GeneratedQuestions,
    OpenAIQuestionGenerator,
)
from campaign_core.libs.notifications import (
    ChannelRouter,
    NotificationError,
    NotificationSink,
    Recipient,
)

__all__ = [
    "AIClientError",
    "AIQuestionGenerator",
    "AnalyticsEmitter",
    "ChannelRouter",
    "Collaborators",
    "DocumentExtractor",
    "GeneratedQuestions",
    "LogAnalyticsEmitter",
    "NotificationError",
    "NotificationSink",
    "OpenAIQuestionGenerator",
    "PDFRenderer",
    "Recipient",
]
