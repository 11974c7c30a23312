"""
Notification sink for campaign invitations and reminders.

E-mail goes out through Resend; in-app notifications are handed to the
notification feed as log events.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import structlog

from campaign_core.core.config import Settings
from campaign_core.domain.models import NotificationChannel, NotificationKind

logger = structlog.get_logger(__name__)


class NotificationError(Exception):
    """Raised when a channel fails to accept a notification."""


class ResendAPIError(NotificationError):
    """Raised for non-success responses from Resend."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class Recipient:
    employee_id: int
    email: str | None = None
    name: str | None = None


class NotificationSink(Protocol):
    async def send(
        self,
        recipient: Recipient,
        channel: NotificationChannel,
        kind: NotificationKind,
        payload: Mapping[str, Any],
    ) -> None: ...


_SUBJECTS = {
    NotificationKind.INITIAL: "You have been invited to {campaign_name}",
    NotificationKind.REMINDER: "Reminder: {campaign_name} is waiting for you",
}


def render_message(kind: NotificationKind, payload: Mapping[str, Any]) -> tuple[str, str]:
    """Plain subject/body pair; layout is owned by the mail templates service."""
    campaign_name = payload.get("campaignName", "Campaign")
    subject = _SUBJECTS[kind].format(campaign_name=campaign_name)
    lines = [subject]
    if payload.get("customMessage"):
        lines.append(str(payload["customMessage"]))
    if payload.get("end"):
        lines.append(f"Please respond before {payload['end']}.")
    return subject, "\n\n".join(lines)


class ResendEmailSink:
    """E-mail channel backed by the Resend HTTP API."""

    def __init__(
        self,
        *,
        api_key: str,
        from_email: str,
        base_url: str = "https://api.resend.com",
        timeout_seconds: float = 15,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.from_email = from_email
        self.base_url = base_url
        self.timeout = timeout_seconds
        self._transport = transport

        if not self.api_key:
            logger.warning("resend_api_key_missing", msg="RESEND_API_KEY not configured")

    @classmethod
    def from_settings(cls, settings: Settings) -> ResendEmailSink:
        return cls(
            api_key=settings.resend_api_key,
            from_email=settings.resend_from_email,
            base_url=settings.resend_base_url,
            timeout_seconds=settings.resend_timeout_seconds,
        )

    async def send(
        self,
        recipient: Recipient,
        channel: NotificationChannel,
        kind: NotificationKind,
        payload: Mapping[str, Any],
    ) -> None:
        if not self.api_key:
            raise NotificationError("RESEND_API_KEY not configured")
        if not recipient.email:
            raise NotificationError(f"Employee {recipient.employee_id} has no e-mail address")

        subject, text = render_message(kind, payload)
        body = {
            "from": self.from_email,
            "to": [recipient.email],
            "subject": subject,
            "text": text,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}/emails", headers=headers, json=body)
        except httpx.HTTPError as exc:
            raise NotificationError(f"Resend request failed: {exc}") from exc

        if response.status_code not in (200, 201):
            raise ResendAPIError(
                f"Resend error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        logger.info(
            "notification_email_sent",
            employee_id=recipient.employee_id,
            kind=kind.value,
            email_id=response.json().get("id"),
        )


class InAppSink:
    """In-app channel: the notification feed consumes these log events."""

    async def send(
        self,
        recipient: Recipient,
        channel: NotificationChannel,
        kind: NotificationKind,
        payload: Mapping[str, Any],
    ) -> None:
        logger.info(
            "notification_in_app",
            employee_id=recipient.employee_id,
            kind=kind.value,
            campaign_id=payload.get("campaignId"),
        )


class ChannelRouter:
    """Dispatch to the sink registered for each channel."""

    def __init__(self, sinks: Mapping[NotificationChannel, NotificationSink]) -> None:
        self.sinks = dict(sinks)

    @classmethod
    def from_settings(cls, settings: Settings) -> ChannelRouter:
        return cls(
            {
                NotificationChannel.EMAIL: ResendEmailSink.from_settings(settings),
                NotificationChannel.IN_APP: InAppSink(),
            }
        )

    async def send(
        self,
        recipient: Recipient,
        channel: NotificationChannel,
        kind: NotificationKind,
        payload: Mapping[str, Any],
    ) -> None:
        sink = self.sinks.get(channel)
        if sink is None:
            raise NotificationError(f"No sink registered for channel '{channel.value}'")
        await sink.send(recipient, channel, kind, payload)
