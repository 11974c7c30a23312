from __future__ import annotations

import json

import httpx
import pytest

from campaign_core.domain.models import NotificationChannel, NotificationKind
from campaign_core.libs.notifications import (
    ChannelRouter,
    NotificationError,
    Recipient,
    ResendAPIError,
    ResendEmailSink,
    render_message,
)
from tests.utils import RecordingSink

PAYLOAD = {"campaignName": "Q1 Pulse", "end": "2025-01-31", "customMessage": "Thanks!"}


def test_render_message_includes_name_message_and_end() -> None:
    subject, body = render_message(NotificationKind.REMINDER, PAYLOAD)

    assert subject == "Reminder: Q1 Pulse is waiting for you"
    assert "Thanks!" in body
    assert body.endswith("Please respond before 2025-01-31.")


@pytest.mark.parametrize("kind", list(NotificationKind))
def test_every_kind_the_services_send_has_a_subject(kind) -> None:
    subject, _ = render_message(kind, {})

    assert "Campaign" in subject
    assert [k.value for k in NotificationKind] == ["initial", "reminder"]


class TestResendEmailSink:
    async def test_posts_rendered_email(self) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json={"id": "email-1"})

        sink = ResendEmailSink(
            api_key="re-test",
            from_email="hr@acme.test",
            transport=httpx.MockTransport(handler),
        )

        await sink.send(
            Recipient(employee_id=101, email="e101@acme.test"),
            NotificationChannel.EMAIL,
            NotificationKind.INITIAL,
            PAYLOAD,
        )

        body = json.loads(captured[0].content)
        assert captured[0].url.path == "/emails"
        assert body["to"] == ["e101@acme.test"]
        assert body["subject"] == "You have been invited to Q1 Pulse"

    async def test_error_status_raises(self) -> None:
        sink = ResendEmailSink(
            api_key="re-test",
            from_email="hr@acme.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(422, text="invalid")),
        )

        with pytest.raises(ResendAPIError) as exc_info:
            await sink.send(
                Recipient(employee_id=101, email="e101@acme.test"),
                NotificationChannel.EMAIL,
                NotificationKind.INITIAL,
                PAYLOAD,
            )
        assert exc_info.value.status_code == 422

    async def test_recipient_without_email_is_refused(self) -> None:
        sink = ResendEmailSink(api_key="re-test", from_email="hr@acme.test")

        with pytest.raises(NotificationError, match="no e-mail"):
            await sink.send(
                Recipient(employee_id=101),
                NotificationChannel.EMAIL,
                NotificationKind.INITIAL,
                PAYLOAD,
            )


class TestChannelRouter:
    async def test_dispatches_by_channel(self) -> None:
        email, in_app = RecordingSink(), RecordingSink()
        router = ChannelRouter(
            {NotificationChannel.EMAIL: email, NotificationChannel.IN_APP: in_app}
        )

        await router.send(
            Recipient(employee_id=7), NotificationChannel.IN_APP, NotificationKind.REMINDER, {}
        )

        assert email.sent == []
        assert in_app.sent == [(7, NotificationChannel.IN_APP, NotificationKind.REMINDER)]

    async def test_unregistered_channel_raises(self) -> None:
        router = ChannelRouter({})
        with pytest.raises(NotificationError, match="in_app"):
            await router.send(
                Recipient(employee_id=7), NotificationChannel.IN_APP, NotificationKind.REMINDER, {}
            )
