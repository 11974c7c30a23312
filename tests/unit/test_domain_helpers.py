from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from campaign_core.domain.clock import FixedClock, ensure_utc, start_of_day, windows_overlap
from campaign_core.domain.errors import ValidationFailedError
from campaign_core.domain.models import (
    AssignmentStatus,
    CampaignFamily,
    CampaignStatus,
    NotificationChannel,
    PageRequest,
    ReminderSettings,
    Window,
)
from campaign_core.domain.policy import CampaignPolicy
from campaign_core.domain.services.assignments import is_reminder_eligible, notification_channels
from campaign_core.domain.services.calendar import workload_level
from campaign_core.domain.services.campaigns import validate_window
from campaign_core.infrastructure.db.models import Campaign, CampaignAssignment

START = datetime(2025, 3, 1, tzinfo=UTC)
POLICY = CampaignPolicy()


def test_naive_and_offset_datetimes_normalise_to_utc() -> None:
    naive = datetime(2025, 1, 1, 8)
    jakarta = datetime(2025, 1, 1, 15, tzinfo=timezone(timedelta(hours=7)))

    assert ensure_utc(naive) == datetime(2025, 1, 1, 8, tzinfo=UTC)
    assert ensure_utc(jakarta) == datetime(2025, 1, 1, 8, tzinfo=UTC)
    assert start_of_day(jakarta) == datetime(2025, 1, 1, tzinfo=UTC)


def test_fixed_clock_advances() -> None:
    clock = FixedClock(START)
    clock.advance(days=2, hours=3)
    assert clock.now() == START + timedelta(days=2, hours=3)


def test_overlap_is_closed_on_both_ends() -> None:
    one, two = START + timedelta(days=1), START + timedelta(days=2)
    assert windows_overlap(START, one, one, two)
    assert not windows_overlap(START, one, one + timedelta(seconds=1), two)


def test_page_request_describes_totals() -> None:
    page = PageRequest(page=2, limit=10)
    assert page.offset == 10
    assert page.describe(21) == {"page": 2, "limit": 10, "total": 21, "totalPages": 3}


def test_end_field_differs_per_family() -> None:
    assert CampaignFamily.ASSESSMENT.end_field == "deadline"
    assert CampaignFamily.ENGAGEMENT.end_field == "end"


class TestWindowValidation:
    def test_exactly_max_duration_is_accepted(self) -> None:
        validate_window(Window(START, START + timedelta(days=90)), POLICY)

    def test_longer_than_max_duration_is_refused(self) -> None:
        with pytest.raises(ValidationFailedError, match="90 days"):
            validate_window(Window(START, START + timedelta(days=90, seconds=1)), POLICY)

    @pytest.mark.parametrize("delta", [timedelta(0), timedelta(hours=-1)])
    def test_empty_or_inverted_window_is_refused(self, delta) -> None:
        with pytest.raises(ValidationFailedError, match="before its end"):
            validate_window(Window(START, START + delta), POLICY)

    def test_optional_policies_are_off_by_default(self) -> None:
        short = Window(START, START + timedelta(days=1))
        validate_window(short, POLICY, now=START + timedelta(days=30))

        strict = CampaignPolicy(enforce_min_campaign_duration=True, enforce_start_not_in_past=True)
        with pytest.raises(ValidationFailedError, match="at least 7 days"):
            validate_window(short, strict)
        with pytest.raises(ValidationFailedError, match="past"):
            validate_window(
                Window(START, START + timedelta(days=10)), strict, now=START + timedelta(days=1)
            )


@pytest.mark.parametrize(
    ("count", "level"),
    [(0, "none"), (2, "low"), (3, "medium"), (5, "high"), (6, "high"), (7, "overload")],
)
def test_workload_levels(count: int, level: str) -> None:
    assert workload_level(count) == level


def engagement(status=CampaignStatus.ACTIVE, **reminders) -> Campaign:
    settings = ReminderSettings(**reminders) if reminders else ReminderSettings()
    return Campaign(
        id="c1",
        family=CampaignFamily.ENGAGEMENT,
        name="Pulse",
        start_at=START,
        end_at=START + timedelta(days=30),
        status=status,
        reminder_settings=settings.to_json(),
    )


def assignment(status=AssignmentStatus.ASSIGNED, last_reminder_at=None) -> CampaignAssignment:
    return CampaignAssignment(
        id="a1",
        campaign_id="c1",
        employee_id=101,
        status=status,
        last_reminder_at=last_reminder_at,
        reminder_count=0,
    )


class TestReminderEligibility:
    now = START + timedelta(days=10)

    def test_never_reminded_open_assignment_is_eligible(self) -> None:
        assert is_reminder_eligible(engagement(), assignment(), self.now, POLICY)

    def test_frequency_window_is_respected(self) -> None:
        recent = assignment(last_reminder_at=self.now - timedelta(days=6))
        due = assignment(last_reminder_at=self.now - timedelta(days=7))

        assert not is_reminder_eligible(engagement(), recent, self.now, POLICY)
        assert is_reminder_eligible(engagement(), due, self.now, POLICY)
        assert is_reminder_eligible(engagement(frequency_days=3), recent, self.now, POLICY)

    def test_ineligible_cases(self) -> None:
        assert not is_reminder_eligible(engagement(enabled=False), assignment(), self.now, POLICY)
        assert not is_reminder_eligible(
            engagement(status=CampaignStatus.PAUSED), assignment(), self.now, POLICY
        )
        assert not is_reminder_eligible(
            engagement(), assignment(status=AssignmentStatus.COMPLETED), self.now, POLICY
        )

    def test_assessments_never_get_reminders(self) -> None:
        campaign = engagement()
        campaign.family = CampaignFamily.ASSESSMENT
        assert not is_reminder_eligible(campaign, assignment(), self.now, POLICY)

    def test_unknown_channels_fall_back_to_email(self) -> None:
        campaign = engagement(channels=["pigeon"])
        assert notification_channels(campaign) == [NotificationChannel.EMAIL]
        assert notification_channels(engagement(channels=["in_app"])) == [
            NotificationChannel.IN_APP
        ]
