"""
Unit tests for settings projection and the daily reconciliation schedule.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from campaign_core.core.config import Settings
from campaign_core.domain.policy import CampaignPolicy
from campaign_core.workers.jobs import (
    next_run_at,
    reconcile_campaigns_job,
    schedule_next_reconciliation,
)


class FakeQueue:
    def __init__(self) -> None:
        self.scheduled: list[tuple[datetime, object, dict]] = []

    def enqueue_at(self, when, func, **kwargs):
        self.scheduled.append((when, func, kwargs))


class TestSettings:
    def test_default_policy_matches_platform_rules(self) -> None:
        policy = Settings().campaign_policy()

        assert policy == CampaignPolicy()
        assert policy.enforce_min_campaign_duration is False
        assert policy.enforce_start_not_in_past is False

    def test_policy_picks_up_overrides(self) -> None:
        settings = Settings(REMINDER_FREQUENCY_DAYS=3, COGNITIVE_LOAD_MINUTES=60)

        policy = settings.campaign_policy()

        assert policy.reminder_frequency_days == 3
        assert policy.cognitive_load_minutes == 60

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("postgres://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
            ("postgresql://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
            ("sqlite+aiosqlite:///./local.db", "sqlite+aiosqlite:///./local.db"),
        ],
    )
    def test_async_database_url(self, url: str, expected: str) -> None:
        assert Settings(DATABASE_URL=url).async_database_url == expected


class TestSchedule:
    def test_next_run_is_later_today_when_hour_not_reached(self) -> None:
        now = datetime(2025, 3, 1, 1, 30, tzinfo=UTC)
        assert next_run_at(now, 2) == datetime(2025, 3, 1, 2, tzinfo=UTC)

    def test_next_run_rolls_to_tomorrow(self) -> None:
        # exactly on the hour counts as already run
        now = datetime(2025, 3, 1, 2, tzinfo=UTC)
        assert next_run_at(now, 2) == datetime(2025, 3, 2, 2, tzinfo=UTC)

    def test_schedule_enqueues_the_reconciliation_job(self) -> None:
        queue = FakeQueue()

        run_at = schedule_next_reconciliation(
            queue, now=datetime(2025, 12, 31, 23, tzinfo=UTC), hour_utc=2
        )

        assert run_at == datetime(2026, 1, 1, 2, tzinfo=UTC)
        assert queue.scheduled == [(run_at, reconcile_campaigns_job, {"job_timeout": 3600})]
