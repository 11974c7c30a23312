from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CampaignPolicy:
    """Tunable rules shared by the lifecycle engine, the detector and the sweep.

    The minimum-duration and start-not-in-past checks are disabled by default.
    Production deployments may re-enable them through configuration.
    """

    reminder_frequency_days: int = 7
    max_campaign_duration_days: int = 90
    archive_after_days: int = 90
    reconciliation_near_end_days: int = 3
    cognitive_load_minutes: int = 120
    overload_warn_threshold: int = 3
    minutes_per_question: int = 2
    overlap_shift_suggestion_threshold: int = 5
    suggested_shift_days: int = 30
    suggested_extension_days: int = 14
    enforce_min_campaign_duration: bool = False
    min_campaign_duration_days: int = 7
    enforce_start_not_in_past: bool = False
