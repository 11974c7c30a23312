from __future__ import annotations

from campaign_core.domain.models import CampaignFamily

ENGAGEMENT_CATEGORIES = ("pulse", "enps", "onboarding", "exit", "wellbeing")
ASSESSMENT_TYPES = ("annual", "probation", "360", "skills", "self")


def make_template(
    family: CampaignFamily,
    template_type: str,
    name: str,
    description: str,
    *,
    question_count: int,
) -> dict[str, object]:
    return {
        "family": family,
        "template_type": template_type,
        "name": name,
        "description": description,
        "question_count": question_count,
        "tenant_id": None,
        "is_active": True,
        "usage_count": 0,
    }


GLOBAL_TEMPLATES: list[dict[str, object]] = [
    # Engagement
    make_template(
        CampaignFamily.ENGAGEMENT,
        "pulse",
        "Weekly Pulse",
        "Five quick questions on mood, workload and team support.",
        question_count=5,
    ),
    make_template(
        CampaignFamily.ENGAGEMENT,
        "enps",
        "Employee Net Promoter Score",
        "Would you recommend this company as a place to work?",
        question_count=2,
    ),
    make_template(
        CampaignFamily.ENGAGEMENT,
        "onboarding",
        "Onboarding Check-in",
        "First-month experience of new joiners.",
        question_count=12,
    ),
    make_template(
        CampaignFamily.ENGAGEMENT,
        "wellbeing",
        "Wellbeing Survey",
        "Stress, balance and access to support.",
        question_count=20,
    ),
    # Assessment
    make_template(
        CampaignFamily.ASSESSMENT,
        "annual",
        "Annual Performance Review",
        "Year-end review against objectives and competencies.",
        question_count=30,
    ),
    make_template(
        CampaignFamily.ASSESSMENT,
        "probation",
        "Probation Review",
        "End-of-probation evaluation.",
        question_count=15,
    ),
    make_template(
        CampaignFamily.ASSESSMENT,
        "360",
        "360 Feedback",
        "Peer, manager and report feedback on leadership behaviours.",
        question_count=40,
    ),
    make_template(
        CampaignFamily.ASSESSMENT,
        "skills",
        "Skills Matrix",
        "Self-rated and manager-rated proficiency per skill.",
        question_count=25,
    ),
]
