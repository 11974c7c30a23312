from __future__ import annotations

import pytest

from campaign_core.domain.errors import (
    AssignmentStartedError,
    ConflictDetectedError,
    IllegalTransitionError,
    NotFoundError,
    TemplateConstraintError,
    ValidationFailedError,
)
from campaign_core.domain.models import (
    AssignmentStatus,
    CampaignFamily,
    CampaignStatus,
    NotificationChannel,
    NotificationKind,
    PageRequest,
)
from campaign_core.domain.services import AssignmentService
from tests.utils import (
    RecordingSink,
    audit_actions,
    day,
    insert_campaign,
    load_assignments,
    load_campaign,
)


async def engagement(database, templates, employee_ids=(101,), **kwargs) -> str:
    return await insert_campaign(
        database,
        template_id=templates["pulse"],
        family=CampaignFamily.ENGAGEMENT,
        start=kwargs.pop("start", day(2025, 1, 5)),
        end=kwargs.pop("end", day(2025, 2, 5)),
        employee_ids=employee_ids,
        **kwargs,
    )


async def assignment_ids(database, campaign_id: str) -> dict[int, str]:
    return {a.employee_id: a.id for a in await load_assignments(database, campaign_id)}


class TestAdd:
    async def test_new_employees_are_assigned_and_audience_grows(
        self, database, templates, assignment_service
    ) -> None:
        campaign_id = await engagement(database, templates)

        result = await assignment_service.add(campaign_id, [103, 102, 103])

        assert sorted(a.employee_id for a in result.created) == [102, 103]
        assert result.reactivated == []
        campaign = await load_campaign(database, campaign_id)
        assert campaign.target_audience["employeeIds"] == [102, 103]
        assert sorted(await assignment_ids(database, campaign_id)) == [101, 102, 103]
        assert await audit_actions(database) == ["assignments_added"]

    async def test_cancelled_assignment_is_reactivated(
        self, database, templates, assignment_service
    ) -> None:
        campaign_id = await engagement(
            database, templates, assignment_status=AssignmentStatus.CANCELLED
        )

        result = await assignment_service.add(campaign_id, [101])

        assert result.created == []
        [row] = await load_assignments(database, campaign_id)
        assert row.status == AssignmentStatus.ASSIGNED
        assert row.assigned_by == "hr-1"

    async def test_existing_assignment_is_a_constraint_violation(
        self, database, templates, assignment_service
    ) -> None:
        campaign_id = await engagement(database, templates)

        with pytest.raises(TemplateConstraintError) as exc_info:
            await assignment_service.add(campaign_id, [101, 102])

        assert exc_info.value.details == {"employeeIds": [101]}
        assert len(await load_assignments(database, campaign_id)) == 1

    async def test_same_type_assessment_blocks_new_assignment(
        self, database, templates, assignment_service
    ) -> None:
        await insert_campaign(
            database,
            template_id=templates["annual"],
            family=CampaignFamily.ASSESSMENT,
            start=day(2025, 1, 20),
            end=day(2025, 1, 30),
            employee_ids=[104],
            mandatory=True,
        )
        campaign_id = await insert_campaign(
            database,
            template_id=templates["annual"],
            family=CampaignFamily.ASSESSMENT,
            start=day(2025, 1, 25),
            end=day(2025, 2, 10),
            employee_ids=[101],
        )

        with pytest.raises(ConflictDetectedError):
            await assignment_service.add(campaign_id, [104])

        result = await assignment_service.add(campaign_id, [104], check_conflicts=False)
        assert [a.employee_id for a in result.created] == [104]

    async def test_mandatory_assessment_does_not_block_engagement(
        self, database, templates, assignment_service
    ) -> None:
        await insert_campaign(
            database,
            template_id=templates["annual"],
            family=CampaignFamily.ASSESSMENT,
            start=day(2025, 1, 20),
            end=day(2025, 1, 30),
            employee_ids=[104],
            mandatory=True,
        )
        campaign_id = await engagement(database, templates)

        result = await assignment_service.add(campaign_id, [104])

        assert [a.employee_id for a in result.created] == [104]


    async def test_closed_campaign_refuses_assignments(
        self, database, templates, assignment_service
    ) -> None:
        campaign_id = await engagement(database, templates, status=CampaignStatus.COMPLETED)
        with pytest.raises(IllegalTransitionError):
            await assignment_service.add(campaign_id, [102])

    async def test_inactive_employee_is_refused(
        self, database, templates, assignment_service
    ) -> None:
        campaign_id = await engagement(database, templates)
        with pytest.raises(ValidationFailedError):
            await assignment_service.add(campaign_id, [106])


class TestRemoveAndStatus:
    async def test_assigned_assignment_can_be_removed(
        self, database, templates, assignment_service
    ) -> None:
        campaign_id = await engagement(database, templates, employee_ids=(101, 102))
        ids = await assignment_ids(database, campaign_id)

        await assignment_service.remove(campaign_id, ids[101])

        assert list(await assignment_ids(database, campaign_id)) == [102]
        assert await audit_actions(database) == ["assignment_removed"]

    async def test_started_assignment_cannot_be_removed(
        self, database, templates, assignment_service
    ) -> None:
        campaign_id = await engagement(
            database, templates, assignment_status=AssignmentStatus.IN_PROGRESS
        )
        ids = await assignment_ids(database, campaign_id)

        with pytest.raises(AssignmentStartedError):
            await assignment_service.remove(campaign_id, ids[101])

    async def test_assignment_progresses_to_completion(
        self, database, templates, assignment_service, clock
    ) -> None:
        campaign_id = await engagement(database, templates)
        assignment_id = (await assignment_ids(database, campaign_id))[101]

        await assignment_service.update_status(
            campaign_id, assignment_id, AssignmentStatus.IN_PROGRESS
        )
        done = await assignment_service.update_status(
            campaign_id, assignment_id, AssignmentStatus.COMPLETED
        )

        assert done.completed_at == clock.now()
        [row] = await load_assignments(database, campaign_id)
        assert row.status == AssignmentStatus.COMPLETED
        assert row.last_accessed_at == clock.now()

    async def test_unknown_assignment_is_not_found(
        self, database, templates, assignment_service
    ) -> None:
        campaign_id = await engagement(database, templates)
        with pytest.raises(NotFoundError):
            await assignment_service.update_status(
                campaign_id, "missing", AssignmentStatus.IN_PROGRESS
            )


class TestBulkUpdate:
    async def test_each_assignment_is_handled_independently(
        self, database, templates, assignment_service
    ) -> None:
        campaign_id = await engagement(database, templates, employee_ids=(101, 102))
        ids = await assignment_ids(database, campaign_id)
        await assignment_service.update_status(
            campaign_id, ids[102], AssignmentStatus.IN_PROGRESS
        )

        result = await assignment_service.bulk_update(
            campaign_id, [ids[101], ids[102], "missing"], "cancel"
        )

        assert result.succeeded == [ids[101]]
        assert [(item["id"], item["error"]) for item in result.failed] == [
            (ids[102], "ILLEGAL_TRANSITION"),
            ("missing", "NOT_FOUND"),
        ]
        statuses = {a.employee_id: a.status for a in await load_assignments(database, campaign_id)}
        assert statuses == {101: AssignmentStatus.CANCELLED, 102: AssignmentStatus.IN_PROGRESS}

    async def test_remind_updates_bookkeeping(
        self, database, templates, assignment_service, sink, clock
    ) -> None:
        campaign_id = await engagement(
            database,
            templates,
            reminder_settings={"enabled": True, "channels": ["email", "in_app"]},
        )
        ids = await assignment_ids(database, campaign_id)

        result = await assignment_service.bulk_update(campaign_id, [ids[101]], "remind")

        assert result.succeeded == [ids[101]]
        assert sink.sent == [
            (101, NotificationChannel.EMAIL, NotificationKind.REMINDER),
            (101, NotificationChannel.IN_APP, NotificationKind.REMINDER),
        ]
        [row] = await load_assignments(database, campaign_id)
        assert (row.reminder_count, row.last_reminder_at) == (1, clock.now())

    async def test_failing_sink_reports_dependency_errors(
        self, database, templates, session, manager, policy, clock
    ) -> None:
        campaign_id = await engagement(database, templates)
        ids = await assignment_ids(database, campaign_id)
        service = AssignmentService(
            session, manager, policy=policy, clock=clock, notifications=RecordingSink(fail=True)
        )

        result = await service.bulk_update(campaign_id, [ids[101]], "remind")

        assert result.succeeded == []
        assert result.failed[0]["error"] == "DEPENDENCY_UNAVAILABLE"
        assert await audit_actions(database) == ["notification_failed"]

    @pytest.mark.parametrize(
        ("action", "data"), [("archive", None), ("status", {"status": "DONE"})]
    )
    async def test_unknown_action_or_status_is_refused(
        self, database, templates, assignment_service, action, data
    ) -> None:
        campaign_id = await engagement(database, templates)
        with pytest.raises(ValidationFailedError):
            await assignment_service.bulk_update(campaign_id, ["x"], action, data)


async def test_listings_by_campaign_and_by_employee(
    database, templates, assignment_service
) -> None:
    first = await engagement(database, templates, employee_ids=(101, 102))
    second = await engagement(database, templates, employee_ids=(101,), name="Second")

    rows, total = await assignment_service.list_for_campaign(first, PageRequest(limit=1))
    assert (len(rows), total) == (1, 2)

    mine, total = await assignment_service.list_for_employee(101, PageRequest())
    assert total == 2
    assert {row["campaign"]["id"] for row in mine} == {first, second}
    assert {row["campaign"]["end"] for row in mine} == {"2025-02-05T00:00:00+00:00"}
