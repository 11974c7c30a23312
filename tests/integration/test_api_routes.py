"""HTTP surface tests: envelopes, status codes and wire field names."""

from __future__ import annotations

import pytest

from campaign_core.core.auth import Role
from campaign_core.domain.models import CampaignFamily, CampaignStatus
from tests.utils import auth_headers, day, insert_campaign

MANAGER = auth_headers()


def engagement_body(**overrides) -> dict:
    body = {
        "templateId": overrides.pop("template_id"),
        "name": "Pulse check",
        "employeeIds": [101, 102],
        "start": "2025-01-12T00:00:00Z",
        "end": "2025-01-30T00:00:00Z",
        "reminderSettings": {"enabled": True, "frequency": 3, "channels": ["email"]},
    }
    body.update(overrides)
    return body


def assessment_body(template_id: int, **overrides) -> dict:
    body = {
        "templateId": template_id,
        "employeeIds": [101],
        "start": "2025-02-01T00:00:00Z",
        "deadline": "2025-02-20T00:00:00Z",
        "mandatory": True,
    }
    body.update(overrides)
    return body


async def test_health_reports_database_status(async_client) -> None:
    response = await async_client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["datastores"]["database"]["status"] == "ok"
    assert payload["datastores"]["redis"]["status"] == "error"
    assert payload["timestamp"] == "2025-01-10T09:00:00+00:00"


class TestAuth:
    async def test_missing_token_is_unauthorized(self, async_client) -> None:
        response = await async_client.get("/engagement/campaigns")

        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": "UNAUTHORIZED",
            "message": "Missing bearer token",
        }

    async def test_garbage_token_is_unauthorized(self, async_client) -> None:
        response = await async_client.get(
            "/engagement/campaigns", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    async def test_employee_cannot_manage_campaigns(self, async_client) -> None:
        response = await async_client.get(
            "/engagement/campaigns", headers=auth_headers("emp-1", Role.EMPLOYEE)
        )

        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"

    async def test_token_without_tenant_is_refused(self, async_client) -> None:
        response = await async_client.get(
            "/engagement/campaigns", headers=auth_headers(tenant_id=None)
        )

        assert response.status_code == 403
        assert response.json()["error"] == "TENANT_MISSING"

    async def test_request_id_is_echoed(self, async_client) -> None:
        response = await async_client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"


class TestCampaignRoutes:
    async def test_create_engagement_campaign(self, async_client, templates) -> None:
        response = await async_client.post(
            "/engagement/campaigns",
            json=engagement_body(template_id=templates["pulse"]),
            headers=MANAGER,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["status"] == CampaignStatus.PLANNED.value
        assert data["end"] == "2025-01-30T00:00:00+00:00"
        assert "deadline" not in data
        assert data["assignmentsCreated"] == 2
        assert data["reminderSettings"]["frequency"] == 3
        assert "warnings" not in body

    async def test_create_assessment_uses_deadline(self, async_client, templates) -> None:
        response = await async_client.post(
            "/assessment/campaigns",
            json=assessment_body(templates["annual"]),
            headers=MANAGER,
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["deadline"] == "2025-02-20T00:00:00+00:00"
        assert data["mandatory"] is True
        assert data["template"]["type"] == "annual"

    async def test_invalid_body_is_a_validation_failure(self, async_client, templates) -> None:
        body = engagement_body(template_id=templates["pulse"], employeeIds=[])

        response = await async_client.post("/engagement/campaigns", json=body, headers=MANAGER)

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_FAILED"

    async def test_duplicate_assessment_is_a_conflict(self, async_client, templates) -> None:
        first = await async_client.post(
            "/assessment/campaigns", json=assessment_body(templates["annual"]), headers=MANAGER
        )
        assert first.status_code == 201

        second = await async_client.post(
            "/assessment/campaigns",
            json=assessment_body(templates["annual"], start="2025-02-05T00:00:00Z"),
            headers=MANAGER,
        )

        assert second.status_code == 409
        assert second.json()["error"] == "CONFLICT_DETECTED"

    async def test_unknown_campaign_is_not_found(self, async_client) -> None:
        response = await async_client.get("/engagement/campaigns/missing", headers=MANAGER)

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    async def test_list_is_paginated(self, async_client, database, templates) -> None:
        for name in ("First", "Second", "Third"):
            await insert_campaign(
                database,
                template_id=templates["pulse"],
                family=CampaignFamily.ENGAGEMENT,
                start=day(2025, 1, 5),
                end=day(2025, 2, 5),
                name=name,
            )

        response = await async_client.get(
            "/engagement/campaigns", params={"page": 2, "limit": 2}, headers=MANAGER
        )

        body = response.json()
        assert response.status_code == 200
        assert len(body["data"]) == 1
        assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "totalPages": 2}

    async def test_illegal_transition_is_a_conflict(
        self, async_client, database, templates
    ) -> None:
        campaign_id = await insert_campaign(
            database,
            template_id=templates["pulse"],
            family=CampaignFamily.ENGAGEMENT,
            start=day(2024, 11, 1),
            end=day(2024, 12, 1),
            status=CampaignStatus.COMPLETED,
        )

        response = await async_client.patch(
            f"/engagement/campaigns/{campaign_id}/status",
            json={"status": "ACTIVE"},
            headers=MANAGER,
        )

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "ILLEGAL_TRANSITION"
        assert body["details"]["allowed"] == ["ARCHIVED"]

    @pytest.mark.parametrize("end_key", ["end", "deadline"])
    async def test_reschedule_accepts_either_end_name(
        self, async_client, database, templates, end_key
    ) -> None:
        campaign_id = await insert_campaign(
            database,
            template_id=templates["wellbeing"],
            family=CampaignFamily.ENGAGEMENT,
            start=day(2025, 6, 1),
            end=day(2025, 6, 10),
            status=CampaignStatus.PLANNED,
        )

        response = await async_client.patch(
            f"/engagement/campaigns/{campaign_id}/reschedule",
            json={"start": "2025-06-03T00:00:00Z", end_key: "2025-06-12T00:00:00Z"},
            headers=MANAGER,
        )

        assert response.status_code == 200
        assert response.json()["data"]["end"] == "2025-06-12T00:00:00+00:00"


class TestCalendarAndReaders:
    async def test_unified_calendar(self, async_client, database, templates) -> None:
        await insert_campaign(
            database,
            template_id=templates["pulse"],
            family=CampaignFamily.ENGAGEMENT,
            start=day(2025, 1, 5),
            end=day(2025, 2, 5),
            employee_ids=[101],
        )

        response = await async_client.get(
            "/unified/calendar",
            params={"start": "2025-01-01T00:00:00Z", "end": "2025-01-31T00:00:00Z"},
            headers=MANAGER,
        )

        body = response.json()
        assert response.status_code == 200
        assert len(body["data"]) == 1
        assert body["summary"]["engagementCampaigns"] == 1
        assert body["pagination"]["total"] == 1

    async def test_unified_conflict_check_sees_mandatory_assessments(
        self, async_client, database, templates
    ) -> None:
        assessment_id = await insert_campaign(
            database,
            template_id=templates["annual"],
            family=CampaignFamily.ASSESSMENT,
            start=day(2025, 3, 1),
            end=day(2025, 3, 15),
            employee_ids=[101],
            mandatory=True,
        )

        response = await async_client.post(
            "/unified/check-conflicts",
            json={
                "family": "engagement",
                "employeeIds": [101],
                "start": "2025-03-10T00:00:00Z",
                "end": "2025-03-25T00:00:00Z",
            },
            headers=MANAGER,
        )

        assert response.status_code == 200
        [conflict] = response.json()["data"]["conflicts"]
        assert (conflict["type"], conflict["campaignId"]) == ("mandatory_conflict", assessment_id)


    async def test_employee_reads_own_assignments(
        self, async_client, database, templates
    ) -> None:
        campaign_id = await insert_campaign(
            database,
            template_id=templates["pulse"],
            family=CampaignFamily.ENGAGEMENT,
            start=day(2025, 1, 5),
            end=day(2025, 2, 5),
            employee_ids=[101],
        )

        response = await async_client.get(
            "/employees/101/assignments",
            headers=auth_headers("emp-101", Role.EMPLOYEE, employee_id=101),
        )

        assert response.status_code == 200
        [row] = response.json()["data"]
        assert row["campaign"]["id"] == campaign_id

    @pytest.mark.parametrize("employee_id", [102, None])
    async def test_employee_cannot_read_someone_elses_assignments(
        self, async_client, employee_id
    ) -> None:
        response = await async_client.get(
            "/employees/101/assignments",
            headers=auth_headers("emp-102", Role.EMPLOYEE, employee_id=employee_id),
        )

        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"

    async def test_manager_reads_any_employee(self, async_client) -> None:
        response = await async_client.get("/employees/101/assignments", headers=MANAGER)

        assert response.status_code == 200
        assert response.json()["data"] == []


    async def test_templates_are_listed_per_family(self, async_client, templates) -> None:
        response = await async_client.get("/templates/assessment", headers=MANAGER)

        assert response.status_code == 200
        assert "annual" in [item["type"] for item in response.json()["data"]]

    async def test_question_generation_without_provider(self, async_client, templates) -> None:
        response = await async_client.post(
            f"/templates/engagement/{templates['pulse']}/generate-questions",
            json={"count": 3},
            headers=MANAGER,
        )

        assert response.status_code == 503
        assert response.json()["error"] == "DEPENDENCY_UNAVAILABLE"
