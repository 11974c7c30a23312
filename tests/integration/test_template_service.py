from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy import select

from campaign_core.domain.errors import DependencyUnavailableError, TemplateNotFoundError
from campaign_core.domain.models import CampaignFamily
from campaign_core.domain.services import TemplateService
from campaign_core.infrastructure.db.models import CampaignTemplate, TenantTemplateSelection
from campaign_core.libs.ai_client import AIAPIError, GeneratedQuestions
from tests.utils import TENANT_A, audit_actions


class FakeGenerator:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def generate(self, template_type: str, params) -> GeneratedQuestions:
        self.calls.append((template_type, dict(params)))
        if self.fail:
            raise AIAPIError("Server error: 502", status_code=502)
        return GeneratedQuestions(
            questions=[{"text": f"Question {i}"} for i in range(params.get("count", 3))],
            model="gpt-test",
            total_tokens=12,
            latency_ms=5,
        )


async def load_template(database, template_id: int) -> CampaignTemplate:
    async with database.session_factory() as session:
        return await session.scalar(
            select(CampaignTemplate).where(CampaignTemplate.id == template_id)
        )


class TestCatalog:
    async def test_lists_global_templates_of_one_family(self, templates, template_service) -> None:
        listed = await template_service.list(CampaignFamily.ENGAGEMENT)

        assert [item["type"] for item in listed] == ["pulse", "enps", "onboarding", "wellbeing"]
        assert all(item["isGlobal"] for item in listed)

    async def test_selected_foreign_template_becomes_visible(
        self, database, templates, template_service
    ) -> None:
        async with database.session_factory() as session:
            session.add(
                TenantTemplateSelection(tenant_id=TENANT_A, template_id=templates["private"])
            )
            await session.commit()

        listed = await template_service.list(CampaignFamily.ENGAGEMENT)

        assert listed[-1]["type"] == "private"
        assert listed[-1]["isGlobal"] is False


class TestGenerateQuestions:
    async def test_generation_records_configuration_and_usage(
        self, database, templates, session, manager, clock
    ) -> None:
        generator = FakeGenerator()
        service = TemplateService(session, manager, clock=clock, generator=generator)

        generated = await service.generate_questions(
            CampaignFamily.ENGAGEMENT, templates["pulse"], {"count": 4, "tone": "friendly"}
        )

        assert len(generated.questions) == 4
        assert generator.calls == [("pulse", {"count": 4, "tone": "friendly"})]
        template = await load_template(database, templates["pulse"])
        assert template.usage_count == 1
        assert template.ai_generation_config["model"] == "gpt-test"
        assert template.ai_generation_config["questionCount"] == 4
        assert template.ai_generation_config["generatedBy"] == "hr-1"
        assert await audit_actions(database) == ["template_questions_generated"]

    async def test_missing_generator_is_a_dependency_error(
        self, templates, template_service
    ) -> None:
        with pytest.raises(DependencyUnavailableError):
            await template_service.generate_questions(
                CampaignFamily.ENGAGEMENT, templates["pulse"], {}
            )

    async def test_provider_failure_leaves_template_untouched(
        self, database, templates, session, manager, clock
    ) -> None:
        service = TemplateService(session, manager, clock=clock, generator=FakeGenerator(fail=True))

        with pytest.raises(DependencyUnavailableError) as exc_info:
            await service.generate_questions(CampaignFamily.ENGAGEMENT, templates["pulse"], {})

        assert "502" in exc_info.value.details["error"]
        template = await load_template(database, templates["pulse"])
        assert template.ai_generation_config is None
        assert template.usage_count == 0

    async def test_foreign_template_is_not_found(
        self, templates, session, manager, clock
    ) -> None:
        service = TemplateService(session, manager, clock=clock, generator=FakeGenerator())
        with pytest.raises(TemplateNotFoundError):
            await service.generate_questions(
                CampaignFamily.ENGAGEMENT, templates["private"], {}
            )
