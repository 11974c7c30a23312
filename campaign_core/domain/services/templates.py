from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from campaign_core.domain.clock import Clock
from campaign_core.domain.errors import DependencyUnavailableError, TemplateNotFoundError
from campaign_core.domain.models import CallerContext, CampaignFamily
from campaign_core.domain.tenancy import require_tenant
from campaign_core.infrastructure.db.models import CampaignTemplate
from campaign_core.infrastructure.repositories.unit_of_work import UnitOfWork
from campaign_core.libs.ai_client import AIClientError, AIQuestionGenerator, GeneratedQuestions

logger = structlog.get_logger()


def template_to_dict(template: CampaignTemplate) -> dict[str, Any]:
    return {
        "id": template.id,
        "family": template.family.value,
        "name": template.name,
        "type": template.template_type,
        "description": template.description,
        "questionCount": template.question_count,
        "usageCount": template.usage_count,
        "isGlobal": template.tenant_id is None,
    }


class TemplateService:
    """Template catalog reads and AI question generation bookkeeping.

    Generated questions are handed back to the caller untouched; the core only
    keeps the configuration that produced them and bumps the usage counter.
    """

    def __init__(
        self,
        session: AsyncSession,
        context: CallerContext,
        *,
        clock: Clock,
        generator: AIQuestionGenerator | None = None,
    ) -> None:
        self.context = context
        self.tenant_id = require_tenant(context)
        self.uow = UnitOfWork(session, self.tenant_id)
        self.clock = clock
        self.generator = generator

    async def list(self, family: CampaignFamily) -> list[dict[str, Any]]:
        return [template_to_dict(t) for t in await self.uow.templates.list_accessible(family)]

    async def generate_questions(
        self,
        family: CampaignFamily,
        template_id: int,
        params: dict[str, Any],
    ) -> GeneratedQuestions:
        if self.generator is None:
            raise DependencyUnavailableError("AI question generator is not configured")

        template = await self.uow.templates.get_accessible(template_id, family)
        if template is None:
            raise TemplateNotFoundError(
                f"Template {template_id} is not available", details={"templateId": template_id}
            )
        template_type = template.template_type
        await self.uow.session.commit()

        try:
            generated = await self.generator.generate(template_type, params)
        except AIClientError as exc:
            logger.warning("question_generation_failed", template_id=template_id, error=str(exc))
            raise DependencyUnavailableError(
                "AI question generator failed", details={"error": str(exc)}
            ) from exc

        now = self.clock.now()
        async with self.uow.transaction():
            template = await self.uow.templates.get_accessible(template_id, family)
            if template is None:
                raise TemplateNotFoundError(f"Template {template_id} is not available")
            template.ai_generation_config = {
                "params": dict(params),
                "model": generated.model,
                "questionCount": len(generated.questions),
                "generatedAt": now.isoformat(),
                "generatedBy": self.context.user_id,
            }
            template.usage_count = (template.usage_count or 0) + 1
            template.updated_at = now
            self.uow.audit.record(
                actor=self.context.user_id,
                action="template_questions_generated",
                entity_type="template",
                entity_id=str(template.id),
                at=now,
                details={"model": generated.model, "questions": len(generated.questions)},
            )

        logger.info(
            "template_questions_generated",
            template_id=template_id,
            questions=len(generated.questions),
            model=generated.model,
            latency_ms=generated.latency_ms,
        )
        return generated
