#!/usr/bin/env python3
"""
Seed a demo tenant with employees and the global template catalogue.

Safe to run repeatedly: existing rows are left as they are.

Usage:
    python scripts/seed_demo_tenant.py [tenant_slug]
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from campaign_core.core.config import get_settings
from campaign_core.domain.reference_data import GLOBAL_TEMPLATES
from campaign_core.infrastructure.db.models import CampaignTemplate, Employee, Tenant
from campaign_core.infrastructure.db.session import Database

DEMO_EMPLOYEES = [
    ("ayu.lestari@example.com", "Ayu Lestari"),
    ("bima.santoso@example.com", "Bima Santoso"),
    ("citra.dewi@example.com", "Citra Dewi"),
    ("dimas.pratama@example.com", "Dimas Pratama"),
    ("eka.putri@example.com", "Eka Putri"),
]


async def seed(slug: str) -> None:
    settings = get_settings()
    database = Database.from_settings(settings)

    try:
        async with database.session_factory() as session:
            tenant = (
                await session.execute(select(Tenant).where(Tenant.slug == slug))
            ).scalar_one_or_none()
            if tenant is None:
                tenant = Tenant(slug=slug, name=slug.replace("-", " ").title())
                session.add(tenant)
                await session.flush()
                print(f"✅ Created tenant {tenant.slug} ({tenant.id})")
            else:
                print(f"⏭️  Tenant {tenant.slug} already exists ({tenant.id})")

            existing = await session.execute(
                select(Employee.email).where(Employee.tenant_id == tenant.id)
            )
            known_emails = set(existing.scalars().all())
            for email, full_name in DEMO_EMPLOYEES:
                if email in known_emails:
                    continue
                session.add(Employee(tenant_id=tenant.id, email=email, full_name=full_name))
                print(f"   + employee {full_name}")

            existing = await session.execute(
                select(CampaignTemplate.family, CampaignTemplate.template_type).where(
                    CampaignTemplate.tenant_id.is_(None)
                )
            )
            known_templates = {(family, template_type) for family, template_type in existing}
            for values in GLOBAL_TEMPLATES:
                if (values["family"], values["template_type"]) in known_templates:
                    continue
                session.add(CampaignTemplate(**values))
                print(f"   + template {values['name']}")

            await session.commit()
    finally:
        await database.dispose()

    print("🎉 Seeding complete")


if __name__ == "__main__":
    asyncio.run(seed(sys.argv[1] if len(sys.argv) > 1 else "demo-tenant"))
