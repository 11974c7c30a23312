"""Initial schema for tenants, templates, campaigns and assignments

Revision ID: 202510190001
Revises:
Create Date: 2025-10-19 00:01:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "202510190001"
down_revision = None
branch_labels = None
depends_on = None

campaign_family_enum = sa.Enum("assessment", "engagement", name="campaign_family")
campaign_status_enum = sa.Enum(
    "PLANNED",
    "ACTIVE",
    "IN_PROGRESS",
    "PAUSED",
    "COMPLETED",
    "ARCHIVED",
    "CANCELLED",
    name="campaign_status",
)
campaign_frequency_enum = sa.Enum(
    "once",
    "weekly",
    "biweekly",
    "monthly",
    "quarterly",
    "annually",
    name="campaign_frequency",
)
assignment_status_enum = sa.Enum(
    "ASSIGNED",
    "IN_PROGRESS",
    "COMPLETED",
    "EXPIRED",
    "CANCELLED",
    name="assignment_status",
)


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("slug", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "tenant_id",
            sa.String(length=36),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("full_name", sa.String(length=128), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_employees_tenant_id", "employees", ["tenant_id"])

    op.create_table(
        "campaign_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "tenant_id",
            sa.String(length=36),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("family", campaign_family_enum, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("template_type", sa.String(length=64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("question_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ai_generation_config", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_campaign_templates_tenant_id", "campaign_templates", ["tenant_id"])

    op.create_table(
        "tenant_template_selections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "tenant_id",
            sa.String(length=36),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "template_id",
            sa.Integer(),
            sa.ForeignKey("campaign_templates.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("tenant_id", "template_id", name="uq_tenant_template"),
    )
    op.create_index(
        "ix_tenant_template_selections_tenant_id",
        "tenant_template_selections",
        ["tenant_id"],
    )

    op.create_table(
        "campaigns",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("family", campaign_family_enum, nullable=False),
        sa.Column(
            "template_id",
            sa.Integer(),
            sa.ForeignKey("campaign_templates.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", campaign_status_enum, nullable=False, server_default="PLANNED"),
        sa.Column("frequency", campaign_frequency_enum, nullable=False, server_default="once"),
        sa.Column("mandatory", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("allow_retakes", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("anonymous_responses", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reminder_settings", sa.JSON(), nullable=True),
        sa.Column("target_audience", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("has_responses", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_campaigns_tenant_id", "campaigns", ["tenant_id"])
    op.create_index("ix_campaigns_family", "campaigns", ["family"])
    op.create_index("ix_campaigns_status", "campaigns", ["status"])
    op.create_index("ix_campaigns_tenant_window", "campaigns", ["tenant_id", "start_at", "end_at"])

    op.create_table(
        "campaign_assignments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column(
            "campaign_id",
            sa.String(length=36),
            sa.ForeignKey("campaigns.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("status", assignment_status_enum, nullable=False, server_default="ASSIGNED"),
        sa.Column("assigned_by", sa.String(length=64), nullable=True),
        sa.Column(
            "assigned_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("last_reminder_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reminder_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "campaign_id", "employee_id", name="uq_assignment_campaign_employee"
        ),
    )
    op.create_index("ix_campaign_assignments_tenant_id", "campaign_assignments", ["tenant_id"])
    op.create_index(
        "ix_campaign_assignments_campaign_id", "campaign_assignments", ["campaign_id"]
    )
    op.create_index(
        "ix_campaign_assignments_employee_id", "campaign_assignments", ["employee_id"]
    )
    op.create_index("ix_campaign_assignments_status", "campaign_assignments", ["status"])

    op.create_table(
        "campaign_responses",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column(
            "campaign_id",
            sa.String(length=36),
            sa.ForeignKey("campaigns.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "assignment_id",
            sa.String(length=36),
            sa.ForeignKey("campaign_assignments.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("employee_id", sa.Integer(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column(
            "submitted_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_campaign_responses_tenant_id", "campaign_responses", ["tenant_id"])
    op.create_index("ix_campaign_responses_campaign_id", "campaign_responses", ["campaign_id"])

    op.create_table(
        "audit_entries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("actor", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_audit_entries_tenant_id", "audit_entries", ["tenant_id"])
    op.create_index("ix_audit_entries_action", "audit_entries", ["action"])


def downgrade() -> None:
    op.drop_table("audit_entries")
    op.drop_table("campaign_responses")
    op.drop_table("campaign_assignments")
    op.drop_table("campaigns")
    op.drop_table("tenant_template_selections")
    op.drop_table("campaign_templates")
    op.drop_table("employees")
    op.drop_table("tenants")
    assignment_status_enum.drop(op.get_bind())
    campaign_frequency_enum.drop(op.get_bind())
    campaign_status_enum.drop(op.get_bind())
    campaign_family_enum.drop(op.get_bind())
