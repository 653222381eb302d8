"""Create research_runs, leads and lead_interactions tables.

Leads carry two owner-scoped unique keys: the discovery place id and the
legacy Google place id. Upserts target the first and fall back to the second.
"""

from __future__ import annotations

import logging

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "4b9e21c0d7a3"
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger(__name__)

UTC_NOW = sa.text("timezone('utc', now())")


def _json() -> sa.types.TypeEngine:
    return postgresql.JSONB(astext_type=sa.Text())


def upgrade() -> None:
    op.create_table(
        "research_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", sa.String(length=255), nullable=False),
        sa.Column("request_id", sa.String(length=64), nullable=False),
        sa.Column("business_type", sa.String(length=255), nullable=False),
        sa.Column("cities", _json(), nullable=False),
        sa.Column("state", sa.String(length=16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("agency_name", sa.String(length=255), nullable=True),
        sa.Column("specialty", sa.String(length=255), nullable=True),
        sa.Column("proposal", sa.Text(), nullable=True),
        sa.Column("tone", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("statistics", _json(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("version", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=UTC_NOW),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_research_runs"),
    )
    op.create_index(
        "ix_research_runs_owner_created", "research_runs", ["owner_id", "created_at"], unique=False
    )

    op.create_table(
        "leads",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", sa.String(length=255), nullable=False),
        sa.Column("place_id", sa.String(length=255), nullable=False),
        sa.Column("legacy_place_id", sa.String(length=255), nullable=True),
        sa.Column(
            "research_run_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("research_runs.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("name", sa.String(length=512), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("neighborhood", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=255), nullable=True),
        sa.Column("state", sa.String(length=16), nullable=True),
        sa.Column("category", sa.String(length=255), nullable=True),
        sa.Column("business_type", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("has_whatsapp", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("whatsapp_link", sa.Text(), nullable=True),
        sa.Column("website", sa.Text(), nullable=True),
        sa.Column("social_links", _json(), nullable=False),
        sa.Column("rating", sa.Float(), nullable=True),
        sa.Column("review_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("google_maps_url", sa.Text(), nullable=True),
        sa.Column("opportunities", _json(), nullable=False),
        sa.Column("base_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("classification", sa.String(length=16), nullable=False),
        sa.Column("google_ads", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("facebook_ads", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("tiktok_ads", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("linkedin_ads", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("google_analytics", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("google_tag_manager", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("hotjar", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("rd_station", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("marketing_details", _json(), nullable=False),
        sa.Column("marketing_level", sa.String(length=32), nullable=True),
        sa.Column("marketing_bonus", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("marketing_opportunity", sa.String(length=32), nullable=True),
        sa.Column("marketing_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("marketing_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("icebreaker", sa.Text(), nullable=True),
        sa.Column("icebreaker_trigger", sa.Text(), nullable=True),
        sa.Column(
            "icebreaker_ai_generated", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("diagnosis", _json(), nullable=True),
        sa.Column("diagnosis_temperature", sa.String(length=32), nullable=True),
        sa.Column("diagnosis_score", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("first_contact_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("first_response_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=UTC_NOW),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_leads"),
        sa.UniqueConstraint("owner_id", "place_id", name="uq_leads_owner_place"),
        sa.UniqueConstraint("owner_id", "legacy_place_id", name="uq_leads_owner_legacy_place"),
    )
    op.create_index("ix_leads_owner_id", "leads", ["owner_id"], unique=False)
    op.create_index("ix_leads_research_run_id", "leads", ["research_run_id"], unique=False)
    op.create_index("ix_leads_owner_score", "leads", ["owner_id", "score"], unique=False)

    op.create_table(
        "lead_interactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "lead_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("leads.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("owner_id", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("direction", sa.String(length=16), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("outcome", sa.String(length=16), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=UTC_NOW),
        sa.PrimaryKeyConstraint("id", name="pk_lead_interactions"),
    )
    op.create_index(
        "ix_lead_interactions_lead_created",
        "lead_interactions",
        ["lead_id", "created_at"],
        unique=False,
    )
    logger.info("leads.migration.applied", extra={"revision": revision})


def downgrade() -> None:
    op.drop_index("ix_lead_interactions_lead_created", table_name="lead_interactions")
    op.drop_table("lead_interactions")
    op.drop_index("ix_leads_owner_score", table_name="leads")
    op.drop_index("ix_leads_research_run_id", table_name="leads")
    op.drop_index("ix_leads_owner_id", table_name="leads")
    op.drop_table("leads")
    op.drop_index("ix_research_runs_owner_created", table_name="research_runs")
    op.drop_table("research_runs")
