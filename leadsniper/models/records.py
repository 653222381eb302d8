"""SQLModel tables backing leads, research runs, and interactions."""
# ruff: noqa: UP017

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql import expression
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


JSON_BACKING_TYPE = sa.JSON().with_variant(JSONB(astext_type=sa.Text()), "postgresql")

LEAD_PRIMARY_CONFLICT = ("owner_id", "place_id")
LEAD_LEGACY_CONFLICT = ("owner_id", "legacy_place_id")


class UtcNow(expression.FunctionElement):
    """Dialect-aware server default that pins timestamps to UTC."""

    type = DateTime(timezone=True)
    inherit_cache = True


@compiles(UtcNow)
def _utc_now_default(
    element, compiler, **kwargs
) -> str:  # pragma: no cover - trivial sql generator
    return "CURRENT_TIMESTAMP"


@compiles(UtcNow, "postgresql")
def _utc_now_default_postgres(
    element, compiler, **kwargs
) -> str:  # pragma: no cover - trivial sql generator
    return "timezone('utc', now())"


def _timestamp_column(*, nullable: bool = False, on_update: bool = False) -> Column:
    return Column(
        DateTime(timezone=True),
        nullable=nullable,
        server_default=None if nullable else UtcNow(),
        onupdate=UtcNow() if on_update else None,
    )


class LeadRecord(SQLModel, table=True):
    """ORM row for a prospected lead."""

    __tablename__ = "leads"
    __table_args__ = (
        sa.UniqueConstraint(*LEAD_PRIMARY_CONFLICT, name="uq_leads_owner_place"),
        sa.UniqueConstraint(*LEAD_LEGACY_CONFLICT, name="uq_leads_owner_legacy_place"),
        sa.Index("ix_leads_owner_id", "owner_id"),
        sa.Index("ix_leads_research_run_id", "research_run_id"),
        sa.Index("ix_leads_owner_score", "owner_id", "score"),
    )

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    owner_id: str = Field(sa_column=Column(String(length=255), nullable=False))
    place_id: str = Field(sa_column=Column(String(length=255), nullable=False))
    legacy_place_id: str | None = Field(
        default=None, sa_column=Column(String(length=255), nullable=True)
    )
    research_run_id: UUID | None = Field(
        default=None,
        sa_column=Column(
            Uuid(as_uuid=True),
            ForeignKey("research_runs.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )

    name: str = Field(sa_column=Column(String(length=512), nullable=False))
    address: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    neighborhood: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    city: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    state: str | None = Field(default=None, sa_column=Column(String(16), nullable=True))
    category: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    business_type: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    phone: str | None = Field(default=None, sa_column=Column(String(64), nullable=True))
    has_whatsapp: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    whatsapp_link: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    website: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    social_links: list[str] = Field(
        default_factory=list, sa_column=Column(JSON_BACKING_TYPE, nullable=False)
    )
    rating: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    review_count: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    google_maps_url: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    opportunities: list[str] = Field(
        default_factory=list, sa_column=Column(JSON_BACKING_TYPE, nullable=False)
    )

    base_score: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    score: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    classification: str = Field(default="COLD", sa_column=Column(String(16), nullable=False))

    google_ads: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    facebook_ads: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    tiktok_ads: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    linkedin_ads: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    google_analytics: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    google_tag_manager: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    hotjar: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    rd_station: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    marketing_details: list[str] = Field(
        default_factory=list, sa_column=Column(JSON_BACKING_TYPE, nullable=False)
    )
    marketing_level: str | None = Field(default=None, sa_column=Column(String(32), nullable=True))
    marketing_bonus: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    marketing_opportunity: str | None = Field(
        default=None, sa_column=Column(String(32), nullable=True)
    )
    marketing_verified: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    marketing_verified_at: datetime | None = Field(
        default=None, sa_column=_timestamp_column(nullable=True)
    )

    icebreaker: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    icebreaker_trigger: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    icebreaker_ai_generated: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    diagnosis: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON_BACKING_TYPE, nullable=True)
    )
    diagnosis_temperature: str | None = Field(
        default=None, sa_column=Column(String(32), nullable=True)
    )
    diagnosis_score: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    analysis: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON_BACKING_TYPE, nullable=True)
    )

    status: str = Field(default="NOVO", sa_column=Column(String(32), nullable=False))
    first_contact_at: datetime | None = Field(
        default=None, sa_column=_timestamp_column(nullable=True)
    )
    first_response_at: datetime | None = Field(
        default=None, sa_column=_timestamp_column(nullable=True)
    )
    notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))

    created_at: datetime = Field(default_factory=_utcnow, sa_column=_timestamp_column())
    updated_at: datetime | None = Field(
        default=None, sa_column=_timestamp_column(nullable=True, on_update=True)
    )


class ResearchRunRecord(SQLModel, table=True):
    """ORM row for one discovery execution."""

    __tablename__ = "research_runs"
    __table_args__ = (sa.Index("ix_research_runs_owner_created", "owner_id", "created_at"),)

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    owner_id: str = Field(sa_column=Column(String(length=255), nullable=False))
    request_id: str = Field(sa_column=Column(String(length=64), nullable=False))
    business_type: str = Field(sa_column=Column(String(length=255), nullable=False))
    cities: list[str] = Field(
        default_factory=list, sa_column=Column(JSON_BACKING_TYPE, nullable=False)
    )
    state: str = Field(sa_column=Column(String(length=16), nullable=False))
    quantity: int = Field(sa_column=Column(Integer, nullable=False))
    agency_name: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    specialty: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    proposal: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    tone: str | None = Field(default=None, sa_column=Column(String(64), nullable=True))
    status: str = Field(default="processing", sa_column=Column(String(16), nullable=False))
    statistics: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSON_BACKING_TYPE, nullable=False)
    )
    error_message: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    version: str = Field(default="v3-ai", sa_column=Column(String(16), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=_timestamp_column())
    finished_at: datetime | None = Field(
        default=None, sa_column=_timestamp_column(nullable=True)
    )


class InteractionRecord(SQLModel, table=True):
    """ORM row for an append-only lead interaction."""

    __tablename__ = "lead_interactions"
    __table_args__ = (sa.Index("ix_lead_interactions_lead_created", "lead_id", "created_at"),)

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    lead_id: UUID = Field(
        sa_column=Column(
            Uuid(as_uuid=True),
            ForeignKey("leads.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    owner_id: str = Field(sa_column=Column(String(length=255), nullable=False))
    type: str = Field(sa_column=Column(String(length=16), nullable=False))
    direction: str | None = Field(default=None, sa_column=Column(String(16), nullable=True))
    content: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    outcome: str | None = Field(default=None, sa_column=Column(String(16), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=_timestamp_column())
