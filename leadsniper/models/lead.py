"""Domain models for prospected leads and their outreach history."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, computed_field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Classification(str, Enum):
    """Sales priority tier derived from the lead score."""

    HOT = "HOT"
    WARM = "WARM"
    COOL = "COOL"
    COLD = "COLD"


class MarketingLevel(str, Enum):
    """Ordinal summary of the marketing tooling detected on a website."""

    NONE = "NONE"
    BASIC = "BASIC"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"


class Opportunity(str, Enum):
    """How much room a lead leaves for a marketing agency."""

    MAXIMUM = "MAXIMUM"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


OPPORTUNITY_LABELS: dict[Opportunity, str] = {
    Opportunity.MAXIMUM: "No tracking or ads detected - maximum opportunity",
    Opportunity.HIGH: "Basic tracking only - high opportunity",
    Opportunity.MEDIUM: "Partial marketing stack - medium opportunity",
    Opportunity.LOW: "Mature marketing stack - low opportunity",
}


class LeadStatus(str, Enum):
    """Outreach pipeline status."""

    NOVO = "NOVO"
    CONTATADO = "CONTATADO"
    RESPONDEU = "RESPONDEU"
    INTERESSADO = "INTERESSADO"
    FECHADO = "FECHADO"
    PERDIDO = "PERDIDO"
    DESQUALIFICADO = "DESQUALIFICADO"


class InteractionType(str, Enum):
    WHATSAPP = "WHATSAPP"
    EMAIL = "EMAIL"
    LIGACAO = "LIGACAO"
    REUNIAO = "REUNIAO"
    NOTA = "NOTA"


class InteractionDirection(str, Enum):
    ENVIADO = "ENVIADO"  # outbound
    RECEBIDO = "RECEBIDO"  # inbound


class InteractionOutcome(str, Enum):
    ENVIADO = "ENVIADO"
    ENTREGUE = "ENTREGUE"
    LIDO = "LIDO"
    RESPONDEU = "RESPONDEU"
    SEM_RESPOSTA = "SEM_RESPOSTA"
    AGENDADO = "AGENDADO"
    REALIZADO = "REALIZADO"


class ScoreComponent(BaseModel):
    """Explainable contribution of a single signal to the lead score."""

    signal: str
    points: int
    reason: str


class MarketingVerification(BaseModel):
    """Result of analysing a lead's website for ads and analytics tooling."""

    google_ads: bool = False
    facebook_ads: bool = False
    tiktok_ads: bool = False
    linkedin_ads: bool = False
    google_analytics: bool = False
    google_tag_manager: bool = False
    hotjar: bool = False
    rd_station: bool = False
    details: list[str] = Field(default_factory=list)
    level: MarketingLevel = MarketingLevel.NONE
    bonus: int = 0
    opportunity: Opportunity = Opportunity.MAXIMUM
    verified: bool = True
    verified_at: datetime | None = None

    @computed_field
    @property
    def opportunity_label(self) -> str:
        return OPPORTUNITY_LABELS[self.opportunity]

    @property
    def runs_paid_ads(self) -> bool:
        return self.google_ads or self.facebook_ads or self.tiktok_ads or self.linkedin_ads

    @property
    def has_any_marketing(self) -> bool:
        return self.runs_paid_ads or self.google_analytics or self.google_tag_manager


class LeadAnalysis(BaseModel):
    """AI-written sales read of a lead, stored as returned by the analysis service."""

    ai_score: int | None = None
    classification: Classification | None = None
    summary: str | None = None
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    marketing_opportunities: list[str] = Field(default_factory=list)
    sales_arguments: list[str] = Field(default_factory=list)
    suggested_approach: str | None = None
    whatsapp_message: str | None = None
    common_complaints: list[str] = Field(default_factory=list)
    analyzed_at: datetime | None = None


class Lead(BaseModel):
    """A prospected business with contact, scoring, and outreach state."""

    id: UUID = Field(default_factory=uuid4)
    owner_id: str
    place_id: str
    legacy_place_id: str | None = None
    research_run_id: UUID | None = None

    name: str
    address: str | None = None
    neighborhood: str | None = None
    city: str | None = None
    state: str | None = None
    category: str | None = None
    business_type: str | None = None
    phone: str | None = None
    has_whatsapp: bool = False
    whatsapp_link: str | None = None
    website: str | None = None
    social_links: list[str] = Field(default_factory=list)
    rating: float | None = None
    review_count: int = 0
    google_maps_url: str | None = None
    opportunities: list[str] = Field(default_factory=list)

    base_score: int = 0
    score: int = 0
    classification: Classification = Classification.COLD

    marketing: MarketingVerification | None = None
    analysis: LeadAnalysis | None = None

    icebreaker: str | None = None
    icebreaker_trigger: str | None = None
    icebreaker_ai_generated: bool = False
    diagnosis: dict[str, Any] | None = None
    diagnosis_temperature: str | None = None
    diagnosis_score: int | None = None

    status: LeadStatus = LeadStatus.NOVO
    first_contact_at: datetime | None = None
    first_response_at: datetime | None = None
    notes: str | None = None

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def has_website(self) -> bool:
        return bool(self.website and self.website.strip())

    @property
    def marketing_verified(self) -> bool:
        return bool(self.marketing and self.marketing.verified)


class Interaction(BaseModel):
    """One logged contact event against a lead."""

    id: UUID = Field(default_factory=uuid4)
    lead_id: UUID
    owner_id: str
    type: InteractionType
    direction: InteractionDirection | None = None
    content: str | None = None
    outcome: InteractionOutcome | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class LeadPage(BaseModel):
    """One page of leads plus the total matching the filters."""

    items: list[Lead] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


class MarketingBreakdown(BaseModel):
    verified: int = 0
    unverified: int = 0
    with_google_ads: int = 0
    with_facebook_ads: int = 0
    without_marketing: int = 0
    by_level: dict[str, int] = Field(default_factory=dict)


class LeadStats(BaseModel):
    """Aggregate view over all of an owner's leads."""

    total: int = 0
    by_classification: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)
    by_city: dict[str, int] = Field(default_factory=dict)
    with_whatsapp: int = 0
    without_website: int = 0
    average_score: float = 0.0
    marketing: MarketingBreakdown = Field(default_factory=MarketingBreakdown)
