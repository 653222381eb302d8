"""Domain models for research (discovery) runs."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from leadsniper.models.lead import Lead

RESEARCH_VERSION = "v3-ai"
VOICE_TONES = ("profissional", "amigável", "descontraído", "formal")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ResearchRequest(BaseModel):
    """Query parameters for one discovery execution."""

    business_type: str = ""
    city: str = ""
    state: str | None = None
    quantity: int | None = None
    agency_name: str | None = None
    specialty: str | None = None
    proposal: str | None = None
    tone: str | None = None


class RunStatistics(BaseModel):
    """Aggregate snapshot computed from the leads a run accepted."""

    total: int = 0
    hot: int = 0
    warm: int = 0
    cool: int = 0
    cold: int = 0
    with_website: int = 0
    without_website: int = 0
    with_whatsapp: int = 0
    with_icebreaker: int = 0
    new: int = 0
    duplicates: int = 0
    failed: int = 0


class ResearchRun(BaseModel):
    """A persisted discovery execution."""

    id: UUID = Field(default_factory=uuid4)
    owner_id: str
    request_id: str
    business_type: str
    cities: list[str] = Field(default_factory=list)
    state: str
    quantity: int
    agency_name: str | None = None
    specialty: str | None = None
    proposal: str | None = None
    tone: str | None = None
    status: RunStatus = RunStatus.PROCESSING
    statistics: RunStatistics = Field(default_factory=RunStatistics)
    error_message: str | None = None
    version: str = RESEARCH_VERSION
    created_at: datetime = Field(default_factory=_utcnow)
    finished_at: datetime | None = None

    model_config = {"from_attributes": True}


class ResearchOutcome(BaseModel):
    """Structured result returned by the research orchestrator."""

    success: bool
    run_id: UUID | None = None
    status: RunStatus | None = None
    statistics: RunStatistics = Field(default_factory=RunStatistics)
    leads: list[Lead] = Field(default_factory=list)
    error: str | None = None
    code: str | None = None
