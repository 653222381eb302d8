"""API endpoints for leads and the records attached to them."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Response, status
from pydantic import BaseModel

from leadsniper.api.errors import require_owner
from leadsniper.models.lead import (
    Classification,
    Interaction,
    InteractionDirection,
    InteractionOutcome,
    InteractionType,
    Lead,
    LeadPage,
    LeadStats,
    LeadStatus,
    MarketingLevel,
)
from leadsniper.services.prospecting.analysis import LeadAnalyzer
from leadsniper.services.prospecting.batch import BatchVerificationReport, BatchVerifier
from leadsniper.services.prospecting.dependencies import (
    get_batch_verifier,
    get_interaction_service,
    get_lead_analyzer,
    get_marketing_verifier,
    get_repository,
)
from leadsniper.services.prospecting.diagnosis import attach_diagnosis, clear_diagnosis
from leadsniper.services.prospecting.errors import LeadNotFoundError, ProspectingValidationError
from leadsniper.services.prospecting.interactions import InteractionService, apply_manual_status
from leadsniper.services.prospecting.repositories import LeadFilters, ProspectingRepository
from leadsniper.services.prospecting.verifier import MarketingVerifier, apply_verification

router = APIRouter()
logger = logging.getLogger(__name__)


class LeadUpdate(BaseModel):
    """Manual edits allowed on a lead."""

    status: LeadStatus | None = None
    notes: str | None = None
    icebreaker: str | None = None


class InteractionCreate(BaseModel):
    type: InteractionType
    direction: InteractionDirection | None = None
    content: str | None = None
    outcome: InteractionOutcome | None = None


class InteractionCreated(BaseModel):
    interaction: Interaction
    lead_status: LeadStatus
    transitioned: bool


class PendingVerification(BaseModel):
    pending: int


class DiagnosisView(BaseModel):
    lead_id: UUID
    diagnosis: dict[str, Any] | None = None
    temperature: str | None = None
    score: int | None = None


def _load_lead(repository: ProspectingRepository, owner_id: str, lead_id: UUID) -> Lead:
    lead = repository.get_lead(owner_id, lead_id)
    if lead is None:
        raise LeadNotFoundError()
    return lead


@router.get("/leads", response_model=LeadPage)
def list_leads(
    classification: Classification | None = Query(None),
    lead_status: LeadStatus | None = Query(None, alias="status"),
    city: str | None = Query(None),
    business_type: str | None = Query(None),
    score_min: int | None = Query(None),
    score_max: int | None = Query(None),
    has_website: bool | None = Query(None),
    has_whatsapp: bool | None = Query(None),
    research_run_id: UUID | None = Query(None),
    marketing_level: MarketingLevel | None = Query(None),
    search: str | None = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    order_by: str = Query("score"),
    order_dir: str = Query("desc", pattern="^(asc|desc)$"),
    owner_id: str = Depends(require_owner),
    repository: ProspectingRepository = Depends(get_repository),
) -> LeadPage:
    filters = LeadFilters(
        classification=classification.value if classification else None,
        status=lead_status.value if lead_status else None,
        city=city,
        business_type=business_type,
        score_min=score_min,
        score_max=score_max,
        has_website=has_website,
        has_whatsapp=has_whatsapp,
        research_run_id=research_run_id,
        marketing_level=marketing_level.value if marketing_level else None,
        search=search,
        order_by=order_by,
        order_dir=order_dir,
    )
    return repository.list_leads(owner_id, filters, page=page, limit=limit)


@router.get("/leads/stats", response_model=LeadStats)
def lead_stats(
    owner_id: str = Depends(require_owner),
    repository: ProspectingRepository = Depends(get_repository),
) -> LeadStats:
    return repository.lead_stats(owner_id)


@router.get("/leads/verify-marketing/batch", response_model=PendingVerification)
def pending_verification(
    owner_id: str = Depends(require_owner),
    repository: ProspectingRepository = Depends(get_repository),
) -> PendingVerification:
    return PendingVerification(pending=repository.count_pending_verification(owner_id))


@router.post("/leads/verify-marketing/batch", response_model=BatchVerificationReport)
def run_batch_verification(
    owner_id: str = Depends(require_owner),
    batch: BatchVerifier = Depends(get_batch_verifier),
) -> BatchVerificationReport:
    """Verify every pending lead one at a time; blocks until the batch ends."""
    return batch.run_batch(owner_id)


@router.get("/leads/{lead_id}", response_model=Lead)
def get_lead(
    lead_id: UUID,
    owner_id: str = Depends(require_owner),
    repository: ProspectingRepository = Depends(get_repository),
) -> Lead:
    return _load_lead(repository, owner_id, lead_id)


@router.patch("/leads/{lead_id}", response_model=Lead)
def update_lead(
    lead_id: UUID,
    payload: LeadUpdate,
    owner_id: str = Depends(require_owner),
    repository: ProspectingRepository = Depends(get_repository),
) -> Lead:
    lead = _load_lead(repository, owner_id, lead_id)
    changes = payload.model_dump(exclude_unset=True)
    new_status = changes.pop("status", None)
    if changes:
        lead = lead.model_copy(update=changes)
    if new_status is not None:
        lead = apply_manual_status(lead, LeadStatus(new_status))
    return repository.update_lead(lead)


@router.delete("/leads/{lead_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_lead(
    lead_id: UUID,
    owner_id: str = Depends(require_owner),
    repository: ProspectingRepository = Depends(get_repository),
) -> Response:
    if not repository.delete_lead(owner_id, lead_id):
        raise LeadNotFoundError()
    logger.info("prospecting.lead.deleted", extra={"owner_id": owner_id, "lead_id": str(lead_id)})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/leads/{lead_id}/interactions", response_model=list[Interaction])
def list_interactions(
    lead_id: UUID,
    owner_id: str = Depends(require_owner),
    service: InteractionService = Depends(get_interaction_service),
) -> list[Interaction]:
    return service.list(owner_id, lead_id)


@router.post(
    "/leads/{lead_id}/interactions",
    response_model=InteractionCreated,
    status_code=status.HTTP_201_CREATED,
)
def create_interaction(
    lead_id: UUID,
    payload: InteractionCreate,
    owner_id: str = Depends(require_owner),
    service: InteractionService = Depends(get_interaction_service),
) -> InteractionCreated:
    result = service.log(
        owner_id,
        lead_id,
        interaction_type=payload.type,
        direction=payload.direction,
        content=payload.content,
        outcome=payload.outcome,
    )
    return InteractionCreated(
        interaction=result.interaction,
        lead_status=result.lead.status,
        transitioned=result.transitioned,
    )


@router.post("/leads/{lead_id}/verify-marketing", response_model=Lead)
def verify_lead_marketing(
    lead_id: UUID,
    owner_id: str = Depends(require_owner),
    repository: ProspectingRepository = Depends(get_repository),
    verifier: MarketingVerifier = Depends(get_marketing_verifier),
) -> Lead:
    lead = _load_lead(repository, owner_id, lead_id)
    if not lead.has_website:
        raise ProspectingValidationError("Lead has no website to verify.")
    result = verifier.verify(lead.website, str(lead.id))
    return repository.update_marketing(apply_verification(lead, result))


@router.post("/leads/{lead_id}/analyze", response_model=Lead)
def analyze_lead(
    lead_id: UUID,
    owner_id: str = Depends(require_owner),
    repository: ProspectingRepository = Depends(get_repository),
    analyzer: LeadAnalyzer = Depends(get_lead_analyzer),
) -> Lead:
    """Run the AI analysis for one lead; blocks until the service answers."""
    lead = _load_lead(repository, owner_id, lead_id)
    return repository.update_analysis(analyzer.analyze(lead))


@router.get("/leads/{lead_id}/diagnosis", response_model=DiagnosisView)
def get_diagnosis(
    lead_id: UUID,
    owner_id: str = Depends(require_owner),
    repository: ProspectingRepository = Depends(get_repository),
) -> DiagnosisView:
    return _diagnosis_view(_load_lead(repository, owner_id, lead_id))


@router.put("/leads/{lead_id}/diagnosis", response_model=DiagnosisView)
def put_diagnosis(
    lead_id: UUID,
    payload: dict[str, Any] = Body(...),
    owner_id: str = Depends(require_owner),
    repository: ProspectingRepository = Depends(get_repository),
) -> DiagnosisView:
    lead = _load_lead(repository, owner_id, lead_id)
    return _diagnosis_view(repository.update_lead(attach_diagnosis(lead, payload)))


@router.delete("/leads/{lead_id}/diagnosis", response_model=DiagnosisView)
def delete_diagnosis(
    lead_id: UUID,
    owner_id: str = Depends(require_owner),
    repository: ProspectingRepository = Depends(get_repository),
) -> DiagnosisView:
    lead = _load_lead(repository, owner_id, lead_id)
    return _diagnosis_view(repository.update_lead(clear_diagnosis(lead)))


def _diagnosis_view(lead: Lead) -> DiagnosisView:
    return DiagnosisView(
        lead_id=lead.id,
        diagnosis=lead.diagnosis,
        temperature=lead.diagnosis_temperature,
        score=lead.diagnosis_score,
    )
