"""API endpoints for research runs and the combined prospecting pipeline."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from leadsniper.api.errors import map_error_code, require_owner
from leadsniper.models.lead import Lead
from leadsniper.models.research import ResearchOutcome, ResearchRequest, ResearchRun
from leadsniper.services.prospecting.dependencies import (
    get_prospecting_pipeline,
    get_repository,
    get_research_orchestrator,
)
from leadsniper.services.prospecting.errors import ResearchRunNotFoundError
from leadsniper.services.prospecting.pipeline import (
    PipelineOptions,
    PipelineReport,
    ProspectingPipeline,
)
from leadsniper.services.prospecting.repositories import LeadFilters, ProspectingRepository
from leadsniper.services.prospecting.research import ResearchOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


class ResearchRunCreate(BaseModel):
    """Request payload for starting a research run."""

    business_type: str = Field(..., description="Segment to search for, e.g. 'academia'.")
    city: str
    state: str | None = None
    quantity: int | None = Field(default=None, description="Clamped into the configured bounds.")
    agency_name: str | None = None
    specialty: str | None = None
    proposal: str | None = None
    tone: str | None = None


class PipelineRunCreate(ResearchRunCreate):
    verify_marketing: bool = True
    analyze: bool = True
    min_score: int | None = None


class ResearchRunDetail(BaseModel):
    run: ResearchRun
    leads: list[Lead]


@router.post("/research-runs", response_model=ResearchOutcome, status_code=status.HTTP_201_CREATED)
def create_research_run(
    payload: ResearchRunCreate,
    owner_id: str = Depends(require_owner),
    orchestrator: ResearchOrchestrator = Depends(get_research_orchestrator),
) -> ResearchOutcome:
    """Run discovery synchronously and persist its leads."""
    outcome = orchestrator.run(owner_id, ResearchRequest(**payload.model_dump()))
    if not outcome.success:
        _raise_failed_research("research.api_error", owner_id, outcome)
    return outcome


@router.post("/leads/pipeline", response_model=PipelineReport)
def run_pipeline(
    payload: PipelineRunCreate,
    owner_id: str = Depends(require_owner),
    pipeline: ProspectingPipeline = Depends(get_prospecting_pipeline),
) -> PipelineReport:
    """Research, verify and analyse in one blocking call.

    Only a failed research step fails the request; per-lead errors are listed
    in the report.
    """
    options = PipelineOptions(
        verify_marketing=payload.verify_marketing,
        analyze=payload.analyze,
        min_score=payload.min_score,
    )
    request = ResearchRequest(**payload.model_dump(exclude=set(PipelineOptions.model_fields)))
    report = pipeline.run(owner_id, request, options)
    if not report.success:
        _raise_failed_research("pipeline.api_error", owner_id, report.research)
    return report


@router.get("/research-runs", response_model=list[ResearchRun])
def list_research_runs(
    limit: int = Query(50, ge=1, le=200),
    owner_id: str = Depends(require_owner),
    repository: ProspectingRepository = Depends(get_repository),
) -> list[ResearchRun]:
    return repository.list_runs(owner_id, limit=limit)


@router.get("/research-runs/{run_id}", response_model=ResearchRunDetail)
def get_research_run(
    run_id: UUID,
    owner_id: str = Depends(require_owner),
    repository: ProspectingRepository = Depends(get_repository),
) -> ResearchRunDetail:
    run = repository.get_run(owner_id, run_id)
    if run is None:
        raise ResearchRunNotFoundError()
    page = repository.list_leads(owner_id, LeadFilters(research_run_id=run_id), limit=100)
    return ResearchRunDetail(run=run, leads=page.items)


def _raise_failed_research(event: str, owner_id: str, outcome: ResearchOutcome) -> None:
    logger.error(
        event,
        extra={"owner_id": owner_id, "code": outcome.code, "run_id": str(outcome.run_id)},
    )
    raise HTTPException(
        status_code=map_error_code(outcome.code),
        detail={
            "error": outcome.error,
            "code": outcome.code,
            "run_id": str(outcome.run_id) if outcome.run_id else None,
        },
    )
