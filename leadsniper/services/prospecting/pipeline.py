"""Research, then verify, then analyse: one prospecting pass end to end."""

from __future__ import annotations

import logging
from collections.abc import Callable
from uuid import UUID

from pydantic import BaseModel, Field

from leadsniper.config import settings
from leadsniper.models.lead import Classification, Lead
from leadsniper.models.research import ResearchOutcome, ResearchRequest
from leadsniper.observability.metrics import metrics
from leadsniper.services.prospecting.analysis import LeadAnalyzer
from leadsniper.services.prospecting.errors import ProspectingError
from leadsniper.services.prospecting.pacing import FixedIntervalPacer, Pacer
from leadsniper.services.prospecting.repositories import ProspectingRepository
from leadsniper.services.prospecting.research import ResearchOrchestrator
from leadsniper.services.prospecting.verifier import MarketingVerifier, apply_verification

logger = logging.getLogger(__name__)

ANALYSED_TIERS = frozenset({Classification.HOT, Classification.WARM})


class PipelineOptions(BaseModel):
    verify_marketing: bool = True
    analyze: bool = True
    min_score: int | None = Field(
        default=None, description="Only analyse leads at or above this score."
    )


class PipelineLeadError(BaseModel):
    lead_id: UUID
    name: str
    stage: str
    error: str
    code: str


class PipelineReport(BaseModel):
    """Outcome of a pipeline pass; per-lead failures never fail the pass."""

    success: bool
    research: ResearchOutcome
    verified: int = 0
    analyzed: int = 0
    skipped_stages: list[str] = Field(default_factory=list)
    errors: list[PipelineLeadError] = Field(default_factory=list)
    leads: list[Lead] = Field(default_factory=list)


class ProspectingPipeline:
    """Runs a research request and enriches the resulting leads in place.

    Verification covers leads of the run that have a website and no
    verification yet. Analysis covers HOT and WARM leads that carry a Google
    place id and no previous analysis. A stage whose service is not configured
    is skipped and reported.
    """

    def __init__(
        self,
        repository: ProspectingRepository,
        orchestrator: ResearchOrchestrator,
        *,
        verifier: MarketingVerifier | None = None,
        analyzer: LeadAnalyzer | None = None,
        verification_pacer: Pacer | None = None,
        analysis_pacer: Pacer | None = None,
    ) -> None:
        self._repository = repository
        self._orchestrator = orchestrator
        self._verifier = verifier
        self._analyzer = analyzer
        self._verification_pacer = verification_pacer or FixedIntervalPacer(
            settings.batch_verification_delay_seconds
        )
        self._analysis_pacer = analysis_pacer or FixedIntervalPacer(
            settings.pipeline_analysis_delay_seconds
        )

    def run(
        self, owner_id: str, request: ResearchRequest, options: PipelineOptions | None = None
    ) -> PipelineReport:
        options = options or PipelineOptions()
        research = self._orchestrator.run(owner_id, request)
        report = PipelineReport(success=research.success, research=research)
        if not research.success:
            return report

        leads = {lead.id: lead for lead in research.leads}
        if options.verify_marketing:
            if self._verifier is None:
                self._skip(report, owner_id, "verification")
            else:
                pending = [lead for lead in leads.values() if _wants_verification(lead)]
                report.verified = self._each(
                    report, owner_id, "verification", pending, self._verify, leads,
                    pacer=self._verification_pacer,
                )
        if options.analyze:
            if self._analyzer is None:
                self._skip(report, owner_id, "analysis")
            else:
                eligible = [
                    lead for lead in leads.values() if _wants_analysis(lead, options.min_score)
                ]
                report.analyzed = self._each(
                    report, owner_id, "analysis", eligible, self._analyse, leads,
                    pacer=self._analysis_pacer,
                )

        report.leads = sorted(leads.values(), key=lambda item: item.score, reverse=True)
        metrics.increment("pipeline.run.completed")
        logger.info(
            "pipeline.run.completed",
            extra={
                "owner_id": owner_id,
                "run_id": str(research.run_id),
                "verified": report.verified,
                "analyzed": report.analyzed,
                "errors": len(report.errors),
            },
        )
        return report

    def _verify(self, lead: Lead) -> Lead:
        result = self._verifier.verify(lead.website, str(lead.id))
        return self._repository.update_marketing(apply_verification(lead, result))

    def _analyse(self, lead: Lead) -> Lead:
        return self._repository.update_analysis(self._analyzer.analyze(lead))

    def _each(
        self,
        report: PipelineReport,
        owner_id: str,
        stage: str,
        targets: list[Lead],
        step: Callable[[Lead], Lead],
        leads: dict[UUID, Lead],
        *,
        pacer: Pacer,
    ) -> int:
        """Apply ``step`` to each target, replacing it in ``leads``; return the successes."""
        done = 0
        for index, lead in enumerate(targets):
            try:
                leads[lead.id] = step(lead)
            except ProspectingError as exc:
                self._record_error(report, owner_id, stage, lead, str(exc), exc.code)
            except Exception as exc:
                logger.exception(
                    "pipeline.lead.crashed",
                    extra={"owner_id": owner_id, "lead_id": str(lead.id), "stage": stage},
                )
                message = f"Unexpected error: {type(exc).__name__}"
                self._record_error(report, owner_id, stage, lead, message, "500_INTERNAL")
            else:
                done += 1
            pacer.wait(index, len(targets))
        return done

    def _record_error(
        self, report: PipelineReport, owner_id: str, stage: str, lead: Lead, error: str, code: str
    ) -> None:
        report.errors.append(
            PipelineLeadError(lead_id=lead.id, name=lead.name, stage=stage, error=error, code=code)
        )
        metrics.increment("pipeline.lead.failed", tags={"stage": stage, "code": code})
        logger.warning(
            "pipeline.lead.failed",
            extra={"owner_id": owner_id, "lead_id": str(lead.id), "stage": stage, "code": code},
        )

    def _skip(self, report: PipelineReport, owner_id: str, stage: str) -> None:
        report.skipped_stages.append(stage)
        logger.warning("pipeline.stage.skipped", extra={"owner_id": owner_id, "stage": stage})


def _wants_verification(lead: Lead) -> bool:
    return lead.has_website and not lead.marketing_verified


def _wants_analysis(lead: Lead, min_score: int | None) -> bool:
    if lead.classification not in ANALYSED_TIERS or lead.analysis is not None:
        return False
    if not lead.legacy_place_id:
        return False
    return min_score is None or lead.score >= min_score
