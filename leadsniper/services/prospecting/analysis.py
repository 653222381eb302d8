"""Per-lead AI analysis and how its result lands on a lead."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol

from leadsniper.models.lead import Lead, LeadAnalysis, MarketingVerification
from leadsniper.observability.metrics import metrics
from leadsniper.services.prospecting.errors import AnalysisError, ProspectingValidationError
from leadsniper.services.prospecting.mapper import analysis_from_payload
from leadsniper.services.prospecting.verifier import apply_verification, interpret_detections

logger = logging.getLogger(__name__)


class AnalysisBackend(Protocol):
    def analyze(self, place_id: str, lead_id: str) -> Mapping[str, Any]:
        ...


def apply_analysis(
    lead: Lead, analysis: LeadAnalysis, marketing: MarketingVerification | None = None
) -> Lead:
    """Attach ``analysis``; detections reported alongside it rescore the lead.

    The local score stays authoritative. The remote score is kept on the
    analysis as ``ai_score`` only.
    """
    updated = lead.model_copy(update={"analysis": analysis})
    if marketing is not None:
        updated = apply_verification(updated, marketing)
    return updated


class LeadAnalyzer:
    def __init__(self, backend: AnalysisBackend) -> None:
        self._backend = backend

    def analyze(self, lead: Lead) -> Lead:
        """Return ``lead`` carrying a fresh analysis; raises AnalysisError upstream."""
        if not lead.legacy_place_id:
            raise ProspectingValidationError("Lead has no Google place id to analyse.")
        with metrics.timed("prospecting.analysis.latency_ms") as tags:
            try:
                payload = self._backend.analyze(lead.legacy_place_id, str(lead.id))
            except AnalysisError as exc:
                tags["outcome"] = "error"
                metrics.increment("prospecting.analysis.failed", tags={"code": exc.code})
                logger.warning(
                    "prospecting.analysis.failed",
                    extra={"lead_id": str(lead.id), "code": exc.code},
                )
                raise
            tags["outcome"] = "ok"

        analysis = analysis_from_payload(payload)
        detections = payload.get("marketingDigital")
        marketing = interpret_detections(detections) if isinstance(detections, Mapping) else None
        metrics.increment("prospecting.analysis.completed")
        logger.info(
            "prospecting.analysis.completed",
            extra={
                "lead_id": str(lead.id),
                "ai_score": analysis.ai_score,
                "marketing_included": marketing is not None,
            },
        )
        return apply_analysis(lead, analysis, marketing)
