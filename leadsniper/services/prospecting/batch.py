"""Sequential, paced marketing verification over an owner's backlog."""

from __future__ import annotations

import logging
from uuid import UUID

from pydantic import BaseModel, Field

from leadsniper.config import settings
from leadsniper.models.lead import Lead, MarketingLevel, Opportunity
from leadsniper.observability.metrics import metrics
from leadsniper.services.prospecting.errors import ProspectingError
from leadsniper.services.prospecting.pacing import FixedIntervalPacer, Pacer
from leadsniper.services.prospecting.repositories import ProspectingRepository
from leadsniper.services.prospecting.verifier import MarketingVerifier, apply_verification

logger = logging.getLogger(__name__)


class LeadVerificationOutcome(BaseModel):
    lead_id: UUID
    name: str
    success: bool
    level: MarketingLevel | None = None
    opportunity: Opportunity | None = None
    opportunity_label: str | None = None
    score: int | None = None
    error: str | None = None
    code: str | None = None


class BatchVerificationReport(BaseModel):
    """Summary of one batch pass; ``succeeded + failed == total``."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    with_google_ads: int = 0
    with_facebook_ads: int = 0
    with_active_ads: int = 0
    without_marketing: int = 0
    outcomes: list[LeadVerificationOutcome] = Field(default_factory=list)


class BatchVerifier:
    """Verifies pending leads one at a time with a pause between calls."""

    def __init__(
        self,
        repository: ProspectingRepository,
        verifier: MarketingVerifier,
        *,
        pacer: Pacer | None = None,
    ) -> None:
        self._repository = repository
        self._verifier = verifier
        self._pacer = pacer or FixedIntervalPacer(settings.batch_verification_delay_seconds)

    def pending_count(self, owner_id: str) -> int:
        return self._repository.count_pending_verification(owner_id)

    def run_batch(self, owner_id: str) -> BatchVerificationReport:
        leads = self._repository.pending_verification(owner_id)
        report = BatchVerificationReport(total=len(leads))
        logger.info(
            "verification.batch.started", extra={"owner_id": owner_id, "total": report.total}
        )
        for index, lead in enumerate(leads):
            try:
                result = self._verifier.verify(lead.website, str(lead.id))
                updated = self._repository.update_marketing(apply_verification(lead, result))
            except ProspectingError as exc:
                self._record_failure(report, owner_id, lead, str(exc), exc.code)
            except Exception as exc:
                logger.exception(
                    "verification.batch.lead_crashed",
                    extra={"owner_id": owner_id, "lead_id": str(lead.id)},
                )
                self._record_failure(
                    report, owner_id, lead, f"Unexpected error: {type(exc).__name__}", "500_INTERNAL"
                )
            else:
                report.succeeded += 1
                if result.google_ads:
                    report.with_google_ads += 1
                if result.facebook_ads:
                    report.with_facebook_ads += 1
                if result.runs_paid_ads:
                    report.with_active_ads += 1
                if not result.has_any_marketing:
                    report.without_marketing += 1
                report.outcomes.append(
                    LeadVerificationOutcome(
                        lead_id=updated.id,
                        name=updated.name,
                        success=True,
                        level=result.level,
                        opportunity=result.opportunity,
                        opportunity_label=result.opportunity_label,
                        score=updated.score,
                    )
                )
            self._pacer.wait(index, report.total)

        metrics.increment("verification.batch.completed")
        metrics.gauge("verification.batch.failed", report.failed, tags={"owner_id": owner_id})
        logger.info(
            "verification.batch.completed",
            extra={
                "owner_id": owner_id,
                "total": report.total,
                "succeeded": report.succeeded,
                "failed": report.failed,
            },
        )
        return report

    def _record_failure(
        self,
        report: BatchVerificationReport,
        owner_id: str,
        lead: Lead,
        error: str,
        code: str,
    ) -> None:
        report.failed += 1
        report.outcomes.append(
            LeadVerificationOutcome(
                lead_id=lead.id, name=lead.name, success=False, error=error, code=code
            )
        )
        metrics.increment("verification.batch.lead_failed", tags={"code": code})
        logger.warning(
            "verification.batch.lead_failed",
            extra={"owner_id": owner_id, "lead_id": str(lead.id), "code": code},
        )
