"""Research orchestrator: discovery, mapping, deduplicating persistence."""

from __future__ import annotations

import logging
import secrets
import string
import time
from collections.abc import Iterable
from typing import Protocol
from uuid import UUID

from leadsniper.clients.discovery import DiscoveryResult
from leadsniper.config import settings
from leadsniper.models.lead import Classification, Lead
from leadsniper.models.research import (
    RESEARCH_VERSION,
    VOICE_TONES,
    ResearchOutcome,
    ResearchRequest,
    ResearchRun,
    RunStatistics,
    RunStatus,
)
from leadsniper.observability.metrics import metrics
from leadsniper.services.prospecting.errors import (
    PersistenceError,
    ProspectingError,
    ProspectingValidationError,
    ServiceNotConfiguredError,
)
from leadsniper.services.prospecting.mapper import candidate_to_lead
from leadsniper.services.prospecting.repositories import ProspectingRepository

logger = logging.getLogger(__name__)

_REQUEST_ID_ALPHABET = string.ascii_lowercase + string.digits


class DiscoveryBackend(Protocol):
    def discover(self, request: ResearchRequest, *, request_id: str) -> DiscoveryResult:
        ...


def generate_request_id() -> str:
    suffix = "".join(secrets.choice(_REQUEST_ID_ALPHABET) for _ in range(9))
    return f"v3_{int(time.time() * 1000)}_{suffix}"


def normalize_request(request: ResearchRequest) -> ResearchRequest:
    """Validate required fields and apply defaults.

    Quantity is clamped into the configured bounds and an unknown tone falls
    back to the default one.
    """
    business_type = (request.business_type or "").strip()
    city = (request.city or "").strip()
    if not business_type:
        raise ProspectingValidationError("business_type is required.")
    if not city:
        raise ProspectingValidationError("city is required.")

    low, high = settings.research_quantity_bounds
    quantity = request.quantity if request.quantity is not None else settings.research_default_quantity
    tone = (request.tone or "").strip().lower()
    if tone not in VOICE_TONES:
        tone = settings.research_default_tone
    return ResearchRequest(
        business_type=business_type,
        city=city,
        state=((request.state or "").strip() or settings.research_default_state).upper(),
        quantity=min(max(quantity, low), high),
        agency_name=_clean(request.agency_name),
        specialty=_clean(request.specialty),
        proposal=_clean(request.proposal),
        tone=tone,
    )


def compute_run_statistics(
    leads: Iterable[Lead], *, new: int = 0, duplicates: int = 0, failed: int = 0
) -> RunStatistics:
    """Snapshot counts over the leads a run actually persisted."""
    stats = RunStatistics(new=new, duplicates=duplicates, failed=failed)
    for lead in leads:
        stats.total += 1
        if lead.classification is Classification.HOT:
            stats.hot += 1
        elif lead.classification is Classification.WARM:
            stats.warm += 1
        elif lead.classification is Classification.COOL:
            stats.cool += 1
        else:
            stats.cold += 1
        if lead.has_website:
            stats.with_website += 1
        else:
            stats.without_website += 1
        if lead.has_whatsapp:
            stats.with_whatsapp += 1
        if lead.icebreaker:
            stats.with_icebreaker += 1
    return stats


class ResearchOrchestrator:
    """Drives one research run from request to a terminal state."""

    def __init__(
        self,
        repository: ProspectingRepository,
        discovery: DiscoveryBackend | None,
    ) -> None:
        self._repository = repository
        self._discovery = discovery

    def run(self, owner_id: str, request: ResearchRequest) -> ResearchOutcome:
        """Execute a run; every failure comes back as a structured outcome."""
        try:
            return self._run(owner_id, request)
        except ProspectingError as exc:
            logger.warning(
                "research.run.rejected", extra={"owner_id": owner_id, "code": exc.code}
            )
            return ResearchOutcome(success=False, error=str(exc), code=exc.code)
        except Exception:
            logger.exception("research.run.unexpected_error", extra={"owner_id": owner_id})
            return ResearchOutcome(
                success=False, error="Unexpected error during research.", code="500_INTERNAL"
            )

    def _run(self, owner_id: str, request: ResearchRequest) -> ResearchOutcome:
        params = normalize_request(request)
        if self._discovery is None:
            raise ServiceNotConfiguredError("Discovery webhook URL is not configured.")

        request_id = generate_request_id()
        run = self._repository.create_run(
            ResearchRun(
                owner_id=owner_id,
                request_id=request_id,
                business_type=params.business_type,
                cities=[params.city],
                state=params.state or settings.research_default_state,
                quantity=params.quantity or settings.research_default_quantity,
                agency_name=params.agency_name,
                specialty=params.specialty,
                proposal=params.proposal,
                tone=params.tone,
                version=RESEARCH_VERSION,
            )
        )
        logger.info(
            "research.run.started",
            extra={
                "owner_id": owner_id,
                "run_id": str(run.id),
                "request_id": request_id,
                "business_type": params.business_type,
                "city": params.city,
                "quantity": params.quantity,
            },
        )
        try:
            with metrics.timed("research.discovery.latency_ms") as tags:
                try:
                    result = self._discovery.discover(params, request_id=request_id)
                except Exception:
                    tags["outcome"] = "error"
                    raise
                tags["outcome"] = "ok"
        except Exception as exc:
            return self._fail(run, exc)

        try:
            return self._persist(run, owner_id, params, result)
        except Exception as exc:
            return self._fail(run, exc)

    def _persist(
        self,
        run: ResearchRun,
        owner_id: str,
        params: ResearchRequest,
        result: DiscoveryResult,
    ) -> ResearchOutcome:
        # lead id -> latest stored copy; a place repeated in one response counts once
        accepted: dict[UUID, Lead] = {}
        new = duplicates = failed = 0
        for index, candidate in enumerate(result.candidates):
            try:
                lead = candidate_to_lead(
                    candidate, owner_id=owner_id, run_id=run.id, state=params.state
                )
            except Exception:
                logger.exception(
                    "research.lead.mapping_failed", extra={"run_id": str(run.id), "index": index}
                )
                lead = None
            if lead is None:
                failed += 1
                continue
            try:
                outcome = self._repository.upsert(lead, owner_id)
            except PersistenceError as exc:
                failed += 1
                logger.warning(
                    "research.lead.persist_failed",
                    extra={"run_id": str(run.id), "place_id": lead.place_id, "code": exc.code},
                )
                continue
            if outcome.is_new:
                new += 1
            else:
                duplicates += 1
            accepted[outcome.id] = self._repository.get_lead(owner_id, outcome.id) or lead

        leads = sorted(accepted.values(), key=lambda item: item.score, reverse=True)
        statistics = compute_run_statistics(
            leads, new=new, duplicates=duplicates, failed=failed
        )
        finished = self._repository.finish_run(
            run.id, status=RunStatus.COMPLETED, statistics=statistics
        )
        metrics.increment("research.run.completed")
        metrics.gauge("research.run.leads_new", new, tags={"owner_id": owner_id})
        logger.info(
            "research.run.completed",
            extra={
                "owner_id": owner_id,
                "run_id": str(run.id),
                "candidates": len(result.candidates),
                "new": new,
                "duplicates": duplicates,
                "failed": failed,
            },
        )
        return ResearchOutcome(
            success=True,
            run_id=finished.id,
            status=finished.status,
            statistics=statistics,
            leads=leads,
        )

    def _fail(self, run: ResearchRun, exc: Exception) -> ResearchOutcome:
        if isinstance(exc, ProspectingError):
            message, code = str(exc), exc.code
        else:
            message, code = "Unexpected error during research.", "500_INTERNAL"
        logger.error(
            "research.run.failed",
            extra={"run_id": str(run.id), "code": code, "error": type(exc).__name__},
            exc_info=not isinstance(exc, ProspectingError),
        )
        metrics.increment("research.run.failed", tags={"code": code})
        try:
            self._repository.finish_run(run.id, status=RunStatus.FAILED, error_message=message)
        except ProspectingError:
            logger.exception("research.run.finish_failed", extra={"run_id": str(run.id)})
        return ResearchOutcome(
            success=False,
            run_id=run.id,
            status=RunStatus.FAILED,
            error=message,
            code=code,
        )


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None
