"""Process-wide service singletons used by API routes and pipelines."""

from __future__ import annotations

from fastapi import Depends

from leadsniper.clients.analysis import AnalysisClient
from leadsniper.clients.discovery import DiscoveryClient
from leadsniper.clients.verification import VerificationClient
from leadsniper.clients.whatsapp import WhatsAppClient
from leadsniper.config import settings
from leadsniper.services.prospecting.analysis import LeadAnalyzer
from leadsniper.services.prospecting.batch import BatchVerifier
from leadsniper.services.prospecting.interactions import InteractionService
from leadsniper.services.prospecting.outreach import OutreachDispatcher
from leadsniper.services.prospecting.pipeline import ProspectingPipeline
from leadsniper.services.prospecting.repositories import (
    ProspectingRepository,
    build_prospecting_repository,
)
from leadsniper.services.prospecting.research import ResearchOrchestrator
from leadsniper.services.prospecting.verifier import MarketingVerifier

_REPOSITORY: ProspectingRepository | None = None
_VERIFICATION_CLIENT: VerificationClient | None = None
_DISCOVERY_CLIENT: DiscoveryClient | None = None
_WHATSAPP_CLIENT: WhatsAppClient | None = None
_ANALYSIS_CLIENT: AnalysisClient | None = None


def get_repository() -> ProspectingRepository:
    """Singleton accessor used by API routes."""
    global _REPOSITORY  # noqa: PLW0603
    if _REPOSITORY is None:
        _REPOSITORY = build_prospecting_repository()
    return _REPOSITORY


def get_research_orchestrator(
    repository: ProspectingRepository = Depends(get_repository),
) -> ResearchOrchestrator:
    global _DISCOVERY_CLIENT  # noqa: PLW0603
    if _DISCOVERY_CLIENT is None and settings.discovery_webhook_url:
        _DISCOVERY_CLIENT = DiscoveryClient.from_settings()
    return ResearchOrchestrator(repository, _DISCOVERY_CLIENT)


def get_marketing_verifier() -> MarketingVerifier:
    """Raises ServiceNotConfiguredError when no verification webhook is set."""
    global _VERIFICATION_CLIENT  # noqa: PLW0603
    if _VERIFICATION_CLIENT is None:
        _VERIFICATION_CLIENT = VerificationClient.from_settings()
    return MarketingVerifier(_VERIFICATION_CLIENT)


def get_batch_verifier(
    repository: ProspectingRepository = Depends(get_repository),
    verifier: MarketingVerifier = Depends(get_marketing_verifier),
) -> BatchVerifier:
    return BatchVerifier(repository, verifier)


def get_interaction_service(
    repository: ProspectingRepository = Depends(get_repository),
) -> InteractionService:
    return InteractionService(repository)


def get_outreach_dispatcher(
    repository: ProspectingRepository = Depends(get_repository),
) -> OutreachDispatcher:
    global _WHATSAPP_CLIENT  # noqa: PLW0603
    if _WHATSAPP_CLIENT is None:
        _WHATSAPP_CLIENT = WhatsAppClient.from_settings()
    return OutreachDispatcher(
        repository,
        _WHATSAPP_CLIENT,
        instances=settings.whatsapp_instances,
        interactions=InteractionService(repository),
    )


def get_lead_analyzer() -> LeadAnalyzer:
    """Raises ServiceNotConfiguredError when no analysis webhook is set."""
    global _ANALYSIS_CLIENT  # noqa: PLW0603
    if _ANALYSIS_CLIENT is None:
        _ANALYSIS_CLIENT = AnalysisClient.from_settings()
    return LeadAnalyzer(_ANALYSIS_CLIENT)


def get_prospecting_pipeline(
    repository: ProspectingRepository = Depends(get_repository),
    orchestrator: ResearchOrchestrator = Depends(get_research_orchestrator),
) -> ProspectingPipeline:
    """Stages whose webhook is not configured are left out and reported as skipped."""
    verifier = get_marketing_verifier() if settings.verification_webhook_url else None
    analyzer = get_lead_analyzer() if settings.analysis_webhook_url else None
    return ProspectingPipeline(repository, orchestrator, verifier=verifier, analyzer=analyzer)
