from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from leadsniper.config import settings
from leadsniper.core.database import check_database_health
from leadsniper.services.prospecting.dependencies import get_repository
from leadsniper.services.prospecting.repositories import (
    ProspectingRepository,
    SqlProspectingRepository,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _configured(value: str | None) -> str:
    return "configured" if value else "not configured"


def _identity() -> dict[str, str]:
    return {"version": settings.app_version, "environment": settings.environment}


@router.get("")
def health_check():
    """Liveness check; never touches storage."""
    return {"status": "healthy", **_identity()}


@router.get("/ready")
def readiness_check(repository: ProspectingRepository = Depends(get_repository)):
    """Readiness check: storage must answer, upstream webhooks are reported only."""
    engine = repository.engine if isinstance(repository, SqlProspectingRepository) else None
    if not check_database_health(engine):
        logger.warning("health.ready.database_unavailable")
        raise HTTPException(status_code=503, detail="Database is not available")

    components = {
        "database": "connected" if engine is not None else "not configured",
        "discovery": _configured(settings.discovery_webhook_url),
        "verification": _configured(settings.verification_webhook_url),
        "analysis": _configured(settings.analysis_webhook_url),
        "whatsapp": _configured(settings.whatsapp_api_base_url),
    }
    return {"status": "ready", **_identity(), **components}
