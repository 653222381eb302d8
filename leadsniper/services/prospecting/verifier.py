"""Marketing-stack verification for a lead's website."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Final, Protocol

from leadsniper.models.lead import Lead, MarketingLevel, MarketingVerification, Opportunity
from leadsniper.observability.metrics import metrics
from leadsniper.services.prospecting.errors import (
    ProspectingValidationError,
    VerificationError,
)
from leadsniper.services.prospecting.scoring import score_lead

logger = logging.getLogger(__name__)

# (domain field, remote key, weight)
DETECTIONS: Final[tuple[tuple[str, str, int], ...]] = (
    ("google_ads", "fazGoogleAds", 2),
    ("facebook_ads", "fazFacebookAds", 2),
    ("tiktok_ads", "usaTikTokAds", 2),
    ("linkedin_ads", "usaLinkedInAds", 2),
    ("google_analytics", "usaGoogleAnalytics", 1),
    ("google_tag_manager", "usaGoogleTagManager", 1),
    ("hotjar", "usaHotjar", 1),
    ("rd_station", "usaRDStation", 1),
)

LEVEL_BONUS: Final[dict[MarketingLevel, int]] = {
    MarketingLevel.NONE: 20,
    MarketingLevel.BASIC: 10,
    MarketingLevel.INTERMEDIATE: 5,
    MarketingLevel.ADVANCED: 0,
}

LEVEL_OPPORTUNITY: Final[dict[MarketingLevel, Opportunity]] = {
    MarketingLevel.NONE: Opportunity.MAXIMUM,
    MarketingLevel.BASIC: Opportunity.HIGH,
    MarketingLevel.INTERMEDIATE: Opportunity.MEDIUM,
    MarketingLevel.ADVANCED: Opportunity.LOW,
}


class VerificationBackend(Protocol):
    def verify(self, website_url: str, lead_id: str) -> Mapping[str, Any]:
        ...


def level_for_weight(weight: int) -> MarketingLevel:
    if weight <= 0:
        return MarketingLevel.NONE
    if weight <= 2:
        return MarketingLevel.BASIC
    if weight <= 4:
        return MarketingLevel.INTERMEDIATE
    return MarketingLevel.ADVANCED


def summarize_detections(
    flags: Mapping[str, bool],
    *,
    details: list[str] | None = None,
    verified_at: datetime | None = None,
) -> MarketingVerification:
    """Derive level, bonus and opportunity from per-platform detections."""
    weight = sum(points for field, _, points in DETECTIONS if flags.get(field))
    level = level_for_weight(weight)
    return MarketingVerification(
        **{field: bool(flags.get(field)) for field, _, _ in DETECTIONS},
        details=details or [],
        level=level,
        bonus=LEVEL_BONUS[level],
        opportunity=LEVEL_OPPORTUNITY[level],
        verified=True,
        verified_at=verified_at or datetime.now(timezone.utc),
    )


def interpret_detections(payload: Mapping[str, Any]) -> MarketingVerification:
    """Summarize a remote detection payload keyed by the webhook field names."""
    return summarize_detections(
        {field: _truthy(payload.get(remote)) for field, remote, _ in DETECTIONS},
        details=_details(payload.get("adsDetalhes")),
        verified_at=_parse_timestamp(payload.get("verificadoEm") or payload.get("analisadoEm")),
    )


def apply_verification(lead: Lead, result: MarketingVerification) -> Lead:
    """Return a copy of ``lead`` carrying ``result`` with its score recomputed."""
    return score_lead(lead.model_copy(update={"marketing": result}))


class MarketingVerifier:
    """Calls the verification backend and interprets its detections."""

    def __init__(self, backend: VerificationBackend) -> None:
        self._backend = backend

    def verify(self, website_url: str | None, lead_id: str) -> MarketingVerification:
        """Verify one website; raises VerificationError on any backend failure."""
        if not website_url or not website_url.strip():
            raise ProspectingValidationError("Lead has no website to verify.")
        with metrics.timed("prospecting.verification.latency_ms") as tags:
            try:
                payload = self._backend.verify(website_url.strip(), lead_id)
            except VerificationError as exc:
                tags["outcome"] = "error"
                metrics.increment(
                    "prospecting.verification.failed", tags={"code": exc.code}
                )
                logger.warning(
                    "prospecting.verification.failed",
                    extra={"lead_id": lead_id, "code": exc.code},
                )
                raise
            tags["outcome"] = "ok"
        result = interpret_detections(payload)
        remote_level = payload.get("nivelMarketingDigital")
        if remote_level and str(remote_level).upper() != result.level.value:
            logger.info(
                "prospecting.verification.level_mismatch",
                extra={"lead_id": lead_id, "remote": remote_level, "local": result.level.value},
            )
        metrics.increment("prospecting.verification.completed", tags={"level": result.level.value})
        return result


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "sim", "yes"}
    return bool(value)


def _details(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(item) for item in value if item]
    if isinstance(value, Mapping):
        return [f"{key}: {item}" for key, item in value.items() if item]
    return []


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
