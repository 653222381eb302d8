"""Translation between stored lead rows, discovery payloads, and the Lead model.

Every raw shape (ORM row, plain dict, webhook candidate) passes through this
module before the rest of the pipeline sees it. Nothing here raises: missing
values fall back to defaults and unknown enum strings coerce to safe values.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

from pydantic import ValidationError

from leadsniper.config import settings
from leadsniper.models.lead import (
    Classification,
    Interaction,
    InteractionDirection,
    InteractionOutcome,
    InteractionType,
    Lead,
    LeadAnalysis,
    LeadStatus,
    MarketingLevel,
    MarketingVerification,
    Opportunity,
)
from leadsniper.models.records import InteractionRecord, LeadRecord, ResearchRunRecord
from leadsniper.models.research import ResearchRun, RunStatistics, RunStatus
from leadsniper.services.prospecting.scoring import classify, score_lead

logger = logging.getLogger(__name__)

_E = TypeVar("_E", bound=Enum)
_NON_DIGITS = re.compile(r"\D+")

# Storage columns that only a discovery run may write.
DISCOVERY_FIELDS: tuple[str, ...] = (
    "research_run_id",
    "name",
    "address",
    "neighborhood",
    "city",
    "state",
    "category",
    "business_type",
    "phone",
    "has_whatsapp",
    "whatsapp_link",
    "website",
    "social_links",
    "rating",
    "review_count",
    "google_maps_url",
    "opportunities",
    "icebreaker",
    "icebreaker_trigger",
    "icebreaker_ai_generated",
)

_MARKETING_COLUMNS: dict[str, str] = {
    "google_ads": "google_ads",
    "facebook_ads": "facebook_ads",
    "tiktok_ads": "tiktok_ads",
    "linkedin_ads": "linkedin_ads",
    "google_analytics": "google_analytics",
    "google_tag_manager": "google_tag_manager",
    "hotjar": "hotjar",
    "rd_station": "rd_station",
    "details": "marketing_details",
    "level": "marketing_level",
    "bonus": "marketing_bonus",
    "opportunity": "marketing_opportunity",
    "verified": "marketing_verified",
    "verified_at": "marketing_verified_at",
}

MARKETING_STORAGE_COLUMNS: tuple[str, ...] = tuple(_MARKETING_COLUMNS.values())


def normalize_phone(raw: Any) -> str:
    """Strip everything but digits."""
    if raw is None:
        return ""
    return _NON_DIGITS.sub("", str(raw))


def outbound_number(raw: Any, country_code: str | None = None) -> str:
    """Digits-only number with the default country code prefixed when absent."""
    digits = normalize_phone(raw)
    if not digits:
        return ""
    prefix = country_code if country_code is not None else settings.whatsapp_default_country_code
    if prefix and not digits.startswith(prefix):
        return f"{prefix}{digits}"
    return digits


def coerce_enum(enum_cls: type[_E], value: Any, default: _E | None) -> _E | None:
    """Decode a loosely-typed value into ``enum_cls`` or return ``default``."""
    if isinstance(value, enum_cls):
        return value
    if value is None:
        return default
    candidate = str(value).strip().upper()
    for member in enum_cls:
        if member.value.upper() == candidate or member.name == candidate:
            return member
    return default


def to_domain(row: LeadRecord | Mapping[str, Any]) -> Lead:
    """Hydrate a Lead from an ORM row or a storage-shaped mapping."""
    get = _getter(row)
    marketing: MarketingVerification | None = None
    if _as_bool(get("marketing_verified")):
        marketing = MarketingVerification(
            google_ads=_as_bool(get("google_ads")),
            facebook_ads=_as_bool(get("facebook_ads")),
            tiktok_ads=_as_bool(get("tiktok_ads")),
            linkedin_ads=_as_bool(get("linkedin_ads")),
            google_analytics=_as_bool(get("google_analytics")),
            google_tag_manager=_as_bool(get("google_tag_manager")),
            hotjar=_as_bool(get("hotjar")),
            rd_station=_as_bool(get("rd_station")),
            details=_as_str_list(get("marketing_details")),
            level=coerce_enum(MarketingLevel, get("marketing_level"), MarketingLevel.NONE),
            bonus=_as_int(get("marketing_bonus")),
            opportunity=coerce_enum(
                Opportunity, get("marketing_opportunity"), Opportunity.MAXIMUM
            ),
            verified=True,
            verified_at=_as_datetime(get("marketing_verified_at")),
        )

    score = _as_int(get("score"))
    lead_id = _as_uuid(get("id"))
    payload: dict[str, Any] = {
        "owner_id": _as_str(get("owner_id")) or "",
        "place_id": _as_str(get("place_id")) or _as_str(get("legacy_place_id")) or "",
        "legacy_place_id": _as_str(get("legacy_place_id")),
        "research_run_id": _as_uuid(get("research_run_id")),
        "name": _as_str(get("name")) or "",
        "address": _as_str(get("address")),
        "neighborhood": _as_str(get("neighborhood")),
        "city": _as_str(get("city")),
        "state": _as_str(get("state")),
        "category": _as_str(get("category")),
        "business_type": _as_str(get("business_type")),
        "phone": _as_str(get("phone")),
        "has_whatsapp": _as_bool(get("has_whatsapp")),
        "whatsapp_link": _as_str(get("whatsapp_link")),
        "website": _as_str(get("website")),
        "social_links": _as_str_list(get("social_links")),
        "rating": _as_float(get("rating")),
        "review_count": _as_int(get("review_count")),
        "google_maps_url": _as_str(get("google_maps_url")),
        "opportunities": _as_str_list(get("opportunities")),
        "base_score": _as_int(get("base_score")),
        "score": score,
        "classification": classify(score),
        "marketing": marketing,
        "analysis": _stored_analysis(get("analysis")),
        "icebreaker": _as_str(get("icebreaker")),
        "icebreaker_trigger": _as_str(get("icebreaker_trigger")),
        "icebreaker_ai_generated": _as_bool(get("icebreaker_ai_generated")),
        "diagnosis": get("diagnosis") if isinstance(get("diagnosis"), Mapping) else None,
        "diagnosis_temperature": _as_str(get("diagnosis_temperature")),
        "diagnosis_score": _as_optional_int(get("diagnosis_score")),
        "status": coerce_enum(LeadStatus, get("status"), LeadStatus.NOVO),
        "first_contact_at": _as_datetime(get("first_contact_at")),
        "first_response_at": _as_datetime(get("first_response_at")),
        "notes": _as_str(get("notes")),
        "updated_at": _as_datetime(get("updated_at")),
    }
    if lead_id is not None:
        payload["id"] = lead_id
    created_at = _as_datetime(get("created_at"))
    if created_at is not None:
        payload["created_at"] = created_at
    return Lead(**payload)


def to_storage(lead: Lead) -> dict[str, Any]:
    """Flatten a Lead into the column layout of ``leads``."""
    row = lead.model_dump(
        mode="python",
        exclude={"marketing", "analysis", "classification", "status"},
    )
    row["analysis"] = lead.analysis.model_dump(mode="json") if lead.analysis else None
    row["classification"] = classify(lead.score).value
    row["status"] = lead.status.value
    marketing = lead.marketing
    if marketing is None:
        row.update(
            {
                "google_ads": False,
                "facebook_ads": False,
                "tiktok_ads": False,
                "linkedin_ads": False,
                "google_analytics": False,
                "google_tag_manager": False,
                "hotjar": False,
                "rd_station": False,
                "marketing_details": [],
                "marketing_level": None,
                "marketing_bonus": 0,
                "marketing_opportunity": None,
                "marketing_verified": False,
                "marketing_verified_at": None,
            }
        )
    else:
        for field_name, column in _MARKETING_COLUMNS.items():
            value = getattr(marketing, field_name)
            row[column] = value.value if isinstance(value, Enum) else value
    return row


def candidate_to_lead(
    candidate: Mapping[str, Any],
    *,
    owner_id: str,
    run_id: UUID | None,
    state: str | None,
) -> Lead | None:
    """Map one discovery candidate onto a scored Lead.

    Returns ``None`` when the candidate has no usable place identifier or name;
    the remote score and classification are ignored and recomputed locally.
    """
    place_id = _as_str(candidate.get("placeId")) or _as_str(candidate.get("place_id")) or ""
    name = _as_str(candidate.get("nome")) or _as_str(candidate.get("name")) or ""
    if not place_id or not name:
        logger.warning(
            "prospecting.mapper.candidate_skipped",
            extra={"owner_id": owner_id, "has_place_id": bool(place_id), "has_name": bool(name)},
        )
        return None

    whatsapp_link = _as_str(candidate.get("linkWhatsapp"))
    lead = Lead(
        owner_id=owner_id,
        place_id=place_id,
        legacy_place_id=_as_str(candidate.get("googlePlaceId")) or place_id,
        research_run_id=run_id,
        name=name,
        address=_as_str(candidate.get("endereco")),
        neighborhood=_as_str(candidate.get("bairro")),
        city=_as_str(candidate.get("cidade")),
        state=state,
        category=_as_str(candidate.get("categoria")),
        business_type=_as_str(candidate.get("tipoNegocio")),
        phone=_as_str(candidate.get("telefone")) or _as_str(candidate.get("phone")),
        has_whatsapp=bool(whatsapp_link) or _as_bool(candidate.get("temWhatsapp")),
        whatsapp_link=whatsapp_link,
        website=_as_str(candidate.get("website")),
        social_links=_social_links(candidate),
        rating=_as_float(candidate.get("rating")),
        review_count=_as_int(candidate.get("totalAvaliacoes")),
        google_maps_url=_as_str(candidate.get("googleMapsUrl")),
        opportunities=_as_str_list(candidate.get("oportunidades")),
        icebreaker=_as_str(candidate.get("icebreaker")),
        icebreaker_trigger=_as_str(candidate.get("gatilho")),
        icebreaker_ai_generated=_as_bool(candidate.get("icebreakerGeradoPorIA")),
    )
    return score_lead(lead)


def analysis_from_payload(payload: Mapping[str, Any]) -> LeadAnalysis:
    """Map the ``analiseIA`` and ``reviews`` sections of an analysis response."""
    analysis = payload.get("analiseIA")
    if not isinstance(analysis, Mapping):
        analysis = {}
    reviews = payload.get("reviews")
    if not isinstance(reviews, Mapping):
        reviews = {}
    ai_score = analysis.get("scoreFinal")
    if ai_score is None:
        ai_score = analysis.get("scoreIA")
    return LeadAnalysis(
        ai_score=_as_optional_int(ai_score),
        classification=coerce_enum(Classification, analysis.get("classificacao"), None),
        summary=_as_str(analysis.get("resumo")),
        strengths=_as_str_list(analysis.get("pontosFortes")),
        weaknesses=_as_str_list(analysis.get("pontosFracos")),
        marketing_opportunities=_as_str_list(analysis.get("oportunidadesMarketing")),
        sales_arguments=_as_str_list(analysis.get("argumentosVenda")),
        suggested_approach=_as_str(analysis.get("abordagemSugerida")),
        whatsapp_message=_as_str(analysis.get("mensagemWhatsApp")),
        common_complaints=_as_str_list(reviews.get("resumoIA")),
        analyzed_at=_as_datetime(payload.get("analisadoEm")) or datetime.now(timezone.utc),
    )


def interaction_to_domain(row: InteractionRecord | Mapping[str, Any]) -> Interaction:
    get = _getter(row)
    payload: dict[str, Any] = {
        "lead_id": _as_uuid(get("lead_id")),
        "owner_id": _as_str(get("owner_id")) or "",
        "type": coerce_enum(InteractionType, get("type"), InteractionType.NOTA),
        "direction": coerce_enum(InteractionDirection, get("direction"), None),
        "content": get("content") or None,
        "outcome": coerce_enum(InteractionOutcome, get("outcome"), None),
    }
    interaction_id = _as_uuid(get("id"))
    if interaction_id is not None:
        payload["id"] = interaction_id
    created_at = _as_datetime(get("created_at"))
    if created_at is not None:
        payload["created_at"] = created_at
    return Interaction(**payload)


def interaction_to_storage(interaction: Interaction) -> dict[str, Any]:
    row = interaction.model_dump(mode="python")
    row["type"] = interaction.type.value
    row["direction"] = interaction.direction.value if interaction.direction else None
    row["outcome"] = interaction.outcome.value if interaction.outcome else None
    return row


def run_to_domain(row: ResearchRunRecord | Mapping[str, Any]) -> ResearchRun:
    get = _getter(row)
    statistics = get("statistics")
    payload: dict[str, Any] = {
        "owner_id": _as_str(get("owner_id")) or "",
        "request_id": str(get("request_id") or ""),
        "business_type": str(get("business_type") or ""),
        "cities": _as_str_list(get("cities")),
        "state": str(get("state") or settings.research_default_state),
        "quantity": _as_int(get("quantity")),
        "agency_name": get("agency_name") or None,
        "specialty": get("specialty") or None,
        "proposal": get("proposal") or None,
        "tone": get("tone") or None,
        "status": _coerce_run_status(get("status")),
        "statistics": RunStatistics.model_validate(statistics)
        if isinstance(statistics, Mapping)
        else RunStatistics(),
        "error_message": get("error_message") or None,
        "version": get("version") or "v3-ai",
        "finished_at": _as_datetime(get("finished_at")),
    }
    run_id = _as_uuid(get("id"))
    if run_id is not None:
        payload["id"] = run_id
    created_at = _as_datetime(get("created_at"))
    if created_at is not None:
        payload["created_at"] = created_at
    return ResearchRun(**payload)


def run_to_storage(run: ResearchRun) -> dict[str, Any]:
    row = run.model_dump(mode="python", exclude={"statistics", "status"})
    row["status"] = run.status.value
    row["statistics"] = run.statistics.model_dump(mode="json")
    return row


def _coerce_run_status(value: Any) -> RunStatus:
    try:
        return RunStatus(str(value).strip().lower())
    except ValueError:
        # An unreadable status cannot be resumed.
        return RunStatus.FAILED


def _getter(row: Any):
    if isinstance(row, Mapping):
        return row.get
    return lambda key: getattr(row, key, None)


def _stored_analysis(value: Any) -> LeadAnalysis | None:
    if not isinstance(value, Mapping):
        return None
    try:
        return LeadAnalysis.model_validate(value)
    except ValidationError:
        logger.warning("lead.analysis.unreadable")
        return None


def _social_links(candidate: Mapping[str, Any]) -> list[str]:
    links = _as_str_list(candidate.get("redesSociais")) + _as_str_list(
        candidate.get("socialLinks")
    )
    for key in ("instagram", "facebook", "linkedin", "tiktok"):
        value = candidate.get(key)
        if isinstance(value, str) and value.strip():
            links.append(value.strip())
    seen: set[str] = set()
    return [link for link in links if not (link in seen or seen.add(link))]


def _as_str(value: Any) -> str | None:
    """Scalar to stripped text; blanks, booleans and containers become ``None``."""
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "sim", "t"}
    return bool(value)


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return 0


def _as_optional_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _as_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_str_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None and str(item).strip()]
    return []


def _as_uuid(value: Any) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _as_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
