"""Deterministic lead scoring and tier classification."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Final

from leadsniper.models.lead import Classification, Lead, ScoreComponent

HOT_THRESHOLD: Final[int] = 80
WARM_THRESHOLD: Final[int] = 60
COOL_THRESHOLD: Final[int] = 40

SCORE_FLOOR: Final[int] = 0
SCORE_CEILING: Final[int] = 100

# Callable phone is the heaviest signal since it gates outreach.
SIGNAL_WEIGHTS: Final[dict[str, tuple[int, str]]] = {
    "has_phone": (40, "Callable phone number found"),
    "has_website": (25, "Business website found"),
    "has_social": (15, "Social media presence found"),
    "has_whatsapp": (10, "WhatsApp-capable number found"),
    "has_complete_address": (10, "Complete street address and city"),
}

TIER_ORDER: Final[tuple[Classification, ...]] = (
    Classification.COLD,
    Classification.COOL,
    Classification.WARM,
    Classification.HOT,
)


@dataclass(frozen=True)
class LeadSignals:
    """Presence flags the score is computed from."""

    has_phone: bool = False
    has_website: bool = False
    has_social: bool = False
    has_whatsapp: bool = False
    has_complete_address: bool = False


@dataclass(frozen=True)
class LeadScore:
    score: int
    classification: Classification
    base_score: int
    bonus: int = 0
    breakdown: list[ScoreComponent] = field(default_factory=list)


def classify(score: int | float | None) -> Classification:
    """Map a score onto a tier, clamping to 0..100 first."""
    try:
        value = float(score) if score is not None else 0.0
    except (TypeError, ValueError):
        value = 0.0
    if value != value:  # NaN
        value = 0.0
    clamped = min(max(value, SCORE_FLOOR), SCORE_CEILING)
    if clamped >= HOT_THRESHOLD:
        return Classification.HOT
    if clamped >= WARM_THRESHOLD:
        return Classification.WARM
    if clamped >= COOL_THRESHOLD:
        return Classification.COOL
    return Classification.COLD


def tier_rank(classification: Classification) -> int:
    return TIER_ORDER.index(classification)


def score_signals(
    signals: LeadSignals | Mapping[str, Any] | None, bonus: int | float | None = 0
) -> LeadScore:
    """Sum the weights of present signals and add the (optional) marketing bonus.

    Unknown keys and missing signals contribute nothing; the returned score is
    not clamped, only its classification is.
    """
    flags = _signal_flags(signals)
    breakdown: list[ScoreComponent] = []
    base = 0
    for signal, (points, reason) in SIGNAL_WEIGHTS.items():
        if flags.get(signal):
            base += points
            breakdown.append(ScoreComponent(signal=signal, points=points, reason=reason))
    resolved_bonus = _coerce_bonus(bonus)
    if resolved_bonus:
        breakdown.append(
            ScoreComponent(
                signal="marketing_bonus",
                points=resolved_bonus,
                reason="Marketing verification bonus",
            )
        )
    total = base + resolved_bonus
    return LeadScore(
        score=total,
        classification=classify(total),
        base_score=base,
        bonus=resolved_bonus,
        breakdown=breakdown,
    )


def signals_for(lead: Lead) -> LeadSignals:
    """Derive scoring signals from a lead's profile fields."""
    return LeadSignals(
        has_phone=bool(lead.phone and any(char.isdigit() for char in lead.phone)),
        has_website=lead.has_website,
        has_social=any(link and link.strip() for link in lead.social_links),
        has_whatsapp=lead.has_whatsapp,
        has_complete_address=bool(
            lead.address and lead.address.strip() and lead.city and lead.city.strip()
        ),
    )


def score_lead(lead: Lead) -> Lead:
    """Return a copy of ``lead`` with base score, score and classification recomputed."""
    bonus = lead.marketing.bonus if lead.marketing and lead.marketing.verified else 0
    result = score_signals(signals_for(lead), bonus=bonus)
    return lead.model_copy(
        update={
            "base_score": result.base_score,
            "score": result.score,
            "classification": result.classification,
        }
    )


def _signal_flags(signals: LeadSignals | Mapping[str, Any] | None) -> dict[str, bool]:
    if signals is None:
        return {}
    if isinstance(signals, LeadSignals):
        return {name: bool(getattr(signals, name)) for name in SIGNAL_WEIGHTS}
    if isinstance(signals, Mapping):
        return {name: bool(signals.get(name)) for name in SIGNAL_WEIGHTS}
    return {}


def _coerce_bonus(bonus: int | float | None) -> int:
    try:
        return int(bonus or 0)
    except (TypeError, ValueError, OverflowError):
        return 0
