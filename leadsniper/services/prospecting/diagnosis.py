"""Attach, read and clear a lead's deep-diagnosis report."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from leadsniper.models.lead import Lead
from leadsniper.services.prospecting.errors import ProspectingValidationError


def diagnosis_summary(payload: Mapping[str, Any]) -> tuple[str | None, int | None]:
    """Pull ``classificacao.temperatura`` and ``classificacao.score`` from a report."""
    classification = payload.get("classificacao")
    if not isinstance(classification, Mapping):
        return None, None
    temperature = classification.get("temperatura")
    score = classification.get("score")
    try:
        resolved_score = int(score) if score is not None else None
    except (TypeError, ValueError):
        resolved_score = None
    return (str(temperature) if temperature else None), resolved_score


def attach_diagnosis(lead: Lead, payload: Mapping[str, Any]) -> Lead:
    if not isinstance(payload, Mapping) or not payload:
        raise ProspectingValidationError("Diagnosis payload must be a non-empty object.")
    temperature, score = diagnosis_summary(payload)
    return lead.model_copy(
        update={
            "diagnosis": dict(payload),
            "diagnosis_temperature": temperature,
            "diagnosis_score": score,
        }
    )


def clear_diagnosis(lead: Lead) -> Lead:
    return lead.model_copy(
        update={"diagnosis": None, "diagnosis_temperature": None, "diagnosis_score": None}
    )
