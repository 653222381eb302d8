from __future__ import annotations

import pytest

from leadsniper.services.prospecting.diagnosis import (
    attach_diagnosis,
    clear_diagnosis,
    diagnosis_summary,
)
from leadsniper.services.prospecting.errors import ProspectingValidationError

REPORT = {
    "classificacao": {"temperatura": "QUENTE", "score": "82"},
    "resumo": "Site sem pixel de conversao.",
}


def test_summary_reads_temperature_and_score():
    assert diagnosis_summary(REPORT) == ("QUENTE", 82)
    assert diagnosis_summary({"classificacao": "n/a"}) == (None, None)
    assert diagnosis_summary({"classificacao": {"score": "alto"}}) == (None, None)


def test_attach_and_clear(make_lead):
    lead = attach_diagnosis(make_lead(), REPORT)
    assert lead.diagnosis == REPORT
    assert lead.diagnosis_temperature == "QUENTE"
    assert lead.diagnosis_score == 82

    cleared = clear_diagnosis(lead)
    assert cleared.diagnosis is None
    assert cleared.diagnosis_score is None


@pytest.mark.parametrize("payload", [{}, ["not", "a", "mapping"]])
def test_attach_rejects_empty_or_non_mapping(make_lead, payload):
    with pytest.raises(ProspectingValidationError):
        attach_diagnosis(make_lead(), payload)
