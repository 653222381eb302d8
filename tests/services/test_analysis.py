from __future__ import annotations

import pytest

from leadsniper.models.lead import Classification, LeadAnalysis, MarketingLevel
from leadsniper.services.prospecting import analysis as analysis_module
from leadsniper.services.prospecting.analysis import LeadAnalyzer, apply_analysis
from leadsniper.services.prospecting.errors import AnalysisError, ProspectingValidationError
from leadsniper.services.prospecting.scoring import score_lead
from tests.helpers.metrics_stub import StubMetrics

PAYLOAD = {
    "success": True,
    "analisadoEm": "2026-03-02T12:00:00Z",
    "analiseIA": {
        "scoreFinal": 64,
        "classificacao": "WARM",
        "resumo": "Busy gym with a dated website.",
        "pontosFortes": ["4.8 rating"],
        "pontosFracos": ["No booking flow"],
        "oportunidadesMarketing": ["Google Ads for the neighbourhood"],
        "argumentosVenda": ["Competitors already run ads"],
        "abordagemSugerida": "Lead with the reviews.",
        "mensagemWhatsApp": "Oi! Vi as avaliacoes de voces.",
    },
    "reviews": {"resumoIA": ["Crowded at night"]},
}


class ScriptedAnalysis:
    def __init__(self, payload=None, error: Exception | None = None) -> None:
        self.payload = payload if payload is not None else PAYLOAD
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def analyze(self, place_id: str, lead_id: str):
        self.calls.append((place_id, lead_id))
        if self.error is not None:
            raise self.error
        return self.payload


def test_analysis_is_attached_and_local_score_kept(make_lead):
    lead = score_lead(make_lead(legacy_place_id="ChIJ-google"))
    backend = ScriptedAnalysis()

    analysed = LeadAnalyzer(backend).analyze(lead)

    assert backend.calls == [("ChIJ-google", str(lead.id))]
    assert analysed.analysis.ai_score == 64
    assert analysed.analysis.classification is Classification.WARM
    assert analysed.analysis.summary == "Busy gym with a dated website."
    assert analysed.analysis.sales_arguments == ["Competitors already run ads"]
    assert analysed.analysis.whatsapp_message == "Oi! Vi as avaliacoes de voces."
    assert analysed.analysis.common_complaints == ["Crowded at night"]
    assert analysed.analysis.analyzed_at.isoformat() == "2026-03-02T12:00:00+00:00"
    assert analysed.score == lead.score == 100
    assert analysed.classification is Classification.HOT
    assert analysed.marketing is None


def test_reported_detections_rescore_the_lead(make_lead):
    lead = score_lead(make_lead(legacy_place_id="g-1"))
    payload = {**PAYLOAD, "marketingDigital": {"fazGoogleAds": True}}

    analysed = LeadAnalyzer(ScriptedAnalysis(payload)).analyze(lead)

    assert analysed.marketing.level is MarketingLevel.BASIC
    assert analysed.marketing.bonus == 10
    assert analysed.score == 110


def test_lead_without_google_place_id_is_rejected(make_lead):
    backend = ScriptedAnalysis()
    with pytest.raises(ProspectingValidationError):
        LeadAnalyzer(backend).analyze(make_lead(legacy_place_id=None))
    assert backend.calls == []


def test_backend_failure_is_counted_and_raised(monkeypatch, make_lead):
    stub_metrics = StubMetrics()
    monkeypatch.setattr(analysis_module, "metrics", stub_metrics)
    backend = ScriptedAnalysis(error=AnalysisError("quota", code="429_ANALYSIS_RATE_LIMIT"))

    with pytest.raises(AnalysisError):
        LeadAnalyzer(backend).analyze(make_lead(legacy_place_id="g-1"))

    assert stub_metrics.names() == ["prospecting.analysis.failed"]
    assert stub_metrics.recorded[0].tags == {"code": "429_ANALYSIS_RATE_LIMIT"}


def test_apply_analysis_without_detections_leaves_marketing(make_lead):
    lead = score_lead(make_lead())
    analysis = LeadAnalysis(summary="short")

    updated = apply_analysis(lead, analysis)

    assert updated.analysis == analysis
    assert updated.score == lead.score
    assert lead.analysis is None
