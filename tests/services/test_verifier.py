from __future__ import annotations

from datetime import datetime, timezone

import pytest

from leadsniper.models.lead import (
    OPPORTUNITY_LABELS,
    Classification,
    MarketingLevel,
    Opportunity,
)
from leadsniper.services.prospecting.errors import ProspectingValidationError, VerificationError
from leadsniper.services.prospecting.scoring import score_lead
from leadsniper.services.prospecting.verifier import (
    MarketingVerifier,
    apply_verification,
    level_for_weight,
    summarize_detections,
)


class StubBackend:
    def __init__(self, payload=None, error: Exception | None = None) -> None:
        self.payload = payload or {}
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def verify(self, website_url: str, lead_id: str):
        self.calls.append((website_url, lead_id))
        if self.error is not None:
            raise self.error
        return self.payload


@pytest.mark.parametrize(
    ("weight", "level"),
    [
        (0, MarketingLevel.NONE),
        (1, MarketingLevel.BASIC),
        (2, MarketingLevel.BASIC),
        (3, MarketingLevel.INTERMEDIATE),
        (4, MarketingLevel.INTERMEDIATE),
        (5, MarketingLevel.ADVANCED),
        (12, MarketingLevel.ADVANCED),
    ],
)
def test_level_for_weight(weight, level):
    assert level_for_weight(weight) is level


def test_no_detections_is_maximum_opportunity():
    result = summarize_detections({})
    assert result.level is MarketingLevel.NONE
    assert result.bonus == 20
    assert result.opportunity is Opportunity.MAXIMUM
    assert result.verified is True
    assert result.model_dump()["opportunity_label"] == OPPORTUNITY_LABELS[Opportunity.MAXIMUM]
    assert result.verified_at is not None


def test_ad_platforms_weigh_double():
    google_ads_only = summarize_detections({"google_ads": True})
    assert google_ads_only.level is MarketingLevel.BASIC
    assert google_ads_only.bonus == 10

    mixed = summarize_detections(
        {"google_ads": True, "facebook_ads": True, "google_analytics": True}
    )
    assert mixed.level is MarketingLevel.ADVANCED
    assert mixed.bonus == 0
    assert mixed.opportunity is Opportunity.LOW

    tracking = summarize_detections(
        {"google_analytics": True, "google_tag_manager": True, "hotjar": True}
    )
    assert tracking.level is MarketingLevel.INTERMEDIATE
    assert tracking.opportunity is Opportunity.MEDIUM


def test_verifier_interprets_remote_payload():
    backend = StubBackend(
        {
            "fazGoogleAds": "true",
            "usaGoogleAnalytics": True,
            "adsDetalhes": ["gtag AW-123"],
            "nivelMarketingDigital": "ADVANCED",
            "verificadoEm": "2024-05-01T12:00:00Z",
        }
    )
    result = MarketingVerifier(backend).verify(" https://site.example.com ", "lead-1")

    assert backend.calls == [("https://site.example.com", "lead-1")]
    assert result.google_ads is True
    assert result.google_analytics is True
    assert result.facebook_ads is False
    # Remote level disagrees; the local weight (2 + 1) wins.
    assert result.level is MarketingLevel.INTERMEDIATE
    assert result.details == ["gtag AW-123"]
    assert result.verified_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_verifier_requires_website():
    backend = StubBackend()
    with pytest.raises(ProspectingValidationError):
        MarketingVerifier(backend).verify("  ", "lead-1")
    assert backend.calls == []


def test_verifier_propagates_backend_errors():
    backend = StubBackend(error=VerificationError("upstream down"))
    with pytest.raises(VerificationError):
        MarketingVerifier(backend).verify("https://site.example.com", "lead-1")


def test_apply_verification_adds_bonus_to_score(make_lead):
    lead = score_lead(make_lead(social_links=[], has_whatsapp=False, address=None))
    assert lead.score == 65
    assert lead.classification is Classification.WARM

    verified = apply_verification(lead, summarize_detections({}))
    assert verified.marketing_verified is True
    assert verified.base_score == 65
    assert verified.score == 85
    assert verified.classification is Classification.HOT


def test_remote_level_mismatch_is_logged(caplog):
    backend = StubBackend({"nivelMarketingDigital": "ADVANCED"})
    with caplog.at_level("INFO", logger="leadsniper.services.prospecting.verifier"):
        result = MarketingVerifier(backend).verify("https://site.example.com", "lead-1")

    assert result.level is MarketingLevel.NONE
    assert "prospecting.verification.level_mismatch" in caplog.messages
