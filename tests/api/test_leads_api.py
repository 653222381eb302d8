from __future__ import annotations

from uuid import uuid4

from leadsniper.services.prospecting import dependencies
from leadsniper.services.prospecting.analysis import LeadAnalyzer
from leadsniper.services.prospecting.batch import BatchVerifier
from leadsniper.services.prospecting.dependencies import (
    get_batch_verifier,
    get_lead_analyzer,
    get_marketing_verifier,
    get_repository,
)
from leadsniper.services.prospecting.pacing import FixedIntervalPacer
from leadsniper.services.prospecting.repositories import InMemoryProspectingRepository
from leadsniper.services.prospecting.scoring import score_lead
from leadsniper.services.prospecting.verifier import MarketingVerifier
from tests.conftest import OWNER_ID


class StubBackend:
    def __init__(self, payload=None) -> None:
        self.payload = payload or {}

    def verify(self, website_url: str, lead_id: str):
        return self.payload


def _seed(repository, make_lead, **overrides):
    outcome = repository.upsert(score_lead(make_lead(**overrides)), OWNER_ID)
    return str(outcome.id)


def test_requests_without_owner_header_are_rejected(client):
    response = client.get("/api/leads")
    assert response.status_code == 401


def test_list_leads_filters_and_paginates(client, repository, make_lead, owner_headers):
    _seed(repository, make_lead, place_id="hot")
    _seed(repository, make_lead, place_id="cold", phone=None, website=None, city="Sorocaba")

    response = client.get("/api/leads", headers=owner_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert [item["place_id"] for item in body["items"]] == ["hot", "cold"]

    filtered = client.get(
        "/api/leads", params={"classification": "HOT", "status": "NOVO"}, headers=owner_headers
    )
    assert filtered.json()["total"] == 1

    paged = client.get("/api/leads", params={"limit": 1, "page": 2}, headers=owner_headers)
    assert [item["place_id"] for item in paged.json()["items"]] == ["cold"]

    other_owner = client.get("/api/leads", headers={"X-Owner-Id": "owner-b"})
    assert other_owner.json()["total"] == 0


def test_get_missing_lead_returns_404(client, owner_headers):
    response = client.get(f"/api/leads/{uuid4()}", headers=owner_headers)
    assert response.status_code == 404
    assert response.json()["code"] == "404_LEAD_NOT_FOUND"


def test_patch_updates_status_notes_and_stamps_contact(client, repository, make_lead, owner_headers):
    lead_id = _seed(repository, make_lead)

    response = client.patch(
        f"/api/leads/{lead_id}",
        json={"status": "CONTATADO", "notes": "Falar com o gerente"},
        headers=owner_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "CONTATADO"
    assert body["notes"] == "Falar com o gerente"
    assert body["first_contact_at"] is not None

    invalid = client.patch(f"/api/leads/{lead_id}", json={"status": "ARQUIVADO"}, headers=owner_headers)
    assert invalid.status_code == 422


def test_delete_lead(client, repository, make_lead, owner_headers):
    lead_id = _seed(repository, make_lead)

    assert client.delete(f"/api/leads/{lead_id}", headers={"X-Owner-Id": "owner-b"}).status_code == 404
    assert client.delete(f"/api/leads/{lead_id}", headers=owner_headers).status_code == 204
    assert client.get(f"/api/leads/{lead_id}", headers=owner_headers).status_code == 404


def test_interactions_drive_status(client, repository, make_lead, owner_headers):
    lead_id = _seed(repository, make_lead)

    created = client.post(
        f"/api/leads/{lead_id}/interactions",
        json={"type": "WHATSAPP", "direction": "ENVIADO", "content": "Oi!"},
        headers=owner_headers,
    )
    assert created.status_code == 201
    assert created.json()["lead_status"] == "CONTATADO"
    assert created.json()["transitioned"] is True

    reply = client.post(
        f"/api/leads/{lead_id}/interactions",
        json={"type": "WHATSAPP", "direction": "RECEBIDO", "outcome": "RESPONDEU"},
        headers=owner_headers,
    )
    assert reply.json()["lead_status"] == "RESPONDEU"

    listing = client.get(f"/api/leads/{lead_id}/interactions", headers=owner_headers)
    assert listing.status_code == 200
    assert len(listing.json()) == 2

    missing = client.get(f"/api/leads/{uuid4()}/interactions", headers=owner_headers)
    assert missing.status_code == 404


def test_stats(client, repository, make_lead, owner_headers):
    _seed(repository, make_lead, place_id="a")
    _seed(repository, make_lead, place_id="b", website=None)

    body = client.get("/api/leads/stats", headers=owner_headers).json()
    assert body["total"] == 2
    assert body["without_website"] == 1
    assert body["marketing"]["unverified"] == 2


def test_verify_single_lead(client, repository, make_lead, owner_headers, override_dependency):
    lead_id = _seed(repository, make_lead, social_links=[], has_whatsapp=False, address=None)
    no_site_id = _seed(repository, make_lead, place_id="no-site", website=None)
    override_dependency(get_marketing_verifier, MarketingVerifier(StubBackend()))

    response = client.post(f"/api/leads/{lead_id}/verify-marketing", headers=owner_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["marketing"]["level"] == "NONE"
    assert body["marketing"]["bonus"] == 20
    assert body["marketing"]["opportunity_label"] == "No tracking or ads detected - maximum opportunity"
    assert body["score"] == 85
    assert body["classification"] == "HOT"

    no_site = client.post(f"/api/leads/{no_site_id}/verify-marketing", headers=owner_headers)
    assert no_site.status_code == 400


def test_verify_without_configuration_returns_503(client, repository, make_lead, owner_headers, monkeypatch):
    lead_id = _seed(repository, make_lead)
    monkeypatch.setattr(dependencies.settings, "verification_webhook_url", None, raising=False)
    monkeypatch.setattr(dependencies, "_VERIFICATION_CLIENT", None)

    response = client.post(f"/api/leads/{lead_id}/verify-marketing", headers=owner_headers)
    assert response.status_code == 503
    assert response.json()["code"] == "503_NOT_CONFIGURED"


def test_batch_verification(client, repository, make_lead, owner_headers, override_dependency):
    _seed(repository, make_lead, place_id="a")
    _seed(repository, make_lead, place_id="b")
    _seed(repository, make_lead, place_id="c", website=None)
    override_dependency(
        get_batch_verifier,
        BatchVerifier(
            repository,
            MarketingVerifier(StubBackend({"fazGoogleAds": True})),
            pacer=FixedIntervalPacer(0),
        ),
    )

    pending = client.get("/api/leads/verify-marketing/batch", headers=owner_headers)
    assert pending.json() == {"pending": 2}

    report = client.post("/api/leads/verify-marketing/batch", headers=owner_headers).json()
    assert report["total"] == 2
    assert report["succeeded"] == 2
    assert report["with_google_ads"] == 2

    after = client.get("/api/leads/verify-marketing/batch", headers=owner_headers)
    assert after.json() == {"pending": 0}


def test_diagnosis_lifecycle(client, repository, make_lead, owner_headers):
    lead_id = _seed(repository, make_lead)
    report = {"classificacao": {"temperatura": "MORNO", "score": 64}, "resumo": "ok"}

    stored = client.put(f"/api/leads/{lead_id}/diagnosis", json=report, headers=owner_headers)
    assert stored.status_code == 200
    assert stored.json()["temperature"] == "MORNO"
    assert stored.json()["score"] == 64

    fetched = client.get(f"/api/leads/{lead_id}/diagnosis", headers=owner_headers).json()
    assert fetched["diagnosis"] == report

    cleared = client.delete(f"/api/leads/{lead_id}/diagnosis", headers=owner_headers).json()
    assert cleared["diagnosis"] is None

    empty = client.put(f"/api/leads/{lead_id}/diagnosis", json={}, headers=owner_headers)
    assert empty.status_code == 400


class ExplodingRepository(InMemoryProspectingRepository):
    def lead_stats(self, owner_id):
        raise RuntimeError("database on fire")


def test_unexpected_errors_return_generic_500(client, owner_headers, override_dependency):
    override_dependency(get_repository, ExplodingRepository())

    response = client.get("/api/leads/stats", headers=owner_headers)
    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "detail": "Internal server error.",
        "code": "500_INTERNAL",
    }


class StubAnalysis:
    def analyze(self, place_id: str, lead_id: str):
        return {
            "success": True,
            "analiseIA": {"scoreFinal": 70, "resumo": "Good fit", "mensagemWhatsApp": "Oi!"},
            "marketingDigital": {"fazFacebookAds": True},
        }


def test_analyze_single_lead(client, repository, make_lead, owner_headers, override_dependency):
    lead_id = _seed(repository, make_lead, legacy_place_id="ChIJ-google")
    no_place_id = _seed(repository, make_lead, place_id="no-google")
    override_dependency(get_lead_analyzer, LeadAnalyzer(StubAnalysis()))

    response = client.post(f"/api/leads/{lead_id}/analyze", headers=owner_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["analysis"]["summary"] == "Good fit"
    assert body["analysis"]["ai_score"] == 70
    assert body["analysis"]["whatsapp_message"] == "Oi!"
    assert body["marketing"]["level"] == "BASIC"
    assert body["score"] == 110
    stored = client.get(f"/api/leads/{lead_id}", headers=owner_headers).json()
    assert stored["analysis"]["summary"] == "Good fit"

    missing = client.post(f"/api/leads/{uuid4()}/analyze", headers=owner_headers)
    assert missing.status_code == 404

    rejected = client.post(f"/api/leads/{no_place_id}/analyze", headers=owner_headers)
    assert rejected.status_code == 400


def test_analyze_without_configuration_returns_503(client, repository, make_lead, owner_headers, monkeypatch):
    lead_id = _seed(repository, make_lead, legacy_place_id="g-1")
    monkeypatch.setattr(dependencies.settings, "analysis_webhook_url", None, raising=False)
    monkeypatch.setattr(dependencies, "_ANALYSIS_CLIENT", None)

    response = client.post(f"/api/leads/{lead_id}/analyze", headers=owner_headers)
    assert response.status_code == 503
    assert response.json()["code"] == "503_NOT_CONFIGURED"
