from __future__ import annotations

from uuid import uuid4

from leadsniper.clients.discovery import DiscoveryRateLimitError, DiscoveryResult
from leadsniper.services.prospecting import dependencies
from leadsniper.services.prospecting.analysis import LeadAnalyzer
from leadsniper.services.prospecting.dependencies import (
    get_prospecting_pipeline,
    get_research_orchestrator,
)
from leadsniper.services.prospecting.pacing import FixedIntervalPacer
from leadsniper.services.prospecting.pipeline import ProspectingPipeline
from leadsniper.services.prospecting.research import ResearchOrchestrator


class StubDiscovery:
    def __init__(self, candidates=None, error: Exception | None = None) -> None:
        self.candidates = candidates or []
        self.error = error

    def discover(self, request, *, request_id):
        if self.error is not None:
            raise self.error
        return DiscoveryResult(request_id=request_id, version="v3-ai", candidates=self.candidates)


CANDIDATES = [
    {
        "placeId": "p-1",
        "nome": "Academia Forca",
        "endereco": "Rua B, 22",
        "cidade": "Campinas",
        "telefone": "(19) 3333-4444",
        "website": "https://forca.example.com",
    },
    {"placeId": "p-2", "nome": "Academia Leve", "cidade": "Campinas"},
]


def test_create_run_and_fetch_it(client, repository, owner_headers, override_dependency):
    override_dependency(
        get_research_orchestrator, ResearchOrchestrator(repository, StubDiscovery(CANDIDATES))
    )

    created = client.post(
        "/api/research-runs",
        json={"business_type": "academia", "city": "Campinas", "quantity": 2},
        headers=owner_headers,
    )

    assert created.status_code == 201
    body = created.json()
    assert body["success"] is True
    assert body["status"] == "completed"
    assert body["statistics"]["new"] == 2
    assert [lead["place_id"] for lead in body["leads"]] == ["p-1", "p-2"]

    run_id = body["run_id"]
    detail = client.get(f"/api/research-runs/{run_id}", headers=owner_headers)
    assert detail.status_code == 200
    assert detail.json()["run"]["quantity"] == 5
    assert len(detail.json()["leads"]) == 2

    listing = client.get("/api/research-runs", headers=owner_headers)
    assert [run["id"] for run in listing.json()] == [run_id]


def test_failed_discovery_maps_code_to_status(client, repository, owner_headers, override_dependency):
    override_dependency(
        get_research_orchestrator,
        ResearchOrchestrator(repository, StubDiscovery(error=DiscoveryRateLimitError())),
    )

    response = client.post(
        "/api/research-runs",
        json={"business_type": "academia", "city": "Campinas"},
        headers=owner_headers,
    )

    assert response.status_code == 429
    detail = response.json()["detail"]
    assert detail["code"] == "429_DISCOVERY_RATE_LIMIT"
    assert detail["run_id"] is not None
    run = client.get(f"/api/research-runs/{detail['run_id']}", headers=owner_headers).json()["run"]
    assert run["status"] == "failed"


def test_blank_city_is_rejected(client, repository, owner_headers, override_dependency):
    override_dependency(get_research_orchestrator, ResearchOrchestrator(repository, StubDiscovery()))

    response = client.post(
        "/api/research-runs",
        json={"business_type": "academia", "city": "  "},
        headers=owner_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "400_INVALID_REQUEST"


def test_unconfigured_discovery_returns_503(client, owner_headers, monkeypatch):
    monkeypatch.setattr(dependencies.settings, "discovery_webhook_url", None, raising=False)
    monkeypatch.setattr(dependencies, "_DISCOVERY_CLIENT", None)

    response = client.post(
        "/api/research-runs",
        json={"business_type": "academia", "city": "Campinas"},
        headers=owner_headers,
    )
    assert response.status_code == 503
    assert response.json()["detail"]["run_id"] is None


def test_unknown_run_returns_404(client, owner_headers):
    response = client.get(f"/api/research-runs/{uuid4()}", headers=owner_headers)
    assert response.status_code == 404
    assert response.json()["code"] == "404_RESEARCH_RUN_NOT_FOUND"


class StubAnalysis:
    def __init__(self) -> None:
        self.calls: list[str] = []

    def analyze(self, place_id: str, lead_id: str):
        self.calls.append(place_id)
        return {"success": True, "analiseIA": {"resumo": "Worth a call"}}


def _pipeline(repository, discovery, analysis=None):
    return ProspectingPipeline(
        repository,
        ResearchOrchestrator(repository, discovery),
        analyzer=LeadAnalyzer(analysis) if analysis is not None else None,
        verification_pacer=FixedIntervalPacer(0),
        analysis_pacer=FixedIntervalPacer(0),
    )


def test_pipeline_runs_research_and_analysis(client, repository, owner_headers, override_dependency):
    analysis = StubAnalysis()
    override_dependency(
        get_prospecting_pipeline, _pipeline(repository, StubDiscovery(CANDIDATES), analysis)
    )

    response = client.post(
        "/api/leads/pipeline",
        json={"business_type": "academia", "city": "Campinas", "verify_marketing": False},
        headers=owner_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["research"]["statistics"]["new"] == 2
    assert body["analyzed"] == 1
    assert analysis.calls == ["p-1"]
    assert body["skipped_stages"] == []
    assert [lead["place_id"] for lead in body["leads"]] == ["p-1", "p-2"]
    assert body["leads"][0]["analysis"]["summary"] == "Worth a call"


def test_pipeline_reports_research_failure(client, repository, owner_headers, override_dependency):
    override_dependency(
        get_prospecting_pipeline,
        _pipeline(repository, StubDiscovery(error=DiscoveryRateLimitError())),
    )

    response = client.post(
        "/api/leads/pipeline",
        json={"business_type": "academia", "city": "Campinas"},
        headers=owner_headers,
    )

    assert response.status_code == 429
    assert response.json()["detail"]["code"] == "429_DISCOVERY_RATE_LIMIT"
