from __future__ import annotations

import json

import pytest

from leadsniper.services.prospecting.errors import ProspectingError
from leadsniper.services.prospecting.scoring import score_lead
from leadsniper.services.prospecting.verifier import MarketingVerifier
from pipelines import verify_backlog
from tests.conftest import OWNER_ID


class StubBackend:
    def verify(self, website_url: str, lead_id: str):
        return {"usaGoogleAnalytics": True}


def test_dry_run_prints_pending_count(capsys, repository, make_lead):
    repository.upsert(score_lead(make_lead()), OWNER_ID)

    pending = verify_backlog.run(["--owner", OWNER_ID, "--dry-run"], repository=repository)

    assert pending == 1
    assert json.loads(capsys.readouterr().out) == {"owner": OWNER_ID, "pending": 1}


def test_run_verifies_backlog_and_prints_report(capsys, repository, make_lead):
    repository.upsert(score_lead(make_lead(place_id="a")), OWNER_ID)
    repository.upsert(score_lead(make_lead(place_id="b")), OWNER_ID)

    report = verify_backlog.run(
        ["--owner", OWNER_ID, "--delay", "0"],
        repository=repository,
        verifier=MarketingVerifier(StubBackend()),
    )

    assert report.succeeded == 2
    printed = json.loads(capsys.readouterr().out)
    assert printed["total"] == 2
    assert repository.count_pending_verification(OWNER_ID) == 0


def test_negative_delay_is_rejected(repository):
    with pytest.raises(ProspectingError):
        verify_backlog.run(["--owner", OWNER_ID, "--delay", "-1"], repository=repository)


def test_main_exits_non_zero_on_error(monkeypatch):
    def _boom(argv=None, **kwargs):
        raise ProspectingError("not configured", code="503_NOT_CONFIGURED")

    monkeypatch.setattr(verify_backlog, "run", _boom)
    with pytest.raises(SystemExit) as excinfo:
        verify_backlog.main()
    assert excinfo.value.code == 1
