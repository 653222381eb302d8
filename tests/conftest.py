from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import pytest
from fastapi.testclient import TestClient

from leadsniper.main import app
from leadsniper.models.lead import Lead
from leadsniper.services.prospecting.dependencies import get_repository
from leadsniper.services.prospecting.repositories import InMemoryProspectingRepository

OWNER_ID = "owner-a"


@pytest.fixture
def repository() -> InMemoryProspectingRepository:
    return InMemoryProspectingRepository()


@pytest.fixture
def override_dependency() -> Iterator[Callable[[Callable[..., Any], Any], None]]:
    """Register ``dependency -> value`` overrides that are dropped after the test."""
    registered: list[Callable[..., Any]] = []

    def _override(dependency: Callable[..., Any], value: Any) -> None:
        app.dependency_overrides[dependency] = lambda: value
        registered.append(dependency)

    yield _override
    for dependency in registered:
        app.dependency_overrides.pop(dependency, None)


@pytest.fixture
def client(repository, override_dependency) -> Iterator[TestClient]:
    """Test client wired to an isolated in-memory repository."""
    override_dependency(get_repository, repository)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def owner_headers() -> dict[str, str]:
    return {"X-Owner-Id": OWNER_ID}


@pytest.fixture
def make_lead() -> Callable[..., Lead]:
    """Build a lead with a complete profile; keyword arguments override fields."""

    def _make(**overrides: Any) -> Lead:
        fields: dict[str, Any] = {
            "owner_id": OWNER_ID,
            "place_id": "ChIJ-default",
            "name": "Academia Movimento",
            "address": "Rua das Flores, 120",
            "city": "Campinas",
            "state": "SP",
            "business_type": "academia",
            "category": "Academia",
            "phone": "(19) 99876-5432",
            "has_whatsapp": True,
            "website": "https://movimento.example.com",
            "social_links": ["https://instagram.com/movimento"],
        }
        fields.update(overrides)
        return Lead(**fields)

    return _make
