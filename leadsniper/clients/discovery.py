"""Client for the AI-enriched lead discovery webhook."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from leadsniper.config import settings
from leadsniper.models.research import ResearchRequest
from leadsniper.services.prospecting.errors import DiscoveryError, ServiceNotConfiguredError

logger = logging.getLogger(__name__)


class DiscoveryRateLimitError(DiscoveryError):
    """Raised when the discovery webhook responds with HTTP 429."""

    def __init__(self, message: str = "Rate limited by discovery service") -> None:
        super().__init__(message, code="429_DISCOVERY_RATE_LIMIT")


class DiscoveryTimeoutError(DiscoveryError):
    """Raised when the discovery webhook times out."""

    def __init__(self, message: str = "Discovery request timed out") -> None:
        super().__init__(message, code="504_DISCOVERY_TIMEOUT")


class DiscoverySchemaError(DiscoveryError):
    """Raised when the discovery response schema is not as expected."""

    def __init__(self, message: str = "Unexpected discovery response schema") -> None:
        super().__init__(message, code="502_DISCOVERY_SCHEMA")


@dataclass
class DiscoveryResult:
    """Parsed discovery payload; candidates stay raw for the mapper."""

    request_id: str
    version: str
    candidates: list[dict[str, Any]]
    meta: dict[str, Any] = field(default_factory=dict)
    statistics: dict[str, Any] = field(default_factory=dict)


class DiscoveryClient:
    """Minimal discovery webhook client."""

    def __init__(
        self,
        webhook_url: str,
        *,
        timeout: float | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not webhook_url:
            raise ValueError("DISCOVERY_WEBHOOK_URL is required to create a DiscoveryClient.")
        self._webhook_url = webhook_url
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(
            timeout=timeout if timeout is not None else settings.discovery_timeout_seconds
        )

    @classmethod
    def from_settings(cls) -> DiscoveryClient:
        if not settings.discovery_webhook_url:
            raise ServiceNotConfiguredError("Discovery webhook URL is not configured.")
        return cls(settings.discovery_webhook_url)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_http_client:
            self._http.close()

    def discover(self, request: ResearchRequest, *, request_id: str) -> DiscoveryResult:
        """Run one discovery query and return its candidates."""
        payload = {
            "tipo_negocio": request.business_type,
            "cidade": request.city,
            "estado": request.state,
            "quantidade": request.quantity,
            "nome_agencia": request.agency_name,
            "especialidade": request.specialty,
            "proposta": request.proposal,
            "tom_voz": request.tone,
        }
        headers = {"X-Request-Id": request_id}
        try:
            response = self._http.post(self._webhook_url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise DiscoveryTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise DiscoveryError(f"HTTP error calling discovery service: {exc}") from exc

        if response.status_code == 429:
            raise DiscoveryRateLimitError()
        if response.status_code in (408, 504):
            raise DiscoveryTimeoutError()
        if response.status_code >= 400:
            raise DiscoveryError(
                f"Discovery request failed: {response.status_code} - {_error_detail(response)}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise DiscoverySchemaError("Failed to decode discovery response JSON.") from exc
        if isinstance(data, list) and len(data) == 1 and isinstance(data[0], dict):
            # Some workflow runners wrap the body in a single-item array.
            data = data[0]
        if not isinstance(data, dict):
            raise DiscoverySchemaError("Discovery response must be a JSON object.")
        if not data.get("success"):
            raise DiscoveryError(str(data.get("error") or "Discovery service reported failure."))

        leads = data.get("leads")
        if not isinstance(leads, list):
            raise DiscoverySchemaError("`leads` missing from discovery response.")
        candidates = [entry for entry in leads if isinstance(entry, dict)]
        if len(candidates) != len(leads):
            logger.warning(
                "discovery.response.invalid_entries",
                extra={"request_id": request_id, "dropped": len(leads) - len(candidates)},
            )
        return DiscoveryResult(
            request_id=str(data.get("requestId") or request_id),
            version=str(data.get("versao") or ""),
            candidates=candidates,
            meta=data.get("meta") if isinstance(data.get("meta"), dict) else {},
            statistics=data.get("estatisticas")
            if isinstance(data.get("estatisticas"), dict)
            else {},
        )

    def __enter__(self) -> DiscoveryClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        return str(payload.get("error") or payload.get("message") or payload)[:200]
    return str(payload)[:200]
