"""Client for the AI lead analysis webhook."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from leadsniper.config import settings
from leadsniper.services.prospecting.errors import AnalysisError, ServiceNotConfiguredError

logger = logging.getLogger(__name__)


class AnalysisTimeoutError(AnalysisError):
    """Raised when the analysis webhook does not answer in time."""

    def __init__(self, message: str = "AI analysis request timed out") -> None:
        super().__init__(message, code="504_ANALYSIS_TIMEOUT")


class AnalysisClient:
    """Posts ``{placeId, leadId}`` and returns the analysis document.

    One attempt per call; pacing between leads belongs to the caller.
    """

    def __init__(
        self,
        webhook_url: str,
        *,
        timeout: float | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not webhook_url:
            raise ValueError("ANALYSIS_WEBHOOK_URL is required to create an AnalysisClient.")
        self._webhook_url = webhook_url
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(
            timeout=timeout if timeout is not None else settings.analysis_timeout_seconds
        )

    @classmethod
    def from_settings(cls) -> AnalysisClient:
        if not settings.analysis_webhook_url:
            raise ServiceNotConfiguredError("Analysis webhook URL is not configured.")
        return cls(settings.analysis_webhook_url)

    def close(self) -> None:
        if self._owns_http_client:
            self._http.close()

    def analyze(self, place_id: str, lead_id: str) -> dict[str, Any]:
        logger.info("analysis.request.sent", extra={"lead_id": lead_id})
        try:
            response = self._http.post(
                self._webhook_url, json={"placeId": place_id, "leadId": lead_id}
            )
        except httpx.TimeoutException as exc:
            raise AnalysisTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise AnalysisError(f"HTTP error calling analysis service: {exc}") from exc
        return self._parse(response, lead_id)

    def _parse(self, response: httpx.Response, lead_id: str) -> dict[str, Any]:
        if response.status_code in (408, 504):
            raise AnalysisTimeoutError()
        if response.status_code == 429:
            raise AnalysisError("Rate limited by analysis service", code="429_ANALYSIS_RATE_LIMIT")
        if response.status_code >= 400:
            raise AnalysisError(f"Analysis request failed: {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise AnalysisError(
                "Failed to decode analysis response JSON.", code="502_ANALYSIS_SCHEMA"
            ) from exc
        if isinstance(data, list) and len(data) == 1 and isinstance(data[0], dict):
            data = data[0]
        if not isinstance(data, dict):
            raise AnalysisError(
                "Analysis response must be a JSON object.", code="502_ANALYSIS_SCHEMA"
            )
        if not data.get("success"):
            raise AnalysisError(str(data.get("error") or f"AI analysis failed for lead {lead_id}."))
        if not isinstance(data.get("analiseIA"), Mapping):
            raise AnalysisError(
                "Analysis response is missing 'analiseIA'.", code="502_ANALYSIS_SCHEMA"
            )
        return data

    def __enter__(self) -> AnalysisClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
