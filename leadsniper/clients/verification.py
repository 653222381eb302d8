"""Client for the website marketing-stack verification webhook."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from leadsniper.config import settings
from leadsniper.services.prospecting.errors import ServiceNotConfiguredError, VerificationError
from leadsniper.services.prospecting.pacing import RetrySchedule

logger = logging.getLogger(__name__)


class VerificationRateLimitError(VerificationError):
    """Raised when the verification webhook keeps responding with HTTP 429."""

    def __init__(self, message: str = "Rate limited by verification service") -> None:
        super().__init__(message, code="429_VERIFICATION_RATE_LIMIT")


class VerificationTimeoutError(VerificationError):
    """Raised when the verification webhook times out."""

    def __init__(self, message: str = "Verification request timed out") -> None:
        super().__init__(message, code="504_VERIFICATION_TIMEOUT")


class VerificationClient:
    """Posts ``{site, leadId}`` and returns the raw detection payload."""

    def __init__(
        self,
        webhook_url: str,
        *,
        timeout: float | None = None,
        max_attempts: int | None = None,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not webhook_url:
            raise ValueError("VERIFICATION_WEBHOOK_URL is required to create a VerificationClient.")
        self._webhook_url = webhook_url
        self._max_attempts = max(max_attempts or settings.verification_max_attempts, 1)
        self._sleep = sleep
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(
            timeout=timeout if timeout is not None else settings.verification_timeout_seconds
        )

    @classmethod
    def from_settings(cls) -> VerificationClient:
        if not settings.verification_webhook_url:
            raise ServiceNotConfiguredError("Verification webhook URL is not configured.")
        return cls(settings.verification_webhook_url)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_http_client:
            self._http.close()

    def verify(self, website_url: str, lead_id: str) -> dict[str, Any]:
        """Analyse ``website_url``; retries only on HTTP 429."""
        payload = {"site": website_url, "leadId": lead_id}
        for attempt, delay in RetrySchedule(attempts=self._max_attempts).delays():
            response = self._post(payload)
            if response.status_code != 429:
                return self._parse(response, lead_id)
            logger.warning(
                "verification.rate_limited",
                extra={"lead_id": lead_id, "attempt": attempt, "delay_seconds": round(delay, 2)},
            )
            if attempt < self._max_attempts:
                self._sleep(delay)
        raise VerificationRateLimitError()

    def _post(self, payload: dict[str, Any]) -> httpx.Response:
        try:
            return self._http.post(self._webhook_url, json=payload)
        except httpx.TimeoutException as exc:
            raise VerificationTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise VerificationError(f"HTTP error calling verification service: {exc}") from exc

    def _parse(self, response: httpx.Response, lead_id: str) -> dict[str, Any]:
        if response.status_code in (408, 504):
            raise VerificationTimeoutError()
        if response.status_code >= 400:
            raise VerificationError(f"Verification request failed: {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise VerificationError(
                "Failed to decode verification response JSON.", code="502_VERIFICATION_SCHEMA"
            ) from exc
        if isinstance(data, list) and len(data) == 1 and isinstance(data[0], dict):
            data = data[0]
        if not isinstance(data, dict):
            raise VerificationError(
                "Verification response must be a JSON object.", code="502_VERIFICATION_SCHEMA"
            )
        if data.get("success") is False:
            raise VerificationError(
                str(data.get("error") or f"Verification failed for lead {lead_id}.")
            )
        return data

    def __enter__(self) -> VerificationClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
