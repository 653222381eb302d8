"""Client for the WhatsApp messaging gateway."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from leadsniper.config import settings
from leadsniper.services.prospecting.errors import WhatsAppError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendReceipt:
    message_id: str | None
    instance: str


class WhatsAppClient:
    """Sends text messages through ``{base}/wa/enviar``."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("WHATSAPP_API_BASE_URL is required to create a WhatsAppClient.")
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout if timeout is not None else settings.whatsapp_timeout_seconds,
        )

    @classmethod
    def from_settings(cls) -> WhatsAppClient | None:
        if not settings.whatsapp_api_base_url:
            return None
        return cls(settings.whatsapp_api_base_url)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_http_client:
            self._http.close()

    def send_text(self, instance: str, number: str, text: str) -> SendReceipt:
        payload = {"instanceName": instance, "number": number, "text": text}
        try:
            response = self._http.post("/wa/enviar", json=payload)
        except httpx.TimeoutException as exc:
            raise WhatsAppError("WhatsApp gateway timed out", code="504_WHATSAPP_TIMEOUT") from exc
        except httpx.HTTPError as exc:
            raise WhatsAppError(f"HTTP error calling WhatsApp gateway: {exc}") from exc

        if response.status_code == 429:
            raise WhatsAppError("Rate limited by WhatsApp gateway", code="429_WHATSAPP_RATE_LIMIT")
        if response.status_code >= 400:
            raise WhatsAppError(f"WhatsApp send failed: {response.status_code}")

        # An empty or non-JSON body is how the gateway acknowledges some sends.
        body = response.text.strip()
        if not body:
            return SendReceipt(message_id=None, instance=instance)
        try:
            data = response.json()
        except ValueError:
            return SendReceipt(message_id=None, instance=instance)
        if isinstance(data, dict) and data.get("success") is False:
            raise WhatsAppError(str(data.get("error") or "WhatsApp gateway reported failure."))
        return SendReceipt(message_id=_message_id(data), instance=instance)

    def __enter__(self) -> WhatsAppClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _message_id(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    key = data.get("key")
    if isinstance(key, dict) and key.get("id"):
        return str(key["id"])
    if data.get("messageId"):
        return str(data["messageId"])
    return None
