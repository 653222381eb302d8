"""Outbound message delivery with a deterministic deep-link fallback."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Protocol
from urllib.parse import quote
from uuid import UUID

from pydantic import BaseModel

from leadsniper.clients.whatsapp import SendReceipt
from leadsniper.models.lead import InteractionDirection, InteractionOutcome, InteractionType, Lead
from leadsniper.observability.metrics import metrics
from leadsniper.services.prospecting.errors import (
    LeadNotFoundError,
    ProspectingError,
    ProspectingValidationError,
)
from leadsniper.services.prospecting.interactions import InteractionService
from leadsniper.services.prospecting.mapper import outbound_number
from leadsniper.services.prospecting.repositories import ProspectingRepository

logger = logging.getLogger(__name__)

FALLBACK_BASE_URL = "https://wa.me"
# Characters encodeURIComponent leaves untouched.
_URI_COMPONENT_SAFE = "-_.!~*'()"


class MessagingChannel(Protocol):
    def send_text(self, instance: str, number: str, text: str) -> SendReceipt:
        ...


class DispatchResult(BaseModel):
    """Delivery receipt or the link the user can open to send by hand."""

    delivered: bool
    number: str
    message_id: str | None = None
    fallback_link: str | None = None
    reason: str | None = None
    lead_id: UUID | None = None
    interaction_logged: bool = False


def build_fallback_link(number: str, message: str) -> str:
    return f"{FALLBACK_BASE_URL}/{number}?text={quote(message, safe=_URI_COMPONENT_SAFE)}"


class OutreachDispatcher:
    """Sends through the owner's WhatsApp instance, falling back to a wa.me link."""

    def __init__(
        self,
        repository: ProspectingRepository,
        channel: MessagingChannel | None,
        *,
        instances: Mapping[str, str] | None = None,
        interactions: InteractionService | None = None,
    ) -> None:
        self._repository = repository
        self._channel = channel
        self._instances = dict(instances or {})
        self._interactions = interactions or InteractionService(repository)

    def send_to_lead(self, owner_id: str, lead_id: UUID, message: str) -> DispatchResult:
        lead = self._repository.get_lead(owner_id, lead_id)
        if lead is None:
            raise LeadNotFoundError()
        return self.send(owner_id, lead, message)

    def send(self, owner_id: str, recipient: Lead | str, message: str) -> DispatchResult:
        """Deliver ``message`` to a lead or a raw phone number."""
        text = (message or "").strip()
        if not text:
            raise ProspectingValidationError("Message body must not be empty.")
        lead = recipient if isinstance(recipient, Lead) else None
        raw_phone = lead.phone if lead is not None else recipient
        number = outbound_number(raw_phone)
        if not number:
            raise ProspectingValidationError("Recipient has no usable phone number.")

        lead_id = lead.id if lead is not None else None
        instance = self._instances.get(owner_id)
        if self._channel is None or not instance:
            return self._fallback(owner_id, number, text, lead_id, reason="channel_not_configured")
        try:
            receipt = self._channel.send_text(instance, number, text)
        except ProspectingError as exc:
            logger.warning(
                "outreach.delivery_failed",
                extra={"owner_id": owner_id, "instance": instance, "code": exc.code},
            )
            return self._fallback(owner_id, number, text, lead_id, reason=exc.code)

        metrics.increment("outreach.delivered", tags={"channel": "whatsapp"})
        logger.info(
            "outreach.delivered",
            extra={"owner_id": owner_id, "instance": instance, "message_id": receipt.message_id},
        )
        logged = lead is not None and self._log_delivery(owner_id, lead.id, text)
        return DispatchResult(
            delivered=True,
            number=number,
            message_id=receipt.message_id,
            lead_id=lead_id,
            interaction_logged=logged,
        )

    def _log_delivery(self, owner_id: str, lead_id: UUID, text: str) -> bool:
        # Delivery already happened; logging failures are reported, never raised.
        try:
            self._interactions.log(
                owner_id,
                lead_id,
                interaction_type=InteractionType.WHATSAPP,
                direction=InteractionDirection.ENVIADO,
                content=text,
                outcome=InteractionOutcome.ENVIADO,
            )
        except ProspectingError as exc:
            metrics.increment("outreach.interaction_log_failed", tags={"code": exc.code})
            logger.warning(
                "outreach.interaction_log_failed",
                extra={"owner_id": owner_id, "lead_id": str(lead_id), "code": exc.code},
            )
            return False
        return True

    def _fallback(
        self, owner_id: str, number: str, text: str, lead_id: UUID | None, *, reason: str
    ) -> DispatchResult:
        metrics.increment("outreach.fallback", tags={"reason": reason})
        logger.info("outreach.fallback", extra={"owner_id": owner_id, "reason": reason})
        return DispatchResult(
            delivered=False,
            number=number,
            fallback_link=build_fallback_link(number, text),
            reason=reason,
            lead_id=lead_id,
        )
