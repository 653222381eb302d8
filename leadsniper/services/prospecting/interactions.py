"""Interaction logging and the lead status transitions it drives."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Final
from uuid import UUID

from leadsniper.models.lead import (
    Interaction,
    InteractionDirection,
    InteractionOutcome,
    InteractionType,
    Lead,
    LeadStatus,
)
from leadsniper.observability.metrics import metrics
from leadsniper.services.prospecting.errors import LeadNotFoundError
from leadsniper.services.prospecting.repositories import ProspectingRepository

logger = logging.getLogger(__name__)

# Strict allow-list; every other (status, direction) pair is a no-op on status.
TRANSITIONS: Final[dict[tuple[LeadStatus, InteractionDirection], LeadStatus]] = {
    (LeadStatus.NOVO, InteractionDirection.ENVIADO): LeadStatus.CONTATADO,
    (LeadStatus.CONTATADO, InteractionDirection.RECEBIDO): LeadStatus.RESPONDEU,
}

STATUS_TIMESTAMPS: Final[dict[LeadStatus, str]] = {
    LeadStatus.CONTATADO: "first_contact_at",
    LeadStatus.RESPONDEU: "first_response_at",
}


@dataclass(frozen=True)
class InteractionResult:
    interaction: Interaction
    lead: Lead
    previous_status: LeadStatus

    @property
    def transitioned(self) -> bool:
        return self.lead.status is not self.previous_status


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _with_status(lead: Lead, status: LeadStatus, now: datetime) -> Lead:
    updates: dict[str, object] = {"status": status}
    stamp = STATUS_TIMESTAMPS.get(status)
    if stamp and getattr(lead, stamp) is None:
        updates[stamp] = now
    return lead.model_copy(update=updates)


def transition(
    lead: Lead, direction: InteractionDirection | None, *, now: datetime | None = None
) -> Lead:
    """Apply the pipeline transition for ``direction``, if one is allowed."""
    if direction is None:
        return lead
    target = TRANSITIONS.get((lead.status, direction))
    if target is None:
        return lead
    return _with_status(lead, target, now or _utcnow())


def apply_manual_status(lead: Lead, status: LeadStatus, *, now: datetime | None = None) -> Lead:
    """Set any status by hand; the matching timestamp is stamped only when unset."""
    return _with_status(lead, status, now or _utcnow())


class InteractionService:
    def __init__(self, repository: ProspectingRepository) -> None:
        self._repository = repository

    def log(
        self,
        owner_id: str,
        lead_id: UUID,
        *,
        interaction_type: InteractionType,
        direction: InteractionDirection | None = None,
        content: str | None = None,
        outcome: InteractionOutcome | None = None,
    ) -> InteractionResult:
        lead = self._repository.get_lead(owner_id, lead_id)
        if lead is None:
            raise LeadNotFoundError()
        interaction = self._repository.add_interaction(
            Interaction(
                lead_id=lead.id,
                owner_id=owner_id,
                type=interaction_type,
                direction=direction,
                content=content,
                outcome=outcome,
            )
        )
        updated = transition(lead, direction, now=interaction.created_at)
        if updated is not lead:
            updated = self._repository.update_lead(updated)
            metrics.increment(
                "prospecting.lead.status_transition",
                tags={"from": lead.status.value, "to": updated.status.value},
            )
            logger.info(
                "prospecting.lead.status_transition",
                extra={
                    "lead_id": str(lead.id),
                    "from": lead.status.value,
                    "to": updated.status.value,
                },
            )
        return InteractionResult(interaction=interaction, lead=updated, previous_status=lead.status)

    def list(self, owner_id: str, lead_id: UUID) -> list[Interaction]:
        if self._repository.get_lead(owner_id, lead_id) is None:
            raise LeadNotFoundError()
        return self._repository.list_interactions(owner_id, lead_id)
