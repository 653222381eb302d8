"""API endpoint for outbound WhatsApp messages."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, model_validator

from leadsniper.api.errors import require_owner
from leadsniper.services.prospecting.dependencies import get_outreach_dispatcher
from leadsniper.services.prospecting.outreach import DispatchResult, OutreachDispatcher

router = APIRouter()


class OutreachRequest(BaseModel):
    """Send to a stored lead or to a raw phone number, not both."""

    lead_id: UUID | None = None
    phone: str | None = None
    message: str = Field(..., description="Message body; must not be blank.")

    @model_validator(mode="after")
    def _one_recipient(self) -> OutreachRequest:
        if (self.lead_id is None) == (not self.phone):
            raise ValueError("Provide exactly one of lead_id or phone.")
        return self


@router.post("/outreach/send", response_model=DispatchResult)
def send_message(
    payload: OutreachRequest,
    owner_id: str = Depends(require_owner),
    dispatcher: OutreachDispatcher = Depends(get_outreach_dispatcher),
) -> DispatchResult:
    """A response carrying ``fallback_link`` is still a success."""
    if payload.lead_id is not None:
        return dispatcher.send_to_lead(owner_id, payload.lead_id, payload.message)
    return dispatcher.send(owner_id, payload.phone or "", payload.message)
