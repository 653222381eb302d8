from __future__ import annotations

from urllib.parse import unquote

import pytest

from leadsniper.clients.whatsapp import SendReceipt
from leadsniper.models.lead import InteractionType, LeadStatus
from leadsniper.services.prospecting.errors import (
    PersistenceError,
    ProspectingValidationError,
    WhatsAppError,
)
from leadsniper.services.prospecting.outreach import OutreachDispatcher, build_fallback_link
from leadsniper.services.prospecting.repositories import InMemoryProspectingRepository
from tests.conftest import OWNER_ID

MESSAGE = "Olá! Vi o site de vocês & tenho uma ideia."


class StubChannel:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.sent: list[tuple[str, str, str]] = []

    def send_text(self, instance: str, number: str, text: str) -> SendReceipt:
        if self.error is not None:
            raise self.error
        self.sent.append((instance, number, text))
        return SendReceipt(message_id="wamid-1", instance=instance)


def _dispatcher(repository, channel):
    return OutreachDispatcher(repository, channel, instances={OWNER_ID: "agencia-01"})


def test_fallback_link_encodes_like_uri_component():
    link = build_fallback_link("5519998765432", "Oi (tudo bem?) 100%")
    assert link == "https://wa.me/5519998765432?text=Oi%20(tudo%20bem%3F)%20100%25"


def test_delivery_to_lead_logs_interaction_and_marks_contacted(repository, make_lead):
    outcome = repository.upsert(make_lead(), OWNER_ID)
    channel = StubChannel()

    result = _dispatcher(repository, channel).send_to_lead(OWNER_ID, outcome.id, f"  {MESSAGE} ")

    assert result.delivered is True
    assert result.message_id == "wamid-1"
    assert result.interaction_logged is True
    assert result.fallback_link is None
    assert channel.sent == [("agencia-01", "5519998765432", MESSAGE)]
    interactions = repository.list_interactions(OWNER_ID, outcome.id)
    assert [entry.type for entry in interactions] == [InteractionType.WHATSAPP]
    assert repository.get_lead(OWNER_ID, outcome.id).status is LeadStatus.CONTATADO


def test_gateway_failure_returns_fallback_link(repository, make_lead):
    outcome = repository.upsert(make_lead(), OWNER_ID)
    channel = StubChannel(error=WhatsAppError("gateway down"))

    result = _dispatcher(repository, channel).send_to_lead(OWNER_ID, outcome.id, MESSAGE)

    assert result.delivered is False
    assert result.reason == "502_WHATSAPP_UPSTREAM"
    assert result.fallback_link.startswith("https://wa.me/5519998765432?text=")
    assert unquote(result.fallback_link.split("text=", 1)[1]) == MESSAGE
    assert repository.list_interactions(OWNER_ID, outcome.id) == []
    assert repository.get_lead(OWNER_ID, outcome.id).status is LeadStatus.NOVO


def test_missing_channel_or_instance_falls_back(repository):
    unconfigured = OutreachDispatcher(repository, None)
    result = unconfigured.send(OWNER_ID, "19 99876-5432", MESSAGE)
    assert result.delivered is False
    assert result.reason == "channel_not_configured"
    assert result.number == "5519998765432"

    channel = StubChannel()
    no_instance = OutreachDispatcher(repository, channel, instances={"owner-b": "other"})
    assert no_instance.send(OWNER_ID, "19 99876-5432", MESSAGE).delivered is False
    assert channel.sent == []


def test_raw_number_delivery_has_no_lead(repository):
    result = _dispatcher(repository, StubChannel()).send(OWNER_ID, "+55 19 99876-5432", MESSAGE)
    assert result.delivered is True
    assert result.lead_id is None
    assert result.number == "5519998765432"


@pytest.mark.parametrize(("recipient", "message"), [("19 99876-5432", "   "), ("sem número", "Oi")])
def test_invalid_message_or_number_is_rejected(repository, recipient, message):
    with pytest.raises(ProspectingValidationError):
        _dispatcher(repository, StubChannel()).send(OWNER_ID, recipient, message)


class InteractionStoreDown(InMemoryProspectingRepository):
    def add_interaction(self, interaction):
        raise PersistenceError("db down")


def test_delivered_message_survives_interaction_log_failure(make_lead):
    repository = InteractionStoreDown()
    outcome = repository.upsert(make_lead(), OWNER_ID)
    channel = StubChannel()

    result = _dispatcher(repository, channel).send_to_lead(OWNER_ID, outcome.id, MESSAGE)

    assert result.delivered is True
    assert result.message_id == "wamid-1"
    assert result.interaction_logged is False
    assert len(channel.sent) == 1
    assert repository.get_lead(OWNER_ID, outcome.id).status is LeadStatus.NOVO
