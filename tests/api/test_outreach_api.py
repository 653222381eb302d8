from __future__ import annotations

from leadsniper.clients.whatsapp import SendReceipt
from leadsniper.services.prospecting.dependencies import get_outreach_dispatcher
from leadsniper.services.prospecting.outreach import OutreachDispatcher
from tests.conftest import OWNER_ID


class StubChannel:
    def send_text(self, instance: str, number: str, text: str) -> SendReceipt:
        return SendReceipt(message_id="wamid-1", instance=instance)


def test_send_to_lead_delivers(client, repository, make_lead, owner_headers, override_dependency):
    outcome = repository.upsert(make_lead(), OWNER_ID)
    override_dependency(
        get_outreach_dispatcher,
        OutreachDispatcher(repository, StubChannel(), instances={OWNER_ID: "agencia-01"}),
    )

    response = client.post(
        "/api/outreach/send",
        json={"lead_id": str(outcome.id), "message": "Oi!"},
        headers=owner_headers,
    )

    assert response.status_code == 200
    assert response.json()["delivered"] is True
    assert response.json()["lead_id"] == str(outcome.id)


def test_send_to_phone_without_channel_returns_fallback(
    client, repository, owner_headers, override_dependency
):
    override_dependency(get_outreach_dispatcher, OutreachDispatcher(repository, None))

    response = client.post(
        "/api/outreach/send",
        json={"phone": "(11) 98765-4321", "message": "Bom dia"},
        headers=owner_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["delivered"] is False
    assert body["fallback_link"] == "https://wa.me/5511987654321?text=Bom%20dia"


def test_recipient_must_be_exactly_one(client, repository, owner_headers, override_dependency):
    override_dependency(get_outreach_dispatcher, OutreachDispatcher(repository, None))

    neither = client.post("/api/outreach/send", json={"message": "Oi"}, headers=owner_headers)
    both = client.post(
        "/api/outreach/send",
        json={"lead_id": "7f2c1a9e-3c1b-4a57-9a55-0c7b1d1f8a10", "phone": "11999", "message": "Oi"},
        headers=owner_headers,
    )
    assert neither.status_code == 422
    assert both.status_code == 422


def test_blank_message_is_rejected(client, repository, owner_headers, override_dependency):
    override_dependency(get_outreach_dispatcher, OutreachDispatcher(repository, None))

    response = client.post(
        "/api/outreach/send", json={"phone": "11987654321", "message": "  "}, headers=owner_headers
    )
    assert response.status_code == 400
