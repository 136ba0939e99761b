"""Tests for the WhatsApp webhook surface."""

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from recruit_engine.config import settings
from recruit_engine.errors import MessagingError, UnknownOriginError
from recruit_engine.schemas.conversation_schema import InboundMessage, OutboundMessage
from recruit_engine.webhook import create_app, parse_inbound

CONFIG = replace(settings, messaging=replace(settings.messaging, verify_token="secret"))


def text_payload(body="Hola", sender="51987654321", phone_number_id="acme-whatsapp"):
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "changes": [
                    {
                        "value": {
                            "metadata": {"phone_number_id": phone_number_id},
                            "messages": [
                                {"from": sender, "id": "wamid.1", "type": "text", "text": {"body": body}}
                            ],
                        }
                    }
                ]
            }
        ],
    }


class RecordingEngine:
    def __init__(self, error=None):
        self.received: list[InboundMessage] = []
        self.error = error

    async def handle(self, inbound: InboundMessage) -> OutboundMessage:
        self.received.append(inbound)
        if self.error is not None:
            raise self.error
        return OutboundMessage(to=inbound.sender, text=f"eco: {inbound.text}")


class RecordingSender:
    def __init__(self, fail=False):
        self.sent: list[OutboundMessage] = []
        self.fail = fail

    async def send(self, message: OutboundMessage) -> str:
        if self.fail:
            raise MessagingError("rejected")
        self.sent.append(message)
        return "wamid.out"


def make_client(engine=None, sender=None):
    app = create_app(engine=engine or RecordingEngine(), sender=sender or RecordingSender(), config=CONFIG)
    return TestClient(app)


class TestParseInbound:
    def test_text_message(self):
        [message] = parse_inbound(text_payload("Sí, acepto"), "fallback")
        assert message.sender == "51987654321"
        assert message.text == "Sí, acepto"
        assert message.origin_id == "acme-whatsapp"
        assert message.message_id == "wamid.1"

    def test_location_message(self):
        payload = text_payload()
        payload["entry"][0]["changes"][0]["value"]["messages"] = [
            {
                "from": "51987654321",
                "type": "location",
                "location": {"latitude": -12.11, "longitude": -77.03, "name": "Parque Kennedy"},
            }
        ]
        [message] = parse_inbound(payload, "fallback")
        assert (message.latitude, message.longitude) == (-12.11, -77.03)
        assert message.text == "Parque Kennedy"

    def test_missing_metadata_uses_default_origin(self):
        payload = text_payload()
        del payload["entry"][0]["changes"][0]["value"]["metadata"]
        [message] = parse_inbound(payload, "fallback")
        assert message.origin_id == "fallback"

    def test_status_callbacks_and_media_are_skipped(self):
        payload = text_payload()
        value = payload["entry"][0]["changes"][0]["value"]
        value["messages"] = [{"from": "51987654321", "type": "image", "image": {}}]
        value["statuses"] = [{"status": "delivered"}]
        assert parse_inbound(payload, "fallback") == []

    def test_empty_payload(self):
        assert parse_inbound({}, "fallback") == []


class TestVerification:
    def test_valid_token_echoes_challenge(self):
        response = make_client().get(
            "/webhook/whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "secret", "hub.challenge": "42"},
        )
        assert response.status_code == 200
        assert response.text == "42"

    def test_wrong_token(self):
        response = make_client().get(
            "/webhook/whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "42"},
        )
        assert response.status_code == 403


class TestDelivery:
    def test_text_message_is_answered(self):
        engine, sender = RecordingEngine(), RecordingSender()
        response = make_client(engine, sender).post("/webhook/whatsapp", json=text_payload("Hola"))

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "received": 1}
        assert [m.text for m in engine.received] == ["Hola"]
        assert sender.sent == [OutboundMessage(to="51987654321", text="eco: Hola")]

    def test_invalid_json_is_acknowledged(self):
        response = make_client().post(
            "/webhook/whatsapp", content=b"not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}

    @pytest.mark.parametrize("error", [UnknownOriginError("mystery"), RuntimeError("boom")])
    def test_engine_failure_still_acknowledged(self, error):
        sender = RecordingSender()
        response = make_client(RecordingEngine(error=error), sender).post(
            "/webhook/whatsapp", json=text_payload()
        )
        assert response.status_code == 200
        assert sender.sent == []

    def test_send_failure_still_acknowledged(self):
        response = make_client(sender=RecordingSender(fail=True)).post(
            "/webhook/whatsapp", json=text_payload()
        )
        assert response.status_code == 200


def test_health():
    response = make_client().get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
