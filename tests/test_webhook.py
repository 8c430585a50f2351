from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from listing_intake import __version__
from listing_intake.config import settings
from listing_intake.main import app
from listing_intake.routers.dependencies import get_dedup_store, get_dispatcher
from listing_intake.schemas.webhook import EventKind
from listing_intake.services.dedup_store import DedupStore
from listing_intake.services.dispatcher import DispatchOutcome


def _envelope(*messages):
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "waba-1", "changes": [{"field": "messages", "value": {"messages": list(messages)}}]}],
    }


def _text(message_id, body, phone="923001234567"):
    return {"from": phone, "id": message_id, "timestamp": "1700000000", "type": "text", "text": {"body": body}}


@pytest.fixture
def dispatcher():
    fake = Mock()
    fake.handle = AsyncMock(return_value=DispatchOutcome(status="processed"))
    app.dependency_overrides[get_dispatcher] = lambda: fake
    try:
        yield fake
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


class TestVerify:
    def test_subscribe_handshake_echoes_challenge(self, client, monkeypatch):
        monkeypatch.setattr(settings, "whatsapp_verify_token", "verify-me")

        response = client.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "1158201444"},
        )

        assert response.status_code == 200
        assert response.text == "1158201444"

    def test_wrong_token_is_forbidden(self, client, monkeypatch):
        monkeypatch.setattr(settings, "whatsapp_verify_token", "verify-me")

        response = client.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "guess", "hub.challenge": "1"},
        )

        assert response.status_code == 403

    def test_unconfigured_token_is_forbidden(self, client, monkeypatch):
        monkeypatch.setattr(settings, "whatsapp_verify_token", "")

        response = client.get("/webhook", params={"hub.mode": "subscribe", "hub.verify_token": ""})

        assert response.status_code == 403

    def test_version_check(self, client):
        response = client.get("/webhook", params={"version": "check"})

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": __version__}


class TestReceive:
    def test_dispatches_each_message(self, client, dispatcher):
        response = client.post("/webhook", json=_envelope(_text("wamid.1", "sell"), _text("wamid.2", "help")))

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "processed": 2}
        events = [call.args[0] for call in dispatcher.handle.await_args_list]
        assert [event.inbound_message_id for event in events] == ["wamid.1", "wamid.2"]
        assert events[0].kind == EventKind.TEXT
        assert events[0].text == "sell"

    def test_status_callbacks_are_acknowledged(self, client, dispatcher):
        body = _envelope()
        body["entry"][0]["changes"][0]["value"]["statuses"] = [{"id": "wamid.out", "status": "delivered"}]

        response = client.post("/webhook", json=body)

        assert response.status_code == 200
        assert response.json()["processed"] == 0
        dispatcher.handle.assert_not_awaited()

    def test_duplicates_are_not_counted(self, client, dispatcher):
        dispatcher.handle.return_value = DispatchOutcome(status="duplicate")

        response = client.post("/webhook", json=_envelope(_text("wamid.1", "sell")))

        assert response.status_code == 200
        assert response.json()["processed"] == 0

    def test_dispatch_failure_still_returns_200(self, client, dispatcher):
        dispatcher.handle.side_effect = [RuntimeError("boom"), DispatchOutcome(status="processed")]

        response = client.post("/webhook", json=_envelope(_text("wamid.1", "sell"), _text("wamid.2", "hi")))

        assert response.status_code == 200
        assert response.json()["processed"] == 1

    def test_button_reply_becomes_control_event(self, client, dispatcher):
        message = {
            "from": "923001234567",
            "id": "wamid.3",
            "type": "interactive",
            "interactive": {"type": "button_reply", "button_reply": {"id": "submit", "title": "YES, SUBMIT ✓"}},
        }

        client.post("/webhook", json=_envelope(message))

        event = dispatcher.handle.await_args.args[0]
        assert event.kind == EventKind.BUTTON
        assert event.control_id == "submit"

    def test_invalid_json(self, client, dispatcher):
        response = client.post("/webhook", content=b"{not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 400

    def test_malformed_envelope(self, client, dispatcher):
        response = client.post("/webhook", json={"entry": "not-a-list"})

        assert response.status_code == 400
        dispatcher.handle.assert_not_awaited()


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_redis_health(self, client, fake_redis):
        app.dependency_overrides[get_dedup_store] = lambda: DedupStore(fake_redis)
        try:
            assert client.get("/health/redis").json() == {"status": "ok", "redis": True}
            fake_redis.down = True
            assert client.get("/health/redis").json() == {"status": "degraded", "redis": False}
        finally:
            app.dependency_overrides.clear()
