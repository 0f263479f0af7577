import asyncio

import pytest
from fastapi.testclient import TestClient

from app.api.webhook import get_dispatcher
from app.core.config import settings
from app.flow.states import DialogStage
from app.main import app
from app.schemas.telegram import EventKind, parse_telegram_update

WEBHOOK_URL = f"{settings.API_PREFIX}/webhook/telegram"


def text_update(chat_id, text):
    return {
        "update_id": 1,
        "message": {
            "message_id": 10,
            "chat": {"id": chat_id, "type": "private"},
            "from": {"id": chat_id, "first_name": "Anna", "username": "anna"},
            "text": text,
        },
    }


@pytest.fixture
def client(dispatcher):
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============================================================================
# PARSING
# ============================================================================

def test_parse_text_update():
    event = parse_telegram_update(text_update(100, "Hi"))
    assert event.kind == EventKind.TEXT
    assert event.chat_id == 100
    assert event.text == "Hi"
    assert event.sender_name == "Anna"


def test_parse_photo_picks_largest_size():
    event = parse_telegram_update({
        "message": {
            "chat": {"id": 100},
            "from": {"id": 100, "username": "anna"},
            "caption": "me",
            "photo": [
                {"file_id": "small", "file_size": 100},
                {"file_id": "large", "file_size": 9000},
                {"file_id": "medium", "file_size": 2000},
            ],
        }
    })
    assert event.kind == EventKind.PHOTO
    assert event.photo_file_id == "large"
    assert event.text == "me"
    assert event.sender_name == "@anna"


def test_parse_live_location():
    event = parse_telegram_update({
        "message": {
            "chat": {"id": 100},
            "location": {"latitude": 52.5, "longitude": 13.4, "live_period": 3600},
        }
    })
    assert event.kind == EventKind.LOCATION
    assert (event.latitude, event.longitude, event.live_period) == (52.5, 13.4, 3600)


def test_parse_callback_query():
    event = parse_telegram_update({
        "callback_query": {
            "id": "cbq-7",
            "from": {"id": 200, "first_name": "Boris"},
            "message": {"chat": {"id": 200}},
            "data": "accept_100",
        }
    })
    assert event.kind == EventKind.CALLBACK
    assert event.chat_id == 200
    assert event.callback_data == "accept_100"
    assert event.callback_query_id == "cbq-7"


def test_parse_edited_live_location_is_a_location_update():
    event = parse_telegram_update({
        "edited_message": {
            "chat": {"id": 100},
            "from": {"id": 100, "first_name": "Anna"},
            "location": {"latitude": 52.6, "longitude": 13.5, "live_period": 3600},
        }
    })
    assert event.kind == EventKind.LOCATION_UPDATE
    assert (event.latitude, event.longitude) == (52.6, 13.5)


def test_parse_edited_text_is_ignored():
    assert parse_telegram_update({"edited_message": {"chat": {"id": 100}, "text": "25"}}) is None
    assert parse_telegram_update({
        "edited_message": {"chat": {"id": 100}, "photo": [{"file_id": "p"}], "caption": "new"}
    }) is None


def test_parse_unsupported_update():
    assert parse_telegram_update({"update_id": 5, "channel_post": {"text": "news"}}) is None
    assert parse_telegram_update({"message": {"chat": {"id": 1}, "sticker": {}}}) is None


# ============================================================================
# ENDPOINT
# ============================================================================

def test_webhook_dispatches_update(client, dispatcher, messenger):
    response = client.post(WEBHOOK_URL, json=text_update(100, "/help"))

    assert response.status_code == 200
    assert response.json()["ok"] is True
    assert response.json()["handled"] is True
    assert messenger.texts_to(100)


def test_webhook_start_begins_onboarding(client, dispatcher):
    client.post(WEBHOOK_URL, json=text_update(900, "/start"))
    stage = dispatcher.ctx.store._entries[900].stage
    assert stage == DialogStage.AWAITING_DESCRIPTION


def test_webhook_acknowledges_unsupported_update(client, messenger):
    response = client.post(WEBHOOK_URL, json={"update_id": 5, "channel_post": {"text": "news"}})

    assert response.status_code == 200
    assert response.json()["handled"] is False
    assert messenger.sent == []


def test_webhook_ignores_edited_answer(client, dispatcher, users, messenger):
    store = dispatcher.ctx.store
    asyncio.run(store.set_stage(100, DialogStage.AWAITING_AGE))

    payload = text_update(100, "25")
    payload["edited_message"] = payload.pop("message")
    response = client.post(WEBHOOK_URL, json=payload)

    assert response.json()["handled"] is False
    assert store._entries[100].stage == DialogStage.AWAITING_AGE
    assert users.users[100]["age"] == 27
    assert messenger.sent == []


def test_webhook_live_location_tick_keeps_browsing_position(client, dispatcher, users, search, messenger):
    search.results = [{"telegram_id": 200, "first_name": "Boris"}, {"telegram_id": 300, "first_name": "Clara"}]
    location = {"latitude": 52.5, "longitude": 13.4, "live_period": 3600}
    client.post(WEBHOOK_URL, json={"message": {"chat": {"id": 100}, "location": location}})
    client.post(WEBHOOK_URL, json={"callback_query": {"id": "cb", "from": {"id": 100}, "data": "duration_3"}})
    client.post(WEBHOOK_URL, json={"callback_query": {"id": "cb", "from": {"id": 100}, "data": "radius_5"}})
    client.post(WEBHOOK_URL, json={"callback_query": {"id": "cb", "from": {"id": 100}, "data": "next_candidate"}})
    sent_before = len(messenger.sent)

    tick = {"edited_message": {"chat": {"id": 100}, "location": {**location, "latitude": 52.51}}}
    response = client.post(WEBHOOK_URL, json=tick)

    assert response.json()["handled"] is True
    assert dispatcher.ctx.store._entries[100].cursor == 1
    assert len(search.calls) == 1
    assert users.locations[100] == (52.51, 13.4, 3, 5)
    assert len(messenger.sent) == sent_before


def test_webhook_rejects_invalid_json(client):
    response = client.post(WEBHOOK_URL, content="not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json()["code"] == "HTTP_ERROR"


def test_webhook_checks_secret_token(client, monkeypatch, messenger):
    monkeypatch.setattr(settings, "TELEGRAM_WEBHOOK_SECRET", "s3cret")

    rejected = client.post(WEBHOOK_URL, json=text_update(100, "/help"))
    assert rejected.status_code == 401
    assert rejected.json()["code"] == "AUTHENTICATION_FAILED"
    assert messenger.sent == []

    accepted = client.post(
        WEBHOOK_URL,
        json=text_update(100, "/help"),
        headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"}
    )
    assert accepted.status_code == 200


def test_webhook_verification_route(client):
    response = client.get(f"{settings.API_PREFIX}/webhook")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_liveness_probe(client):
    assert client.get("/live").json() == {"status": "alive"}
