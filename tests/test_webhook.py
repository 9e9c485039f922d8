from unittest.mock import patch

import pytest
from sqlalchemy import select

from models.models import MessagingIdentity

SECRET_HEADER = {"X-Telegram-Bot-Api-Secret-Token": "test-webhook-secret"}


def _update(text=None, contact=None, user_id=5001, update_id=1, message_id=10):
    message = {
        "message_id": message_id,
        "from": {"id": user_id, "first_name": "Ali", "last_name": "Valiyev", "username": "ali_v"},
        "chat": {"id": user_id, "type": "private"},
        "date": 1767000000,
    }
    if text is not None:
        message["text"] = text
    if contact is not None:
        message["contact"] = contact
    return {"update_id": update_id, "message": message}


@pytest.fixture
def replies():
    with patch("services.webhook_service.send_reply") as send_reply:
        yield send_reply


def _identities(session_factory):
    db = session_factory()
    try:
        return list(db.scalars(select(MessagingIdentity).order_by(MessagingIdentity.chat_handle)))
    finally:
        db.close()


def test_missing_or_wrong_secret_is_rejected(client, replies, session_factory):
    assert client.post("/webhook/telegram", json=_update("/start")).status_code == 401
    response = client.post(
        "/webhook/telegram",
        json=_update("/start"),
        headers={"X-Telegram-Bot-Api-Secret-Token": "nope"},
    )
    assert response.status_code == 401
    assert _identities(session_factory) == []
    replies.assert_not_called()


def test_invalid_json_is_rejected(client, replies):
    response = client.post(
        "/webhook/telegram",
        content=b"{not json",
        headers={**SECRET_HEADER, "Content-Type": "application/json"},
    )
    assert response.status_code == 400


def test_non_object_payload_is_rejected(client, replies):
    assert client.post("/webhook/telegram", json=[1, 2], headers=SECRET_HEADER).status_code == 400


def test_non_message_update_is_ignored(client, replies):
    response = client.post("/webhook/telegram", json={"update_id": 3, "callback_query": {}}, headers=SECRET_HEADER)
    assert response.status_code == 204
    replies.assert_not_called()


def test_start_records_profile_and_asks_for_contact(client, replies, session_factory):
    response = client.post("/webhook/telegram", json=_update("/start"), headers=SECRET_HEADER)

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    [identity] = _identities(session_factory)
    assert identity.chat_handle == "5001"
    assert identity.username == "ali_v"
    assert identity.display_name == "Ali Valiyev"
    assert identity.phone_number is None

    message, text, markup = replies.call_args.args
    assert message.chat_id == "5001"
    assert "Ali" in text
    assert markup["keyboard"][0][0]["request_contact"] is True


def test_contact_share_binds_normalized_phone(client, replies, session_factory):
    contact = {"phone_number": "998901112233", "user_id": 5001, "first_name": "Ali"}

    response = client.post("/webhook/telegram", json=_update(contact=contact), headers=SECRET_HEADER)

    assert response.status_code == 200
    [identity] = _identities(session_factory)
    assert identity.phone_number == "+998901112233"
    assert identity.is_active is True
    _, text, markup = replies.call_args.args
    assert "+998901112233" in text
    assert markup == {"remove_keyboard": True}


def test_replayed_updates_are_idempotent(client, replies, session_factory):
    start = _update("/start", update_id=1, message_id=10)
    contact = _update(contact={"phone_number": "+998901112233", "user_id": 5001}, update_id=2, message_id=11)

    for payload in (start, start, contact, contact):
        assert client.post("/webhook/telegram", json=payload, headers=SECRET_HEADER).status_code == 200

    identities = _identities(session_factory)
    assert len(identities) == 1
    assert identities[0].phone_number == "+998901112233"


def test_foreign_contact_is_not_bound(client, replies, session_factory):
    contact = {"phone_number": "+998907776655", "user_id": 7777}

    client.post("/webhook/telegram", json=_update(contact=contact), headers=SECRET_HEADER)

    assert _identities(session_factory) == []
    _, text, _ = replies.call_args.args
    assert "o'zingizning" in text


def test_address_book_card_cannot_take_over_a_phone(client, replies, session_factory):
    phone = {"phone_number": "+998901112233"}
    client.post(
        "/webhook/telegram",
        json=_update(contact={**phone, "user_id": 5001}, user_id=5001),
        headers=SECRET_HEADER,
    )
    client.post("/webhook/telegram", json=_update(contact=phone, user_id=9999), headers=SECRET_HEADER)

    identities = _identities(session_factory)
    assert [(i.chat_handle, i.is_active) for i in identities] == [("5001", True)]
    _, text, _ = replies.call_args.args
    assert "o'zingizning" in text


def test_phone_moves_to_the_latest_chat(client, replies, session_factory):
    phone = {"phone_number": "+998901112233"}
    client.post(
        "/webhook/telegram",
        json=_update(contact={**phone, "user_id": 5001}, user_id=5001),
        headers=SECRET_HEADER,
    )
    client.post(
        "/webhook/telegram",
        json=_update(contact={**phone, "user_id": 6002}, user_id=6002),
        headers=SECRET_HEADER,
    )

    old, new = _identities(session_factory)
    assert (old.chat_handle, old.is_active) == ("5001", False)
    assert (new.chat_handle, new.is_active) == ("6002", True)


def test_other_text_gets_a_hint(client, replies):
    client.post("/webhook/telegram", json=_update("salom"), headers=SECRET_HEADER)

    _, text, markup = replies.call_args.args
    assert "/start" in text
    assert markup is None


def test_code_typed_in_chat_verifies_session(client, replies, bot_dispatcher):
    contact = {"phone_number": "+998901112233", "user_id": 5001}
    client.post("/webhook/telegram", json=_update(contact=contact), headers=SECRET_HEADER)
    created = client.post("/otp/sessions", json={"email": "a@b.uz", "phone_number": "+998901112233"}).json()
    code = bot_dispatcher.last_code

    client.post("/webhook/telegram", json=_update(code, update_id=5, message_id=20), headers=SECRET_HEADER)

    _, text, _ = replies.call_args.args
    assert "tasdiqlandi" in text
    status = client.post("/otp/status", json={"session_token": created["session_token"]}).json()
    assert status["status"] == "verified"


def test_webhook_rate_limit(client, replies, monkeypatch):
    from core.config import settings

    monkeypatch.setattr(settings, "rate_limit_max", 2)
    codes = [
        client.post("/webhook/telegram", json=_update("salom", message_id=i), headers=SECRET_HEADER).status_code
        for i in range(3)
    ]
    assert codes == [200, 200, 429]


def test_chat_codes_work_without_directory_config(client, replies, monkeypatch):
    from core.config import settings
    from dependencies.services import get_directory
    from main import app

    app.dependency_overrides.pop(get_directory)
    monkeypatch.setattr(settings, "directory_base_url", None)
    monkeypatch.setattr(settings, "directory_service_key", None)

    response = client.post("/webhook/telegram", json=_update("123456"), headers=SECRET_HEADER)

    assert response.status_code == 200
    _, text, _ = replies.call_args.args
    assert "noto'g'ri" in text
