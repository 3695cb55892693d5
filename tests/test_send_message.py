import json

import pytest

from clinvia import config
from clinvia.models_messaging import Conversation, Group, Message

SEND_TEXT_URL = f"{config.UAZAPI_BASE_URL}/send/text"
SEND_MEDIA_URL = f"{config.UAZAPI_BASE_URL}/send/media"


@pytest.fixture
def conversation(factory, owner):
    instance = factory.instance(owner)
    contact = factory.contact(owner, instance_id=instance.id)
    return factory.conversation(instance, contact)


def test_agent_reply_opens_conversation_and_signs_text(client, db, fake_http, auth, agent, conversation):
    fake_http.add("POST", SEND_TEXT_URL, {"messageid": "WA-1"})

    response = client.post(
        "/messages/send", json={"conversationId": conversation.id, "body": "Olá!"}, headers=auth
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["providerId"] == "WA-1"

    sent = json.loads(fake_http.sent("POST", SEND_TEXT_URL)[0].content)
    assert sent == {"number": "5511999990000", "text": "*Ana Souza:*\nOlá!"}

    db.refresh(conversation)
    assert conversation.status == "open"
    assert conversation.assigned_agent_id == agent.id
    assert conversation.last_message == "*Ana Souza:*\nOlá!"

    message = db.get(Message, body["messageId"])
    assert message.direction == "outbound"
    assert message.status == "sent"
    assert message.evolution_id == "WA-1"


def test_unsigned_when_agent_opted_out(client, db, fake_http, auth, agent, conversation):
    agent.sign_messages = False
    db.commit()
    fake_http.add("POST", SEND_TEXT_URL, {"messageid": "WA-1"})

    client.post("/messages/send", json={"conversationId": conversation.id, "body": "Olá!"}, headers=auth)

    assert json.loads(fake_http.sent("POST", SEND_TEXT_URL)[0].content)["text"] == "Olá!"


def test_api_send_leaves_conversation_pending(client, db, fake_http, headers, conversation):
    fake_http.add("POST", SEND_TEXT_URL, {"id": "WA-2"})

    response = client.post(
        "/messages/send",
        json={"conversationId": conversation.id, "body": "Lembrete", "message": {"wasSentByApi": True}},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["providerId"] == "WA-2"
    assert json.loads(fake_http.sent("POST", SEND_TEXT_URL)[0].content)["text"] == "Lembrete"
    db.refresh(conversation)
    assert conversation.status == "pending"


def test_media_message(client, db, fake_http, auth, conversation):
    fake_http.add("POST", SEND_MEDIA_URL, {"messageid": "WA-3"})

    response = client.post(
        "/messages/send",
        json={
            "conversationId": conversation.id,
            "messageType": "audio",
            "mediaUrl": "https://files/voice.ogg",
        },
        headers=auth,
    )
    assert response.status_code == 200
    sent = json.loads(fake_http.sent("POST", SEND_MEDIA_URL)[0].content)
    assert sent["type"] == "ptt"
    assert sent["file"] == "https://files/voice.ogg"
    message = db.get(Message, response.json()["messageId"])
    assert message.body == "[audio]"
    assert message.media_url == "https://files/voice.ogg"


def test_agent_starts_conversation_from_contact(client, db, fake_http, factory, owner, auth, agent):
    instance = factory.instance(owner, instance_name="second")
    contact = factory.contact(owner, number="5511911112222@s.whatsapp.net", instance_id=instance.id)
    fake_http.add("POST", SEND_TEXT_URL, {"messageid": "WA-4"})

    response = client.post("/messages/send", json={"contactId": contact.id, "body": "Oi"}, headers=auth)
    assert response.status_code == 200

    conversation = db.query(Conversation).one()
    assert conversation.status == "open"
    assert conversation.source == "panel"
    assert conversation.assigned_agent_id == agent.id


def test_unauthenticated_caller(client, conversation):
    response = client.post("/messages/send", json={"conversationId": conversation.id, "body": "Oi"})
    assert response.status_code == 401


def test_api_caller_cannot_open_conversations(client, headers, factory, owner):
    contact = factory.contact(owner)
    response = client.post("/messages/send", json={"contactId": contact.id, "body": "Oi"}, headers=headers)
    assert response.status_code == 401
    assert response.json() == {"detail": "Cannot create conversation: User not authenticated"}


def test_agent_of_other_account_is_forbidden(client, factory, bearer, conversation):
    outsider_owner = factory.user()
    outsider = factory.member(outsider_owner, "Bia", auth_user_id="auth-bia")

    response = client.post(
        "/messages/send",
        json={"conversationId": conversation.id, "body": "Oi"},
        headers=bearer(outsider),
    )
    assert response.status_code == 403


def test_validation_errors(client, auth, conversation):
    response = client.post("/messages/send", json={"conversationId": conversation.id}, headers=auth)
    assert response.status_code == 400
    assert response.json() == {"detail": "body is required for text messages"}

    response = client.post(
        "/messages/send", json={"conversationId": conversation.id, "messageType": "image"}, headers=auth
    )
    assert response.status_code == 400

    response = client.post("/messages/send", json={"body": "Oi"}, headers=auth)
    assert response.json() == {"detail": "Conversation ID is required"}

    response = client.post(
        "/messages/send", json={"conversationId": conversation.id, "body": "Oi", "messageType": "gif"}, headers=auth
    )
    assert response.status_code == 422


def test_gateway_failure_is_bad_gateway(client, db, fake_http, auth, conversation):
    fake_http.add("POST", SEND_TEXT_URL, {"error": "disconnected"}, status_code=500)

    response = client.post("/messages/send", json={"conversationId": conversation.id, "body": "Oi"}, headers=auth)
    assert response.status_code == 502
    assert db.query(Message).count() == 0


def test_invalid_token(client, conversation):
    response = client.post(
        "/messages/send",
        json={"conversationId": conversation.id, "body": "Oi"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401


def test_agent_cannot_message_contact_of_other_account(client, db, fake_http, factory, auth):
    other_owner = factory.user()
    other_instance = factory.instance(other_owner, instance_name="other-clinic", apikey="other-token")
    other_contact = factory.contact(other_owner, instance_id=other_instance.id)
    other_group = Group(
        remote_jid="1203@g.us", group_name="Equipe", instance_id=other_instance.id, user_id=other_owner.id
    )
    db.add(other_group)
    db.commit()

    response = client.post("/messages/send", json={"contactId": other_contact.id, "body": "Oi"}, headers=auth)
    assert response.status_code == 403

    response = client.post("/messages/send", json={"groupId": other_group.id, "body": "Oi"}, headers=auth)
    assert response.status_code == 403

    assert fake_http.requests == []
    assert db.query(Conversation).count() == 0
