import json
from datetime import timedelta

import pytest

from clinvia import config
from clinvia.models import Contact
from clinvia.models_messaging import (
    Conversation,
    ConversationFollowUp,
    FollowUpCategory,
    FollowUpTemplate,
    Group,
    GroupMember,
    Message,
)
from clinvia.shared.timezones import utcnow
from clinvia.webhook_security import create_webhook_signature

DOWNLOAD_URL = f"{config.UAZAPI_BASE_URL}/message/download"


@pytest.fixture
def instance(factory, owner):
    return factory.instance(owner, instance_name="clinic-main", default_queue_id="queue-1")


def text_event(text="Olá, quero agendar", message_id="MSG1", **message):
    return {
        "EventType": "messages",
        "instanceName": "clinic-main",
        "chat": {"wa_chatid": "5511988887777@s.whatsapp.net", "name": "Maria", "image": "https://pic/1.jpg"},
        "message": {
            "chatid": "5511988887777@s.whatsapp.net",
            "messageid": message_id,
            "messageType": "conversation",
            "text": text,
            "fromMe": False,
            **message,
        },
    }


def test_inbound_message_creates_contact_and_conversation(client, db, instance):
    response = client.post("/webhooks/message", json=text_event())
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Processed"}

    contact = db.query(Contact).one()
    assert contact.push_name == "Maria"
    assert contact.instance_id == instance.id
    assert contact.profile_pic_url == "https://pic/1.jpg"

    conversation = db.query(Conversation).one()
    assert conversation.status == "pending"
    assert conversation.source == "webhook"
    assert conversation.queue_id == "queue-1"
    assert conversation.unread_count == 1

    message = db.query(Message).one()
    assert message.direction == "inbound"
    assert message.body == "Olá, quero agendar"
    assert message.evolution_id == "MSG1"
    assert message.sender_name == "Maria"


def test_second_message_reuses_open_conversation(client, db, instance):
    client.post("/webhooks/message", json=text_event(message_id="MSG1"))
    client.post("/webhooks/message", json=text_event(text="Pode ser amanhã?", message_id="MSG2"))

    conversation = db.query(Conversation).one()
    db.refresh(conversation)
    assert conversation.unread_count == 2
    assert conversation.last_message == "Pode ser amanhã?"
    assert db.query(Message).count() == 2
    assert db.query(Contact).count() == 1


def test_outbound_echo_is_stored_as_outbound(client, db, instance):
    client.post("/webhooks/message", json=text_event(fromMe=True))
    assert db.query(Message).one().direction == "outbound"


def test_unknown_instance(client):
    response = client.post("/webhooks/message", json=text_event())
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Instance not found"}


def test_missing_chat_id(client, instance):
    payload = text_event()
    payload["chat"] = {}
    payload["message"].pop("chatid")

    response = client.post("/webhooks/message", json=payload)
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "No wa_chatid"}


def test_group_message_creates_group_and_member(client, db, instance):
    payload = {
        "EventType": "messages",
        "instanceName": "clinic-main",
        "body": {"chat": {"wa_chatid": "120363@g.us", "name": "Equipe"}},
        "message": {
            "isGroup": True,
            "chatid": "120363@g.us",
            "sender_pn": "5511977776666@s.whatsapp.net",
            "senderName": "João",
            "messageid": "GRP1",
            "text": "Bom dia",
        },
    }

    response = client.post("/webhooks/message", json=payload)
    assert response.status_code == 200

    group = db.query(Group).one()
    assert group.group_name == "Equipe"
    member = db.query(GroupMember).one()
    assert member.push_name == "João"
    conversation = db.query(Conversation).one()
    assert conversation.group_id == group.id
    assert conversation.contact_id is None
    assert db.query(Message).one().sender_jid == "5511977776666@s.whatsapp.net"


def test_quoted_reply_is_recorded(client, db, instance):
    payload = text_event(
        content={
            "text": "Sim",
            "contextInfo": {
                "stanzaID": "ORIG1",
                "participant": "12345@lid",
                "quotedMessage": {"conversation": "Confirma o horário?"},
            },
        }
    )

    client.post("/webhooks/message", json=payload)

    message = db.query(Message).one()
    assert message.reply_to_id == "ORIG1"
    assert message.quoted_body == "Confirma o horário?"
    assert message.quoted_sender == "Atendente"


def test_media_message_gets_download_link(client, db, fake_http, instance):
    fake_http.add("POST", DOWNLOAD_URL, {"fileURL": "https://files/audio.ogg"})

    response = client.post(
        "/webhooks/message", json=text_event(text="", messageType="AudioMessage", message_id="AUD1")
    )
    assert response.status_code == 200

    message = db.query(Message).one()
    assert message.message_type == "audio"
    assert message.media_url == "https://files/audio.ogg"
    assert db.query(Conversation).one().last_message == "Mídia"
    request = fake_http.sent("POST", DOWNLOAD_URL)[0]
    assert request.headers["token"] == "instance-token"
    assert json.loads(request.content)["id"] == "AUD1"


def test_event_is_forwarded_to_instance_webhook(client, db, fake_http, instance):
    instance.webhook_url = "https://automation.example.com/hook"
    db.commit()
    fake_http.add("POST", instance.webhook_url, {"ok": True})

    client.post("/webhooks/message", json=text_event())

    forwarded = fake_http.sent("POST", "https://automation.example.com/hook")
    assert len(forwarded) == 1
    assert forwarded[0].headers["User-Agent"] == "Clinvia-Webhook-Proxy/1.0"
    assert json.loads(forwarded[0].content)["instanceName"] == "clinic-main"


def test_customer_reply_restarts_follow_up(client, db, factory, owner, instance):
    contact = factory.contact(owner, number="5511988887777@s.whatsapp.net", instance_id=instance.id)
    conversation = factory.conversation(instance, contact)
    category = FollowUpCategory(user_id=owner.id, name="Orçamento")
    db.add(category)
    db.flush()
    db.add_all(
        [
            FollowUpTemplate(category_id=category.id, name="1", message="Oi!", time_minutes=30),
            FollowUpTemplate(category_id=category.id, name="2", message="Ainda aí?", time_minutes=120),
        ]
    )
    follow_up = ConversationFollowUp(
        conversation_id=conversation.id,
        category_id=category.id,
        auto_send=True,
        current_template_index=1,
        completed=True,
    )
    db.add(follow_up)
    db.commit()

    client.post("/webhooks/message", json=text_event())

    db.refresh(follow_up)
    assert follow_up.current_template_index == 0
    assert follow_up.completed is False
    assert follow_up.next_send_at > utcnow() + timedelta(minutes=25)


def test_invalid_instance_name_is_rejected(client, instance):
    payload = text_event()
    payload["instanceName"] = "clinic; rm -rf /"

    response = client.post("/webhooks/message", json=payload)
    assert response.status_code == 400
    assert response.json() == {"detail": "instanceName contains invalid characters"}


def test_invalid_json(client):
    response = client.post("/webhooks/message", content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json() == {"detail": "Invalid JSON payload"}


def test_signature_is_enforced_when_secret_configured(client, db, monkeypatch, instance):
    monkeypatch.setattr(config, "WEBHOOK_HMAC_SECRET", "hook-secret")
    raw = json.dumps(text_event()).encode()

    response = client.post("/webhooks/message", content=raw, headers={"Content-Type": "application/json"})
    assert response.status_code == 401

    response = client.post(
        "/webhooks/message",
        content=raw,
        headers={"Content-Type": "application/json", "x-webhook-signature": create_webhook_signature("hook-secret", raw)},
    )
    assert response.status_code == 200


def test_read_receipt_updates_messages(client, db, factory, instance):
    conversation = factory.conversation(instance)
    db.add_all(
        [
            Message(conversation_id=conversation.id, direction="outbound", evolution_id="OUT1", status="sent"),
            Message(conversation_id=conversation.id, direction="outbound", evolution_id="OUT2", status="sent"),
        ]
    )
    db.commit()

    response = client.post(
        "/webhooks/status",
        json={"type": "ReadReceipt", "state": "Read", "event": {"MessageIDs": ["OUT1", "OUT2", "MISSING"]}},
    )
    assert response.json() == {"success": True, "message": "Read receipt processed", "updated": 2, "notFound": 1}
    assert {m.status for m in db.query(Message).all()} == {"read"}


def test_ack_updates_one_message(client, db, factory, instance):
    conversation = factory.conversation(instance)
    db.add(Message(conversation_id=conversation.id, direction="outbound", evolution_id="OUT1", status="sent"))
    db.commit()

    response = client.post("/webhooks/status", json={"EventType": "ack", "ack": {"key": {"id": "OUT1"}, "status": 2}})
    assert response.json() == {"success": True, "message": "ACK processed", "updated": 1, "notFound": 0}
    assert db.query(Message).one().status == "delivered"


def test_status_without_ids_and_unknown_event(client):
    response = client.post("/webhooks/status", json={"type": "ReadReceipt", "event": {}})
    assert response.json() == {"success": True, "message": "No messages to update"}

    response = client.post("/webhooks/status", json={"EventType": "presence"})
    assert response.json() == {"success": True, "message": "Event type not handled by status handler"}


def test_messages_update_with_string_event(client, db, factory, instance):
    conversation = factory.conversation(instance)
    db.add(Message(conversation_id=conversation.id, direction="outbound", evolution_id="OUT1", status="sent"))
    db.commit()

    response = client.post("/webhooks/status", json={"event": "messages_update", "state": "Read"})
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "No messages to update"}
    assert db.query(Message).one().status == "sent"


def test_status_with_scalar_ack(client):
    response = client.post("/webhooks/status", json={"EventType": "ack", "ack": "2", "key": {"id": "NOPE"}})
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "ACK processed", "updated": 0, "notFound": 1}


def test_message_event_with_scalar_fields(client, db, instance):
    event = text_event()
    event["body"] = "raw"
    event["message"]["content"] = "Olá"
    event["message"]["messageType"] = "conversation"

    response = client.post("/webhooks/message", json=event)
    assert response.status_code == 200
    assert db.query(Message).one().body == "Olá, quero agendar"

    response = client.post(
        "/webhooks/message",
        json={"EventType": "messages", "instanceName": "clinic-main", "message": "oops", "chat": "oops"},
    )
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "No wa_chatid"}


@pytest.mark.parametrize(
    "event, expected",
    [
        ({"instance": {"status": "open"}}, "connected"),
        ({"status": {"connected": True}}, "connected"),
        ({"instance": {"status": "connecting"}}, "connecting"),
        ({"instance": {"status": "close"}}, "disconnected"),
    ],
)
def test_connection_event_updates_instance_status(client, db, factory, owner, event, expected):
    instance = factory.instance(owner, status="unknown", qr_code="QR")

    payload = {"EventType": "connection", "instanceName": "clinic-main", **event}
    response = client.post("/webhooks/message", json=payload)

    assert response.status_code == 200
    assert response.json() == {"success": True, "status": expected}
    db.refresh(instance)
    assert instance.status == expected
    assert instance.qr_code == (None if expected == "connected" else "QR")
    assert db.query(Conversation).count() == 0
