"""
Gateway webhook processing
Inbound/outbound message events feed the inbox; status events update delivery state
"""

import logging
from datetime import timedelta
from typing import Any, Optional

import httpx
from sqlalchemy.orm import Session

from ...models import Contact
from ...models_messaging import Conversation, Group, GroupMember, Instance, Message
from ...services import whatsapp_gateway
from ...shared import outbound
from ...shared.timezones import utcnow
from .repository import MessagingRepository

logger = logging.getLogger(__name__)

FORWARD_USER_AGENT = "Clinvia-Webhook-Proxy/1.0"

MESSAGE_TYPE_MAP = {
    "extendedtextmessage": "text",
    "conversation": "text",
    "imagemessage": "image",
    "audiomessage": "audio",
    "videomessage": "video",
    "documentmessage": "document",
    "stickermessage": "sticker",
    "sticker": "sticker",
    "reactionmessage": "reaction",
    "reaction": "reaction",
}

READ_STATES = {"Read": "read", "Delivered": "delivered"}


class WebhookRejected(Exception):
    """Payload cannot be processed; rendered as {"success": false, "error": message}"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def map_message_type(gateway_type: Optional[str]) -> str:
    """Gateway message type -> inbox message type (unknown types are text)"""
    return MESSAGE_TYPE_MAP.get((gateway_type or "").lower(), "text")


def as_dict(value: Any) -> dict:
    """Nested payload field as a dict; gateways send strings or null in the same slots"""
    return value if isinstance(value, dict) else {}


def event_type_of(payload: dict, default: str) -> str:
    for key in ("EventType", "event", "type"):
        value = payload.get(key)
        if value and isinstance(value, str):
            return value
    return default


def extract_quote(message: dict) -> dict[str, Optional[str]]:
    """reply_to_id, quoted_body and quoted_sender from contextInfo"""
    context = as_dict(as_dict(message.get("content")).get("contextInfo"))
    if not context:
        return {"reply_to_id": None, "quoted_body": None, "quoted_sender": None}

    quoted = as_dict(context.get("quotedMessage"))
    quoted_body = quoted.get("conversation") or as_dict(quoted.get("extendedTextMessage")).get("text")

    participant = context.get("participant")
    quoted_sender = None
    if participant:
        # Linked-device ids belong to the clinic's own number
        quoted_sender = "Atendente" if "@lid" in participant else "Cliente"

    return {
        "reply_to_id": context.get("stanzaID"),
        "quoted_body": quoted_body,
        "quoted_sender": quoted_sender,
    }


def ack_status(value: Any) -> str:
    """ACK level -> message status (2 delivered, 3+ read)"""
    try:
        level = int(value)
    except (TypeError, ValueError):
        return "sent"
    if level == 2:
        return "delivered"
    if level >= 3:
        return "read"
    return "sent"


class WebhookService:
    """Service layer for gateway webhooks"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = MessagingRepository()

    # ------------------------------------------------------------------
    # Message events
    # ------------------------------------------------------------------

    async def handle_message(self, payload: dict) -> dict:
        event_type = event_type_of(payload, "messages")
        instance_name = payload.get("instanceName")
        logger.info(f"📥 Message webhook event={event_type} instance={instance_name}")

        instance = self.repo.get_instance_by_name(self.db, instance_name) if instance_name else None
        if not instance:
            raise WebhookRejected("Instance not found", status_code=404)
        if event_type == "connection":
            return self._update_connection(payload, instance)
        if not instance.user_id:
            logger.error(f"❌ Instance {instance.id} has no owner")
            raise WebhookRejected("Instance has no user_id")

        message = as_dict(payload.get("message"))
        if message.get("isGroup") is True:
            contact, group, sender = None, self._resolve_group(payload, instance), None
            member = self._resolve_group_member(message, group, instance.user_id)
            if member:
                sender = (member.push_name, member.number, member.profile_pic_url)
        else:
            group, contact = None, self._resolve_contact(payload, instance)
            sender = (contact.push_name, contact.number, contact.profile_pic_url)

        saved = self._store_message(payload, instance, contact, group, sender)
        if saved is not None and saved.message_type in whatsapp_gateway.MEDIA_MESSAGE_TYPES and saved.evolution_id:
            saved.media_url = await whatsapp_gateway.download_media(instance.apikey, saved.evolution_id)
            self.db.commit()

        if instance.webhook_url and event_type == "messages":
            await self._forward(instance, payload)

        return {"success": True, "message": "Processed"}

    def _update_connection(self, payload: dict, instance: Instance) -> dict:
        """Connection events carry the instance state the gateway now reports"""
        state = as_dict(payload.get("instance")).get("status") or payload.get("status")
        connected = as_dict(payload.get("status")).get("connected")
        status = whatsapp_gateway.normalize_status(state if isinstance(state, str) else None, connected)

        if instance.status != status:
            logger.info(f"📶 Instance {instance.instance_name}: {instance.status} -> {status}")
            instance.status = status
            if status == "connected":
                instance.qr_code = None
                instance.pair_code = None
            self.db.commit()
        return {"success": True, "status": status}

    def _resolve_group(self, payload: dict, instance: Instance) -> Group:
        message = as_dict(payload.get("message"))
        chat = as_dict(as_dict(payload.get("body")).get("chat"))
        wa_chat_id = chat.get("wa_chatid") or message.get("chatid")
        if not wa_chat_id:
            raise WebhookRejected("No chatid for group")

        group = self.repo.get_group_by_jid(self.db, wa_chat_id)
        if not group:
            group_name = chat.get("name") or message.get("groupName") or "Grupo Desconhecido"
            logger.info(f"👥 Creating group {group_name}")
            return self.repo.add(
                self.db,
                Group(
                    remote_jid=wa_chat_id,
                    group_name=group_name,
                    instance_id=instance.id,
                    user_id=instance.user_id,
                ),
            )

        if not group.instance_id or not group.user_id:
            group.instance_id = group.instance_id or instance.id
            group.user_id = group.user_id or instance.user_id
            self.db.commit()
        return group

    def _resolve_group_member(self, message: dict, group: Group, user_id: str) -> Optional[GroupMember]:
        sender_pn = message.get("sender_pn")
        if not sender_pn:
            return None

        member = self.repo.get_group_member(self.db, group.id, sender_pn)
        if member:
            return member

        return self.repo.add(
            self.db,
            GroupMember(
                group_id=group.id,
                number=sender_pn,
                push_name=message.get("senderName") or "Membro Desconhecido",
                user_id=user_id,
            ),
        )

    def _resolve_contact(self, payload: dict, instance: Instance) -> Contact:
        message = as_dict(payload.get("message"))
        chat = as_dict(payload.get("chat"))
        wa_number = chat.get("wa_chatid") or message.get("chatid")
        if not wa_number:
            raise WebhookRejected("No wa_chatid")

        name = chat.get("name") or chat.get("phone") or "Desconhecido"
        picture = chat.get("image") or chat.get("imagePreview")

        contact = self.repo.get_instance_contact(self.db, instance.id, instance.user_id, wa_number)
        if not contact:
            logger.info(f"👤 Creating contact {wa_number}")
            return self.repo.add(
                self.db,
                Contact(
                    number=wa_number,
                    push_name=name,
                    profile_pic_url=picture,
                    is_group=False,
                    instance_id=instance.id,
                    user_id=instance.user_id,
                ),
            )

        changed = False
        if picture and picture != contact.profile_pic_url:
            contact.profile_pic_url = picture
            changed = True
        if name != "Desconhecido" and name != contact.push_name:
            contact.push_name = name
            changed = True
        if changed:
            self.db.commit()
        return contact

    def _resolve_conversation(
        self, instance: Instance, contact: Optional[Contact], group: Optional[Group], preview: str
    ) -> Conversation:
        now = utcnow()
        conversation = self.repo.find_active_conversation(
            self.db,
            instance.id,
            instance.user_id,
            contact_id=contact.id if contact else None,
            group_id=group.id if group else None,
        )
        if conversation:
            conversation.last_message = preview
            conversation.unread_count = (conversation.unread_count or 0) + 1
            conversation.last_message_at = now
            self.db.commit()
            return conversation

        logger.info(f"💬 Opening conversation on instance {instance.instance_name}")
        return self.repo.add(
            self.db,
            Conversation(
                contact_id=contact.id if contact else None,
                group_id=group.id if group else None,
                instance_id=instance.id,
                user_id=instance.user_id,
                status="pending",
                source="webhook",
                unread_count=1,
                queue_id=instance.default_queue_id,
                last_message=preview,
                last_message_at=now,
            ),
        )

    def _store_message(
        self,
        payload: dict,
        instance: Instance,
        contact: Optional[Contact],
        group: Optional[Group],
        sender: Optional[tuple],
    ) -> Optional[Message]:
        message = as_dict(payload.get("message"))
        body = as_dict(payload.get("body"))
        content = as_dict(message.get("content"))
        text = message.get("text") or content.get("text") or as_dict(body.get("message")).get("text") or ""
        from_me = message.get("fromMe") is True
        gateway_id = message.get("messageid") or message.get("id") or as_dict(body.get("key")).get("id")
        message_type = map_message_type(message.get("messageType") or "conversation")

        conversation = self._resolve_conversation(instance, contact, group, text or "Mídia")
        sender_name, sender_jid, sender_picture = sender or (None, None, None)

        saved = self.repo.add(
            self.db,
            Message(
                conversation_id=conversation.id,
                user_id=instance.user_id,
                body=text,
                direction="outbound" if from_me else "inbound",
                message_type=message_type,
                evolution_id=gateway_id,
                sender_name=sender_name,
                sender_jid=sender_jid,
                sender_profile_pic_url=sender_picture,
                **extract_quote(message),
            ),
        )
        logger.info(f"✅ Message {saved.id} saved to conversation {conversation.id}")

        if not from_me:
            self._reset_follow_up(conversation.id)
        return saved

    def _reset_follow_up(self, conversation_id: str) -> None:
        """A customer reply restarts an automatic follow-up sequence from its first step"""
        follow_up = self.repo.get_follow_up(self.db, conversation_id)
        if not follow_up or not follow_up.auto_send:
            return

        template = self.repo.get_first_template(self.db, follow_up.category_id)
        if not template:
            return

        follow_up.current_template_index = 0
        follow_up.next_send_at = utcnow() + timedelta(minutes=template.time_minutes)
        follow_up.completed = False
        self.db.commit()
        logger.info(f"🔄 Follow-up for conversation {conversation_id} restarted")

    async def _forward(self, instance: Instance, payload: dict) -> None:
        try:
            async with outbound.client(timeout=10.0) as client:
                response = await client.post(
                    instance.webhook_url,
                    json=payload,
                    headers={"User-Agent": FORWARD_USER_AGENT},
                )
            logger.info(f"↪️ Forwarded webhook to {instance.webhook_url} ({response.status_code})")
        except httpx.HTTPError as e:
            logger.error(f"❌ Forward to {instance.webhook_url} failed: {str(e)}")

    # ------------------------------------------------------------------
    # Status events
    # ------------------------------------------------------------------

    def handle_status(self, payload: dict) -> dict:
        event_type = event_type_of(payload, "unknown")
        logger.info(f"📥 Status webhook event={event_type}")

        if payload.get("type") == "ReadReceipt" or event_type == "messages_update":
            message_ids = as_dict(payload.get("event")).get("MessageIDs") or []
            if not message_ids:
                return {"success": True, "message": "No messages to update"}

            status = READ_STATES.get(payload.get("state"), "sent")
            updated = not_found = 0
            for message_id in message_ids:
                if self.repo.update_message_status(self.db, message_id, status):
                    updated += 1
                else:
                    not_found += 1

            logger.info(f"📬 Read receipt: {updated} updated, {not_found} not found ({status})")
            return {"success": True, "message": "Read receipt processed", "updated": updated, "notFound": not_found}

        if event_type == "ack":
            ack = as_dict(payload.get("ack"))
            message_id = as_dict(ack.get("key")).get("id") or as_dict(payload.get("key")).get("id")
            updated = not_found = 0
            if message_id:
                status = ack_status(ack.get("status") or payload.get("status"))
                if self.repo.update_message_status(self.db, message_id, status):
                    updated = 1
                    logger.info(f"📬 ACK {message_id} -> {status}")
                else:
                    not_found = 1
            return {"success": True, "message": "ACK processed", "updated": updated, "notFound": not_found}

        return {"success": True, "message": "Event type not handled by status handler"}
