"""Outbound messaging - Panel and automation messages sent through the gateway"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import TeamMember
from ...models_messaging import Conversation, Message
from ...services import whatsapp_gateway
from ...shared.timezones import utcnow
from .repository import MessagingRepository
from .schemas import SendMessageRequest, SendMessageResponse

logger = logging.getLogger(__name__)


def sign_text(member: Optional[TeamMember], text: Optional[str]) -> Optional[str]:
    """Prefix text with the agent's name in bold, unless the agent opted out"""
    if not member or member.sign_messages is False or not text:
        return text
    name = member.full_name or member.name or "Atendente"
    return f"*{name}:*\n{text}"


class MessageSendService:
    """Service layer for outbound messages"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = MessagingRepository()

    def _resolve_conversation(self, request: SendMessageRequest, agent: Optional[TeamMember]) -> Conversation:
        if request.conversationId:
            conversation = self.repo.get_conversation(self.db, request.conversationId)
            if not conversation:
                raise HTTPException(status_code=404, detail="Conversation not found")
            if agent and conversation.user_id != agent.user_id:
                raise HTTPException(status_code=403, detail="Conversation belongs to another account")
            return conversation

        if not request.contactId and not request.groupId:
            raise HTTPException(status_code=400, detail="Conversation ID is required")

        if not agent:
            raise HTTPException(status_code=401, detail="Cannot create conversation: User not authenticated")

        if request.contactId:
            target = self.repo.get_contact(self.db, request.contactId)
        else:
            target = self.repo.get_group(self.db, request.groupId)
        if target and target.user_id != agent.user_id:
            logger.warning(f"🚫 Agent {agent.id} tried to message a contact/group of another account")
            raise HTTPException(status_code=403, detail="Contact or group belongs to another account")

        instance_id = target.instance_id if target else None

        if not instance_id:
            raise HTTPException(
                status_code=404, detail="Cannot create conversation: Instance not found for contact/group"
            )

        conversation = self.repo.find_active_conversation(
            self.db, instance_id, agent.user_id, contact_id=request.contactId, group_id=request.groupId
        )
        if conversation:
            return conversation

        logger.info(f"💬 Agent {agent.id} opening a new conversation")
        return self.repo.add(
            self.db,
            Conversation(
                contact_id=request.contactId,
                group_id=request.groupId,
                instance_id=instance_id,
                user_id=agent.user_id,
                status="open",
                source="panel",
                assigned_agent_id=agent.id,
            ),
        )

    def _remote_jid(self, conversation: Conversation) -> str:
        if conversation.group_id:
            group = self.repo.get_group(self.db, conversation.group_id)
            if not group or not group.remote_jid:
                raise HTTPException(status_code=404, detail="Group JID not found")
            return group.remote_jid

        if conversation.contact_id:
            contact = self.repo.get_contact(self.db, conversation.contact_id)
            if not contact or not contact.number:
                raise HTTPException(status_code=404, detail="Contact number not found")
            return contact.number

        raise HTTPException(status_code=400, detail="Invalid conversation: missing group_id and contact_id")

    def _mark_human_activity(self, conversation: Conversation, agent: Optional[TeamMember]) -> None:
        """A human reply opens a pending conversation and assigns the replying agent"""
        if conversation.status != "pending":
            return
        conversation.status = "open"
        if agent:
            conversation.assigned_agent_id = agent.id
            logger.info(f"🙋 Conversation {conversation.id} assigned to agent {agent.id}")
        self.db.commit()

    async def send(self, request: SendMessageRequest, agent: Optional[TeamMember] = None) -> SendMessageResponse:
        if request.messageType == "text" and not request.body:
            raise HTTPException(status_code=400, detail="body is required for text messages")
        if request.messageType != "text" and not request.mediaUrl:
            raise HTTPException(status_code=400, detail="mediaUrl is required for media messages")

        conversation = self._resolve_conversation(request, agent)
        instance = conversation.instance
        if not instance or not instance.apikey:
            raise HTTPException(status_code=400, detail="Instance configuration missing")

        remote_jid = self._remote_jid(conversation)
        if instance.status != "connected":
            logger.warning(f"⚠️ Instance {instance.name} is {instance.status}, attempting to send anyway")

        if not request.sent_by_api:
            self._mark_human_activity(conversation, agent)

        signer = None
        if conversation.status == "open" and conversation.assigned_agent_id:
            signer = self.repo.get_team_member(self.db, conversation.assigned_agent_id)

        try:
            if request.messageType == "text":
                body = sign_text(signer, request.body)
                caption = None
                response = await whatsapp_gateway.send_text(
                    instance.apikey, remote_jid, body, reply_id=request.replyId, forward=request.forward
                )
            else:
                body = request.body or f"[{request.messageType}]"
                caption = sign_text(signer, request.caption) if request.messageType == "document" else request.caption
                response = await whatsapp_gateway.send_media(
                    instance.apikey,
                    remote_jid,
                    request.messageType,
                    request.mediaUrl,
                    caption=request.caption,
                    forward=request.forward,
                )
        except whatsapp_gateway.GatewayError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e

        provider_id = whatsapp_gateway.gateway_message_id(response)
        message = self.repo.add(
            self.db,
            Message(
                conversation_id=conversation.id,
                user_id=instance.user_id,
                body=body,
                caption=caption,
                direction="outbound",
                message_type=request.messageType,
                media_url=request.mediaUrl,
                evolution_id=provider_id,
                reply_to_id=request.replyId,
                quoted_body=request.quotedBody,
                quoted_sender=request.quotedSender,
                status="sent",
            ),
        )

        conversation.last_message = body if request.messageType == "text" else (request.caption or body)
        conversation.last_message_at = utcnow()
        self.db.commit()

        logger.info(f"✅ Message {message.id} sent on conversation {conversation.id}")
        return SendMessageResponse(messageId=message.id, providerId=provider_id)
