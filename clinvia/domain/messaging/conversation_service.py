"""Conversation lifecycle - Closing tickets from the panel"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import TeamMember
from ...models_messaging import Conversation
from .repository import MessagingRepository

logger = logging.getLogger(__name__)


class ConversationService:
    """Service layer for conversation state changes"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = MessagingRepository()

    def resolve(self, conversation_id: str, agent: Optional[TeamMember] = None) -> Conversation:
        """
        Mark a conversation resolved and clear its unread counter.
        A pending automatic follow-up stops; the contact's next message opens a new ticket.
        """
        conversation = self.repo.get_conversation(self.db, conversation_id)
        if not conversation or (agent and conversation.user_id != agent.user_id):
            raise HTTPException(status_code=404, detail="Conversation not found")

        conversation.status = "resolved"
        conversation.unread_count = 0

        follow_up = self.repo.get_follow_up(self.db, conversation.id)
        if follow_up and not follow_up.completed:
            follow_up.completed = True
            follow_up.next_send_at = None

        self.db.commit()
        self.db.refresh(conversation)
        logger.info(f"✅ Conversation {conversation.id} resolved by {agent.id if agent else 'automation'}")
        return conversation
