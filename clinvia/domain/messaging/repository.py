"""Messaging repository - Database operations for the WhatsApp inbox"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Contact, TeamMember
from ...models_messaging import (
    Conversation,
    ConversationFollowUp,
    FollowUpTemplate,
    Group,
    GroupMember,
    Instance,
    Message,
)

OPEN_STATUSES = ("pending", "open")


class MessagingRepository:
    """Repository for inbox database operations"""

    @staticmethod
    def get_instance_by_name(db: Session, instance_name: str) -> Optional[Instance]:
        return db.query(Instance).filter(Instance.instance_name == instance_name).first()

    @staticmethod
    def get_group_by_jid(db: Session, remote_jid: str) -> Optional[Group]:
        return db.query(Group).filter(Group.remote_jid == remote_jid).first()

    @staticmethod
    def get_group(db: Session, group_id: str) -> Optional[Group]:
        return db.query(Group).filter(Group.id == group_id).first()

    @staticmethod
    def get_group_member(db: Session, group_id: str, number: str) -> Optional[GroupMember]:
        return (
            db.query(GroupMember)
            .filter(GroupMember.group_id == group_id, GroupMember.number == number)
            .first()
        )

    @staticmethod
    def get_instance_contact(db: Session, instance_id: str, user_id: str, number: str) -> Optional[Contact]:
        """Contacts are isolated per instance"""
        return (
            db.query(Contact)
            .filter(Contact.instance_id == instance_id, Contact.user_id == user_id, Contact.number == number)
            .first()
        )

    @staticmethod
    def get_contact(db: Session, contact_id: str) -> Optional[Contact]:
        return db.query(Contact).filter(Contact.id == contact_id).first()

    @staticmethod
    def get_team_member(db: Session, member_id: str) -> Optional[TeamMember]:
        return db.query(TeamMember).filter(TeamMember.id == member_id).first()

    @staticmethod
    def get_conversation(db: Session, conversation_id: str) -> Optional[Conversation]:
        return db.query(Conversation).filter(Conversation.id == conversation_id).first()

    @staticmethod
    def find_active_conversation(
        db: Session,
        instance_id: str,
        user_id: str,
        contact_id: Optional[str] = None,
        group_id: Optional[str] = None,
    ) -> Optional[Conversation]:
        """Newest pending/open conversation of a contact or group on an instance"""
        query = db.query(Conversation).filter(
            Conversation.instance_id == instance_id,
            Conversation.user_id == user_id,
            Conversation.status.in_(OPEN_STATUSES),
        )
        if group_id:
            query = query.filter(Conversation.group_id == group_id)
        elif contact_id:
            query = query.filter(Conversation.contact_id == contact_id)
        return query.order_by(Conversation.created_at.desc()).first()

    @staticmethod
    def add(db: Session, row):
        """Insert a row and commit"""
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def update_message_status(db: Session, gateway_id: str, status: str) -> int:
        """Set status on every message with this gateway id; returns the number of rows updated"""
        updated = (
            db.query(Message)
            .filter(Message.evolution_id == gateway_id)
            .update({Message.status: status}, synchronize_session=False)
        )
        db.commit()
        return updated

    @staticmethod
    def get_follow_up(db: Session, conversation_id: str) -> Optional[ConversationFollowUp]:
        return (
            db.query(ConversationFollowUp)
            .filter(ConversationFollowUp.conversation_id == conversation_id)
            .first()
        )

    @staticmethod
    def get_first_template(db: Session, category_id: str) -> Optional[FollowUpTemplate]:
        return (
            db.query(FollowUpTemplate)
            .filter(FollowUpTemplate.category_id == category_id)
            .order_by(FollowUpTemplate.time_minutes.asc())
            .first()
        )
