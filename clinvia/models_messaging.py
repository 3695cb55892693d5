"""
WhatsApp Inbox Models
Gateway instances, groups, conversations, messages and automatic follow-ups
"""
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import generate_uuid


class Instance(Base):
    """A WhatsApp number connected through the gateway"""

    __tablename__ = "instances"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    instance_name = Column(String(100), nullable=True, unique=True, index=True)
    apikey = Column(String(255), nullable=False)  # Gateway token for this instance
    server_url = Column(String(500), nullable=True)
    status = Column(String(20), default="disconnected")  # connected, disconnected, connecting
    webhook_url = Column(String(500), nullable=True)  # External automation to forward events to
    qr_code = Column(Text, nullable=True)
    pair_code = Column(String(20), nullable=True)
    phone_number = Column(String(30), nullable=True)
    profile_name = Column(String(255), nullable=True)
    profile_pic_url = Column(Text, nullable=True)
    default_queue_id = Column(String(36), nullable=True)
    ia_on_wpp = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Group(Base):
    __tablename__ = "groups"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    instance_id = Column(String(36), ForeignKey("instances.id"), nullable=True)
    remote_jid = Column(String(150), nullable=False, index=True)
    group_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    members = relationship("GroupMember", back_populates="group", cascade="all, delete-orphan")


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    group_id = Column(String(36), ForeignKey("groups.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    number = Column(String(100), nullable=False)
    push_name = Column(String(255), nullable=True)
    profile_pic_url = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    group = relationship("Group", back_populates="members")


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    instance_id = Column(String(36), ForeignKey("instances.id"), nullable=True, index=True)
    contact_id = Column(String(36), ForeignKey("contacts.id"), nullable=True, index=True)
    group_id = Column(String(36), ForeignKey("groups.id"), nullable=True, index=True)
    assigned_agent_id = Column(String(36), ForeignKey("team_members.id"), nullable=True)
    queue_id = Column(String(36), nullable=True)
    status = Column(String(20), default="pending")  # pending, open, resolved
    source = Column(String(20), nullable=True)  # webhook, panel
    channel = Column(String(20), default="whatsapp")
    unread_count = Column(Integer, default=0)
    last_message = Column(Text, nullable=True)
    last_message_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    instance = relationship("Instance")
    contact = relationship("Contact")
    group = relationship("Group")


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    conversation_id = Column(String(36), ForeignKey("conversations.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    body = Column(Text, nullable=True)
    caption = Column(Text, nullable=True)
    direction = Column(String(10), nullable=False)  # inbound, outbound
    message_type = Column(String(20), default="text")
    status = Column(String(20), nullable=True)  # sent, delivered, read
    # Gateway message id
    evolution_id = Column(String(255), nullable=True, index=True)
    media_url = Column(Text, nullable=True)
    reply_to_id = Column(String(255), nullable=True)
    quoted_body = Column(Text, nullable=True)
    quoted_sender = Column(String(50), nullable=True)
    sender_name = Column(String(255), nullable=True)
    sender_jid = Column(String(150), nullable=True)
    sender_profile_pic_url = Column(Text, nullable=True)
    is_deleted = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())


class FollowUpCategory(Base):
    __tablename__ = "follow_up_categories"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    templates = relationship(
        "FollowUpTemplate", back_populates="category", order_by="FollowUpTemplate.time_minutes"
    )


class FollowUpTemplate(Base):
    __tablename__ = "follow_up_templates"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    category_id = Column(String(36), ForeignKey("follow_up_categories.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    time_minutes = Column(Integer, nullable=False)  # Delay after the previous step
    created_at = Column(DateTime, server_default=func.now())

    category = relationship("FollowUpCategory", back_populates="templates")


class ConversationFollowUp(Base):
    __tablename__ = "conversation_follow_ups"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    conversation_id = Column(String(36), ForeignKey("conversations.id"), nullable=False, unique=True)
    category_id = Column(String(36), ForeignKey("follow_up_categories.id"), nullable=False)
    auto_send = Column(Boolean, default=False)
    current_template_index = Column(Integer, default=0)
    next_send_at = Column(DateTime, nullable=True, index=True)
    completed = Column(Boolean, default=False)
    last_seen_template_id = Column(String(36), nullable=True)
    extra = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    conversation = relationship("Conversation")
