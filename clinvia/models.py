import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_uuid():
    """Generate a string UUID primary key"""
    return str(uuid.uuid4())


class User(Base):
    """Account owner - every tenant row hangs off a user"""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    company_name = Column(String(255), nullable=True)
    timezone = Column(String(64), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    team_members = relationship("TeamMember", back_populates="owner", cascade="all, delete-orphan")


class TeamMember(Base):
    __tablename__ = "team_members"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    auth_user_id = Column(String(36), nullable=True, index=True)  # Auth provider subject
    name = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), default="agent", nullable=False)  # admin, supervisor, agent
    sign_messages = Column(Boolean, default=True)
    commission = Column(Float, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="team_members")


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    instance_id = Column(String(36), ForeignKey("instances.id"), nullable=True, index=True)
    # WhatsApp JID, e.g. 5511999999999@s.whatsapp.net
    number = Column(String(100), nullable=False, index=True)
    push_name = Column(String(255), nullable=True)
    profile_pic_url = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    company = Column(String(255), nullable=True)
    channel = Column(String(30), default="whatsapp")
    is_group = Column(Boolean, default=False)
    ia_on = Column(Boolean, default=False)
    patient = Column(Boolean, default=False)
    custom_attributes = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    deals = relationship("CrmDeal", back_populates="contact")


class ProductService(Base):
    __tablename__ = "products_services"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), default="service", nullable=False)  # product, service
    price = Column(Float, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    stock_quantity = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Professional(Base):
    __tablename__ = "professionals"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    role = Column(String(100), nullable=True)
    photo_url = Column(Text, nullable=True)
    commission = Column(Float, nullable=True)  # Percentage of the appointment price
    service_ids = Column(JSON, default=list)
    # Day numbers with 0 = Sunday
    work_days = Column(JSON, nullable=True)
    # {"start": "09:00", "end": "18:00", "break_start": "12:00", "break_end": "13:00"}
    work_hours = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class SchedulingSettings(Base):
    __tablename__ = "scheduling_settings"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True)
    start_hour = Column(Integer, default=8, nullable=False)
    end_hour = Column(Integer, default=19, nullable=False)
    work_days = Column(JSON, default=lambda: [0, 1, 2, 3, 4, 5, 6])
    auto_complete = Column(Boolean, default=False)
    timezone = Column(String(64), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    professional_id = Column(String(36), ForeignKey("professionals.id"), nullable=True, index=True)
    contact_id = Column(String(36), ForeignKey("contacts.id"), nullable=True, index=True)
    service_id = Column(String(36), ForeignKey("products_services.id"), nullable=True)
    # Stored as naive UTC
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    price = Column(Float, nullable=True)
    description = Column(Text, nullable=True)
    type = Column(String(20), default="appointment", nullable=False)  # appointment, absence
    # pending, confirmed, rescheduled, completed, canceled
    status = Column(String(20), default="confirmed", nullable=False)
    google_event_id = Column(String(255), nullable=True, index=True)
    google_calendar_sync_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    professional = relationship("Professional")
    contact = relationship("Contact")
    service = relationship("ProductService")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=True)
    related_user_id = Column(String(36), nullable=True, index=True)
    type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)
    read = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())


class CrmFunnel(Base):
    __tablename__ = "crm_funnels"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    stages = relationship("CrmStage", back_populates="funnel", order_by="CrmStage.position")


class CrmStage(Base):
    __tablename__ = "crm_stages"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    funnel_id = Column(String(36), ForeignKey("crm_funnels.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    color = Column(String(20), nullable=True)
    position = Column(Integer, default=0, nullable=False)
    is_system = Column(Boolean, default=False)
    stagnation_limit_days = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    funnel = relationship("CrmFunnel", back_populates="stages")


class CrmDeal(Base):
    __tablename__ = "crm_deals"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    funnel_id = Column(String(36), ForeignKey("crm_funnels.id"), nullable=False, index=True)
    stage_id = Column(String(36), ForeignKey("crm_stages.id"), nullable=False, index=True)
    contact_id = Column(String(36), ForeignKey("contacts.id"), nullable=True, index=True)
    product_service_id = Column(String(36), ForeignKey("products_services.id"), nullable=True)
    assigned_professional_id = Column(String(36), ForeignKey("professionals.id"), nullable=True)
    responsible_id = Column(String(36), ForeignKey("team_members.id"), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    value = Column(Float, nullable=True)
    quantity = Column(Integer, nullable=True)
    priority = Column(String(20), nullable=True)
    loss_reason = Column(String(255), nullable=True)
    stage_changed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    stage = relationship("CrmStage")
    contact = relationship("Contact", back_populates="deals")
