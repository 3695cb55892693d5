"""
Google Calendar Integration Models
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import generate_uuid


class ProfessionalGoogleCalendar(Base):
    """
    One Google Calendar connection.
    professional_id is NULL for the clinic-wide connection, which receives every appointment.
    """

    __tablename__ = "professional_google_calendars"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    professional_id = Column(String(36), ForeignKey("professionals.id"), nullable=True, index=True)

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=False)
    token_expiry = Column(DateTime, nullable=True)

    # Google user info
    google_account_email = Column(String(255), nullable=True)
    calendar_id = Column(String(500), nullable=True)

    # Settings
    sync_mode = Column(String(20), default="one_way")  # one_way, two_way
    is_active = Column(Boolean, default=True)
    last_synced_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    professional = relationship("Professional")


class AppointmentGoogleEvent(Base):
    """Google event id of an appointment on one connection's calendar"""

    __tablename__ = "appointment_google_events"
    __table_args__ = (UniqueConstraint("appointment_id", "connection_id", name="uq_appointment_connection"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    appointment_id = Column(String(36), ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True)
    connection_id = Column(
        String(36), ForeignKey("professional_google_calendars.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_id = Column(String(255), nullable=False, index=True)

    created_at = Column(DateTime, server_default=func.now())
