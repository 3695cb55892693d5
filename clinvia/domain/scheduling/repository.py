"""Scheduling repository - Database operations for professionals, services and appointments"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Appointment, Contact, Professional, ProductService, SchedulingSettings


class SchedulingRepository:
    """Repository for scheduling database operations"""

    @staticmethod
    def get_settings(db: Session, user_id: str) -> Optional[SchedulingSettings]:
        return db.query(SchedulingSettings).filter(SchedulingSettings.user_id == user_id).first()

    @staticmethod
    def list_professionals(db: Session, user_id: str) -> list[Professional]:
        return (
            db.query(Professional)
            .filter(Professional.user_id == user_id)
            .order_by(Professional.name.asc())
            .all()
        )

    @staticmethod
    def get_professional(db: Session, professional_id: str, user_id: Optional[str] = None) -> Optional[Professional]:
        query = db.query(Professional).filter(Professional.id == professional_id)
        if user_id:
            query = query.filter(Professional.user_id == user_id)
        return query.first()

    @staticmethod
    def search_professionals_by_name(db: Session, user_id: str, name: str) -> list[Professional]:
        return (
            db.query(Professional)
            .filter(Professional.user_id == user_id, Professional.name.ilike(f"%{name}%"))
            .order_by(Professional.name.asc())
            .all()
        )

    @staticmethod
    def list_services(db: Session, user_id: str) -> list[ProductService]:
        return (
            db.query(ProductService)
            .filter(ProductService.user_id == user_id, ProductService.type == "service")
            .order_by(ProductService.name.asc())
            .all()
        )

    @staticmethod
    def search_services_by_name(db: Session, user_id: str, name: str) -> list[ProductService]:
        return (
            db.query(ProductService)
            .filter(
                ProductService.user_id == user_id,
                ProductService.type == "service",
                ProductService.name.ilike(f"%{name}%"),
            )
            .order_by(ProductService.name.asc())
            .all()
        )

    @staticmethod
    def get_service(db: Session, service_id: str, user_id: str) -> Optional[ProductService]:
        return (
            db.query(ProductService)
            .filter(ProductService.id == service_id, ProductService.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_contact(db: Session, contact_id: str, user_id: str) -> Optional[Contact]:
        return db.query(Contact).filter(Contact.id == contact_id, Contact.user_id == user_id).first()

    @staticmethod
    def get_busy_appointments(
        db: Session,
        user_id: str,
        start: datetime,
        end: datetime,
        professional_id: Optional[str] = None,
    ) -> list[Appointment]:
        """Appointments and absences overlapping [start, end) that still block the agenda"""
        query = db.query(Appointment).filter(
            Appointment.user_id == user_id,
            Appointment.status != "canceled",
            Appointment.start_time < end,
            Appointment.end_time > start,
        )
        if professional_id:
            query = query.filter(Appointment.professional_id == professional_id)
        return query.all()

    @staticmethod
    def get_appointment(db: Session, appointment_id: str, user_id: str) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_contact_appointments(db: Session, user_id: str, contact_id: str) -> list[Appointment]:
        return (
            db.query(Appointment)
            .options(joinedload(Appointment.professional), joinedload(Appointment.service))
            .filter(Appointment.user_id == user_id, Appointment.contact_id == contact_id)
            .order_by(Appointment.start_time.desc())
            .all()
        )

    @staticmethod
    def create_appointment(db: Session, user_id: str, **appointment_data) -> Appointment:
        appointment = Appointment(user_id=user_id, **appointment_data)
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def save(db: Session, appointment: Appointment) -> Appointment:
        db.commit()
        db.refresh(appointment)
        return appointment
