"""Scheduling service - Availability, appointments and the professional/service catalog"""

import logging
from datetime import timedelta
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ...models import Professional
from ...services import google_calendar_service
from ...services.notification_service import notify_safely
from ...shared.actions import ActionError
from ...shared.serialization import to_dict
from ...shared.timezones import (
    get_tenant_timezone,
    local_day_bounds_utc,
    local_to_utc,
    parse_date,
    parse_time,
    utc_to_local,
    utcnow,
)
from .repository import SchedulingRepository
from .schemas import AppointmentData
from .slots import DEFAULT_DURATION_MINUTES, calculate_slots, resolve_working_window

logger = logging.getLogger(__name__)

PAST_DATE_MESSAGE = (
    "A data informada é anterior a data atual, verifique se a data ou o ano estão corretos e tente novamente."
)


def _parse_day(value: Optional[str]):
    try:
        return parse_date(value)
    except (AttributeError, ValueError) as e:
        raise ActionError("Invalid date format, expected YYYY-MM-DD") from e


def _parse_duration(value: Any) -> int:
    """Slot length in minutes; automations often send it as a string"""
    if value is None or value == "":
        return DEFAULT_DURATION_MINUTES
    if isinstance(value, bool):
        raise ActionError("Invalid duration")
    try:
        minutes = int(value)
    except (TypeError, ValueError) as e:
        raise ActionError("Invalid duration") from e
    if minutes <= 0:
        raise ActionError("Invalid duration")
    return minutes


class SchedulingService:
    """Service layer for scheduling business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def _slots_for(self, user_id: str, professional: Optional[Professional], day, duration: int) -> dict:
        """Slot grid for one professional (or the whole clinic when professional is None)"""
        tz = get_tenant_timezone(self.db, user_id)
        window = resolve_working_window(self.repo.get_settings(self.db, user_id), professional)

        day_start, day_end = local_day_bounds_utc(day, tz)
        appointments = self.repo.get_busy_appointments(
            self.db, user_id, day_start, day_end, professional.id if professional else None
        )
        busy = [
            (
                utc_to_local(a.start_time, tz).replace(tzinfo=None),
                utc_to_local(a.end_time, tz).replace(tzinfo=None),
            )
            for a in appointments
        ]
        return calculate_slots(day, duration, window, busy)

    def _availability_map(self, user_id: str, professionals: list[Professional], day, duration: int) -> dict:
        result = {}
        for professional in professionals:
            slots = self._slots_for(user_id, professional, day, duration)
            result[professional.name] = [
                {"time_available_true": slots["available"]},
                {"time_available_false": slots["unavailable"]},
            ]
        return result

    def check_availability(self, user_id: str, date: Optional[str], duration: Any = None) -> dict:
        if not date:
            raise ActionError("Missing date")
        day = _parse_day(date)
        minutes = _parse_duration(duration)

        professionals = self.repo.list_professionals(self.db, user_id)
        return self._availability_map(user_id, professionals, day, minutes)

    def check_availability_by_service(self, user_id: str, date: Optional[str], service_name: Optional[str]) -> dict:
        if not date or not service_name:
            raise ActionError("Missing date or service_name")
        day = _parse_day(date)

        services = self.repo.search_services_by_name(self.db, user_id, service_name)
        if not services:
            return {}
        service = services[0]

        professionals = [
            p for p in self.repo.list_professionals(self.db, user_id) if service.id in (p.service_ids or [])
        ]
        duration = service.duration_minutes or DEFAULT_DURATION_MINUTES
        return self._availability_map(user_id, professionals, day, duration)

    def available_slots(
        self,
        date: Optional[str],
        professional_id: Optional[str] = None,
        service_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> dict:
        """Flat list of free start times for one day, optionally for a professional and service"""
        if not date:
            raise ActionError("Missing required field: date (YYYY-MM-DD)")
        day = _parse_day(date)

        professional = None
        if professional_id:
            professional = self.repo.get_professional(self.db, professional_id, user_id)
            if not professional:
                raise ActionError("Professional not found", status_code=404)
            user_id = user_id or professional.user_id

        if not user_id:
            raise ActionError("Missing required field: user_id or professional_id")

        duration = DEFAULT_DURATION_MINUTES
        if service_id:
            service = self.repo.get_service(self.db, service_id, user_id)
            if service and service.duration_minutes:
                duration = service.duration_minutes

        slots = self._slots_for(user_id, professional, day, duration)
        if slots["day_off"]:
            return {"available_slots": [], "message": "Day is not a work day"}

        return {
            "available_slots": slots["available"],
            "date": date,
            "professional_id": professional_id,
            "service_duration": duration,
        }

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    async def _sync_calendar(self, user_id: str, appointment_id: str, action: str = "sync_appointment") -> None:
        """Calendar sync never fails the scheduling request"""
        try:
            result = await google_calendar_service.sync_appointment(self.db, appointment_id, user_id, action)
            if result.get("errors"):
                logger.warning(f"⚠️ Google Calendar sync for {appointment_id} had errors: {result['errors']}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Google Calendar sync failed for appointment {appointment_id}: {e}")

    async def create_appointment(self, user_id: str, raw_data: Any) -> dict:
        if not isinstance(raw_data, dict):
            raise ActionError("Missing appointment_data")
        try:
            data = AppointmentData.model_validate(raw_data)
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(p) for p in error["loc"])
            raise ActionError(f"Invalid appointment_data.{field}: {error['msg']}") from e

        tz = get_tenant_timezone(self.db, user_id)
        start = local_to_utc(parse_date(data.date), parse_time(data.start_time), tz)
        if start < utcnow():
            raise ActionError(PAST_DATE_MESSAGE)

        contact = self.repo.get_contact(self.db, data.contact_id, user_id) if data.contact_id else None
        if data.contact_id and not contact:
            raise ActionError("Contact not found", status_code=404)
        professional = None
        if data.professional_id:
            professional = self.repo.get_professional(self.db, data.professional_id, user_id)
        if data.professional_id and not professional:
            raise ActionError("Professional not found", status_code=404)
        if data.service_id and not self.repo.get_service(self.db, data.service_id, user_id):
            raise ActionError("Service not found", status_code=404)

        appointment = self.repo.create_appointment(
            self.db,
            user_id,
            professional_id=data.professional_id,
            contact_id=data.contact_id,
            service_id=data.service_id,
            start_time=start,
            end_time=start + timedelta(minutes=data.duration),
            price=data.price,
            description=data.description,
            type="appointment",
            status="confirmed",
        )
        logger.info(f"📅 Appointment {appointment.id} created for user {user_id}")

        contact_name = (contact.push_name if contact else None) or "Cliente"
        professional_name = professional.name if professional else "Profissional"
        when = utc_to_local(start, tz).strftime("%d/%m às %H:%M")

        notify_safely(
            self.db,
            related_user_id=user_id,
            notification_type="appointment_created",
            title="Novo Agendamento",
            description=f"Agendamento para {contact_name} com {professional_name} em {when}.",
            metadata={
                "appointment_id": appointment.id,
                "professional_id": data.professional_id,
                "contact_id": data.contact_id,
            },
        )

        await self._sync_calendar(user_id, appointment.id)
        self.db.refresh(appointment)
        return to_dict(appointment)

    def fetch_appointments(self, user_id: str, contact_id: Optional[str]) -> list[dict]:
        if not contact_id:
            raise ActionError("Missing contact_id")

        appointments = self.repo.get_contact_appointments(self.db, user_id, contact_id)
        return [
            {
                **to_dict(a),
                "professionals": {"name": a.professional.name} if a.professional else None,
                "products_services": {"name": a.service.name} if a.service else None,
            }
            for a in appointments
        ]

    async def reschedule_appointment(
        self, user_id: str, appointment_id: Optional[str], new_date: Optional[str], new_time: Optional[str]
    ) -> dict:
        if not appointment_id or not new_date or not new_time:
            raise ActionError("Missing appointment_id, new_date, or new_time")

        appointment = self.repo.get_appointment(self.db, appointment_id, user_id)
        if not appointment:
            raise ActionError("Appointment not found")

        try:
            day, at = parse_date(new_date), parse_time(new_time)
        except ValueError as e:
            raise ActionError("Invalid new_date or new_time, expected YYYY-MM-DD and HH:MM") from e

        tz = get_tenant_timezone(self.db, user_id)
        duration = appointment.end_time - appointment.start_time
        start = local_to_utc(day, at, tz)

        appointment.start_time = start
        appointment.end_time = start + duration
        appointment.status = "rescheduled"
        appointment = self.repo.save(self.db, appointment)
        logger.info(f"🔁 Appointment {appointment.id} rescheduled to {new_date} {new_time}")

        await self._sync_calendar(user_id, appointment.id)
        self.db.refresh(appointment)
        return to_dict(appointment)

    async def cancel_appointment(self, user_id: str, appointment_id: Optional[str]) -> dict:
        if not appointment_id:
            raise ActionError("Missing appointment_id")

        appointment = self.repo.get_appointment(self.db, appointment_id, user_id)
        if not appointment:
            raise ActionError("Appointment not found")

        appointment.status = "canceled"
        appointment = self.repo.save(self.db, appointment)
        logger.info(f"🚫 Appointment {appointment.id} canceled")

        await self._sync_calendar(user_id, appointment.id, "delete_appointment")
        self.db.refresh(appointment)
        return to_dict(appointment)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def list_professionals(self, user_id: str) -> list[dict]:
        return [to_dict(p) for p in self.repo.list_professionals(self.db, user_id)]

    def professionals_by_service(self, user_id: str, service_name: Optional[str]) -> list[dict]:
        if not service_name:
            raise ActionError("Missing service_name")

        service_ids = {s.id for s in self.repo.search_services_by_name(self.db, user_id, service_name)}
        if not service_ids:
            return []

        return [
            to_dict(p)
            for p in self.repo.list_professionals(self.db, user_id)
            if service_ids.intersection(p.service_ids or [])
        ]

    def professionals_by_name(self, user_id: str, name: Optional[str]) -> list[dict]:
        if not name:
            raise ActionError("Missing name")
        return [to_dict(p) for p in self.repo.search_professionals_by_name(self.db, user_id, name)]

    def list_services(self, user_id: str) -> list[dict]:
        return [to_dict(s) for s in self.repo.list_services(self.db, user_id)]
